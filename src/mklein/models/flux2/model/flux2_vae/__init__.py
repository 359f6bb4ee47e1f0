from mklein.models.flux2.model.flux2_vae.vae import Flux2VAE

__all__ = ["Flux2VAE"]
