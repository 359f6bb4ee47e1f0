from mklein.models.flux2.sampler.flux2_sampler import Flux2Sampler
from mklein.models.flux2.sampler.sampler_state import SamplerState

__all__ = ["Flux2Sampler", "SamplerState"]
