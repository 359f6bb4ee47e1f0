import mlx.core as mx
from mlx import nn

from mklein.models.common.config.model_config import VAEConfig
from mklein.models.flux2.model.flux2_vae.common.batch_norm_stats import Flux2BatchNormStats
from mklein.models.flux2.model.flux2_vae.decoder.decoder import Flux2Decoder
from mklein.models.flux2.model.flux2_vae.encoder.encoder import Flux2Encoder


class Flux2VAE(nn.Module):
    def __init__(self, config: VAEConfig | None = None):
        super().__init__()
        config = config or VAEConfig()
        self.latent_channels = config.latent_channels
        self.scaling_factor = config.scaling_factor
        self.shift_factor = config.shift_factor
        self.spatial_scale = config.spatial_scale
        self.encoder = Flux2Encoder(
            in_channels=config.in_channels,
            latent_channels=config.latent_channels,
            block_out_channels=config.block_out_channels,
            layers_per_block=config.layers_per_block,
            norm_num_groups=config.norm_num_groups,
        )
        self.decoder = Flux2Decoder(
            out_channels=config.out_channels,
            latent_channels=config.latent_channels,
            block_out_channels=config.block_out_channels,
            layers_per_block=config.layers_per_block,
            norm_num_groups=config.norm_num_groups,
        )
        self.quant_conv = nn.Conv2d(2 * self.latent_channels, 2 * self.latent_channels, kernel_size=1, padding=0)
        self.post_quant_conv = nn.Conv2d(self.latent_channels, self.latent_channels, kernel_size=1, padding=0)
        self.bn = Flux2BatchNormStats(num_features=4 * self.latent_channels, eps=config.batch_norm_eps)

    @staticmethod
    def from_config(config: VAEConfig) -> "Flux2VAE":
        return Flux2VAE(config)

    def encode(self, image: mx.array) -> mx.array:
        enc = self.encoder(image)
        enc = mx.transpose(enc, (0, 2, 3, 1))
        enc = self.quant_conv(enc)
        enc = mx.transpose(enc, (0, 3, 1, 2))
        # The posterior mean is used deterministically
        mean, _ = mx.split(enc, 2, axis=1)
        return (mean - self.shift_factor) * self.scaling_factor

    def decode(self, latents: mx.array) -> mx.array:
        latents = (latents / self.scaling_factor) + self.shift_factor
        latents = mx.transpose(latents, (0, 2, 3, 1))
        latents = self.post_quant_conv(latents)
        latents = mx.transpose(latents, (0, 3, 1, 2))
        return self.decoder(latents)
