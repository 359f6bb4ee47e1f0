"""FLUX.2 VAE decoder.

Mirrors the encoder in reverse: the deepest channel width is processed first
and every up block except the last doubles the spatial resolution.
"""

import mlx.core as mx
from mlx import nn

from mklein.models.flux2.model.flux2_vae.common.conv_2d import Flux2Conv2d
from mklein.models.flux2.model.flux2_vae.common.group_norm import Flux2GroupNorm
from mklein.models.flux2.model.flux2_vae.common.unet_mid_block import Flux2UNetMidBlock2D
from mklein.models.flux2.model.flux2_vae.decoder.up_decoder_block import Flux2UpDecoderBlock2D


class Flux2Decoder(nn.Module):
    def __init__(
        self,
        out_channels: int = 3,
        latent_channels: int = 32,
        block_out_channels: tuple[int, ...] = (128, 256, 512, 512),
        layers_per_block: int = 2,
        norm_num_groups: int = 32,
        eps: float = 1e-6,
    ):
        super().__init__()
        reversed_channels = list(reversed(block_out_channels))
        self.conv_in = Flux2Conv2d(latent_channels, reversed_channels[0])
        self.mid_block = Flux2UNetMidBlock2D(reversed_channels[0], eps=eps, groups=norm_num_groups)
        self.up_blocks = [
            Flux2UpDecoderBlock2D(
                in_channels=reversed_channels[i - 1] if i > 0 else reversed_channels[0],
                out_channels=output_channel,
                num_layers=layers_per_block + 1,
                eps=eps,
                groups=norm_num_groups,
                add_upsample=i < len(reversed_channels) - 1,
            )
            for i, output_channel in enumerate(reversed_channels)
        ]
        self.conv_norm_out = Flux2GroupNorm(block_out_channels[0], num_groups=norm_num_groups, eps=eps)
        self.conv_out = Flux2Conv2d(block_out_channels[0], out_channels)

    def __call__(self, latents: mx.array) -> mx.array:
        """Decode latents [B, C, H, W] into an image [B, 3, H * s, W * s] in roughly [-1, 1]."""
        hidden_states = self.conv_in(latents)
        hidden_states = self.mid_block(hidden_states)
        for up_block in self.up_blocks:
            hidden_states = up_block(hidden_states)
        hidden_states = self.conv_norm_out(hidden_states)
        hidden_states = nn.silu(hidden_states)
        return self.conv_out(hidden_states)
