import mlx.core as mx
from mlx import nn

from mklein.models.flux2.model.flux2_vae.common.conv_2d import Flux2Conv2d
from mklein.models.flux2.model.flux2_vae.common.group_norm import Flux2GroupNorm
from mklein.models.flux2.model.flux2_vae.common.unet_mid_block import Flux2UNetMidBlock2D
from mklein.models.flux2.model.flux2_vae.encoder.down_encoder_block import Flux2DownEncoderBlock2D


class Flux2Encoder(nn.Module):
    def __init__(
        self,
        in_channels: int = 3,
        latent_channels: int = 32,
        block_out_channels: tuple[int, ...] = (128, 256, 512, 512),
        layers_per_block: int = 2,
        norm_num_groups: int = 32,
        eps: float = 1e-6,
    ):
        super().__init__()
        self.conv_in = Flux2Conv2d(in_channels, block_out_channels[0])
        self.down_blocks = [
            Flux2DownEncoderBlock2D(
                in_channels=block_out_channels[i - 1] if i > 0 else block_out_channels[0],
                out_channels=output_channel,
                num_layers=layers_per_block,
                eps=eps,
                groups=norm_num_groups,
                add_downsample=i < len(block_out_channels) - 1,
            )
            for i, output_channel in enumerate(block_out_channels)
        ]
        self.mid_block = Flux2UNetMidBlock2D(block_out_channels[-1], eps=eps, groups=norm_num_groups)
        self.conv_norm_out = Flux2GroupNorm(block_out_channels[-1], num_groups=norm_num_groups, eps=eps)
        # Mean and log-variance of the latent distribution
        self.conv_out = Flux2Conv2d(block_out_channels[-1], 2 * latent_channels)

    def __call__(self, hidden_states: mx.array) -> mx.array:
        hidden_states = self.conv_in(hidden_states)
        for down_block in self.down_blocks:
            hidden_states = down_block(hidden_states)
        hidden_states = self.mid_block(hidden_states)
        hidden_states = self.conv_norm_out(hidden_states)
        hidden_states = nn.silu(hidden_states)
        return self.conv_out(hidden_states)
