from mklein.models.flux2.model.flux2_vae.common.attention import Flux2AttentionBlock
from mklein.models.flux2.model.flux2_vae.common.batch_norm_stats import Flux2BatchNormStats
from mklein.models.flux2.model.flux2_vae.common.conv_2d import Flux2Conv2d
from mklein.models.flux2.model.flux2_vae.common.downsample_2d import Flux2Downsample2D
from mklein.models.flux2.model.flux2_vae.common.group_norm import Flux2GroupNorm
from mklein.models.flux2.model.flux2_vae.common.resnet_block_2d import Flux2ResnetBlock2D
from mklein.models.flux2.model.flux2_vae.common.unet_mid_block import Flux2UNetMidBlock2D
from mklein.models.flux2.model.flux2_vae.common.upsample_2d import Flux2Upsample2D

__all__ = [
    "Flux2AttentionBlock",
    "Flux2BatchNormStats",
    "Flux2Conv2d",
    "Flux2Downsample2D",
    "Flux2GroupNorm",
    "Flux2ResnetBlock2D",
    "Flux2UNetMidBlock2D",
    "Flux2Upsample2D",
]
