from dataclasses import dataclass, field, replace
from functools import lru_cache

import mlx.core as mx

from mklein.utils.exceptions import ValidationError


@dataclass(frozen=True)
class TransformerConfig:
    in_channels: int = 128
    num_layers: int = 5
    num_single_layers: int = 20
    attention_head_dim: int = 128
    num_attention_heads: int = 24
    joint_attention_dim: int = 7680
    timestep_guidance_channels: int = 256
    mlp_ratio: float = 3.0
    axes_dims_rope: tuple[int, ...] = (32, 32, 32, 32)
    rope_theta: int = 2000
    eps: float = 1e-6
    guidance_embeds: bool = False

    @property
    def inner_dim(self) -> int:
        return self.num_attention_heads * self.attention_head_dim

    @staticmethod
    def from_dict(values: dict) -> "TransformerConfig":
        known = {k: v for k, v in values.items() if k in TransformerConfig.__dataclass_fields__}
        if "axes_dims_rope" in known:
            known["axes_dims_rope"] = tuple(known["axes_dims_rope"])
        return TransformerConfig(**known)


@dataclass(frozen=True)
class TextEncoderConfig:
    vocab_size: int = 151936
    hidden_size: int = 2560
    num_hidden_layers: int = 36
    num_attention_heads: int = 32
    num_key_value_heads: int = 8
    head_dim: int = 128
    intermediate_size: int = 9728
    rope_theta: float = 1000000.0
    rms_norm_eps: float = 1e-6
    max_position_embeddings: int = 40960

    @staticmethod
    def from_dict(values: dict) -> "TextEncoderConfig":
        return TextEncoderConfig(**{k: v for k, v in values.items() if k in TextEncoderConfig.__dataclass_fields__})


@dataclass(frozen=True)
class VAEConfig:
    in_channels: int = 3
    out_channels: int = 3
    latent_channels: int = 32
    block_out_channels: tuple[int, ...] = (128, 256, 512, 512)
    layers_per_block: int = 2
    norm_num_groups: int = 32
    batch_norm_eps: float = 1e-4
    scaling_factor: float = 1.0
    shift_factor: float = 0.0

    @staticmethod
    def from_dict(values: dict) -> "VAEConfig":
        known = {k: v for k, v in values.items() if k in VAEConfig.__dataclass_fields__}
        if "block_out_channels" in known:
            known["block_out_channels"] = tuple(known["block_out_channels"])
        # Some exports store these as null
        return VAEConfig(**{k: v for k, v in known.items() if v is not None})

    @property
    def spatial_scale(self) -> int:
        return 2 ** (len(self.block_out_channels) - 1)


@dataclass(frozen=True)
class ModelConfig:
    precision = mx.bfloat16

    aliases: tuple[str, ...]
    model_name: str
    num_train_steps: int = 1000
    max_sequence_length: int = 512
    text_encoder_out_layers: tuple[int, ...] = (9, 18, 27)
    transformer: TransformerConfig = field(default_factory=TransformerConfig)
    text_encoder: TextEncoderConfig = field(default_factory=TextEncoderConfig)
    vae: VAEConfig = field(default_factory=VAEConfig)

    @staticmethod
    @lru_cache
    def flux2_klein_4b() -> "ModelConfig":
        return AVAILABLE_MODELS["flux2-klein-4b"]

    @staticmethod
    def from_name(model_name: str) -> "ModelConfig":
        for config in AVAILABLE_MODELS.values():
            if model_name in config.aliases or model_name == config.model_name:
                return config
        raise ValidationError(f"Unknown model {model_name!r}. Available: {sorted(AVAILABLE_MODELS)}")

    @property
    def text_embedding_dim(self) -> int:
        return len(self.text_encoder_out_layers) * self.text_encoder.hidden_size

    def with_components(
        self,
        transformer: TransformerConfig | None = None,
        text_encoder: TextEncoderConfig | None = None,
        vae: VAEConfig | None = None,
        max_sequence_length: int | None = None,
    ) -> "ModelConfig":
        return replace(
            self,
            transformer=transformer or self.transformer,
            text_encoder=text_encoder or self.text_encoder,
            vae=vae or self.vae,
            max_sequence_length=max_sequence_length or self.max_sequence_length,
        )


AVAILABLE_MODELS = {
    "flux2-klein-4b": ModelConfig(
        aliases=("flux2-klein-4b", "klein", "klein-4b"),
        model_name="black-forest-labs/FLUX.2-klein-4B",
    ),
}
