from mklein.models.common.config.config import Config
from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.config.model_config import ModelConfig, TextEncoderConfig, TransformerConfig, VAEConfig

__all__ = ["Config", "GenerationParams", "ModelConfig", "TextEncoderConfig", "TransformerConfig", "VAEConfig"]
