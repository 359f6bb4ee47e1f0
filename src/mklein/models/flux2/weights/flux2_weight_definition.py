"""Weight definitions for FLUX.2 klein.

Defines which components to load, where they live in a diffusers-style model
directory and how their tensor names map onto the MLX modules.
"""

from typing import List

from mklein.models.common.config.model_config import ModelConfig
from mklein.models.common.weights.loading.weight_definition import ComponentDefinition, TokenizerDefinition
from mklein.models.flux2.weights.flux2_weight_mapping import Flux2WeightMapping


class Flux2KleinWeightDefinition:
    @staticmethod
    def get_components() -> List[ComponentDefinition]:
        return [
            ComponentDefinition(
                name="vae",
                hf_subdir="vae",
                precision=ModelConfig.precision,
                mapping_getter=Flux2WeightMapping.get_vae_mapping,
                # Small enough that full precision costs little
                skip_quantization=True,
            ),
            ComponentDefinition(
                name="transformer",
                hf_subdir="transformer",
                precision=ModelConfig.precision,
                mapping_getter=Flux2WeightMapping.get_transformer_mapping,
            ),
            ComponentDefinition(
                name="text_encoder",
                hf_subdir="text_encoder",
                precision=ModelConfig.precision,
                mapping_getter=Flux2WeightMapping.get_text_encoder_mapping,
            ),
        ]

    @staticmethod
    def get_component(name: str) -> ComponentDefinition:
        return next(c for c in Flux2KleinWeightDefinition.get_components() if c.name == name)

    @staticmethod
    def get_tokenizer() -> TokenizerDefinition:
        return TokenizerDefinition(
            name="qwen3",
            hf_subdir="tokenizer",
            fallback_subdirs=["text_encoder", "."],
            max_length=512,
            use_chat_template=True,
            chat_template_kwargs={"enable_thinking": False},
        )

    @staticmethod
    def get_download_patterns() -> List[str]:
        return [
            "text_encoder/*.safetensors",
            "text_encoder/*.json",
            "transformer/*.safetensors",
            "transformer/*.json",
            "vae/*.safetensors",
            "vae/*.json",
            "tokenizer/*",
            "model_index.json",
        ]
