"""FLUX.2 klein model initializer.

Handles loading and initialization of the klein components:
- Qwen3 text encoder (loaded lazily through a residency object)
- 32-channel VAE
- FLUX.2 transformer (5 double + 20 single blocks for the 4B model)
"""

import gc
import json
import logging
from dataclasses import replace
from functools import partial
from pathlib import Path

import mlx.core as mx

from mklein.callbacks.callback_registry import CallbackRegistry
from mklein.models.common.config.model_config import ModelConfig, TextEncoderConfig, TransformerConfig, VAEConfig
from mklein.models.common.resolution.path_resolution import PathResolution
from mklein.models.common.tokenizer import Tokenizer, TokenizerLoader
from mklein.models.common.weights.loading.loaded_weights import TensorIndex
from mklein.models.common.weights.loading.safetensors_header import SafetensorsHeader
from mklein.models.common.weights.loading.weight_applier import WeightApplier
from mklein.models.common.weights.loading.weight_loader import WeightLoader
from mklein.models.flux2.model.flux2_text_encoder import Qwen3TextEncoder, TextEncoderResidency
from mklein.models.flux2.model.flux2_transformer import Flux2Transformer
from mklein.models.flux2.model.flux2_vae import Flux2VAE
from mklein.models.flux2.weights import Flux2KleinWeightDefinition
from mklein.utils.exceptions import EmbeddingDimensionError, UnsupportedFormatError, ValidationError

logger = logging.getLogger(__name__)


class Flux2Initializer:
    @staticmethod
    def init(
        model,
        model_config: ModelConfig,
        quantize: int | None,
        model_path: str | Path | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> None:
        """
        Populate ``model`` with every component of a klein model directory.

        On any failure the partially initialized components are dropped and
        the MLX cache cleared before the error propagates.
        """
        Flux2Initializer._init_config(model, model_config)
        try:
            root_path = PathResolution.resolve(
                path=model_path or model_config.model_name,
                patterns=Flux2KleinWeightDefinition.get_download_patterns(),
            )
            model.model_path = root_path
            indexes = Flux2Initializer._scan_components(root_path)
            model.model_config = Flux2Initializer._resolve_model_config(root_path, model_config, indexes)
            model.tensor_indexes = indexes
            model.tokenizer = tokenizer or TokenizerLoader.load(
                definition=replace(
                    Flux2KleinWeightDefinition.get_tokenizer(),
                    max_length=model.model_config.max_sequence_length,
                ),
                root_path=root_path,
            )
            Flux2Initializer._init_models(model, root_path, indexes, quantize)
            model.text_encoder_residency = TextEncoderResidency(
                loader=partial(
                    Flux2Initializer.load_text_encoder,
                    root_path=root_path,
                    config=model.model_config.text_encoder,
                    index=indexes["text_encoder"],
                    quantize=quantize,
                )
            )
        except Exception:
            Flux2Initializer.free(model)
            raise

    @staticmethod
    def _init_config(model, model_config: ModelConfig) -> None:
        model.model_config = model_config
        model.callbacks = CallbackRegistry()
        model.model_path = None
        model.tensor_indexes = {}
        model.tokenizer = None
        model.vae = None
        model.transformer = None
        model.text_encoder_residency = None
        model.bits = None

    @staticmethod
    def _scan_components(root_path: Path) -> dict[str, TensorIndex]:
        return {
            component.name: SafetensorsHeader.scan(root_path / component.hf_subdir)
            for component in Flux2KleinWeightDefinition.get_components()
        }

    @staticmethod
    def _resolve_model_config(root_path: Path, model_config: ModelConfig, indexes: dict[str, TensorIndex]) -> ModelConfig:
        transformer = TransformerConfig.from_dict(Flux2Initializer._read_config(root_path / "transformer"))
        text_encoder = TextEncoderConfig.from_dict(Flux2Initializer._read_config(root_path / "text_encoder"))
        vae = VAEConfig.from_dict(Flux2Initializer._read_config(root_path / "vae"))

        # Block counts come from the stored tensors, whatever the config claims
        num_double = indexes["transformer"].count_indexed("transformer_blocks.")
        num_single = indexes["transformer"].count_indexed("single_transformer_blocks.")
        num_text_layers = indexes["text_encoder"].count_indexed("model.layers.") or indexes["text_encoder"].count_indexed("layers.")  # fmt: off
        if num_double:
            transformer = replace(transformer, num_layers=num_double)
        if num_single:
            transformer = replace(transformer, num_single_layers=num_single)
        if num_text_layers:
            text_encoder = replace(text_encoder, num_hidden_layers=num_text_layers)

        resolved = model_config.with_components(transformer=transformer, text_encoder=text_encoder, vae=vae)
        Flux2Initializer._check_compatibility(resolved)
        logger.debug(
            f"Resolved architecture: {transformer.num_layers} double blocks, {transformer.num_single_layers} single "
            f"blocks, {text_encoder.num_hidden_layers} text encoder layers"
        )
        return resolved

    @staticmethod
    def _check_compatibility(config: ModelConfig) -> None:
        deepest = max(config.text_encoder_out_layers)
        if deepest > config.text_encoder.num_hidden_layers:
            raise ValidationError(
                f"Text encoder has {config.text_encoder.num_hidden_layers} layers, "
                f"hidden state {deepest} is required"
            )
        if config.text_embedding_dim != config.transformer.joint_attention_dim:
            raise EmbeddingDimensionError(
                f"Text encoder produces {config.text_embedding_dim} wide embeddings, "
                f"the transformer expects {config.transformer.joint_attention_dim}"
            )

    @staticmethod
    def _read_config(component_path: Path) -> dict:
        config_path = component_path / "config.json"
        if not config_path.exists():
            return {}
        try:
            with open(config_path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise UnsupportedFormatError(f"Could not read {config_path}: {e}") from e

    @staticmethod
    def _init_models(model, root_path: Path, indexes: dict[str, TensorIndex], quantize: int | None) -> None:
        config = model.model_config
        model.vae = Flux2VAE.from_config(config.vae)
        Flux2Initializer._apply_weights(model.vae, root_path, "vae", indexes["vae"], quantize)
        model.transformer = Flux2Transformer.from_config(config.transformer)
        model.bits = Flux2Initializer._apply_weights(
            model.transformer, root_path, "transformer", indexes["transformer"], quantize
        )

    @staticmethod
    def _apply_weights(module, root_path: Path, name: str, index: TensorIndex, quantize: int | None) -> int | None:
        component = Flux2KleinWeightDefinition.get_component(name)
        weights = WeightLoader.load_component(root_path, component, index)
        bits = WeightApplier.apply_and_quantize_single(weights, module, component, quantize)
        del weights
        mx.eval(module.parameters())
        return bits

    @staticmethod
    def load_text_encoder(
        root_path: Path,
        config: TextEncoderConfig,
        index: TensorIndex,
        quantize: int | None,
    ) -> Qwen3TextEncoder:
        text_encoder = Qwen3TextEncoder.from_config(config)
        try:
            Flux2Initializer._apply_weights(text_encoder, root_path, "text_encoder", index, quantize)
        except Exception:
            del text_encoder
            gc.collect()
            mx.clear_cache()
            raise
        return text_encoder

    @staticmethod
    def free(model) -> None:
        if getattr(model, "text_encoder_residency", None) is not None:
            model.text_encoder_residency.release()
        model.text_encoder_residency = None
        model.vae = None
        model.transformer = None
        model.tokenizer = None
        model.tensor_indexes = {}
        gc.collect()
        mx.clear_cache()
