import logging

import mlx.nn as nn
from mlx.utils import tree_flatten, tree_unflatten

from mklein.models.common.resolution.quantization_resolution import QuantizationResolution
from mklein.models.common.weights.loading.loaded_weights import LoadedWeights
from mklein.models.common.weights.loading.weight_definition import ComponentDefinition
from mklein.models.common.weights.loading.weight_validator import WeightValidator

logger = logging.getLogger(__name__)


def quantization_predicate(path: str, module: nn.Module) -> bool:
    # mlx quantizes along the last axis in groups of 64
    return hasattr(module, "to_quantized") and module.weight.shape[-1] % 64 == 0


class WeightApplier:
    @staticmethod
    def apply_and_quantize_single(
        weights: LoadedWeights,
        model: nn.Module,
        component: ComponentDefinition,
        quantize_arg: int | None,
    ) -> int | None:
        stored_q = weights.meta_data.quantization_level
        component_weights = weights.components[component.name]
        bits = QuantizationResolution.resolve(stored=stored_q, requested=quantize_arg)

        if bits is not None and stored_q is not None and not component.skip_quantization:
            nn.quantize(model, class_predicate=quantization_predicate, bits=bits)

        WeightValidator.validate(model, component_weights, component.name)
        model.update(WeightApplier._only_known(model, component_weights), strict=False)

        if bits is not None and stored_q is None and not component.skip_quantization:
            nn.quantize(model, class_predicate=quantization_predicate, bits=bits)

        logger.debug(f"Applied weights for {component.name} (quantization: {bits})")
        return bits

    @staticmethod
    def _only_known(model: nn.Module, weights: dict) -> dict:
        expected = dict(tree_flatten(model.parameters()))
        return tree_unflatten([(k, v) for k, v in tree_flatten(weights) if k in expected])
