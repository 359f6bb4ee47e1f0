import logging
from pathlib import Path

import mlx.core as mx
from mlx.utils import tree_unflatten

from mklein.models.common.weights.loading.loaded_weights import LoadedWeights, TensorIndex
from mklein.models.common.weights.loading.safetensors_header import SafetensorsHeader
from mklein.models.common.weights.loading.weight_definition import ComponentDefinition
from mklein.models.common.weights.mapping.weight_mapper import WeightMapper
from mklein.utils.exceptions import UnsupportedFormatError

logger = logging.getLogger(__name__)


class WeightLoader:
    @staticmethod
    def load_component(root_path: Path, component: ComponentDefinition, index: TensorIndex | None = None) -> LoadedWeights:
        component_path = root_path / component.hf_subdir
        index = index or SafetensorsHeader.scan(component_path)
        raw_weights = WeightLoader._load_safetensors(component_path)

        # Saved in our own format: flattened module paths, no mapping needed
        if index.meta_data.mklein_version is not None:
            weights = tree_unflatten(list(raw_weights.items()))
        else:
            if component.precision is not None:
                raw_weights = WeightLoader._convert_precision(raw_weights, component.precision)
            weights = WeightMapper.apply_mapping(hf_weights=raw_weights, mapping=component.mapping_getter())

        return LoadedWeights(components={component.name: weights}, meta_data=index.meta_data)

    @staticmethod
    def _load_safetensors(path: Path) -> dict[str, mx.array]:
        all_weights: dict[str, mx.array] = {}
        for shard in SafetensorsHeader.shard_files(path):
            try:
                all_weights.update(mx.load(str(shard)))
            except (ValueError, RuntimeError) as e:
                raise UnsupportedFormatError(f"Could not load {shard}: {e}") from e
        return all_weights

    @staticmethod
    def _convert_precision(weights: dict[str, mx.array], precision: mx.Dtype) -> dict[str, mx.array]:
        return {k: v if v.dtype == precision else v.astype(precision) for k, v in weights.items()}
