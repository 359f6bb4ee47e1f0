import logging

import mlx.nn as nn
from mlx.utils import tree_flatten

from mklein.utils.exceptions import MissingWeightError, ShapeMismatchError

logger = logging.getLogger(__name__)


class WeightValidator:
    @staticmethod
    def validate(model: nn.Module, weights: dict, component_name: str) -> None:
        expected = dict(tree_flatten(model.parameters()))
        provided = dict(tree_flatten(weights))

        missing = sorted(set(expected) - set(provided))
        if missing:
            raise MissingWeightError(
                f"{component_name}: {len(missing)} required tensors missing from the weight store, e.g. {missing[:5]}"
            )

        for path, param in expected.items():
            if tuple(provided[path].shape) != tuple(param.shape):
                raise ShapeMismatchError(
                    f"{component_name}: tensor '{path}' has shape {tuple(provided[path].shape)}, "
                    f"expected {tuple(param.shape)}"
                )

        unexpected = set(provided) - set(expected)
        if unexpected:
            logger.debug(f"{component_name}: ignoring {len(unexpected)} unused tensors")
