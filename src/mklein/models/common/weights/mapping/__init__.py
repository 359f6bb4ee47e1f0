from mklein.models.common.weights.mapping.weight_mapper import WeightMapper
from mklein.models.common.weights.mapping.weight_mapping import WeightMapping, WeightTarget
from mklein.models.common.weights.mapping.weight_transforms import WeightTransforms

__all__ = ["WeightMapper", "WeightMapping", "WeightTarget", "WeightTransforms"]
