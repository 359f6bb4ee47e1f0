from mklein.models.flux2.weights.flux2_weight_definition import Flux2KleinWeightDefinition
from mklein.models.flux2.weights.flux2_weight_mapping import Flux2WeightMapping

__all__ = ["Flux2KleinWeightDefinition", "Flux2WeightMapping"]
