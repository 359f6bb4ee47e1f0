from mklein.models.flux2.model.flux2_transformer.block_phase import BlockPhase
from mklein.models.flux2.model.flux2_transformer.transformer import Flux2Transformer

__all__ = ["BlockPhase", "Flux2Transformer"]
