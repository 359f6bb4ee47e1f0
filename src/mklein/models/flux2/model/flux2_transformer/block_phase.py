from enum import Enum
from typing import Callable


class BlockPhase(str, Enum):
    DOUBLE_BLOCK = "double_block"
    SINGLE_BLOCK = "single_block"
    FINAL_LAYER = "final_layer"


# (phase, block index, blocks in phase)
SubstepHook = Callable[[BlockPhase, int, int], None]
