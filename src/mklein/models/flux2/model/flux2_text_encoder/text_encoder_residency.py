import gc
import logging
from enum import Enum
from typing import Callable

import mlx.core as mx

from mklein.models.flux2.model.flux2_text_encoder.qwen3_text_encoder import Qwen3TextEncoder

logger = logging.getLogger(__name__)


class ResidencyState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    RELEASED = "released"


class TextEncoderResidency:
    """
    Owns the text encoder weights, which are only needed while a prompt is
    encoded. ``acquire`` loads them on demand (again after a release) and
    ``release`` frees them so the transformer and VAE get the memory.
    """

    def __init__(self, loader: Callable[[], Qwen3TextEncoder]):
        self._loader = loader
        self._encoder: Qwen3TextEncoder | None = None
        self._state = ResidencyState.UNLOADED
        self.load_count = 0

    @property
    def state(self) -> ResidencyState:
        return self._state

    @property
    def is_resident(self) -> bool:
        return self._state == ResidencyState.LOADED

    def acquire(self) -> Qwen3TextEncoder:
        if self._encoder is None:
            logger.info("Loading text encoder")
            self._encoder = self._loader()
            self.load_count += 1
            self._state = ResidencyState.LOADED
        return self._encoder

    def release(self) -> None:
        if self._encoder is None:
            return
        self._encoder = None
        self._state = ResidencyState.RELEASED
        gc.collect()
        mx.clear_cache()
        logger.info("Released text encoder")
