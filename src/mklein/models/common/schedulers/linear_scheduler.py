from typing import TYPE_CHECKING

import mlx.core as mx

if TYPE_CHECKING:
    from mklein.models.common.config.config import Config

from mklein.models.common.schedulers.base_scheduler import BaseScheduler


class LinearScheduler(BaseScheduler):
    def __init__(self, config: "Config"):
        self.config = config
        self._sigmas = self._get_sigmas()
        self._timesteps = self._sigmas[:-1] * config.num_train_steps

    @property
    def sigmas(self) -> mx.array:
        return self._sigmas

    @property
    def timesteps(self) -> mx.array:
        return self._timesteps

    def _get_sigmas(self) -> mx.array:
        sigmas = mx.linspace(
            1.0,
            1.0 / self.config.num_inference_steps,
            self.config.num_inference_steps,
        )
        sigmas = mx.array(sigmas).astype(mx.float32)
        return mx.concatenate([sigmas, mx.zeros(1)])
