import logging

import mlx.core as mx
from tqdm import tqdm

from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.config.model_config import ModelConfig
from mklein.models.common.schedulers import SCHEDULER_REGISTRY
from mklein.models.common.schedulers.base_scheduler import BaseScheduler
from mklein.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)


class Config:
    def __init__(
        self,
        model_config: ModelConfig,
        params: GenerationParams,
        is_img2img: bool = False,
        show_progress: bool = True,
    ):
        self.model_config = model_config
        self.params = params
        self.is_img2img = is_img2img
        self.show_progress = show_progress
        self._scheduler: BaseScheduler | None = None
        self._time_steps = None

    @property
    def height(self) -> int:
        return self.params.resolved_height

    @property
    def width(self) -> int:
        return self.params.resolved_width

    @property
    def image_seq_len(self) -> int:
        return self.params.image_seq_len

    @property
    def guidance(self) -> float:
        return self.params.guidance_scale

    @property
    def num_inference_steps(self) -> int:
        return self.params.num_steps

    @property
    def precision(self) -> mx.Dtype:
        return ModelConfig.precision

    @property
    def num_train_steps(self) -> int:
        return self.model_config.num_train_steps

    @property
    def image_strength(self) -> float | None:
        return self.params.strength if self.is_img2img else None

    @property
    def init_time_step(self) -> int:
        if not self.is_img2img:
            return 0

        # strength is the fraction of the schedule that is executed, rounded half up
        steps_to_run = int(self.num_inference_steps * self.params.strength + 0.5)
        return self.num_inference_steps - steps_to_run

    @property
    def time_steps(self) -> tqdm:
        if self._time_steps is None:
            self._time_steps = tqdm(
                range(self.init_time_step, self.num_inference_steps),
                disable=not self.show_progress,
            )
        return self._time_steps

    @property
    def scheduler(self) -> BaseScheduler:
        if self._scheduler is not None:
            return self._scheduler

        scheduler_cls = SCHEDULER_REGISTRY.get(self.params.scheduler, None)
        if scheduler_cls is None:
            raise ValidationError(
                f"The scheduler {self.params.scheduler!r} is not implemented. Available: {sorted(SCHEDULER_REGISTRY)}"
            )
        self._scheduler = scheduler_cls(self)
        return self._scheduler
