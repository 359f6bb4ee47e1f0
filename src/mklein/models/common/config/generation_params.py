from dataclasses import dataclass, replace

from mklein.models.common.config import defaults
from mklein.utils.exceptions import ValidationError


@dataclass(frozen=True)
class GenerationParams:
    width: int | None = None
    height: int | None = None
    num_steps: int = defaults.NUM_STEPS
    guidance_scale: float = defaults.GUIDANCE_SCALE
    seed: int = defaults.RANDOM_SEED
    strength: float = defaults.IMAGE_STRENGTH
    scheduler: str = defaults.SCHEDULER

    def __post_init__(self):
        for name, value in (("width", self.width), ("height", self.height)):
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"{name} must be an integer, got {value!r}")
            if not defaults.MIN_DIMENSION <= value <= defaults.MAX_DIMENSION:
                raise ValidationError(
                    f"{name} must be in [{defaults.MIN_DIMENSION}, {defaults.MAX_DIMENSION}], got {value}"
                )
            if value % defaults.DIMENSION_STEP_PIXELS != 0:
                raise ValidationError(f"{name} must be a multiple of {defaults.DIMENSION_STEP_PIXELS}, got {value}")
        if not isinstance(self.num_steps, int) or not defaults.MIN_STEPS <= self.num_steps <= defaults.MAX_STEPS:
            raise ValidationError(
                f"num_steps must be an integer in [{defaults.MIN_STEPS}, {defaults.MAX_STEPS}], got {self.num_steps!r}"
            )
        if not self.guidance_scale >= 0.0:
            raise ValidationError(f"guidance_scale must be >= 0, got {self.guidance_scale}")
        if not 0.0 <= self.strength <= 1.0:
            raise ValidationError(f"strength must be in [0, 1], got {self.strength}")
        if self.seed != defaults.RANDOM_SEED and not 0 <= self.seed <= defaults.MAX_SEED:
            raise ValidationError(f"seed must be -1 or a non-negative 64-bit integer, got {self.seed}")

    @property
    def has_random_seed(self) -> bool:
        return self.seed == defaults.RANDOM_SEED

    @property
    def uses_guidance(self) -> bool:
        return self.guidance_scale != 1.0

    @property
    def resolved_width(self) -> int:
        return defaults.WIDTH if self.width is None else self.width

    @property
    def resolved_height(self) -> int:
        return defaults.HEIGHT if self.height is None else self.height

    @property
    def image_seq_len(self) -> int:
        return (self.resolved_height // 16) * (self.resolved_width // 16)

    def with_seed(self, seed: int) -> "GenerationParams":
        return replace(self, seed=seed)

    def with_dimensions_of(self, image) -> "GenerationParams":
        """
        Fill in an unset width or height from ``image``.

        The image size is rounded down to a multiple of 16 and brought into
        the supported range. Dimensions the caller set are kept.
        """
        return replace(
            self,
            width=self.width if self.width is not None else GenerationParams._fit(image.width),
            height=self.height if self.height is not None else GenerationParams._fit(image.height),
        )

    @staticmethod
    def _fit(size: int) -> int:
        size -= size % defaults.DIMENSION_STEP_PIXELS
        return min(max(size, defaults.MIN_DIMENSION), defaults.MAX_DIMENSION)
