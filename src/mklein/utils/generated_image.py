import logging
from datetime import datetime
from pathlib import Path

import mlx.core as mx
import PIL.Image

from mklein.models.common.config import ModelConfig
from mklein.utils.exceptions import ImageSavingException
from mklein.utils.raster_image import RasterImage
from mklein.utils.version_util import VersionUtil

log = logging.getLogger(__name__)


class GeneratedImage:
    def __init__(
        self,
        image: RasterImage,
        model_config: ModelConfig,
        seed: int,
        prompt: str | None,
        steps: int,
        guidance: float,
        precision: mx.Dtype,
        quantization: int | None,
        generation_time: float,
        height: int | None = None,
        width: int | None = None,
        image_path: str | Path | None = None,
        image_strength: float | None = None,
        scheduler: str | None = None,
    ):
        self.image = image
        self.model_config = model_config
        self.seed = seed
        self.prompt = prompt
        self.steps = steps
        self.guidance = guidance
        self.precision = precision
        self.quantization = quantization
        self.generation_time = generation_time
        self.height = height
        self.width = width
        self.image_path = image_path
        self.image_strength = image_strength
        self.scheduler = scheduler

    @property
    def pil_image(self) -> PIL.Image.Image:
        return self.image.to_pil()

    def save(
        self,
        path: str | Path,
        export_json_metadata: bool = False,
        overwrite: bool = True,
    ) -> None:
        from mklein.utils.image_util import ImageUtil

        if not ImageUtil.save(self.image, path, self.get_metadata(), export_json_metadata, overwrite):
            raise ImageSavingException(f"Could not save image to {path}")

    def get_metadata(self) -> dict:
        return {
            "mklein_version": VersionUtil.get_mklein_version(),
            "model": self.model_config.model_name,
            "seed": self.seed,
            "prompt": self.prompt,
            "steps": self.steps,
            "guidance": self.guidance,
            "height": self.height,
            "width": self.width,
            "precision": str(self.precision),
            "quantize": self.quantization,
            "scheduler": self.scheduler,
            "generation_time_seconds": round(self.generation_time, 2),
            "created_at": datetime.now().isoformat(),
            "image_path": str(self.image_path) if self.image_path else None,
            "image_strength": self.image_strength,
        }
