import os

__version__ = "1.0.0"

# Set TOKENIZERS_PARALLELISM to avoid fork warning
# This must be set before any tokenizers are imported/used
if "TOKENIZERS_PARALLELISM" not in os.environ:
    os.environ["TOKENIZERS_PARALLELISM"] = "false"

from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.flux2.variants.txt2img.flux2_klein import Flux2Klein
from mklein.utils.raster_image import RasterImage

Context = Flux2Klein

__all__ = ["Context", "Flux2Klein", "GenerationParams", "RasterImage"]
