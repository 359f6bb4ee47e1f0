import os
from pathlib import Path

import platformdirs

DIMENSION_STEP_PIXELS = 16
MIN_DIMENSION, MAX_DIMENSION = 64, 4096
MIN_STEPS, MAX_STEPS = 1, 100
HEIGHT, WIDTH = 256, 256
NUM_STEPS = 4
GUIDANCE_SCALE = 1.0
IMAGE_STRENGTH = 0.75
RANDOM_SEED = -1
MAX_SEED = 2**63 - 1
NEGATIVE_PROMPT = ""
SCHEDULER = "flow_match_euler_discrete"

FLUX_TEXT_DIM = 7680
LATENT_CHANNELS = 32
VAE_SCALE_FACTOR = 8

QUANTIZE_CHOICES = [3, 4, 5, 6, 8]


if os.environ.get("MKLEIN_CACHE_DIR"):
    MKLEIN_CACHE_DIR = Path(os.environ["MKLEIN_CACHE_DIR"]).resolve()
else:
    MKLEIN_CACHE_DIR = Path(platformdirs.user_cache_dir(appname="mklein"))
