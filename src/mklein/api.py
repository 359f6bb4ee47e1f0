"""Flat, handle-based entry points.

Every function takes the :class:`Flux2Klein` returned by :func:`load_model`
and returns ``None`` when the call fails. The failure is logged and a short
``"<stage>: <message>"`` description is kept for :func:`last_error`.
"""

import functools
import logging
import threading
from pathlib import Path

import mlx.core as mx

from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.tokenizer import Tokenizer
from mklein.models.flux2.variants.txt2img.flux2_klein import Flux2Klein
from mklein.utils.exceptions import MKleinException
from mklein.utils.generated_image import GeneratedImage
from mklein.utils.raster_image import RasterImage
from mklein.utils.raw_buffer_util import RawBufferUtil

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_last_error: str | None = None


def last_error() -> str | None:
    with _lock:
        return _last_error


def _record_error(message: str) -> None:
    global _last_error
    with _lock:
        _last_error = message


def _reported(stage: str):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except MKleinException as e:
                logger.error(f"{stage} failed: {e}")
                _record_error(f"{stage}: {e}")
                return None

        return wrapper

    return decorator


@_reported("load")
def load_model(
    model_path: str | Path,
    quantize: int | None = None,
    tokenizer: Tokenizer | None = None,
    keep_text_encoder: bool = False,
    show_progress: bool = False,
) -> Flux2Klein | None:
    return Flux2Klein(
        quantize=quantize,
        model_path=model_path,
        tokenizer=tokenizer,
        keep_text_encoder=keep_text_encoder,
        show_progress=show_progress,
    )


def free(ctx: Flux2Klein | None) -> None:
    if ctx is not None:
        ctx.free()


@_reported("release_text_encoder")
def release_text_encoder(ctx: Flux2Klein) -> bool | None:
    ctx.release_text_encoder()
    return True


@_reported("set_seed")
def set_seed(ctx: Flux2Klein, seed: int) -> bool | None:
    ctx.set_seed(seed)
    return True


@_reported("generate")
def generate(ctx: Flux2Klein, prompt: str, params: GenerationParams | None = None) -> GeneratedImage | None:
    return ctx.generate(prompt, params)


@_reported("img2img")
def img2img(
    ctx: Flux2Klein,
    prompt: str,
    image: RasterImage | str | Path,
    params: GenerationParams | None = None,
) -> GeneratedImage | None:
    return ctx.img2img(prompt, image, params)


@_reported("generate_with_embeddings")
def generate_with_embeddings(
    ctx: Flux2Klein,
    embeddings: mx.array,
    seq_len: int,
    params: GenerationParams | None = None,
    negative_embeddings: mx.array | None = None,
) -> GeneratedImage | None:
    return ctx.generate_with_embeddings(embeddings, seq_len, params, negative_embeddings=negative_embeddings)


@_reported("generate_with_embeddings_and_noise")
def generate_with_embeddings_and_noise(
    ctx: Flux2Klein,
    embeddings: mx.array,
    seq_len: int,
    noise: mx.array,
    noise_len: int,
    params: GenerationParams | None = None,
    negative_embeddings: mx.array | None = None,
) -> GeneratedImage | None:
    return ctx.generate_with_embeddings_and_noise(
        embeddings,
        seq_len,
        noise,
        noise_len,
        params,
        negative_embeddings=negative_embeddings,
    )


@_reported("encode_text")
def encode_text(ctx: Flux2Klein, prompt: str) -> tuple[mx.array, int] | None:
    return ctx.encode_text(prompt)


@_reported("encode_image")
def encode_image(ctx: Flux2Klein, image: RasterImage | str | Path) -> tuple[mx.array, int, int] | None:
    return ctx.encode_image(image)


@_reported("decode_latent")
def decode_latent(ctx: Flux2Klein, latent: mx.array, height: int, width: int) -> RasterImage | None:
    return ctx.decode_latent(latent, height, width)


@_reported("model_info")
def model_info(ctx: Flux2Klein) -> str | None:
    return ctx.model_info()


@_reported("load_embeddings")
def load_embeddings_file(path: str | Path) -> tuple[mx.array, int] | None:
    return RawBufferUtil.load_embeddings(path)


@_reported("load_noise")
def load_noise_file(path: str | Path) -> tuple[mx.array, int] | None:
    return RawBufferUtil.load_noise(path)
