import logging
from pathlib import Path

import mlx.core as mx
import numpy as np

from mklein.models.common.config import defaults
from mklein.utils.exceptions import BufferIOError, EmbeddingDimensionError

logger = logging.getLogger(__name__)

FLOAT32_BYTES = 4


class RawBufferUtil:
    """
    Raw little-endian float32 files, the format used to exchange
    precomputed text embeddings and initial noise with other tools.
    """

    @staticmethod
    def load_embeddings(path: str | Path, embedding_dim: int = defaults.FLUX_TEXT_DIM) -> tuple[mx.array, int]:
        """
        Reads a ``(seq_len, embedding_dim)`` embedding matrix, where ``seq_len``
        is inferred from the file size.
        """
        size = RawBufferUtil._file_size(path)
        row_bytes = FLOAT32_BYTES * embedding_dim
        if size == 0 or size % row_bytes != 0:
            raise EmbeddingDimensionError(
                f"Embeddings file {path} has {size} bytes, which is not a positive multiple of {row_bytes} "
                f"(float32 rows of width {embedding_dim})"
            )
        seq_len = size // row_bytes
        values = RawBufferUtil._read(path)
        logger.debug(f"Loaded embeddings of shape ({seq_len}, {embedding_dim}) from {path}")
        return mx.array(values.reshape(seq_len, embedding_dim)), seq_len

    @staticmethod
    def load_noise(path: str | Path) -> tuple[mx.array, int]:
        size = RawBufferUtil._file_size(path)
        if size == 0 or size % FLOAT32_BYTES != 0:
            raise BufferIOError(f"Noise file {path} has {size} bytes, which is not a whole number of float32 values")
        values = RawBufferUtil._read(path)
        return mx.array(values), values.size

    @staticmethod
    def save(array: mx.array, path: str | Path) -> None:
        values = np.array(array.astype(mx.float32)).astype("<f4")
        try:
            values.tofile(Path(path))
        except OSError as e:
            raise BufferIOError(f"Could not write {path}: {e}") from e

    @staticmethod
    def _file_size(path: str | Path) -> int:
        try:
            return Path(path).stat().st_size
        except OSError as e:
            raise BufferIOError(f"Could not open {path}: {e}") from e

    @staticmethod
    def _read(path: str | Path) -> np.ndarray:
        try:
            return np.fromfile(Path(path), dtype="<f4").astype(np.float32)
        except OSError as e:
            raise BufferIOError(f"Could not read {path}: {e}") from e
