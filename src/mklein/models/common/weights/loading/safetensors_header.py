import logging
from pathlib import Path

from safetensors import SafetensorError, safe_open

from mklein.models.common.weights.loading.loaded_weights import MetaData, TensorIndex
from mklein.utils.exceptions import MissingFileError, UnsupportedFormatError

logger = logging.getLogger(__name__)


class SafetensorsHeader:
    @staticmethod
    def shard_files(path: Path) -> list[Path]:
        if not path.is_dir():
            raise MissingFileError(f"Component directory not found: {path}")
        shards = sorted(f for f in path.glob("*.safetensors") if not f.name.startswith("._"))
        if not shards:
            raise MissingFileError(f"No safetensors files found in {path}")
        return shards

    @staticmethod
    def scan(path: Path) -> TensorIndex:
        index = TensorIndex()
        for shard in SafetensorsHeader.shard_files(path):
            try:
                with safe_open(str(shard), framework="numpy") as f:
                    if not index.shapes:
                        index.meta_data = SafetensorsHeader._read_meta_data(f.metadata())
                    for key in f.keys():
                        tensor_slice = f.get_slice(key)
                        index.shapes[key] = tuple(tensor_slice.get_shape())
                        index.dtypes[key] = tensor_slice.get_dtype()
            except (SafetensorError, OSError, ValueError) as e:
                raise UnsupportedFormatError(f"Could not parse {shard}: {e}") from e
        logger.debug(f"Scanned {len(index.shapes)} tensors ({index.num_parameters:,} parameters) in {path}")
        return index

    @staticmethod
    def _read_meta_data(metadata: dict | None) -> MetaData:
        metadata = metadata or {}
        level = metadata.get("quantization_level")
        return MetaData(
            quantization_level=int(level) if level not in (None, "None") else None,
            mklein_version=metadata.get("mklein_version"),
        )
