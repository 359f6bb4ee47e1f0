import json
import logging
from dataclasses import asdict
from pathlib import Path

import mlx.core as mx
from mlx import nn
from mlx.utils import tree_flatten
from tqdm import tqdm

from mklein.utils.version_util import VersionUtil

logger = logging.getLogger(__name__)


class ModelSaver:
    @staticmethod
    def save_components(
        base_path: str | Path,
        components: dict[str, tuple[nn.Module, object | None]],
        bits: int | None = None,
        tokenizer=None,
    ) -> None:
        """
        Writes each ``subdir -> (module, config)`` pair as flattened MLX
        parameters plus a ``config.json``, which ``load_model`` reads back
        without any name mapping.
        """
        if tokenizer is not None and hasattr(tokenizer, "save_pretrained"):
            path = Path(base_path) / "tokenizer"
            path.mkdir(parents=True, exist_ok=True)
            tokenizer.save_pretrained(path)

        for subdir, (module, config) in tqdm(components.items(), desc="Saving components", unit="component"):
            ModelSaver._save_weights(base_path, bits, module, subdir)
            if config is not None:
                ModelSaver._save_config(base_path, config, subdir)

    @staticmethod
    def _save_config(base_path: str | Path, config, subdir: str) -> None:
        with open(Path(base_path) / subdir / "config.json", "w") as f:
            json.dump(asdict(config), f, indent=2)

    @staticmethod
    def _save_weights(base_path: str | Path, bits: int | None, model: nn.Module, subdir: str) -> None:
        path = Path(base_path) / subdir
        path.mkdir(parents=True, exist_ok=True)
        weights = dict(tree_flatten(model.parameters()))
        metadata = {
            "quantization_level": str(bits),
            "mklein_version": VersionUtil.get_mklein_version(),
        }
        for i, shard in enumerate(ModelSaver._split_weights(weights)):
            mx.save_safetensors(str(path / f"{i}.safetensors"), shard, metadata)
        logger.debug(f"Saved {len(weights)} tensors to {path}")

    @staticmethod
    def _split_weights(weights: dict, max_file_size_gb: int = 2) -> list[dict]:
        max_file_size_bytes = max_file_size_gb << 30
        shards: list[dict] = []
        shard: dict = {}
        shard_size = 0
        for k, v in weights.items():
            if shard and shard_size + v.nbytes > max_file_size_bytes:
                shards.append(shard)
                shard, shard_size = {}, 0
            shard[k] = v
            shard_size += v.nbytes
        if shard:
            shards.append(shard)
        return shards
