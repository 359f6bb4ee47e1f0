import logging
from pathlib import Path

from huggingface_hub import snapshot_download
from huggingface_hub.utils import HfHubHTTPError, LocalEntryNotFoundError

from mklein.models.common.config import defaults
from mklein.utils.exceptions import MissingFileError

logger = logging.getLogger(__name__)


class PathResolution:
    @staticmethod
    def resolve(path: str | Path, patterns: list[str] | None = None) -> Path:
        local_path = Path(path).expanduser()
        if local_path.exists():
            if not local_path.is_dir():
                raise MissingFileError(f"Model path '{path}' is not a directory")
            logger.debug(f"Path resolution: '{path}' → local")
            return local_path

        if PathResolution.is_hf_format(str(path)):
            logger.debug(f"Path resolution: '{path}' → huggingface")
            return PathResolution._download(str(path), patterns)

        raise MissingFileError(
            f"Model not found: '{path}'. "
            f"If local path, make sure it exists. "
            f"If HuggingFace repo, use 'org/model' format."
        )

    @staticmethod
    def is_hf_format(path: str) -> bool:
        return "/" in path and path.count("/") == 1 and not path.startswith(("./", "../", "~/", "/"))

    @staticmethod
    def _download(repo_id: str, patterns: list[str] | None) -> Path:
        cache_dir = defaults.MKLEIN_CACHE_DIR / "hub"
        try:
            # Prefer a complete cached snapshot so repeated loads work offline
            return Path(
                snapshot_download(repo_id=repo_id, allow_patterns=patterns, cache_dir=cache_dir, local_files_only=True)
            )
        except LocalEntryNotFoundError:
            logger.info(f"Downloading model from HuggingFace: {repo_id}...")
        try:
            return Path(snapshot_download(repo_id=repo_id, allow_patterns=patterns, cache_dir=cache_dir))
        except (HfHubHTTPError, LocalEntryNotFoundError, OSError) as e:
            raise MissingFileError(f"Could not download '{repo_id}': {e}") from e
