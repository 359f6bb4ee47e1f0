import logging
from pathlib import Path
from typing import TYPE_CHECKING

import transformers

from mklein.models.common.tokenizer.tokenizer import LanguageTokenizer
from mklein.utils.exceptions import MissingFileError

if TYPE_CHECKING:
    from mklein.models.common.weights.loading.weight_definition import TokenizerDefinition

logger = logging.getLogger(__name__)


class TokenizerLoader:
    TOKENIZER_FILES = ("tokenizer.json", "vocab.json", "tokenizer_config.json")

    @staticmethod
    def load(definition: "TokenizerDefinition", root_path: Path) -> LanguageTokenizer:
        tokenizer_path = TokenizerLoader._resolve_path(root_path, definition)
        raw_tokenizer = TokenizerLoader._load_raw_tokenizer(tokenizer_path, definition.tokenizer_class)
        logger.debug(f"Loaded tokenizer '{definition.name}' from {tokenizer_path}")
        return LanguageTokenizer(
            tokenizer=raw_tokenizer,
            max_length=definition.max_length,
            padding=definition.padding,
            use_chat_template=definition.use_chat_template,
            chat_template_kwargs=definition.chat_template_kwargs,
            add_special_tokens=definition.add_special_tokens,
        )

    @staticmethod
    def _resolve_path(root_path: Path, definition: "TokenizerDefinition") -> Path:
        for subdir in [definition.hf_subdir, *(definition.fallback_subdirs or [])]:
            candidate = root_path if subdir == "." else root_path / subdir
            if TokenizerLoader._has_tokenizer_files(candidate):
                return candidate
        raise MissingFileError(f"No tokenizer files found under {root_path / definition.hf_subdir}")

    @staticmethod
    def _has_tokenizer_files(path: Path) -> bool:
        return any((path / f).exists() for f in TokenizerLoader.TOKENIZER_FILES)

    @staticmethod
    def _load_raw_tokenizer(tokenizer_path: Path, tokenizer_class: str):
        if not hasattr(transformers, tokenizer_class):
            raise ValueError(f"Unknown tokenizer class: {tokenizer_class}")
        cls = getattr(transformers, tokenizer_class)
        try:
            return cls.from_pretrained(
                pretrained_model_name_or_path=str(tokenizer_path),
                local_files_only=True,
            )
        except (OSError, ValueError) as e:
            raise MissingFileError(f"Could not load tokenizer from {tokenizer_path}: {e}") from e
