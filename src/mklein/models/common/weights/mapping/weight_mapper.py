"""
Weight Mapper - Applies declarative weight mappings to transform HF weights to MLX structure.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

import mlx.core as mx

from mklein.models.common.weights.mapping.weight_mapping import WeightTarget

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class WeightMapper:
    """Maps HuggingFace weights to MLX nested structure using declarative mappings."""

    @staticmethod
    def apply_mapping(hf_weights: Dict[str, mx.array], mapping: List[WeightTarget]) -> Dict:
        """
        Apply weight mapping to transform HF weights to MLX structure.

        Placeholders such as ``{block}`` or ``{layer}`` match any index in the
        source name and are substituted into the target path, so the number of
        blocks never has to be known up front.

        Args:
            hf_weights: Raw HuggingFace weights (flat dict with dot-notation keys)
            mapping: List of WeightTarget mappings

        Returns:
            Nested dict structure matching the MLX model
        """
        compiled = WeightMapper._compile(mapping)

        mapped_weights: Dict = {}
        skipped = []
        for hf_key, hf_tensor in hf_weights.items():
            mlx_path, transform = WeightMapper._find_mapping(hf_key, compiled)
            if mlx_path is None:
                # Not part of the inference graph (e.g. lm_head)
                skipped.append(hf_key)
                continue
            tensor = transform(hf_tensor) if transform else hf_tensor
            WeightMapper._set_nested_value(mapped_weights, mlx_path, tensor)

        if skipped:
            logger.debug(f"Skipped {len(skipped)} unmapped weights, e.g. {skipped[:3]}")
        return mapped_weights

    @staticmethod
    def map_key(hf_key: str, mapping: List[WeightTarget]) -> Optional[str]:
        mlx_path, _ = WeightMapper._find_mapping(hf_key, WeightMapper._compile(mapping))
        return mlx_path

    @staticmethod
    def _compile(mapping: List[WeightTarget]) -> list[tuple[re.Pattern, str, Optional[Callable]]]:
        compiled = []
        for target in mapping:
            for hf_pattern in target.from_pattern:
                regex = "".join(
                    f"(?P<{part}>\\d+)" if i % 2 else re.escape(part)
                    for i, part in enumerate(_PLACEHOLDER.split(hf_pattern))
                )
                compiled.append((re.compile(f"^{regex}$"), target.to_pattern, target.transform))
        return compiled

    @staticmethod
    def _find_mapping(
        hf_key: str,
        compiled: list[tuple[re.Pattern, str, Optional[Callable]]],
    ) -> tuple[Optional[str], Optional[Callable[[mx.array], mx.array]]]:
        for regex, to_pattern, transform in compiled:
            match = regex.match(hf_key)
            if match:
                return to_pattern.format(**match.groupdict()), transform
        return None, None

    @staticmethod
    def _set_nested_value(d: Dict, path: str, value: mx.array):
        """
        Set value in nested dict using dot-notation path.

        Creates nested structure as needed.
        Handles both dict keys and list indices.
        """
        parts = path.split(".")
        current = d
        i = 0

        while i < len(parts) - 1:
            part = parts[i]

            if i + 1 < len(parts) - 1 and parts[i + 1].isdigit():
                if part not in current:
                    current[part] = []
                idx = int(parts[i + 1])
                while len(current[part]) <= idx:
                    current[part].append({})
                current = current[part][idx]
                i += 2
            else:
                if part not in current:
                    current[part] = {}
                current = current[part]
                i += 1

        current[parts[-1]] = value
