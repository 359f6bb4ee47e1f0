from dataclasses import dataclass, field
from typing import Callable, List

import mlx.core as mx

from mklein.models.common.weights.mapping.weight_mapping import WeightTarget


@dataclass
class ComponentDefinition:
    name: str
    hf_subdir: str
    mapping_getter: Callable[[], List[WeightTarget]] | None = None
    precision: mx.Dtype | None = None
    skip_quantization: bool = False


@dataclass
class TokenizerDefinition:
    name: str
    hf_subdir: str
    tokenizer_class: str = "AutoTokenizer"
    fallback_subdirs: List[str] | None = None
    max_length: int = 512
    padding: str = "max_length"
    use_chat_template: bool = False
    chat_template_kwargs: dict | None = field(default_factory=dict)
    add_special_tokens: bool = True
