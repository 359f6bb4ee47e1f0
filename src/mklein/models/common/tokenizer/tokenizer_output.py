from dataclasses import dataclass

import mlx.core as mx


@dataclass
class TokenizerOutput:
    input_ids: mx.array
    attention_mask: mx.array
