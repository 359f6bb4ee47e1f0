import mlx.core as mx

from mklein.models.common.tokenizer import Tokenizer
from mklein.models.flux2.model.flux2_text_encoder.qwen3_text_encoder import Qwen3TextEncoder
from mklein.utils.exceptions import EncoderNotLoadedError


class Flux2PromptEncoder:
    @staticmethod
    def encode_prompt(
        prompt: str,
        tokenizer: Tokenizer,
        text_encoder: Qwen3TextEncoder | None,
        max_sequence_length: int = 512,
        text_encoder_out_layers: tuple[int, ...] = (9, 18, 27),
    ) -> tuple[mx.array, mx.array]:
        if text_encoder is None:
            raise EncoderNotLoadedError("The text encoder is not loaded")
        tokens = tokenizer.tokenize(prompt=prompt, max_length=max_sequence_length)
        prompt_embeds = text_encoder.get_prompt_embeds(
            input_ids=tokens.input_ids,
            attention_mask=tokens.attention_mask,
            hidden_state_layers=text_encoder_out_layers,
        )
        return prompt_embeds, Flux2PromptEncoder.prepare_text_ids(prompt_embeds.shape[1])

    @staticmethod
    def prepare_text_ids(seq_len: int) -> mx.array:
        # (t, h, w, l) with only the token index varying
        zeros = mx.zeros((seq_len,), dtype=mx.int32)
        return mx.stack([zeros, zeros, zeros, mx.arange(seq_len, dtype=mx.int32)], axis=1)
