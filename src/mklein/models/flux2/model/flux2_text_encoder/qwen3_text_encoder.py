import mlx.core as mx
from mlx import nn

from mklein.models.common.config.model_config import TextEncoderConfig
from mklein.models.flux2.model.flux2_text_encoder.qwen3_decoder_layer import Qwen3DecoderLayer
from mklein.models.flux2.model.flux2_text_encoder.qwen3_text_rotary_embedding import Qwen3TextRotaryEmbedding

MASKED = -1e9


class Qwen3TextEncoder(nn.Module):
    def __init__(
        self,
        vocab_size: int = 151936,
        hidden_size: int = 2560,
        num_hidden_layers: int = 36,
        num_attention_heads: int = 32,
        num_key_value_heads: int = 8,
        intermediate_size: int = 9728,
        rope_theta: float = 1000000.0,
        rms_norm_eps: float = 1e-6,
        head_dim: int = 128,
    ):
        super().__init__()
        self.hidden_size = hidden_size
        self.embed_tokens = nn.Embedding(vocab_size, hidden_size)
        self.layers = [
            Qwen3DecoderLayer(
                hidden_size=hidden_size,
                num_attention_heads=num_attention_heads,
                num_key_value_heads=num_key_value_heads,
                head_dim=head_dim,
                intermediate_size=intermediate_size,
                rms_norm_eps=rms_norm_eps,
            )
            for _ in range(num_hidden_layers)
        ]
        self.norm = nn.RMSNorm(hidden_size, eps=rms_norm_eps)
        self.rotary_emb = Qwen3TextRotaryEmbedding(dim=head_dim, base=rope_theta)

    @staticmethod
    def from_config(config: TextEncoderConfig) -> "Qwen3TextEncoder":
        return Qwen3TextEncoder(
            vocab_size=config.vocab_size,
            hidden_size=config.hidden_size,
            num_hidden_layers=config.num_hidden_layers,
            num_attention_heads=config.num_attention_heads,
            num_key_value_heads=config.num_key_value_heads,
            intermediate_size=config.intermediate_size,
            rope_theta=config.rope_theta,
            rms_norm_eps=config.rms_norm_eps,
            head_dim=config.head_dim,
        )

    def __call__(
        self,
        input_ids: mx.array,
        attention_mask: mx.array | None = None,
        num_layers: int | None = None,
    ) -> list[mx.array]:
        """
        Returns the hidden states after the embedding (index 0) and after
        each of the first ``num_layers`` decoder layers.
        """
        batch_size, seq_len = input_ids.shape
        hidden_states = self.embed_tokens(input_ids)
        if attention_mask is None:
            attention_mask = mx.ones((batch_size, seq_len), dtype=mx.int32)

        mask = Qwen3TextEncoder._build_mask(attention_mask, hidden_states.dtype)
        position_ids = mx.broadcast_to(mx.arange(seq_len, dtype=mx.int32)[None, :], (batch_size, seq_len))
        position_embeddings = self.rotary_emb(hidden_states, position_ids)

        # Match HF behavior: include embedding output as the first hidden state.
        hidden_states_list = [hidden_states]
        for layer in self.layers[: num_layers if num_layers is not None else len(self.layers)]:
            hidden_states = layer(hidden_states, mask, position_embeddings)
            hidden_states_list.append(hidden_states)
        return hidden_states_list

    def get_prompt_embeds(
        self,
        input_ids: mx.array,
        attention_mask: mx.array | None = None,
        hidden_state_layers: tuple[int, ...] = (9, 18, 27),
    ) -> mx.array:
        hidden_states_list = self(input_ids=input_ids, attention_mask=attention_mask, num_layers=max(hidden_state_layers))
        stacked = mx.stack([hidden_states_list[i] for i in hidden_state_layers], axis=1)
        batch_size, num_layers, seq_len, hidden_dim = stacked.shape
        return mx.transpose(stacked, (0, 2, 1, 3)).reshape(batch_size, seq_len, num_layers * hidden_dim)

    @staticmethod
    def _build_mask(attention_mask: mx.array, dtype: mx.Dtype) -> mx.array:
        # Causal and key padding combined into one additive [B, 1, S, S] mask
        seq_len = attention_mask.shape[1]
        idx = mx.arange(seq_len)
        causal = idx[None, :] <= idx[:, None]
        keys = (attention_mask == 1)[:, None, None, :]
        allowed = mx.logical_and(causal[None, None, :, :], keys)
        return mx.where(allowed, mx.array(0.0, dtype=dtype), mx.array(MASKED, dtype=dtype))
