import mlx.core as mx
from mlx import nn
from mlx.core.fast import scaled_dot_product_attention


class AttentionUtils:
    @staticmethod
    def process_qkv(
        hidden_states: mx.array,
        to_q: nn.Linear,
        to_k: nn.Linear,
        to_v: nn.Linear,
        norm_q: nn.RMSNorm,
        norm_k: nn.RMSNorm,
        num_heads: int,
        head_dim: int,
    ) -> tuple[mx.array, mx.array, mx.array]:
        query = AttentionUtils.split_heads(to_q(hidden_states), num_heads, head_dim)
        key = AttentionUtils.split_heads(to_k(hidden_states), num_heads, head_dim)
        value = AttentionUtils.split_heads(to_v(hidden_states), num_heads, head_dim)
        query, key = AttentionUtils.norm_qk(query, key, norm_q, norm_k)
        return query, key, value

    @staticmethod
    def split_heads(x: mx.array, num_heads: int, head_dim: int) -> mx.array:
        # [B, S, H*D] -> [B, H, S, D]
        batch_size, seq_len, _ = x.shape
        return mx.transpose(mx.reshape(x, (batch_size, seq_len, num_heads, head_dim)), (0, 2, 1, 3))

    @staticmethod
    def norm_qk(query: mx.array, key: mx.array, norm_q: nn.RMSNorm, norm_k: nn.RMSNorm) -> tuple[mx.array, mx.array]:
        # Normalize in float32, then cast back
        query = norm_q(query.astype(mx.float32)).astype(query.dtype)
        key = norm_k(key.astype(mx.float32)).astype(key.dtype)
        return query, key

    @staticmethod
    def compute_attention(
        query: mx.array,
        key: mx.array,
        value: mx.array,
        batch_size: int,
        num_heads: int,
        head_dim: int,
        mask: mx.array | None = None,
    ) -> mx.array:
        scale = 1 / mx.sqrt(query.shape[-1])
        hidden_states = scaled_dot_product_attention(query, key, value, scale=scale, mask=mask)
        hidden_states = mx.transpose(hidden_states, (0, 2, 1, 3))
        return mx.reshape(hidden_states, (batch_size, -1, num_heads * head_dim))

    @staticmethod
    def apply_rope_bshd(xq: mx.array, xk: mx.array, cos: mx.array, sin: mx.array) -> tuple[mx.array, mx.array]:
        """
        Rotates interleaved (real, imag) channel pairs of ``[B, H, S, D]`` queries
        and keys by per-position angles given as ``[S, D/2]`` cos/sin tables.
        """
        out_dtype = xq.dtype
        cos_b = cos.reshape(1, 1, cos.shape[0], cos.shape[1])
        sin_b = sin.reshape(1, 1, sin.shape[0], sin.shape[1])

        def mix(x: mx.array) -> mx.array:
            x2 = x.astype(mx.float32).reshape(*x.shape[:-1], -1, 2)
            real = x2[..., 0]
            imag = x2[..., 1]
            out = mx.stack([real * cos_b - imag * sin_b, imag * cos_b + real * sin_b], axis=-1)
            return out.reshape(*x.shape).astype(out_dtype)

        return mix(xq), mix(xk)
