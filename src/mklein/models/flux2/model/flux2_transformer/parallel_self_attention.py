import mlx.core as mx
from mlx import nn

from mklein.models.flux2.model.flux2_transformer.attention_utils import AttentionUtils
from mklein.models.flux2.model.flux2_transformer.feed_forward import Flux2SwiGLU


class Flux2ParallelSelfAttention(nn.Module):
    """
    Single-stream attention with the feed-forward computed in parallel from
    one fused input projection and merged by one fused output projection.
    """

    def __init__(self, dim: int, heads: int, dim_head: int, mlp_ratio: float = 3.0):
        super().__init__()
        self.heads = heads
        self.dim_head = dim_head
        self.inner_dim = heads * dim_head
        self.mlp_hidden_dim = int(dim * mlp_ratio)
        self.to_qkv_mlp_proj = nn.Linear(dim, self.inner_dim * 3 + self.mlp_hidden_dim * 2, bias=False)
        self.norm_q = nn.RMSNorm(dim_head, eps=1e-5)
        self.norm_k = nn.RMSNorm(dim_head, eps=1e-5)
        self.mlp_act = Flux2SwiGLU()
        self.to_out = nn.Linear(self.inner_dim + self.mlp_hidden_dim, dim, bias=False)

    def __call__(self, hidden_states: mx.array, image_rotary_emb: tuple[mx.array, mx.array]) -> mx.array:
        proj = self.to_qkv_mlp_proj(hidden_states)
        qkv, mlp_hidden = mx.split(proj, [self.inner_dim * 3], axis=-1)
        query, key, value = (AttentionUtils.split_heads(x, self.heads, self.dim_head) for x in mx.split(qkv, 3, axis=-1))
        query, key = AttentionUtils.norm_qk(query, key, self.norm_q, self.norm_k)

        cos, sin = image_rotary_emb
        query, key = AttentionUtils.apply_rope_bshd(query, key, cos, sin)

        attn_output = AttentionUtils.compute_attention(
            query=query,
            key=key,
            value=value,
            batch_size=hidden_states.shape[0],
            num_heads=self.heads,
            head_dim=self.dim_head,
        )
        return self.to_out(mx.concatenate([attn_output, self.mlp_act(mlp_hidden)], axis=-1))
