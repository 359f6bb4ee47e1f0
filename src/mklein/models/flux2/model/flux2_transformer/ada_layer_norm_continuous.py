import mlx.core as mx
from mlx import nn

from mklein.models.common.config.model_config import ModelConfig


class AdaLayerNormContinuous(nn.Module):
    def __init__(self, embedding_dim: int, conditioning_embedding_dim: int, eps: float = 1e-6):
        super().__init__()
        self.embedding_dim = embedding_dim
        self.linear = nn.Linear(conditioning_embedding_dim, embedding_dim * 2, bias=False)
        self.norm = nn.LayerNorm(dims=embedding_dim, eps=eps, affine=False)

    def __call__(self, x: mx.array, conditioning: mx.array) -> mx.array:
        emb = self.linear(nn.silu(conditioning).astype(ModelConfig.precision))
        scale, shift = mx.split(emb, 2, axis=-1)
        return self.norm(x) * (1 + scale)[:, None, :] + shift[:, None, :]
