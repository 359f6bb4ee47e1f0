import mlx.core as mx
from mlx import nn


class Flux2PosEmbed(nn.Module):
    def __init__(self, theta: int = 2000, axes_dim: tuple[int, ...] = (32, 32, 32, 32)):
        super().__init__()
        self.theta = theta
        self.axes_dim = axes_dim

    def __call__(self, ids: mx.array) -> tuple[mx.array, mx.array]:
        # ids: [S, n_axes] positions, one rotary band per axis
        pos = ids.astype(mx.float32)
        cos_out, sin_out = [], []
        for i, dim in enumerate(self.axes_dim):
            cos, sin = self._get_1d_rope(dim, pos[..., i])
            cos_out.append(cos)
            sin_out.append(sin)
        return mx.concatenate(cos_out, axis=-1), mx.concatenate(sin_out, axis=-1)

    def _get_1d_rope(self, dim: int, pos: mx.array) -> tuple[mx.array, mx.array]:
        scale = mx.arange(0, dim, 2, dtype=mx.float32) / dim
        omega = 1.0 / (self.theta**scale)
        out = mx.expand_dims(pos, axis=-1) * mx.expand_dims(omega, axis=0)
        return mx.cos(out), mx.sin(out)
