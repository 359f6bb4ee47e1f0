import mlx.core as mx
from mlx import nn


class Flux2BatchNormStats(nn.Module):
    """Frozen per-channel statistics used to whiten patchified latents."""

    def __init__(self, num_features: int, eps: float = 1e-4):
        super().__init__()
        self.running_mean = mx.zeros((num_features,), dtype=mx.float32)
        self.running_var = mx.ones((num_features,), dtype=mx.float32)
        self.eps = eps

    def normalize(self, latents: mx.array) -> mx.array:
        mean, std = self._broadcast_stats()
        return (latents - mean) / std

    def denormalize(self, latents: mx.array) -> mx.array:
        mean, std = self._broadcast_stats()
        return latents * std + mean

    def _broadcast_stats(self) -> tuple[mx.array, mx.array]:
        mean = self.running_mean.reshape(1, -1, 1, 1)
        std = mx.sqrt(self.running_var.reshape(1, -1, 1, 1) + self.eps)
        return mean, std
