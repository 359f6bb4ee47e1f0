import math

import mlx.core as mx
from mlx import nn


class TimestepEmbedding(nn.Module):
    def __init__(self, in_channels: int, embedding_dim: int):
        super().__init__()
        self.linear_1 = nn.Linear(in_channels, embedding_dim, bias=False)
        self.linear_2 = nn.Linear(embedding_dim, embedding_dim, bias=False)

    def __call__(self, x: mx.array) -> mx.array:
        return self.linear_2(nn.silu(self.linear_1(x)))


class Flux2TimestepGuidanceEmbeddings(nn.Module):
    def __init__(self, in_channels: int = 256, embedding_dim: int = 3072, guidance_embeds: bool = False):
        super().__init__()
        self.in_channels = in_channels
        self.timestep_embedder = TimestepEmbedding(in_channels, embedding_dim)
        if guidance_embeds:
            self.guidance_embedder = TimestepEmbedding(in_channels, embedding_dim)

    def __call__(self, timestep: mx.array, guidance: mx.array | None = None) -> mx.array:
        t_freq = Flux2TimestepGuidanceEmbeddings._timestep_embedding(timestep.astype(mx.float32), self.in_channels)
        temb = self.timestep_embedder(t_freq)
        if guidance is not None and "guidance_embedder" in self:
            g_freq = Flux2TimestepGuidanceEmbeddings._timestep_embedding(guidance.astype(mx.float32), self.in_channels)
            temb = temb + self.guidance_embedder(g_freq)
        return temb

    @staticmethod
    def _timestep_embedding(timesteps: mx.array, dim: int, flip_sin_to_cos: bool = True) -> mx.array:
        half = dim // 2
        freqs = mx.exp(-math.log(10000.0) * mx.arange(0, half, dtype=mx.float32) / half)
        args = timesteps[:, None] * freqs[None, :]
        emb = mx.concatenate([mx.sin(args), mx.cos(args)], axis=-1)
        if flip_sin_to_cos:
            emb = mx.concatenate([emb[:, half:], emb[:, :half]], axis=-1)
        if dim % 2 == 1:
            emb = mx.concatenate([emb, mx.zeros((emb.shape[0], 1), dtype=emb.dtype)], axis=-1)
        return emb
