import mlx.core as mx
from mlx import nn

from mklein.models.common.config import defaults
from mklein.models.common.config.model_config import ModelConfig
from mklein.utils.exceptions import ValidationError


class Flux2LatentCreator:
    @staticmethod
    def patchify_latents(latents: mx.array) -> mx.array:
        if latents.ndim != 4:
            raise ValueError(f"Expected latents with ndim=4, got shape={latents.shape}")
        batch_size, num_channels, height, width = latents.shape
        latents = latents.reshape(batch_size, num_channels, height // 2, 2, width // 2, 2)
        latents = latents.transpose(0, 1, 3, 5, 2, 4)
        return latents.reshape(batch_size, num_channels * 4, height // 2, width // 2)

    @staticmethod
    def unpatchify_latents(latents: mx.array) -> mx.array:
        batch_size, num_channels, height, width = latents.shape
        latents = latents.reshape(batch_size, num_channels // 4, 2, 2, height, width)
        latents = latents.transpose(0, 1, 4, 2, 5, 3)
        return latents.reshape(batch_size, num_channels // 4, height * 2, width * 2)

    @staticmethod
    def pack_latents(latents: mx.array) -> mx.array:
        batch_size, num_channels, height, width = latents.shape
        return latents.reshape(batch_size, num_channels, height * width).transpose(0, 2, 1)

    @staticmethod
    def unpack_latents(latents: mx.array, height: int, width: int, vae_scale_factor: int = 8) -> mx.array:
        """
        Convert packed latents (B, seq, C) back into the patchified layout (B, C, H, W)
        where H, W = image_dim // (vae_scale_factor * 2).
        """
        if latents.ndim == 4:
            return latents

        batch_size, seq_len, channels = latents.shape
        latent_height = height // (vae_scale_factor * 2)
        latent_width = width // (vae_scale_factor * 2)
        if latent_height * latent_width != seq_len:
            raise ValidationError(
                f"Packed latent seq_len mismatch: got {seq_len}, expected {latent_height * latent_width} "
                f"for height={height} width={width}"
            )
        return latents.reshape(batch_size, latent_height, latent_width, channels).transpose(0, 3, 1, 2)

    @staticmethod
    def prepare_grid_ids(height: int, width: int, t_coord: int = 0) -> mx.array:
        h_ids = mx.arange(height, dtype=mx.int32)
        w_ids = mx.arange(width, dtype=mx.int32)
        flat_h = mx.broadcast_to(mx.expand_dims(h_ids, axis=1), (height, width)).reshape(-1)
        flat_w = mx.broadcast_to(mx.expand_dims(w_ids, axis=0), (height, width)).reshape(-1)
        t = mx.full(flat_h.shape, t_coord, dtype=mx.int32)
        layer_ids = mx.zeros_like(flat_h)
        return mx.stack([t, flat_h, flat_w, layer_ids], axis=1)

    @staticmethod
    def create_noise(seed: int, height: int, width: int) -> mx.array:
        latent_height = height // (defaults.VAE_SCALE_FACTOR * 2)
        latent_width = width // (defaults.VAE_SCALE_FACTOR * 2)
        latents = mx.random.normal(
            shape=(1, defaults.LATENT_CHANNELS * 4, latent_height, latent_width),
            key=mx.random.key(seed),
        ).astype(ModelConfig.precision)
        return Flux2LatentCreator.pack_latents(latents)

    @staticmethod
    def noise_from_buffer(noise: mx.array, height: int, width: int) -> mx.array:
        latent_height = height // (defaults.VAE_SCALE_FACTOR * 2)
        latent_width = width // (defaults.VAE_SCALE_FACTOR * 2)
        expected = defaults.LATENT_CHANNELS * 4 * latent_height * latent_width
        if noise.size != expected:
            raise ValidationError(
                f"Noise has {noise.size} values, a {width}x{height} image needs {expected} "
                f"({defaults.LATENT_CHANNELS * 4} x {latent_height} x {latent_width})"
            )
        latents = noise.reshape(1, defaults.LATENT_CHANNELS * 4, latent_height, latent_width)
        return Flux2LatentCreator.pack_latents(latents.astype(ModelConfig.precision))

    @staticmethod
    def encode_packed(vae: nn.Module, image: mx.array) -> mx.array:
        latents = vae.encode(image.astype(ModelConfig.precision))
        latents = vae.bn.normalize(Flux2LatentCreator.patchify_latents(latents))
        return Flux2LatentCreator.pack_latents(latents)

    @staticmethod
    def decode_packed(vae: nn.Module, packed_latents: mx.array, height: int, width: int) -> mx.array:
        latents = Flux2LatentCreator.unpack_latents(packed_latents, height, width)
        latents = vae.bn.denormalize(latents)
        return vae.decode(Flux2LatentCreator.unpatchify_latents(latents))
