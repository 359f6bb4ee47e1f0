import mlx.core as mx


class LatentCreator:
    @staticmethod
    def add_noise_by_interpolation(clean: mx.array, noise: mx.array, sigma: float | mx.array) -> mx.array:
        return (1 - sigma) * clean + sigma * noise
