import mlx.core as mx
from mlx import nn


class Flux2Conv2d(nn.Conv2d):
    """Channels-first wrapper around the channels-last MLX convolution."""

    def __init__(self, in_channels: int, out_channels: int, kernel_size: int = 3, padding: int = 1):
        super().__init__(in_channels, out_channels, kernel_size=kernel_size, stride=1, padding=padding)

    def __call__(self, input_array: mx.array) -> mx.array:
        input_array = mx.transpose(input_array, (0, 2, 3, 1))
        output = super().__call__(input_array)
        return mx.transpose(output, (0, 3, 1, 2))
