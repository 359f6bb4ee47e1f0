from dataclasses import dataclass

import mlx.core as mx
import numpy as np
import PIL.Image


@dataclass
class RasterImage:
    width: int
    height: int
    channels: int
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.shape != (self.height, self.width, self.channels):
            raise ValueError(
                f"Pixel buffer of shape {self.pixels.shape} does not match "
                f"{self.height}x{self.width}x{self.channels}"
            )

    @staticmethod
    def from_pil(image: PIL.Image.Image) -> "RasterImage":
        pixels = np.asarray(image.convert("RGB"), dtype=np.uint8)
        return RasterImage(width=image.width, height=image.height, channels=3, pixels=pixels)

    @staticmethod
    def from_decoded(decoded: mx.array) -> "RasterImage":
        # decoded is (1, C, H, W) in [-1, 1]
        images = mx.clip(decoded / 2 + 0.5, 0, 1)
        images = mx.transpose(images, (0, 2, 3, 1)).astype(mx.float32)
        pixels = (np.array(images)[0] * 255).round().astype(np.uint8)
        height, width, channels = pixels.shape
        return RasterImage(width=width, height=height, channels=channels, pixels=pixels)

    def to_pil(self) -> PIL.Image.Image:
        if self.channels == 1:
            return PIL.Image.fromarray(self.pixels[:, :, 0], mode="L")
        return PIL.Image.fromarray(self.pixels)

    def to_rgb(self) -> "RasterImage":
        if self.channels == 3:
            return self
        return RasterImage.from_pil(self.to_pil())

    def resized(self, width: int, height: int) -> "RasterImage":
        if (width, height) == (self.width, self.height):
            return self
        resized = self.to_pil().resize((width, height), PIL.Image.LANCZOS)
        return RasterImage.from_pil(resized)

    def to_array(self) -> mx.array:
        rgb = self.to_rgb()
        images = rgb.pixels.astype(np.float32)[np.newaxis] / 255.0
        array = mx.transpose(mx.array(images), (0, 3, 1, 2))
        return 2.0 * array - 1.0
