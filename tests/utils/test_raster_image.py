import mlx.core as mx
import numpy as np
import PIL.Image
import pytest

from mklein.utils.raster_image import RasterImage


class TestRasterImage:
    """Tests for the pixel buffer exchanged with callers."""

    @pytest.mark.fast
    def test_rejects_inconsistent_buffer(self):
        with pytest.raises(ValueError):
            RasterImage(width=4, height=2, channels=3, pixels=np.zeros((4, 2, 3), dtype=np.uint8))

    @pytest.mark.fast
    def test_from_pil_converts_to_rgb(self):
        image = RasterImage.from_pil(PIL.Image.new("RGBA", (8, 4), (10, 20, 30, 40)))
        assert (image.width, image.height, image.channels) == (8, 4, 3)
        assert tuple(image.pixels[0, 0]) == (10, 20, 30)

    @pytest.mark.fast
    def test_to_array_range_and_layout(self):
        pixels = np.zeros((2, 4, 3), dtype=np.uint8)
        pixels[..., 0] = 255
        array = RasterImage(width=4, height=2, channels=3, pixels=pixels).to_array()
        assert array.shape == (1, 3, 2, 4)
        assert mx.all(array[0, 0] == 1.0).item()
        assert mx.all(array[0, 1] == -1.0).item()

    @pytest.mark.fast
    def test_from_decoded_clips_and_scales(self):
        decoded = mx.stack([mx.full((2, 2), -3.0), mx.zeros((2, 2)), mx.full((2, 2), 5.0)])[None]
        image = RasterImage.from_decoded(decoded)
        assert (image.width, image.height, image.channels) == (2, 2, 3)
        assert tuple(image.pixels[0, 0]) == (0, 128, 255)

    @pytest.mark.fast
    def test_resized(self):
        image = RasterImage.from_pil(PIL.Image.new("RGB", (30, 20), (1, 2, 3)))
        resized = image.resized(64, 48)
        assert (resized.width, resized.height) == (64, 48)
        assert image.resized(30, 20) is image

    @pytest.mark.fast
    def test_grayscale_to_rgb(self):
        gray = RasterImage(width=2, height=2, channels=1, pixels=np.full((2, 2, 1), 7, dtype=np.uint8))
        rgb = gray.to_rgb()
        assert rgb.channels == 3
        assert tuple(rgb.pixels[1, 1]) == (7, 7, 7)
