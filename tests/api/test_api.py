import mlx.core as mx
import numpy as np
import pytest

from mklein import api
from mklein.models.common.config import defaults
from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.flux2.latent_creator.flux2_latent_creator import Flux2LatentCreator
from mklein.models.flux2.variants.txt2img.flux2_klein import Flux2Klein
from mklein.utils.raster_image import RasterImage
from mklein.utils.raw_buffer_util import RawBufferUtil


@pytest.fixture
def params():
    return GenerationParams(width=64, height=64, num_steps=2, seed=42)


class TestApiErrors:
    """Tests for the None-on-failure convention and last_error."""

    @pytest.mark.fast
    def test_load_failure(self, tmp_path):
        assert api.load_model(tmp_path / "missing") is None
        assert api.last_error().startswith("load: ")

    @pytest.mark.fast
    def test_set_seed_failure(self, tiny_context):
        assert api.set_seed(tiny_context, -5) is None
        assert api.last_error().startswith("set_seed: ")

    @pytest.mark.fast
    def test_set_seed_success(self, tiny_context):
        assert api.set_seed(tiny_context, 9) is True
        assert tiny_context.seed == 9

    @pytest.mark.fast
    def test_embedding_width_failure(self, tiny_context, params):
        assert api.generate_with_embeddings(tiny_context, mx.zeros((2, 7680)), 2, params) is None
        assert api.last_error().startswith("generate_with_embeddings: ")

    @pytest.mark.fast
    def test_noise_failure(self, tiny_context, params):
        embeddings, seq_len = api.encode_text(tiny_context, "a red circle")
        result = api.generate_with_embeddings_and_noise(tiny_context, embeddings, seq_len, mx.zeros((10,)), 10, params)
        assert result is None
        assert "generate_with_embeddings_and_noise" in api.last_error()

    @pytest.mark.fast
    def test_embeddings_file_failure(self, tmp_path):
        path = tmp_path / "embeddings.bin"
        np.zeros(10, dtype="<f4").tofile(path)
        assert api.load_embeddings_file(path) is None
        assert api.last_error().startswith("load_embeddings: ")

    @pytest.mark.fast
    def test_generate_after_free(self, tiny_context, params):
        api.free(tiny_context)
        assert api.generate(tiny_context, "a red circle", params) is None
        assert api.last_error() == "generate: Context has been freed"

    @pytest.mark.fast
    def test_unexpected_errors_propagate(self):
        with pytest.raises(AttributeError):
            api.generate(None, "a red circle")


class TestApiOperations:
    """Tests for the happy paths of the flat functions."""

    @pytest.mark.fast
    def test_load_and_free(self, tiny_model_path, fake_tokenizer):
        ctx = api.load_model(tiny_model_path, tokenizer=fake_tokenizer)
        assert isinstance(ctx, Flux2Klein)
        api.free(ctx)
        assert ctx.transformer is None
        api.free(None)

    @pytest.mark.fast
    def test_generate(self, tiny_context, params):
        image = api.generate(tiny_context, "a red circle", params)
        assert (image.image.width, image.image.height) == (64, 64)

    @pytest.mark.fast
    def test_img2img(self, tiny_context, params):
        source = RasterImage(width=64, height=64, channels=3, pixels=np.full((64, 64, 3), 90, dtype=np.uint8))
        image = api.img2img(tiny_context, "a red circle", source, params)
        assert image.image_strength == params.strength

    @pytest.mark.fast
    def test_encode_decode(self, tiny_context):
        source = RasterImage(width=64, height=64, channels=3, pixels=np.zeros((64, 64, 3), dtype=np.uint8))
        latent, height, width = api.encode_image(tiny_context, source)
        image = api.decode_latent(tiny_context, latent, height, width)
        assert (image.width, image.height) == (64, 64)

    @pytest.mark.fast
    def test_embeddings_files(self, tiny_context, params, tmp_path):
        """Noise read from a raw file reproduces seeded generation."""
        embeddings, seq_len = api.encode_text(tiny_context, "a red circle")
        assert api.release_text_encoder(tiny_context) is True
        packed = Flux2LatentCreator.create_noise(seed=42, height=64, width=64)
        RawBufferUtil.save(Flux2LatentCreator.unpack_latents(packed, 64, 64), tmp_path / "noise.bin")

        noise, noise_len = api.load_noise_file(tmp_path / "noise.bin")
        assert noise_len == 128 * 4 * 4
        explicit = api.generate_with_embeddings_and_noise(tiny_context, embeddings, seq_len, noise, noise_len, params)
        seeded = api.generate_with_embeddings(tiny_context, embeddings, seq_len, params)
        np.testing.assert_array_equal(explicit.image.pixels, seeded.image.pixels)

    @pytest.mark.fast
    def test_model_info(self, tiny_context):
        assert "FLUX.2 klein" in api.model_info(tiny_context)

    @pytest.mark.fast
    def test_default_embedding_file_width(self, tmp_path):
        path = tmp_path / "embeddings.bin"
        np.zeros(2 * defaults.FLUX_TEXT_DIM, dtype="<f4").tofile(path)
        embeddings, seq_len = api.load_embeddings_file(path)
        assert seq_len == 2
