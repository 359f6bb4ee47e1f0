"""
End-to-end tests for FLUX.2 klein generation on a tiny random model.

The tiny model has the real architecture with small widths, so these tests
check pipeline properties (determinism, shapes, strength boundaries, encoder
residency, external inputs) rather than image quality.
"""

import io

import mlx.core as mx
import numpy as np
import pytest

from mklein.callbacks.instances.progress_printer import ProgressPrinter
from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.config.model_config import ModelConfig
from mklein.models.flux2.latent_creator.flux2_latent_creator import Flux2LatentCreator
from mklein.models.flux2.model.flux2_text_encoder import ResidencyState
from mklein.models.flux2.variants.txt2img.flux2_klein import Flux2Klein
from mklein.utils.exceptions import EmbeddingDimensionError, LoadError, ValidationError
from mklein.utils.image_util import ImageUtil
from mklein.utils.raster_image import RasterImage

PROMPT = "a red circle"


def _params(**overrides) -> GenerationParams:
    values = {"width": 64, "height": 64, "num_steps": 2, "guidance_scale": 1.0, "seed": 42, "strength": 0.75}
    values.update(overrides)
    return GenerationParams(**values)


def _input_image(width: int = 64, height: int = 64) -> RasterImage:
    y, x = np.mgrid[0:height, 0:width]
    pixels = np.stack([x * 255 // width, y * 255 // height, np.full_like(x, 128)], axis=-1).astype(np.uint8)
    return RasterImage(width=width, height=height, channels=3, pixels=pixels)


def _max_difference(a: RasterImage, b: RasterImage) -> int:
    return int(np.abs(a.pixels.astype(np.int16) - b.pixels.astype(np.int16)).max())


class TestGenerate:
    """Tests for text to image generation."""

    @pytest.mark.fast
    def test_image_size(self, tiny_context):
        image = tiny_context.generate(PROMPT, _params(width=64, height=96))
        assert (image.image.width, image.image.height, image.image.channels) == (64, 96, 3)
        assert image.pil_image.size == (64, 96)

    @pytest.mark.fast
    def test_same_seed_same_image(self, tiny_context):
        first = tiny_context.generate(PROMPT, _params(seed=42))
        second = tiny_context.generate(PROMPT, _params(seed=42))
        np.testing.assert_array_equal(first.image.pixels, second.image.pixels)

    @pytest.mark.fast
    def test_different_seed_different_image(self, tiny_context):
        first = tiny_context.generate(PROMPT, _params(seed=42))
        second = tiny_context.generate(PROMPT, _params(seed=43))
        assert not np.array_equal(first.image.pixels, second.image.pixels)

    @pytest.mark.fast
    def test_metadata(self, tiny_context):
        image = tiny_context.generate(PROMPT, _params(seed=7, num_steps=3))
        metadata = image.get_metadata()
        assert metadata["seed"] == 7
        assert metadata["steps"] == 3
        assert metadata["prompt"] == PROMPT
        assert metadata["image_strength"] is None

    @pytest.mark.fast
    def test_guidance_encodes_empty_negative_prompt(self, tiny_context, fake_tokenizer):
        image = tiny_context.generate(PROMPT, _params(guidance_scale=2.5))
        assert fake_tokenizer.calls == [PROMPT, ""]
        assert image.guidance == 2.5

    @pytest.mark.fast
    def test_unit_guidance_encodes_prompt_only(self, tiny_context, fake_tokenizer):
        tiny_context.generate(PROMPT, _params())
        assert fake_tokenizer.calls == [PROMPT]

    @pytest.mark.fast
    def test_save_with_metadata(self, tiny_context, tmp_path):
        path = tmp_path / "image.png"
        tiny_context.generate(PROMPT, _params(seed=5)).save(path)
        assert ImageUtil.load_metadata(path)["seed"] == 5


class TestSeeds:
    """Tests for the seed owned by the context."""

    @pytest.mark.fast
    def test_context_seed_is_used(self, tiny_context):
        explicit = tiny_context.generate(PROMPT, _params(seed=42))
        tiny_context.set_seed(42)
        implicit = tiny_context.generate(PROMPT, _params(seed=-1))
        assert implicit.seed == 42
        np.testing.assert_array_equal(explicit.image.pixels, implicit.image.pixels)

    @pytest.mark.fast
    def test_params_seed_wins(self, tiny_context):
        tiny_context.set_seed(1)
        assert tiny_context.generate(PROMPT, _params(seed=2)).seed == 2

    @pytest.mark.fast
    def test_fresh_seed_is_recorded(self, tiny_context):
        image = tiny_context.generate(PROMPT, _params(seed=-1))
        assert image.seed >= 0
        assert tiny_context.last_seed == image.seed
        assert tiny_context.seed is None

    @pytest.mark.fast
    def test_fresh_seed_per_call(self, tiny_context):
        first = tiny_context.generate(PROMPT, _params(seed=-1))
        second = tiny_context.generate(PROMPT, _params(seed=-1))
        assert first.seed != second.seed
        assert not np.array_equal(first.image.pixels, second.image.pixels)

    @pytest.mark.fast
    def test_context_seed_is_reused(self, tiny_context):
        tiny_context.set_seed(11)
        first = tiny_context.generate(PROMPT, _params(seed=-1))
        second = tiny_context.generate(PROMPT, _params(seed=-1))
        assert first.seed == second.seed == 11
        np.testing.assert_array_equal(first.image.pixels, second.image.pixels)

    @pytest.mark.fast
    def test_negative_seed_rejected(self, tiny_context):
        with pytest.raises(ValidationError):
            tiny_context.set_seed(-1)


class TestImg2Img:
    """Tests for image to image generation."""

    @pytest.mark.fast
    def test_output_size_follows_params(self, tiny_context):
        image = tiny_context.img2img(PROMPT, _input_image(96, 80), _params(width=64, height=64, strength=0.5))
        assert (image.image.width, image.image.height) == (64, 64)
        assert image.image_strength == 0.5

    @pytest.mark.fast
    def test_output_size_defaults_to_input(self, tiny_context):
        params = GenerationParams(num_steps=1, seed=1, strength=0.5)
        image = tiny_context.img2img(PROMPT, _input_image(64, 96), params)
        assert (image.image.width, image.image.height) == (64, 96)

    @pytest.mark.fast
    def test_unset_height_follows_input(self, tiny_context):
        params = GenerationParams(width=80, num_steps=1, seed=1, strength=0.5)
        image = tiny_context.img2img(PROMPT, _input_image(64, 96), params)
        assert (image.image.width, image.image.height) == (80, 96)

    @pytest.mark.fast
    def test_zero_strength_reconstructs_input(self, tiny_context):
        """With strength 0 no step runs, the result is the VAE reconstruction of the input."""
        source = _input_image()
        image = tiny_context.img2img(PROMPT, source, _params(strength=0.0))
        clean = Flux2LatentCreator.encode_packed(tiny_context.vae, source.to_array())
        expected = RasterImage.from_decoded(
            Flux2LatentCreator.decode_packed(tiny_context.vae, clean.astype(ModelConfig.precision), 64, 64)
        )
        np.testing.assert_array_equal(image.image.pixels, expected.pixels)

    @pytest.mark.fast
    def test_full_strength_ignores_input(self, tiny_context):
        """With strength 1 the input is fully replaced by noise, as in text to image."""
        from_image = tiny_context.img2img(PROMPT, _input_image(), _params(strength=1.0))
        from_text = tiny_context.generate(PROMPT, _params())
        np.testing.assert_array_equal(from_image.image.pixels, from_text.image.pixels)

    @pytest.mark.fast
    def test_image_path(self, tiny_context, tmp_path):
        path = tmp_path / "input.png"
        ImageUtil.save(_input_image(), path)
        image = tiny_context.img2img(PROMPT, str(path), _params(strength=0.5))
        assert image.get_metadata()["image_path"] == str(path)


class TestEmbeddingsEntryPoints:
    """Tests for generation from precomputed embeddings and noise."""

    @pytest.mark.fast
    def test_encode_text_shape(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        assert seq_len == tiny_context.model_config.max_sequence_length
        assert embeddings.shape == (seq_len, tiny_context.model_config.transformer.joint_attention_dim)

    @pytest.mark.fast
    def test_embeddings_match_prompt(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        tiny_context.release_text_encoder()
        from_embeddings = tiny_context.generate_with_embeddings(embeddings, seq_len, _params())
        from_prompt = tiny_context.generate(PROMPT, _params())
        assert _max_difference(from_embeddings.image, from_prompt.image) <= 1

    @pytest.mark.fast
    def test_flat_embeddings_accepted(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        shaped = tiny_context.generate_with_embeddings(embeddings, seq_len, _params())
        flat = tiny_context.generate_with_embeddings(embeddings.reshape(-1), seq_len, _params())
        np.testing.assert_array_equal(shaped.image.pixels, flat.image.pixels)

    @pytest.mark.fast
    def test_explicit_noise_matches_seed(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        packed = Flux2LatentCreator.create_noise(seed=42, height=64, width=64)
        noise = Flux2LatentCreator.unpack_latents(packed, 64, 64).reshape(-1).astype(mx.float32)

        seeded = tiny_context.generate_with_embeddings(embeddings, seq_len, _params(seed=42))
        explicit = tiny_context.generate_with_embeddings_and_noise(embeddings, seq_len, noise, noise.size, _params(seed=99))  # fmt: off
        np.testing.assert_array_equal(seeded.image.pixels, explicit.image.pixels)

    @pytest.mark.fast
    def test_embeddings_with_guidance(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        negative, _ = tiny_context.encode_text("")
        with_negative = tiny_context.generate_with_embeddings(
            embeddings, seq_len, _params(guidance_scale=3.0), negative_embeddings=negative
        )
        encoded_negative = tiny_context.generate_with_embeddings(embeddings, seq_len, _params(guidance_scale=3.0))
        assert _max_difference(with_negative.image, encoded_negative.image) <= 1

    @pytest.mark.fast
    def test_wrong_embedding_width(self, tiny_context):
        with pytest.raises(EmbeddingDimensionError):
            tiny_context.generate_with_embeddings(mx.zeros((4, 7680)), 4, _params())

    @pytest.mark.fast
    def test_seq_len_mismatch(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        with pytest.raises(ValidationError):
            tiny_context.generate_with_embeddings(embeddings, seq_len + 1, _params())

    @pytest.mark.fast
    def test_noise_len_mismatch(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        noise = mx.zeros((128 * 4 * 4,))
        with pytest.raises(ValidationError):
            tiny_context.generate_with_embeddings_and_noise(embeddings, seq_len, noise, 100, _params())

    @pytest.mark.fast
    def test_noise_size_for_other_resolution(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        noise = mx.zeros((128 * 4 * 4,))
        with pytest.raises(ValidationError):
            tiny_context.generate_with_embeddings_and_noise(
                embeddings, seq_len, noise, noise.size, _params(width=128, height=128)
            )


class TestTextEncoderResidency:
    """Tests for loading the text encoder only while prompts are encoded."""

    @pytest.mark.fast
    def test_not_loaded_after_model_load(self, tiny_context):
        assert tiny_context.text_encoder_residency.state == ResidencyState.UNLOADED

    @pytest.mark.fast
    def test_released_after_generate(self, tiny_context):
        tiny_context.generate(PROMPT, _params())
        assert not tiny_context.text_encoder_residency.is_resident
        tiny_context.generate(PROMPT, _params())
        assert tiny_context.text_encoder_residency.load_count == 2

    @pytest.mark.fast
    def test_release_does_not_change_output(self, tiny_context, tiny_model_path, fake_tokenizer):
        """A generate after releasing the encoder matches one with the encoder kept loaded."""
        resident = Flux2Klein(
            model_path=tiny_model_path,
            model_config=ModelConfig.flux2_klein_4b().with_components(max_sequence_length=32),
            tokenizer=fake_tokenizer,
            keep_text_encoder=True,
            show_progress=False,
        )
        try:
            kept = resident.generate(PROMPT, _params(seed=21))
        finally:
            resident.free()

        tiny_context.encode_text(PROMPT)
        tiny_context.release_text_encoder()
        reloaded = tiny_context.generate(PROMPT, _params(seed=21))
        assert tiny_context.text_encoder_residency.load_count == 2
        np.testing.assert_array_equal(kept.image.pixels, reloaded.image.pixels)

    @pytest.mark.fast
    def test_encode_text_keeps_encoder(self, tiny_context):
        tiny_context.encode_text(PROMPT)
        tiny_context.encode_text("another prompt")
        residency = tiny_context.text_encoder_residency
        assert residency.is_resident
        assert residency.load_count == 1
        tiny_context.release_text_encoder()
        assert residency.state == ResidencyState.RELEASED

    @pytest.mark.fast
    def test_embeddings_generation_does_not_load_encoder(self, tiny_context):
        embeddings, seq_len = tiny_context.encode_text(PROMPT)
        tiny_context.release_text_encoder()
        tiny_context.generate_with_embeddings(embeddings, seq_len, _params())
        assert tiny_context.text_encoder_residency.load_count == 1

    @pytest.mark.fast
    def test_keep_text_encoder(self, tiny_model_path, fake_tokenizer):
        ctx = Flux2Klein(
            model_path=tiny_model_path,
            model_config=ModelConfig.flux2_klein_4b().with_components(max_sequence_length=32),
            tokenizer=fake_tokenizer,
            keep_text_encoder=True,
            show_progress=False,
        )
        try:
            ctx.generate(PROMPT, _params())
            ctx.generate(PROMPT, _params())
            assert ctx.text_encoder_residency.is_resident
            assert ctx.text_encoder_residency.load_count == 1
        finally:
            ctx.free()


class TestLowLevelOperations:
    """Tests for direct VAE access and model information."""

    @pytest.mark.fast
    def test_encode_image(self, tiny_context):
        latent, height, width = tiny_context.encode_image(_input_image(48, 64))
        assert (height, width) == (8, 6)
        assert latent.shape == (1, 32, 8, 6)

    @pytest.mark.fast
    def test_encode_image_rejects_off_grid_size(self, tiny_context):
        with pytest.raises(ValidationError):
            tiny_context.encode_image(_input_image(60, 64))

    @pytest.mark.fast
    def test_decode_latent(self, tiny_context):
        latent, height, width = tiny_context.encode_image(_input_image(48, 64))
        image = tiny_context.decode_latent(latent, height, width)
        assert (image.width, image.height) == (48, 64)

    @pytest.mark.fast
    def test_decode_latent_rejects_wrong_size(self, tiny_context):
        with pytest.raises(ValidationError):
            tiny_context.decode_latent(mx.zeros((1, 32, 8, 8)), 8, 6)

    @pytest.mark.fast
    def test_model_info(self, tiny_context):
        info = tiny_context.model_info()
        assert "2 double blocks" in info
        assert "5 single blocks" in info
        assert "Qwen3 28 layers" in info
        assert "unloaded" in info

    @pytest.mark.fast
    def test_architecture_from_weights(self, tiny_context):
        config = tiny_context.model_config
        assert config.transformer.num_layers == 2
        assert config.transformer.num_single_layers == 5
        assert config.text_encoder.num_hidden_layers == 28

    @pytest.mark.fast
    def test_free(self, tiny_context):
        tiny_context.free()
        assert tiny_context.transformer is None
        assert tiny_context.vae is None
        assert tiny_context.text_encoder_residency is None

    @pytest.mark.fast
    def test_use_after_free(self, tiny_context):
        tiny_context.free()
        with pytest.raises(LoadError):
            tiny_context.generate(PROMPT, _params())
        with pytest.raises(LoadError):
            tiny_context.encode_text(PROMPT)
        with pytest.raises(LoadError):
            tiny_context.model_info()
        tiny_context.release_text_encoder()
        tiny_context.free()

    @pytest.mark.fast
    def test_save_and_reload(self, tiny_context, tmp_path, fake_tokenizer):
        tiny_context.save_model(tmp_path / "saved")
        reloaded = Flux2Klein(
            model_path=tmp_path / "saved",
            model_config=ModelConfig.flux2_klein_4b().with_components(max_sequence_length=32),
            tokenizer=fake_tokenizer,
            show_progress=False,
        )
        try:
            original = tiny_context.generate(PROMPT, _params())
            copy = reloaded.generate(PROMPT, _params())
            np.testing.assert_array_equal(original.image.pixels, copy.image.pixels)
        finally:
            reloaded.free()


class TestProgress:
    """Tests for step and sub-step notifications during generation."""

    @pytest.mark.fast
    def test_progress_printer_output(self, tiny_context):
        stream = io.StringIO()
        tiny_context.callbacks.register(ProgressPrinter(stream=stream))
        tiny_context.generate(PROMPT, _params(num_steps=2))
        assert stream.getvalue() == "Step 1/2 ddsF\nStep 2/2 ddsF\n"

    @pytest.mark.fast
    def test_callbacks_are_per_context(self, tiny_model_path, tiny_context, fake_tokenizer):
        stream = io.StringIO()
        tiny_context.callbacks.register(ProgressPrinter(stream=stream))
        other = Flux2Klein(
            model_path=tiny_model_path,
            model_config=ModelConfig.flux2_klein_4b().with_components(max_sequence_length=32),
            tokenizer=fake_tokenizer,
            show_progress=False,
        )
        try:
            other.generate(PROMPT, _params())
        finally:
            other.free()
        assert stream.getvalue() == ""
