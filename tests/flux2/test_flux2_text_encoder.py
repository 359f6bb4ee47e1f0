"""
Unit tests for the Qwen3 text encoder and its residency.

Tests verify:
1. Prompt embeddings concatenate three hidden states into one wide vector per token
2. Text position ids only vary along the token axis
3. The encoder is loaded on demand, released, and loaded again
"""

import mlx.core as mx
import pytest

from mklein.models.common.config.model_config import TextEncoderConfig
from mklein.models.flux2.model.flux2_text_encoder import (
    Flux2PromptEncoder,
    Qwen3TextEncoder,
    ResidencyState,
    TextEncoderResidency,
)
from mklein.utils.exceptions import EncoderNotLoadedError

SMALL = TextEncoderConfig(
    vocab_size=64,
    hidden_size=16,
    num_hidden_layers=4,
    num_attention_heads=2,
    num_key_value_heads=1,
    head_dim=8,
    intermediate_size=32,
)


@pytest.fixture
def text_encoder():
    mx.random.seed(0)
    return Qwen3TextEncoder.from_config(SMALL)


class TestQwen3TextEncoder:
    """Tests for hidden state extraction."""

    @pytest.mark.fast
    def test_hidden_state_count(self, text_encoder):
        hidden_states = text_encoder(mx.array([[1, 2, 3]]))
        assert len(hidden_states) == SMALL.num_hidden_layers + 1
        assert hidden_states[0].shape == (1, 3, 16)

    @pytest.mark.fast
    def test_prompt_embeds_width(self, text_encoder):
        embeds = text_encoder.get_prompt_embeds(mx.array([[1, 2, 3, 0]]), hidden_state_layers=(1, 2, 4))
        assert embeds.shape == (1, 4, 48)

    @pytest.mark.fast
    def test_prompt_embeds_layout(self, text_encoder):
        """Verify each token holds the selected layers side by side."""
        input_ids = mx.array([[1, 2, 3]])
        hidden_states = text_encoder(input_ids)
        embeds = text_encoder.get_prompt_embeds(input_ids, hidden_state_layers=(1, 2, 4))
        assert mx.allclose(embeds[0, 1, :16], hidden_states[1][0, 1]).item()
        assert mx.allclose(embeds[0, 1, 32:], hidden_states[4][0, 1]).item()

    @pytest.mark.fast
    def test_padding_does_not_change_real_tokens(self, text_encoder):
        """Verify causal masking keeps trailing padding from affecting earlier tokens."""
        short = text_encoder.get_prompt_embeds(
            mx.array([[1, 5, 9]]), attention_mask=mx.array([[1, 1, 1]]), hidden_state_layers=(1, 2, 4)
        )
        padded = text_encoder.get_prompt_embeds(
            mx.array([[1, 5, 9, 0, 0]]), attention_mask=mx.array([[1, 1, 1, 0, 0]]), hidden_state_layers=(1, 2, 4)
        )
        assert mx.allclose(short[0], padded[0, :3], atol=1e-5).item()


class TestFlux2PromptEncoder:
    """Tests for turning prompts into transformer inputs."""

    @pytest.mark.fast
    def test_encode_prompt(self, text_encoder, fake_tokenizer):
        embeds, text_ids = Flux2PromptEncoder.encode_prompt(
            prompt="a red circle",
            tokenizer=fake_tokenizer,
            text_encoder=text_encoder,
            max_sequence_length=16,
            text_encoder_out_layers=(1, 2, 4),
        )
        assert embeds.shape == (1, 16, 48)
        assert text_ids.shape == (16, 4)

    @pytest.mark.fast
    def test_text_ids(self):
        text_ids = Flux2PromptEncoder.prepare_text_ids(5)
        assert text_ids.shape == (5, 4)
        assert text_ids[:, 3].tolist() == [0, 1, 2, 3, 4]
        assert mx.all(text_ids[:, :3] == 0).item()

    @pytest.mark.fast
    def test_requires_loaded_encoder(self, fake_tokenizer):
        with pytest.raises(EncoderNotLoadedError):
            Flux2PromptEncoder.encode_prompt(prompt="x", tokenizer=fake_tokenizer, text_encoder=None)


class TestTextEncoderResidency:
    """Tests for loading and releasing the text encoder on demand."""

    @staticmethod
    def _residency():
        return TextEncoderResidency(loader=lambda: Qwen3TextEncoder.from_config(SMALL))

    @pytest.mark.fast
    def test_starts_unloaded(self):
        residency = self._residency()
        assert residency.state == ResidencyState.UNLOADED
        assert not residency.is_resident
        assert residency.load_count == 0

    @pytest.mark.fast
    def test_acquire_loads_once(self):
        residency = self._residency()
        first = residency.acquire()
        second = residency.acquire()
        assert first is second
        assert residency.load_count == 1
        assert residency.state == ResidencyState.LOADED

    @pytest.mark.fast
    def test_release_and_reload(self):
        residency = self._residency()
        residency.acquire()
        residency.release()
        assert residency.state == ResidencyState.RELEASED
        assert not residency.is_resident
        residency.acquire()
        assert residency.load_count == 2
        assert residency.is_resident

    @pytest.mark.fast
    def test_release_when_unloaded_is_noop(self):
        residency = self._residency()
        residency.release()
        assert residency.state == ResidencyState.UNLOADED

    @pytest.mark.fast
    def test_failed_load_stays_unloaded(self):
        def failing_loader():
            raise RuntimeError("out of memory")

        residency = TextEncoderResidency(loader=failing_loader)
        with pytest.raises(RuntimeError):
            residency.acquire()
        assert not residency.is_resident
        assert residency.load_count == 0
