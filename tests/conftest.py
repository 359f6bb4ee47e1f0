"""Pytest fixtures for mklein tests.

Besides the MLX memory clean-up this provides a tiny, randomly initialised
klein model on disk (same layout as a saved model, a fraction of the size)
and a deterministic stand-in tokenizer, so the full pipeline runs on CPU.
"""

import gc

import mlx.core as mx
import pytest

from mklein.models.common.config.model_config import ModelConfig, TextEncoderConfig, TransformerConfig, VAEConfig
from mklein.models.common.tokenizer.tokenizer_output import TokenizerOutput
from mklein.models.common.weights.saving.model_saver import ModelSaver
from mklein.models.flux2.model.flux2_text_encoder import Qwen3TextEncoder
from mklein.models.flux2.model.flux2_transformer import Flux2Transformer
from mklein.models.flux2.model.flux2_vae import Flux2VAE
from mklein.models.flux2.variants.txt2img.flux2_klein import Flux2Klein

TINY_MAX_SEQUENCE_LENGTH = 32

TINY_TRANSFORMER = TransformerConfig(
    num_layers=2,
    num_single_layers=5,
    attention_head_dim=16,
    num_attention_heads=2,
    joint_attention_dim=48,
    axes_dims_rope=(4, 4, 4, 4),
)

# 28 layers so hidden states 9, 18 and 27 exist; 3 x 16 = 48 wide embeddings
TINY_TEXT_ENCODER = TextEncoderConfig(
    vocab_size=64,
    hidden_size=16,
    num_hidden_layers=28,
    num_attention_heads=2,
    num_key_value_heads=1,
    head_dim=8,
    intermediate_size=32,
)

TINY_VAE = VAEConfig(
    block_out_channels=(8, 8, 8, 8),
    layers_per_block=1,
    norm_num_groups=4,
)

TINY_EMBEDDING_DIM = 48


def pytest_configure(config):
    config.addinivalue_line("markers", "fast: quick tests that run without real model weights")
    config.addinivalue_line("markers", "slow: tests that need the real model weights")


def _clear_mlx_cache():
    mx.clear_cache()


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Clean up MLX memory after each test."""
    yield
    gc.collect()
    _clear_mlx_cache()


@pytest.fixture(scope="class", autouse=True)
def cleanup_after_class():
    """Clean up MLX memory after each test class."""
    yield
    gc.collect()
    gc.collect()
    _clear_mlx_cache()


class FakeTokenizer:
    """Maps characters onto a small vocabulary. Token 1 starts every prompt, 0 pads."""

    def __init__(self, max_length: int = TINY_MAX_SEQUENCE_LENGTH, vocab_size: int = TINY_TEXT_ENCODER.vocab_size):
        self.max_length = max_length
        self.vocab_size = vocab_size
        self.calls: list[str] = []

    def tokenize(self, prompt: str | list[str], max_length: int | None = None) -> TokenizerOutput:
        max_length = max_length or self.max_length
        prompts = [prompt] if isinstance(prompt, str) else list(prompt)
        self.calls.extend(prompts)
        input_ids, attention_mask = [], []
        for p in prompts:
            ids = ([1] + [2 + ord(c) % (self.vocab_size - 2) for c in p])[:max_length]
            padding = max_length - len(ids)
            input_ids.append(ids + [0] * padding)
            attention_mask.append([1] * len(ids) + [0] * padding)
        return TokenizerOutput(
            input_ids=mx.array(input_ids, dtype=mx.int32),
            attention_mask=mx.array(attention_mask, dtype=mx.int32),
        )


def tiny_model_config() -> ModelConfig:
    return ModelConfig.flux2_klein_4b().with_components(max_sequence_length=TINY_MAX_SEQUENCE_LENGTH)


@pytest.fixture(scope="session")
def tiny_model_path(tmp_path_factory):
    """A saved tiny model: vae/, transformer/ and text_encoder/ with safetensors and config.json."""
    path = tmp_path_factory.mktemp("tiny-klein")
    mx.random.seed(0)
    vae = Flux2VAE(TINY_VAE)
    transformer = Flux2Transformer.from_config(TINY_TRANSFORMER)
    text_encoder = Qwen3TextEncoder.from_config(TINY_TEXT_ENCODER)
    mx.eval(vae.parameters(), transformer.parameters(), text_encoder.parameters())
    ModelSaver.save_components(
        base_path=path,
        components={
            "vae": (vae, TINY_VAE),
            "transformer": (transformer, TINY_TRANSFORMER),
            "text_encoder": (text_encoder, TINY_TEXT_ENCODER),
        },
    )
    return path


@pytest.fixture
def fake_tokenizer():
    return FakeTokenizer()


@pytest.fixture
def tiny_context(tiny_model_path, fake_tokenizer):
    ctx = Flux2Klein(
        model_path=tiny_model_path,
        model_config=tiny_model_config(),
        tokenizer=fake_tokenizer,
        show_progress=False,
    )
    yield ctx
    ctx.free()
