import logging
import time
from pathlib import Path

import mlx.core as mx

from mklein.models.common.config import defaults
from mklein.models.common.config.config import Config
from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.config.model_config import ModelConfig
from mklein.models.common.latent_creator.latent_creator import LatentCreator
from mklein.models.common.tokenizer import Tokenizer
from mklein.models.common.weights.saving.model_saver import ModelSaver
from mklein.models.flux2.flux2_initializer import Flux2Initializer
from mklein.models.flux2.latent_creator.flux2_latent_creator import Flux2LatentCreator
from mklein.models.flux2.model.flux2_text_encoder import Flux2PromptEncoder
from mklein.models.flux2.model.flux2_transformer import Flux2Transformer
from mklein.models.flux2.model.flux2_vae import Flux2VAE
from mklein.models.flux2.sampler import Flux2Sampler
from mklein.utils.exceptions import EmbeddingDimensionError, LoadError, ValidationError
from mklein.utils.generated_image import GeneratedImage
from mklein.utils.image_util import ImageUtil
from mklein.utils.raster_image import RasterImage
from mklein.utils.version_util import VersionUtil

logger = logging.getLogger(__name__)


class Flux2Klein:
    """
    A loaded FLUX.2 klein model and the state of one generation session.

    The VAE and transformer stay resident for the lifetime of the object. The
    text encoder is loaded when a prompt has to be encoded and released again
    right after, unless ``keep_text_encoder`` is set. Seed and progress
    callbacks belong to the instance, so separate instances never interfere.
    Instances are not safe for concurrent generation calls.
    """

    vae: Flux2VAE
    transformer: Flux2Transformer

    def __init__(
        self,
        quantize: int | None = None,
        model_path: str | Path | None = None,
        model_config: ModelConfig | None = None,
        tokenizer: Tokenizer | None = None,
        keep_text_encoder: bool = False,
        show_progress: bool = True,
    ):
        self.seed: int | None = None
        self.last_seed: int | None = None
        self.keep_text_encoder = keep_text_encoder
        self.show_progress = show_progress
        Flux2Initializer.init(
            model=self,
            quantize=quantize,
            model_path=model_path,
            model_config=model_config or ModelConfig.flux2_klein_4b(),
            tokenizer=tokenizer,
        )

    def generate(self, prompt: str, params: GenerationParams | None = None) -> GeneratedImage:
        self._require_loaded()
        params = params or GenerationParams()
        prompt_embeds, negative_prompt_embeds = self._encode_prompts(prompt, params)
        return self._generate(
            prompt=prompt,
            params=params,
            prompt_embeds=prompt_embeds,
            negative_prompt_embeds=negative_prompt_embeds,
        )

    def img2img(
        self,
        prompt: str,
        image: RasterImage | str | Path,
        params: GenerationParams | None = None,
    ) -> GeneratedImage:
        self._require_loaded()
        image_path = image if isinstance(image, (str, Path)) else None
        image = ImageUtil.load(image) if image_path is not None else image
        params = (params or GenerationParams()).with_dimensions_of(image)
        prompt_embeds, negative_prompt_embeds = self._encode_prompts(prompt, params)
        return self._generate(
            prompt=prompt,
            params=params,
            prompt_embeds=prompt_embeds,
            negative_prompt_embeds=negative_prompt_embeds,
            image=image,
            image_path=image_path,
        )

    def generate_with_embeddings(
        self,
        embeddings: mx.array,
        seq_len: int,
        params: GenerationParams | None = None,
        negative_embeddings: mx.array | None = None,
    ) -> GeneratedImage:
        return self.generate_with_embeddings_and_noise(
            embeddings=embeddings,
            seq_len=seq_len,
            noise=None,
            noise_len=None,
            params=params,
            negative_embeddings=negative_embeddings,
        )

    def generate_with_embeddings_and_noise(
        self,
        embeddings: mx.array,
        seq_len: int,
        noise: mx.array | None,
        noise_len: int | None,
        params: GenerationParams | None = None,
        negative_embeddings: mx.array | None = None,
    ) -> GeneratedImage:
        self._require_loaded()
        params = params or GenerationParams()
        prompt_embeds = self._as_embedding_sequence(embeddings, seq_len)
        if noise is not None and noise_len != noise.size:
            raise ValidationError(f"Noise buffer holds {noise.size} values but noise_len is {noise_len}")

        negative_prompt_embeds = None
        if params.uses_guidance:
            if negative_embeddings is not None:
                negative_seq_len = negative_embeddings.size // self.model_config.transformer.joint_attention_dim
                negative_prompt_embeds = self._as_embedding_sequence(negative_embeddings, negative_seq_len)
            else:
                negative_prompt_embeds = self._encode_prompts(defaults.NEGATIVE_PROMPT, None)[0]

        return self._generate(
            prompt=None,
            params=params,
            prompt_embeds=prompt_embeds,
            negative_prompt_embeds=negative_prompt_embeds,
            noise=noise,
        )

    def encode_text(self, prompt: str) -> tuple[mx.array, int]:
        """
        Encode ``prompt`` to a ``(seq_len, 7680)`` embedding matrix.

        The text encoder is left resident so several prompts can be encoded
        before calling ``release_text_encoder``.
        """
        self._require_loaded()
        text_encoder = self.text_encoder_residency.acquire()
        prompt_embeds, _ = Flux2PromptEncoder.encode_prompt(
            prompt=prompt,
            tokenizer=self.tokenizer,
            text_encoder=text_encoder,
            max_sequence_length=self.model_config.max_sequence_length,
            text_encoder_out_layers=self.model_config.text_encoder_out_layers,
        )
        mx.eval(prompt_embeds)
        return prompt_embeds[0], prompt_embeds.shape[1]

    def encode_image(self, image: RasterImage | str | Path) -> tuple[mx.array, int, int]:
        self._require_loaded()
        image = ImageUtil.load(image) if isinstance(image, (str, Path)) else image
        if image.width % defaults.DIMENSION_STEP_PIXELS or image.height % defaults.DIMENSION_STEP_PIXELS:
            raise ValidationError(
                f"Image size {image.width}x{image.height} is not a multiple of {defaults.DIMENSION_STEP_PIXELS}"
            )
        latents = self.vae.encode(image.to_array().astype(ModelConfig.precision))
        mx.eval(latents)
        return latents, latents.shape[2], latents.shape[3]

    def decode_latent(self, latent: mx.array, height: int, width: int) -> RasterImage:
        self._require_loaded()
        expected = self.vae.latent_channels * height * width
        if latent.size != expected:
            raise ValidationError(
                f"Latent holds {latent.size} values, a {height}x{width} latent needs {expected} "
                f"({self.vae.latent_channels} channels)"
            )
        latent = latent.reshape(1, self.vae.latent_channels, height, width).astype(ModelConfig.precision)
        return RasterImage.from_decoded(self.vae.decode(latent))

    def set_seed(self, seed: int) -> None:
        if not 0 <= seed <= defaults.MAX_SEED:
            raise ValidationError(f"Seed must be a non-negative 64-bit integer, got {seed}")
        self.seed = seed

    def release_text_encoder(self) -> None:
        if self.text_encoder_residency is not None:
            self.text_encoder_residency.release()

    def free(self) -> None:
        Flux2Initializer.free(self)

    def save_model(self, base_path: str | Path) -> None:
        self._require_loaded()
        text_encoder = self.text_encoder_residency.acquire()
        try:
            ModelSaver.save_components(
                base_path=base_path,
                components={
                    "vae": (self.vae, self.model_config.vae),
                    "transformer": (self.transformer, self.model_config.transformer),
                    "text_encoder": (text_encoder, self.model_config.text_encoder),
                },
                bits=self.bits,
                tokenizer=getattr(self.tokenizer, "tokenizer", None),
            )
        finally:
            del text_encoder
            if not self.keep_text_encoder:
                self.text_encoder_residency.release()

    def model_info(self) -> str:
        self._require_loaded()
        config = self.model_config
        transformer = config.transformer
        text_encoder = config.text_encoder
        indexes = self.tensor_indexes
        return "\n".join(
            [
                f"FLUX.2 klein ({config.model_name})",
                f"  path: {self.model_path}",
                f"  transformer: {transformer.num_layers} double blocks, {transformer.num_single_layers} single blocks, "
                f"{transformer.inner_dim} hidden ({transformer.num_attention_heads} heads x {transformer.attention_head_dim}), "
                f"{Flux2Klein._format_count(indexes['transformer'].num_parameters)} parameters",
                f"  text encoder: Qwen3 {text_encoder.num_hidden_layers} layers, hidden {text_encoder.hidden_size}, "
                f"output layers {config.text_encoder_out_layers} -> {config.text_embedding_dim}, "
                f"{Flux2Klein._format_count(indexes['text_encoder'].num_parameters)} parameters, "
                f"{self.text_encoder_residency.state.value}",
                f"  vae: {config.vae.latent_channels} latent channels, {config.vae.spatial_scale}x compression, "
                f"{Flux2Klein._format_count(indexes['vae'].num_parameters)} parameters",
                f"  precision: {ModelConfig.precision}, quantization: {self.bits or 'none'}",
                f"  mklein {VersionUtil.get_mklein_version()}",
            ]
        )

    def _encode_prompts(self, prompt: str, params: GenerationParams | None) -> tuple[mx.array, mx.array | None]:
        text_encoder = self.text_encoder_residency.acquire()
        try:
            prompt_embeds = self._encode(prompt, text_encoder)
            negative_prompt_embeds = None
            if params is not None and params.uses_guidance:
                negative_prompt_embeds = self._encode(defaults.NEGATIVE_PROMPT, text_encoder)
        finally:
            del text_encoder
            if not self.keep_text_encoder:
                self.text_encoder_residency.release()
        return prompt_embeds, negative_prompt_embeds

    def _encode(self, prompt: str, text_encoder) -> mx.array:
        prompt_embeds, _ = Flux2PromptEncoder.encode_prompt(
            prompt=prompt,
            tokenizer=self.tokenizer,
            text_encoder=text_encoder,
            max_sequence_length=self.model_config.max_sequence_length,
            text_encoder_out_layers=self.model_config.text_encoder_out_layers,
        )
        mx.eval(prompt_embeds)
        return prompt_embeds

    def _generate(
        self,
        prompt: str | None,
        params: GenerationParams,
        prompt_embeds: mx.array,
        negative_prompt_embeds: mx.array | None = None,
        image: RasterImage | None = None,
        image_path: str | Path | None = None,
        noise: mx.array | None = None,
    ) -> GeneratedImage:
        start_time = time.time()
        seed = self._resolve_seed(params)
        params = params.with_seed(seed)

        # 0. Create a new config based on the model and input parameters
        config = Config(
            model_config=self.model_config,
            params=params,
            is_img2img=image is not None,
            show_progress=self.show_progress,
        )
        scheduler = config.scheduler

        # 1. Create the initial latents
        if noise is not None:
            latents = Flux2LatentCreator.noise_from_buffer(noise, config.height, config.width)
        else:
            latents = Flux2LatentCreator.create_noise(seed, config.height, config.width)
        if image is not None:
            clean = Flux2LatentCreator.encode_packed(
                vae=self.vae,
                image=image.resized(config.width, config.height).to_array(),
            )
            latents = LatentCreator.add_noise_by_interpolation(
                clean=clean,
                noise=latents,
                sigma=scheduler.sigmas[config.init_time_step],
            ).astype(ModelConfig.precision)
        latent_ids = Flux2LatentCreator.prepare_grid_ids(
            height=config.height // (defaults.VAE_SCALE_FACTOR * 2),
            width=config.width // (defaults.VAE_SCALE_FACTOR * 2),
        )

        # 2. Run the denoising loop
        ctx = self.callbacks.start(seed=seed, prompt=prompt, config=config)
        sampler = Flux2Sampler(transformer=self.transformer, config=config, ctx=ctx)
        text_ids = Flux2PromptEncoder.prepare_text_ids(prompt_embeds.shape[1])
        negative_text_ids = None
        if negative_prompt_embeds is not None:
            negative_text_ids = Flux2PromptEncoder.prepare_text_ids(negative_prompt_embeds.shape[1])
        latents = sampler.sample(
            latents=latents,
            latent_ids=latent_ids,
            prompt_embeds=prompt_embeds,
            text_ids=text_ids,
            negative_prompt_embeds=negative_prompt_embeds,
            negative_text_ids=negative_text_ids,
        )

        # 3. Decode the latents and return the image
        decoded = sampler.finalize(
            lambda final: RasterImage.from_decoded(
                Flux2LatentCreator.decode_packed(self.vae, final, config.height, config.width)
            ),
            latents,
        )
        return GeneratedImage(
            image=decoded,
            model_config=self.model_config,
            seed=seed,
            prompt=prompt,
            steps=config.num_inference_steps,
            guidance=config.guidance,
            precision=config.precision,
            quantization=self.bits,
            generation_time=time.time() - start_time,
            height=config.height,
            width=config.width,
            image_path=image_path,
            image_strength=config.image_strength,
            scheduler=params.scheduler,
        )

    def _resolve_seed(self, params: GenerationParams) -> int:
        if not params.has_random_seed:
            seed = params.seed
        elif self.seed is not None:
            seed = self.seed
        else:
            seed = time.time_ns() % (defaults.MAX_SEED + 1)
            if seed == self.last_seed:
                seed = (seed + 1) % (defaults.MAX_SEED + 1)
            logger.info(f"Using random seed {seed}")
        self.last_seed = seed
        return seed

    def _require_loaded(self) -> None:
        if self.transformer is None:
            raise LoadError("Context has been freed")

    def _as_embedding_sequence(self, embeddings: mx.array, seq_len: int) -> mx.array:
        dim = self.model_config.transformer.joint_attention_dim
        if embeddings.ndim >= 2 and embeddings.shape[-1] != dim:
            raise EmbeddingDimensionError(f"Embeddings have width {embeddings.shape[-1]}, expected {dim}")
        if seq_len < 1 or embeddings.size != seq_len * dim:
            raise ValidationError(
                f"Embeddings hold {embeddings.size} values, {seq_len} tokens of width {dim} need {seq_len * dim}"
            )
        return embeddings.reshape(1, seq_len, dim)

    @staticmethod
    def _format_count(count: int) -> str:
        if count >= 1e9:
            return f"{count / 1e9:.2f}B"
        if count >= 1e6:
            return f"{count / 1e6:.1f}M"
        return f"{count:,}"
