import logging
from typing import Callable, TypeVar

import mlx.core as mx

from mklein.callbacks.generation_context import GenerationContext
from mklein.models.common.config.config import Config
from mklein.models.flux2.model.flux2_transformer import Flux2Transformer
from mklein.models.flux2.sampler.sampler_state import SamplerState
from mklein.utils.exceptions import MKleinException, NumericFailure, StopImageGenerationException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Flux2Sampler:
    """
    Runs the denoising loop for one generation.

    The sampler moves through ``INITIALIZING -> STEPPING -> FINALIZING -> DONE``.
    Any failure in the loop moves it to ``FAILED``, notifies the interrupt
    callbacks and raises, so a partially denoised latent never leaves the
    sampler.
    """

    def __init__(self, transformer: Flux2Transformer, config: Config, ctx: GenerationContext):
        self.transformer = transformer
        self.config = config
        self.ctx = ctx
        self.state = SamplerState.INITIALIZING

    def sample(
        self,
        latents: mx.array,
        latent_ids: mx.array,
        prompt_embeds: mx.array,
        text_ids: mx.array,
        negative_prompt_embeds: mx.array | None = None,
        negative_text_ids: mx.array | None = None,
    ) -> mx.array:
        self._expect(SamplerState.INITIALIZING)
        scheduler = self.config.scheduler
        use_cfg = self.config.params.uses_guidance and negative_prompt_embeds is not None
        self.ctx.before_loop(latents)

        self.state = SamplerState.STEPPING
        time_steps = self.config.time_steps
        t = self.config.init_time_step
        try:
            for t in time_steps:
                self.ctx.step(t + 1, self.config.num_inference_steps)

                # 1.t Predict the velocity
                noise = self._predict(latents, latent_ids, scheduler.timesteps[t], prompt_embeds, text_ids)
                if use_cfg:
                    noise_negative = self._predict(
                        latents, latent_ids, scheduler.timesteps[t], negative_prompt_embeds, negative_text_ids
                    )
                    noise = Flux2Sampler.combine_guidance(noise, noise_negative, self.config.guidance)

                # 2.t Take one Euler step along the flow
                latents = scheduler.step(model_output=noise, timestep=t, sample=latents)
                mx.eval(latents)
                Flux2Sampler._check_finite(latents, t)

                self.ctx.in_loop(t, latents, time_steps=time_steps)
        except KeyboardInterrupt:
            self._fail(t, latents, time_steps)
            raise StopImageGenerationException(
                f"Stopping image generation at step {t + 1}/{self.config.num_inference_steps}"
            )
        except MKleinException:
            self._fail(t, latents, time_steps)
            raise
        except (RuntimeError, ValueError) as e:
            self._fail(t, latents, time_steps)
            raise NumericFailure(f"Backend failure at step {t + 1}/{self.config.num_inference_steps}: {e}") from e

        self.state = SamplerState.FINALIZING
        self.ctx.after_loop(latents)
        return latents

    def finalize(self, decode: Callable[[mx.array], T], latents: mx.array) -> T:
        self._expect(SamplerState.FINALIZING)
        try:
            result = decode(latents)
        except MKleinException:
            self.state = SamplerState.FAILED
            raise
        except (RuntimeError, ValueError) as e:
            self.state = SamplerState.FAILED
            raise NumericFailure(f"Backend failure while decoding: {e}") from e
        self.state = SamplerState.DONE
        return result

    @staticmethod
    def combine_guidance(cond: mx.array, uncond: mx.array, guidance: float) -> mx.array:
        return uncond + guidance * (cond - uncond)

    def _predict(
        self,
        latents: mx.array,
        latent_ids: mx.array,
        timestep: mx.array,
        prompt_embeds: mx.array,
        text_ids: mx.array,
    ) -> mx.array:
        return self.transformer(
            hidden_states=latents,
            encoder_hidden_states=prompt_embeds,
            timestep=timestep,
            img_ids=latent_ids,
            txt_ids=text_ids,
            substep_callback=self.ctx.substep if self.ctx.wants_substeps else None,
        )

    def _fail(self, t: int, latents: mx.array, time_steps) -> None:
        # Interrupt callbacks close whatever progress output the step opened
        self.state = SamplerState.FAILED
        self.ctx.interruption(t, latents, time_steps=time_steps)

    def _expect(self, state: SamplerState) -> None:
        if self.state != state:
            raise RuntimeError(f"Sampler is {self.state.value}, expected {state.value}")

    @staticmethod
    def _check_finite(latents: mx.array, t: int) -> None:
        if mx.any(mx.isnan(latents) | mx.isinf(latents)).item():
            raise NumericFailure(f"Non-finite values in the latent after step {t + 1}")
