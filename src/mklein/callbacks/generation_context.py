from __future__ import annotations

from typing import TYPE_CHECKING

import mlx.core as mx
import tqdm

from mklein.models.flux2.model.flux2_transformer.block_phase import BlockPhase

if TYPE_CHECKING:
    from mklein.callbacks.callback_registry import CallbackRegistry
    from mklein.models.common.config.config import Config


class GenerationContext:
    def __init__(
        self,
        registry: CallbackRegistry,
        seed: int,
        prompt: str,
        config: Config,
    ):
        self._registry = registry
        self._seed = seed
        self._prompt = prompt
        self._config = config

    @property
    def wants_substeps(self) -> bool:
        return bool(self._registry.substep_callbacks())

    def before_loop(self, latents: mx.array) -> None:
        for subscriber in self._registry.before_loop_callbacks():
            subscriber.call_before_loop(
                seed=self._seed,
                prompt=self._prompt,
                latents=latents,
                config=self._config,
            )

    def step(self, step: int, total: int) -> None:
        for subscriber in self._registry.step_callbacks():
            subscriber.call_step(step, total)

    def substep(self, phase: BlockPhase, index: int, total: int) -> None:
        for subscriber in self._registry.substep_callbacks():
            subscriber.call_substep(phase, index, total)

    def in_loop(self, t: int, latents: mx.array, time_steps: tqdm = None) -> None:
        time_steps = time_steps or self._config.time_steps
        for subscriber in self._registry.in_loop_callbacks():
            subscriber.call_in_loop(
                t=t,
                seed=self._seed,
                prompt=self._prompt,
                latents=latents,
                config=self._config,
                time_steps=time_steps,
            )

    def after_loop(self, latents: mx.array) -> None:
        for subscriber in self._registry.after_loop_callbacks():
            subscriber.call_after_loop(
                seed=self._seed,
                prompt=self._prompt,
                latents=latents,
                config=self._config,
            )

    def interruption(self, t: int, latents: mx.array, time_steps: tqdm = None) -> None:
        time_steps = time_steps or self._config.time_steps
        for subscriber in self._registry.interrupt_callbacks():
            subscriber.call_interrupt(
                t=t,
                seed=self._seed,
                prompt=self._prompt,
                latents=latents,
                config=self._config,
                time_steps=time_steps,
            )
