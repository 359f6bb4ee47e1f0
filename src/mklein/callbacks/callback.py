from typing import TYPE_CHECKING, Protocol

import mlx.core as mx
import tqdm

from mklein.models.flux2.model.flux2_transformer.block_phase import BlockPhase

if TYPE_CHECKING:
    from mklein.models.common.config.config import Config


class BeforeLoopCallback(Protocol):
    def call_before_loop(
        self,
        seed: int,
        prompt: str,
        latents: mx.array,
        config: "Config",
    ) -> None: ...


class InLoopCallback(Protocol):
    def call_in_loop(
        self,
        t: int,
        seed: int,
        prompt: str,
        latents: mx.array,
        config: "Config",
        time_steps: tqdm,
    ) -> None: ...


class AfterLoopCallback(Protocol):
    def call_after_loop(
        self,
        seed: int,
        prompt: str,
        latents: mx.array,
        config: "Config",
    ) -> None: ...


class InterruptCallback(Protocol):
    def call_interrupt(
        self,
        t: int,
        seed: int,
        prompt: str,
        latents: mx.array,
        config: "Config",
        time_steps: tqdm,
    ) -> None: ...


class StepCallback(Protocol):
    def call_step(self, step: int, total: int) -> None: ...


class SubstepCallback(Protocol):
    def call_substep(self, phase: BlockPhase, index: int, total: int) -> None: ...
