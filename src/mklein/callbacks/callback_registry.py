from __future__ import annotations

from typing import TYPE_CHECKING

from mklein.callbacks.callback import (
    AfterLoopCallback,
    BeforeLoopCallback,
    InLoopCallback,
    InterruptCallback,
    StepCallback,
    SubstepCallback,
)

if TYPE_CHECKING:
    from mklein.callbacks.generation_context import GenerationContext
    from mklein.models.common.config.config import Config


class CallbackRegistry:
    def __init__(self):
        self.in_loop: list[InLoopCallback] = []
        self.before_loop: list[BeforeLoopCallback] = []
        self.interrupt: list[InterruptCallback] = []
        self.after_loop: list[AfterLoopCallback] = []
        self.step: list[StepCallback] = []
        self.substep: list[SubstepCallback] = []

    def register(self, callback) -> None:
        if hasattr(callback, "call_before_loop"):
            self.before_loop.append(callback)
        if hasattr(callback, "call_in_loop"):
            self.in_loop.append(callback)
        if hasattr(callback, "call_after_loop"):
            self.after_loop.append(callback)
        if hasattr(callback, "call_interrupt"):
            self.interrupt.append(callback)
        if hasattr(callback, "call_step"):
            self.step.append(callback)
        if hasattr(callback, "call_substep"):
            self.substep.append(callback)

    def unregister(self, callback) -> None:
        for subscribers in (self.before_loop, self.in_loop, self.after_loop, self.interrupt, self.step, self.substep):
            if callback in subscribers:
                subscribers.remove(callback)

    def clear(self) -> None:
        for subscribers in (self.before_loop, self.in_loop, self.after_loop, self.interrupt, self.step, self.substep):
            subscribers.clear()

    def start(self, seed: int, prompt: str, config: Config) -> GenerationContext:
        from mklein.callbacks.generation_context import GenerationContext

        return GenerationContext(self, seed, prompt, config)

    def before_loop_callbacks(self) -> list[BeforeLoopCallback]:
        return self.before_loop

    def in_loop_callbacks(self) -> list[InLoopCallback]:
        return self.in_loop

    def after_loop_callbacks(self) -> list[AfterLoopCallback]:
        return self.after_loop

    def interrupt_callbacks(self) -> list[InterruptCallback]:
        return self.interrupt

    def step_callbacks(self) -> list[StepCallback]:
        return self.step

    def substep_callbacks(self) -> list[SubstepCallback]:
        return self.substep
