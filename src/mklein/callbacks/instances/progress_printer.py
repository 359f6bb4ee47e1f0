import sys
from typing import TextIO

import mlx.core as mx

from mklein.models.flux2.model.flux2_transformer.block_phase import BlockPhase


class ProgressPrinter:
    """
    Compact per-block progress: ``Step i/N`` followed by ``d`` for each double
    block, ``s`` for every fifth single block and ``F`` for the final layer.
    """

    def __init__(self, stream: TextIO | None = None):
        self.stream = stream or sys.stderr
        self._current_step = 0

    def call_step(self, step: int, total: int) -> None:
        if self._current_step > 0:
            self.stream.write("\n")
        self._current_step = step
        self.stream.write(f"Step {step}/{total} ")
        self.stream.flush()

    def call_substep(self, phase: BlockPhase, index: int, total: int) -> None:
        if phase == BlockPhase.DOUBLE_BLOCK:
            self.stream.write("d")
        elif phase == BlockPhase.SINGLE_BLOCK:
            if (index + 1) % 5 == 0:
                self.stream.write("s")
        elif phase == BlockPhase.FINAL_LAYER:
            self.stream.write("F")
        self.stream.flush()

    def call_after_loop(self, seed: int, prompt: str, latents: mx.array, config) -> None:
        self._finish()

    def call_interrupt(self, t: int, seed: int, prompt: str, latents: mx.array, config, time_steps) -> None:
        self._finish()

    def _finish(self) -> None:
        if self._current_step > 0:
            self.stream.write("\n")
            self.stream.flush()
        self._current_step = 0
