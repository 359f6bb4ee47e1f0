import math
from typing import TYPE_CHECKING

import mlx.core as mx

if TYPE_CHECKING:
    from mklein.models.common.config.config import Config

from mklein.models.common.schedulers.base_scheduler import BaseScheduler


class FlowMatchEulerDiscreteScheduler(BaseScheduler):
    """
    Flow matching Euler schedule with the resolution and step-count dependent
    shift FLUX.2 was distilled with.
    """

    # Fitted lines for mu(seq_len) at 10 and 200 steps
    A1, B1 = 8.73809524e-05, 1.89833333
    A2, B2 = 0.00016927, 0.45666666
    LARGE_IMAGE_SEQ_LEN = 4300

    def __init__(self, config: "Config"):
        self.config = config
        self.num_train_timesteps = config.num_train_steps
        self._sigmas, self._timesteps = self._compute_timesteps_and_sigmas()

    @property
    def sigmas(self) -> mx.array:
        return self._sigmas

    @property
    def timesteps(self) -> mx.array:
        return self._timesteps

    @staticmethod
    def compute_empirical_mu(image_seq_len: int, num_steps: int) -> float:
        cls = FlowMatchEulerDiscreteScheduler
        if image_seq_len > cls.LARGE_IMAGE_SEQ_LEN:
            return float(cls.A2 * image_seq_len + cls.B2)

        m_200 = cls.A2 * image_seq_len + cls.B2
        m_10 = cls.A1 * image_seq_len + cls.B1
        a = (m_200 - m_10) / 190.0
        b = m_200 - 200.0 * a
        return float(a * num_steps + b)

    @staticmethod
    def _time_shift_exponential(mu: float, sigma_power: float, t: float) -> float:
        return math.exp(mu) / (math.exp(mu) + ((1.0 / t - 1.0) ** sigma_power))

    def _compute_timesteps_and_sigmas(self) -> tuple[mx.array, mx.array]:
        num_steps = self.config.num_inference_steps
        mu = FlowMatchEulerDiscreteScheduler.compute_empirical_mu(self.config.image_seq_len, num_steps)
        if num_steps == 1:
            sigmas_linear = [1.0]
        else:
            sigmas_linear = [1.0 - i * (1.0 - 1.0 / num_steps) / (num_steps - 1) for i in range(num_steps)]
        sigmas_shifted = [FlowMatchEulerDiscreteScheduler._time_shift_exponential(mu, 1.0, s) for s in sigmas_linear]
        timesteps = [s * self.num_train_timesteps for s in sigmas_shifted]
        sigmas_arr = mx.array(sigmas_shifted + [0.0], dtype=mx.float32)
        timesteps_arr = mx.array(timesteps, dtype=mx.float32)
        return sigmas_arr, timesteps_arr
