from abc import ABC, abstractmethod

import mlx.core as mx


class BaseScheduler(ABC):
    """
    Abstract base class for all schedulers.
    """

    @property
    @abstractmethod
    def sigmas(self) -> mx.array:
        """
        The sigma schedule for the diffusion process, N + 1 values ending in 0.
        """
        ...

    @property
    @abstractmethod
    def timesteps(self) -> mx.array:
        """
        The timestep fed to the transformer for each of the N steps, on the training scale.
        """
        ...

    def step(self, model_output: mx.array, timestep: int, sample: mx.array, **kwargs) -> mx.array:
        dt = self.sigmas[timestep + 1] - self.sigmas[timestep]
        return sample + dt.astype(sample.dtype) * model_output.astype(sample.dtype)
