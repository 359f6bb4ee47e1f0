import math

import mlx.core as mx
import numpy as np
import pytest

from mklein.models.common.config.config import Config
from mklein.models.common.config.generation_params import GenerationParams
from mklein.models.common.config.model_config import ModelConfig
from mklein.models.common.schedulers import SCHEDULER_REGISTRY, FlowMatchEulerDiscreteScheduler, LinearScheduler
from mklein.utils.exceptions import ValidationError


def _config(num_steps: int = 4, width: int = 256, height: int = 256, scheduler: str = "linear") -> Config:
    params = GenerationParams(width=width, height=height, num_steps=num_steps, scheduler=scheduler)
    return Config(model_config=ModelConfig.flux2_klein_4b(), params=params, show_progress=False)


class TestLinearScheduler:
    """Tests for the linear noise schedule."""

    @pytest.mark.fast
    def test_shape_and_type(self):
        """Test that the schedule has N + 1 float32 sigmas."""
        scheduler = LinearScheduler(_config(num_steps=20))
        assert scheduler.sigmas.shape == (21,)
        assert scheduler.sigmas.dtype == mx.float32
        assert scheduler.timesteps.shape == (20,)

    @pytest.mark.fast
    def test_boundary_conditions(self):
        """Test that the schedule starts at 1, ends the denoising at 1/N and terminates in 0."""
        sigmas = np.array(LinearScheduler(_config(num_steps=20)).sigmas)
        assert np.isclose(sigmas[0], 1.0)
        assert np.isclose(sigmas[-2], 1.0 / 20)
        assert sigmas[-1] == 0.0

    @pytest.mark.fast
    def test_linear_decay(self):
        """Test that consecutive steps are evenly spaced."""
        sigmas = np.array(LinearScheduler(_config(num_steps=20)).sigmas)
        diffs = np.diff(sigmas[:-1])
        assert np.allclose(diffs, diffs[0], rtol=1e-5)

    @pytest.mark.fast
    def test_timesteps_on_training_scale(self):
        """Test that timesteps are the sigmas scaled to the 1000 training steps."""
        scheduler = LinearScheduler(_config(num_steps=4))
        np.testing.assert_allclose(np.array(scheduler.timesteps), np.array(scheduler.sigmas[:-1]) * 1000, rtol=1e-6)


class TestFlowMatchEulerDiscreteScheduler:
    """Tests for the shifted flow matching schedule."""

    @pytest.mark.fast
    @pytest.mark.parametrize("num_steps", [1, 4, 28])
    def test_monotone_with_terminal_zero(self, num_steps):
        """Test that sigmas start at 1, strictly decrease and end in 0."""
        sigmas = np.array(FlowMatchEulerDiscreteScheduler(_config(num_steps=num_steps, scheduler="flow_match_euler_discrete")).sigmas)  # fmt: off
        assert sigmas.shape == (num_steps + 1,)
        assert sigmas[0] == 1.0
        assert sigmas[-1] == 0.0
        assert np.all(np.diff(sigmas) < 0)

    @pytest.mark.fast
    def test_shift_raises_intermediate_sigmas(self):
        """Test that the shift keeps more of the schedule at high noise than the linear one."""
        shifted = np.array(FlowMatchEulerDiscreteScheduler(_config(num_steps=4, scheduler="flow_match_euler_discrete")).sigmas)  # fmt: off
        linear = np.array(LinearScheduler(_config(num_steps=4)).sigmas)
        assert np.all(shifted[1:-1] > linear[1:-1])

    @pytest.mark.fast
    def test_empirical_mu_small_image(self):
        """Test the interpolated mu between the 10 and 200 step fits."""
        mu = FlowMatchEulerDiscreteScheduler.compute_empirical_mu(image_seq_len=256, num_steps=10)
        expected = FlowMatchEulerDiscreteScheduler.A1 * 256 + FlowMatchEulerDiscreteScheduler.B1
        assert math.isclose(mu, expected, rel_tol=1e-6)

    @pytest.mark.fast
    def test_empirical_mu_large_image(self):
        """Test that large images use the 200 step fit regardless of the step count."""
        mu_4 = FlowMatchEulerDiscreteScheduler.compute_empirical_mu(image_seq_len=5000, num_steps=4)
        mu_50 = FlowMatchEulerDiscreteScheduler.compute_empirical_mu(image_seq_len=5000, num_steps=50)
        assert mu_4 == mu_50


class TestSchedulerStep:
    """Tests for the Euler update shared by all schedulers."""

    @pytest.mark.fast
    def test_euler_step(self):
        """Test that a step moves the sample by (sigma_next - sigma) * velocity."""
        scheduler = LinearScheduler(_config(num_steps=4))
        sample = mx.ones((1, 4, 8), dtype=mx.float32)
        velocity = mx.full((1, 4, 8), 2.0, dtype=mx.float32)
        result = scheduler.step(model_output=velocity, timestep=0, sample=sample)
        np.testing.assert_allclose(np.array(result), 1.0 + (0.75 - 1.0) * 2.0, rtol=1e-6)

    @pytest.mark.fast
    def test_step_keeps_sample_dtype(self):
        """Test that the float32 sigma difference does not promote a bfloat16 sample."""
        scheduler = LinearScheduler(_config(num_steps=4))
        sample = mx.ones((1, 4, 8), dtype=mx.bfloat16)
        result = scheduler.step(model_output=mx.ones((1, 4, 8), dtype=mx.float32), timestep=1, sample=sample)
        assert result.dtype == mx.bfloat16


class TestSchedulerRegistry:
    """Tests for resolving schedulers by name."""

    @pytest.mark.fast
    def test_default_is_flow_match(self):
        config = Config(model_config=ModelConfig.flux2_klein_4b(), params=GenerationParams(), show_progress=False)
        assert isinstance(config.scheduler, FlowMatchEulerDiscreteScheduler)

    @pytest.mark.fast
    def test_registry_names(self):
        assert SCHEDULER_REGISTRY["linear"] is LinearScheduler
        assert SCHEDULER_REGISTRY["flow_match_euler_discrete"] is FlowMatchEulerDiscreteScheduler

    @pytest.mark.fast
    def test_unknown_scheduler(self):
        with pytest.raises(ValidationError):
            _ = _config(scheduler="ddim").scheduler
