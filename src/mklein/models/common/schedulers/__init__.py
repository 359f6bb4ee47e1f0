from .base_scheduler import BaseScheduler
from .flow_match_euler_discrete_scheduler import FlowMatchEulerDiscreteScheduler
from .linear_scheduler import LinearScheduler

__all__ = [
    "BaseScheduler",
    "LinearScheduler",
    "FlowMatchEulerDiscreteScheduler",
]


SCHEDULER_REGISTRY = {
    "linear": LinearScheduler,
    "LinearScheduler": LinearScheduler,
    "flow_match_euler_discrete": FlowMatchEulerDiscreteScheduler,
    "FlowMatchEulerDiscreteScheduler": FlowMatchEulerDiscreteScheduler,
}
