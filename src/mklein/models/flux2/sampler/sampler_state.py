from enum import Enum


class SamplerState(str, Enum):
    INITIALIZING = "initializing"
    STEPPING = "stepping"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
