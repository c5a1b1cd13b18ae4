from .params import FastBriefParams
from .pipeline import FastBrief, PipelineError, TickResult, TickState

__all__ = [
    "FastBrief",
    "FastBriefParams",
    "PipelineError",
    "TickResult",
    "TickState",
]
