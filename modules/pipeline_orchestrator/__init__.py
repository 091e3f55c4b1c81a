"""
Pipeline Orchestrator module.

Runs topic -> script -> paragraph images -> narration -> video, tracking
per-stage status in PipelineState and returning a RunResult.
"""

from .cancellation import CancellationToken
from .fanout import FanOutResult, generate_image_sets
from .orchestrator import GenerationOrchestrator, RunHandle
from .poller import LongRunningJobPoller
from .state import PipelineState, StateChange

__all__ = [
    "CancellationToken",
    "FanOutResult",
    "generate_image_sets",
    "GenerationOrchestrator",
    "RunHandle",
    "LongRunningJobPoller",
    "PipelineState",
    "StateChange",
]
