"""
Data models for the generation pipeline.

This module exports all Pydantic models used across pipeline modules.
"""

from .pipeline import (
    StageName,
    StageStatus,
    ImageFailurePolicy,
    STAGE_ORDER,
    Script,
    JobHandle,
    JobStatus,
    StageResult,
    RunResult,
    split_paragraphs,
)
from .thumbnail import RefinementEntry

__all__ = [
    # Pipeline models
    "StageName",
    "StageStatus",
    "ImageFailurePolicy",
    "STAGE_ORDER",
    "Script",
    "JobHandle",
    "JobStatus",
    "StageResult",
    "RunResult",
    "split_paragraphs",
    # Thumbnail models
    "RefinementEntry",
]
