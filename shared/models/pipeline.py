"""
Generation pipeline data models.

Defines Script, job handle/status, per-stage results and the RunResult
returned by the orchestrator.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_serializer

T = TypeVar("T")


class StageName(str, Enum):
    """Pipeline stages, in dependency order."""
    SCRIPT = "script"
    IMAGES = "images"
    AUDIO = "audio"
    VIDEO = "video"


# Strict dependency chain: each stage depends on every stage before it
STAGE_ORDER = (StageName.SCRIPT, StageName.IMAGES, StageName.AUDIO, StageName.VIDEO)


class StageStatus(str, Enum):
    """Status of one stage (or one paragraph within the image stage)."""
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ImageFailurePolicy(str, Enum):
    """What the image stage does when some paragraph calls fail."""
    FAIL_FAST = "fail_fast"
    CONTINUE = "continue"


def split_paragraphs(text: str) -> List[str]:
    """Split script text on line breaks, dropping blank lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]


class Script(BaseModel):
    """Generated video script. Paragraphs come from the body only."""

    model_config = ConfigDict(frozen=True)

    body: str
    title: str = ""
    hook: str = ""
    cta: str = ""

    @property
    def paragraphs(self) -> List[str]:
        return split_paragraphs(self.body)


class JobHandle(BaseModel):
    """Opaque token for an in-progress remote job that must be polled."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    provider: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class JobStatus(BaseModel):
    """One observation of a long-running job."""

    done: bool = False
    artifact: Optional[str] = Field(default=None, description="Artifact reference once done")
    error: Optional[str] = Field(default=None, description="Error message reported by the job")
    status: Optional[str] = Field(default=None, description="Raw provider status, for logging")


class StageResult(BaseModel, Generic[T]):
    """Outcome of one pipeline stage: a success payload or a failure."""

    model_config = ConfigDict(frozen=True)

    stage: str
    ok: bool
    value: Optional[T] = None
    error_kind: Optional[str] = None
    cause: Optional[str] = None
    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @classmethod
    def success(cls, stage: str, value: T, started_at: datetime, duration: float) -> "StageResult[T]":
        return cls(stage=stage, ok=True, value=value, started_at=started_at, duration_seconds=duration)

    @classmethod
    def failure(cls, stage: str, error: Exception, started_at: datetime, duration: float) -> "StageResult[T]":
        return cls(
            stage=stage,
            ok=False,
            error_kind=type(error).__name__,
            cause=getattr(error, "cause", None) or str(error),
            started_at=started_at,
            duration_seconds=duration,
        )

    @field_serializer("started_at")
    def serialize_datetime(self, value: Optional[datetime]) -> Optional[str]:
        """Serialize datetime to ISO format string."""
        return value.isoformat() if value else None


class RunResult(BaseModel):
    """
    Result of one pipeline run.

    On success every artifact field is set. On abort the fields hold whatever
    was produced before the failure, and failed_stage / error_kind / error
    identify what went wrong.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    topic: str
    script: Optional[Script] = None
    image_sets: Optional[List[List[str]]] = None
    audio: Optional[str] = None
    video: Optional[str] = None
    failed_stage: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    image_failures: Dict[int, str] = Field(
        default_factory=dict,
        description="Paragraph index -> cause, only populated under the continue policy"
    )
    stage_results: Dict[str, StageResult] = Field(default_factory=dict)
    state: Dict[str, StageStatus] = Field(default_factory=dict, description="Final PipelineState snapshot")

    @property
    def succeeded(self) -> bool:
        return self.failed_stage is None and self.video is not None

    @property
    def paragraphs(self) -> List[str]:
        return self.script.paragraphs if self.script else []

    @property
    def flattened_images(self) -> List[str]:
        return [image for image_set in (self.image_sets or []) for image in image_set]

    def with_image_set(self, index: int, images: List[str]) -> "RunResult":
        """Return a copy with the image set at index replaced."""
        image_sets = [list(s) for s in (self.image_sets or [])]
        image_sets[index] = list(images)
        image_failures = {k: v for k, v in self.image_failures.items() if k != index}
        return self.model_copy(update={"image_sets": image_sets, "image_failures": image_failures})
