"""
Error hierarchy for the generation pipeline.

Adapter-level errors (RetryableError, GenerationError) describe what went wrong
talking to a remote model. Stage errors (StageError subclasses) are what the
orchestrator reports: one kind per pipeline stage, tagged with the stage name
and carrying the underlying cause message.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ConfigError(PipelineError):
    """Invalid or missing configuration."""

    code = "CONFIG_ERROR"


class ValidationError(PipelineError):
    """Invalid input to a pipeline operation."""

    code = "VALIDATION_ERROR"


class RetryableError(PipelineError):
    """Transient remote failure; safe to retry the single call."""

    code = "RETRYABLE_ERROR"


class RateLimitError(RetryableError):
    """Remote model rejected the call because of rate limiting."""

    code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class GenerationError(PipelineError):
    """Remote model failed permanently or returned unusable output."""

    code = "GENERATION_ERROR"


class StageError(PipelineError):
    """
    A pipeline stage failed.

    Attributes:
        stage: Stage name ("script", "images", "audio", "video", "thumbnail")
        cause: Underlying remote error message
    """

    stage = ""
    code = "STAGE_FAILED"

    def __init__(self, cause: str, stage: Optional[str] = None):
        if stage:
            self.stage = stage
        self.cause = cause
        super().__init__(f"{self.stage} stage failed: {cause}")

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "code": self.code, "stage": self.stage, "cause": self.cause}


class ScriptGenerationFailed(StageError):
    stage = "script"
    code = "SCRIPT_GENERATION_FAILED"


class ImageGenerationFailed(StageError):
    stage = "images"
    code = "IMAGE_GENERATION_FAILED"

    def __init__(self, cause: str, paragraph_index: Optional[int] = None):
        super().__init__(cause)
        self.paragraph_index = paragraph_index


class AudioGenerationFailed(StageError):
    stage = "audio"
    code = "AUDIO_GENERATION_FAILED"


class VideoGenerationFailed(StageError):
    stage = "video"
    code = "VIDEO_GENERATION_FAILED"


class PollingFailed(VideoGenerationFailed):
    """Error surfaced while waiting on a long-running video job."""

    code = "POLLING_FAILED"

    def __init__(self, cause: str, job_id: Optional[str] = None, attempts: int = 0):
        super().__init__(cause)
        self.job_id = job_id
        self.attempts = attempts


class ThumbnailGenerationFailed(StageError):
    stage = "thumbnail"
    code = "THUMBNAIL_GENERATION_FAILED"


class RunCancelled(StageError):
    """The run was abandoned by its caller while a stage was in flight."""

    code = "RUN_CANCELLED"

    def __init__(self, stage: Optional[str] = None):
        super().__init__("run cancelled", stage=stage or "")


class StateTransitionError(PipelineError):
    """A stage transition would violate the pipeline's dependency rules."""

    code = "ILLEGAL_TRANSITION"
