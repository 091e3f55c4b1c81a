"""
Pipeline orchestration logic.

Runs script -> images -> audio -> video for one topic, strictly in order,
with progress tracking in PipelineState. The first stage failure aborts the
run; no stage is retried here (a retry is a new run).
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar
from uuid import uuid4

from shared.config import settings
from shared.errors import (
    AudioGenerationFailed,
    GenerationError,
    ImageGenerationFailed,
    RunCancelled,
    ScriptGenerationFailed,
    StageError,
    ValidationError,
    VideoGenerationFailed,
)
from shared.logging import get_logger, set_run_id
from shared.models.pipeline import (
    STAGE_ORDER,
    ImageFailurePolicy,
    JobHandle,
    RunResult,
    Script,
    StageName,
    StageResult,
    StageStatus,
)
from modules.generation_client.port import RemoteGenerationPort
from modules.pipeline_orchestrator.cancellation import CancellationToken
from modules.pipeline_orchestrator.fanout import FanOutResult, generate_image_sets
from modules.pipeline_orchestrator.poller import LongRunningJobPoller
from modules.pipeline_orchestrator.state import PipelineState, StateListener

logger = get_logger("pipeline_orchestrator")

T = TypeVar("T")


@dataclass
class _RunContext:
    """Artifacts accumulated by one run. Each field is written at most once."""

    run_id: str
    topic: str
    state: PipelineState
    token: CancellationToken
    script: Optional[Script] = None
    image_sets: Optional[List[List[str]]] = None
    image_failures: Dict[int, str] = field(default_factory=dict)
    audio: Optional[str] = None
    video: Optional[str] = None
    stage_results: Dict[str, StageResult] = field(default_factory=dict)
    result: Optional[RunResult] = None

    def cancelled_error(self) -> RunCancelled:
        """RunCancelled tagged with the last stage that left idle (None before the first)."""
        snapshot = self.state.snapshot()
        started = [stage.value for stage in STAGE_ORDER if snapshot[stage.value] != StageStatus.IDLE]
        return RunCancelled(started[-1] if started else None)

    def to_result(self, error: Optional[StageError] = None) -> RunResult:
        return RunResult(
            run_id=self.run_id,
            topic=self.topic,
            script=self.script,
            image_sets=self.image_sets,
            audio=self.audio,
            video=self.video,
            failed_stage=(error.stage or None) if error else None,
            error_kind=type(error).__name__ if error else None,
            error=error.cause if error else None,
            image_failures=self.image_failures,
            stage_results=self.stage_results,
            state=self.state.snapshot(),
        )


class RunHandle:
    """
    An in-flight run.

    Observers read `state` (or subscribe to it) while the run progresses;
    `result()` waits for the RunResult without cancelling the run if the
    waiter itself is cancelled. Call `cancel()` to abandon the run.
    """

    def __init__(self, context: _RunContext, task: "asyncio.Task[RunResult]"):
        self._context = context
        self._task = task

    @property
    def run_id(self) -> str:
        return self._context.run_id

    @property
    def topic(self) -> str:
        return self._context.topic

    @property
    def state(self) -> PipelineState:
        return self._context.state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self._context.state.subscribe(listener)

    def cancel(self) -> None:
        if self._task.done():
            return
        logger.info("Run cancellation requested", extra={"run_id": self.run_id})
        self._context.token.cancel()
        self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._context.token.cancelled

    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> RunResult:
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            # A cancel requested from inside the run (e.g. a state listener) can land
            # after _execute already returned, or before its first step ran
            if self._task.done() and self._task.cancelled() and self._context.token.cancelled:
                if self._context.result is not None:
                    return self._context.result
                return self._context.to_result(self._context.cancelled_error())
            raise


class GenerationOrchestrator:
    """Drives one topic through script, images, audio and video generation."""

    def __init__(
        self,
        port: RemoteGenerationPort,
        *,
        poller: Optional[LongRunningJobPoller] = None,
        image_concurrency_limit: Optional[int] = None,
        image_failure_policy: Optional[ImageFailurePolicy] = None,
        stage_timeout_seconds: Optional[float] = None,
    ):
        self._port = port
        self._poller = poller or LongRunningJobPoller(port)
        self._image_concurrency_limit = (
            image_concurrency_limit if image_concurrency_limit is not None else settings.image_concurrency_limit
        )
        self._image_failure_policy = ImageFailurePolicy(image_failure_policy or settings.image_failure_policy)
        self._stage_timeout_seconds = (
            stage_timeout_seconds if stage_timeout_seconds is not None else settings.stage_timeout_seconds
        )

    def start(
        self,
        topic: str,
        *,
        style: Optional[str] = None,
        custom_prompts: Optional[Dict[int, str]] = None,
    ) -> RunHandle:
        """
        Schedule a run on the current event loop and return its handle.

        Args:
            topic: Video topic (must be non-empty)
            style: Artistic style for every paragraph image
            custom_prompts: Paragraph index -> image prompt overriding the default

        Raises:
            ValidationError: If topic is empty
        """
        if not topic or not topic.strip():
            raise ValidationError("Topic must be a non-empty string")

        context = _RunContext(
            run_id=str(uuid4()),
            topic=topic,
            state=PipelineState(),
            token=CancellationToken(),
        )
        task = asyncio.get_running_loop().create_task(self._execute(context, style, custom_prompts or {}))
        return RunHandle(context, task)

    async def run(
        self,
        topic: str,
        *,
        style: Optional[str] = None,
        custom_prompts: Optional[Dict[int, str]] = None,
    ) -> RunResult:
        """Run the full pipeline for a topic and return its RunResult."""
        return await self.start(topic, style=style, custom_prompts=custom_prompts).result()

    async def regenerate_scene(
        self,
        result: RunResult,
        index: int,
        *,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
    ) -> RunResult:
        """
        Regenerate the images for one paragraph of a finished run.

        Returns:
            A new RunResult with image_sets[index] replaced; `result` is untouched

        Raises:
            ValidationError: If the run has no image sets or index is out of range
            ImageGenerationFailed: If the remote call fails
        """
        if result.script is None or result.image_sets is None:
            raise ValidationError("Run has no image sets to regenerate")
        paragraphs = result.paragraphs
        if not 0 <= index < len(paragraphs):
            raise ValidationError(f"Paragraph index {index} out of range (0-{len(paragraphs) - 1})")

        logger.info(
            f"Regenerating images for paragraph {index}",
            extra={"run_id": result.run_id, "paragraph_index": index, "custom_prompt": prompt is not None}
        )
        try:
            images = await self._with_timeout(
                self._port.generate_images_for_paragraph(paragraphs[index], prompt=prompt, style=style)
            )
        except Exception as e:
            raise ImageGenerationFailed(str(e) or type(e).__name__, paragraph_index=index) from e
        if not isinstance(images, list):
            raise ImageGenerationFailed(f"paragraph {index} returned {type(images).__name__}", paragraph_index=index)
        return result.with_image_set(index, images)

    async def _execute(self, ctx: _RunContext, style: Optional[str], custom_prompts: Dict[int, str]) -> RunResult:
        set_run_id(ctx.run_id)
        logger.info("Pipeline run started", extra={"topic_length": len(ctx.topic)})
        run_start = time.monotonic()

        try:
            ctx.script = await self._run_stage(
                ctx, StageName.SCRIPT, ScriptGenerationFailed, lambda: self._generate_script(ctx.topic)
            )

            fan_out = await self._run_stage(
                ctx,
                StageName.IMAGES,
                ImageGenerationFailed,
                lambda: self._generate_images(ctx, style, custom_prompts),
            )
            ctx.image_sets = fan_out.image_sets
            ctx.image_failures = fan_out.failures

            ctx.audio = await self._run_stage(
                ctx, StageName.AUDIO, AudioGenerationFailed, lambda: self._generate_audio(ctx.script)
            )

            ctx.video = await self._run_stage(
                ctx, StageName.VIDEO, VideoGenerationFailed, lambda: self._generate_video(ctx)
            )
        except StageError as e:
            logger.error(
                "Pipeline run aborted",
                extra={
                    "failed_stage": e.stage,
                    "error_kind": type(e).__name__,
                    "cause": e.cause,
                    "duration_seconds": round(time.monotonic() - run_start, 2),
                }
            )
            ctx.result = ctx.to_result(e)
            return ctx.result

        logger.info(
            "Pipeline run completed",
            extra={
                "paragraph_count": len(ctx.image_sets or []),
                "image_count": sum(len(s) for s in ctx.image_sets or []),
                "duration_seconds": round(time.monotonic() - run_start, 2),
            }
        )
        ctx.result = ctx.to_result()
        return ctx.result

    async def _run_stage(
        self,
        ctx: _RunContext,
        stage: StageName,
        error_cls: Type[StageError],
        produce: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one stage with state transitions; raise its stage error on failure."""
        if ctx.token.cancelled:
            raise ctx.cancelled_error()
        ctx.state.start(stage)
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        logger.info(f"Stage {stage.value} started", extra={"stage": stage.value})

        try:
            value = await produce()
        except asyncio.CancelledError:
            if not ctx.token.cancelled:
                raise
            error: StageError = RunCancelled(stage.value)
        except RunCancelled as e:
            error = e
        except error_cls as e:
            error = e
        except Exception as e:
            error = error_cls(str(e) or type(e).__name__)
            error.__cause__ = e
        else:
            duration = time.monotonic() - t0
            ctx.state.complete(stage)
            ctx.stage_results[stage.value] = StageResult.success(stage.value, value, started_at, duration)
            logger.info(
                f"Stage {stage.value} completed",
                extra={"stage": stage.value, "duration_seconds": round(duration, 2)}
            )
            return value

        duration = time.monotonic() - t0
        ctx.state.fail(stage)
        ctx.stage_results[stage.value] = StageResult.failure(stage.value, error, started_at, duration)
        logger.error(
            f"Stage {stage.value} failed",
            extra={
                "stage": stage.value,
                "error_kind": type(error).__name__,
                "cause": error.cause,
                "duration_seconds": round(duration, 2),
            }
        )
        raise error

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        if self._stage_timeout_seconds is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._stage_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise GenerationError(f"timed out after {self._stage_timeout_seconds}s") from e

    async def _generate_script(self, topic: str) -> Script:
        script = await self._with_timeout(self._port.generate_script(topic))
        if not isinstance(script, Script):
            raise GenerationError(f"script stage returned {type(script).__name__}")
        if not script.paragraphs:
            raise GenerationError("script has no paragraphs")
        return script

    async def _generate_images(
        self,
        ctx: _RunContext,
        style: Optional[str],
        custom_prompts: Dict[int, str],
    ) -> FanOutResult:
        return await self._with_timeout(
            generate_image_sets(
                ctx.script.paragraphs,
                self._port,
                state=ctx.state,
                concurrency_limit=self._image_concurrency_limit,
                policy=self._image_failure_policy,
                custom_prompts=custom_prompts,
                style=style,
            )
        )

    async def _generate_audio(self, script: Script) -> str:
        audio = await self._with_timeout(self._port.generate_audio(script.body))
        if not isinstance(audio, str) or not audio:
            raise GenerationError("audio stage returned no artifact")
        return audio

    async def _generate_video(self, ctx: _RunContext) -> str:
        images = [image for image_set in ctx.image_sets for image in image_set]
        submission: Any = await self._with_timeout(
            self._port.generate_video(ctx.script.body, images, ctx.audio)
        )

        if isinstance(submission, JobHandle):
            logger.info("Video job submitted, polling", extra={"job_id": submission.job_id})
            status = await self._poller.poll(submission, ctx.token)
            return status.artifact

        if not isinstance(submission, str) or not submission:
            raise GenerationError("video stage returned no artifact")
        return submission
