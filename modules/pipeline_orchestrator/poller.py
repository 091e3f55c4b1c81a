"""
Bounded polling for long-running remote jobs.

Waits a fixed interval, queries the job, and repeats until the job reports
done. Bounded by a maximum attempt count and a maximum elapsed time, and
stops issuing queries once the run's CancellationToken is tripped.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from shared.config import settings
from shared.errors import PollingFailed, RunCancelled
from shared.logging import get_logger
from shared.models.pipeline import JobHandle, JobStatus, StageName
from modules.generation_client.port import RemoteGenerationPort
from modules.pipeline_orchestrator.cancellation import CancellationToken

logger = get_logger("pipeline_orchestrator.poller")

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]
AttemptCallback = Callable[[int, JobStatus], None]


class LongRunningJobPoller:
    """Turns a JobHandle into a terminal JobStatus."""

    def __init__(
        self,
        port: RemoteGenerationPort,
        *,
        interval_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        on_attempt: Optional[AttemptCallback] = None,
    ):
        self._port = port
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.video_poll_interval_seconds
        self.max_attempts = max_attempts if max_attempts is not None else settings.video_poll_max_attempts
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.video_poll_timeout_seconds
        self._sleep = sleep
        self._clock = clock
        self._on_attempt = on_attempt

    async def poll(self, handle: JobHandle, cancel_token: Optional[CancellationToken] = None) -> JobStatus:
        """
        Poll a job until it reaches a terminal state.

        Returns:
            JobStatus with done=True and an artifact

        Raises:
            PollingFailed: The job reported an error, a query failed, or a bound was exceeded
            RunCancelled: The cancellation token was tripped
        """
        stage = StageName.VIDEO.value
        start = self._clock()

        for attempt in range(1, self.max_attempts + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled(stage)

            await self._sleep(self.interval_seconds)

            if cancel_token is not None:
                cancel_token.raise_if_cancelled(stage)

            elapsed = self._clock() - start
            if elapsed > self.timeout_seconds:
                raise PollingFailed(
                    f"job {handle.job_id} timed out after {elapsed:.1f}s",
                    job_id=handle.job_id,
                    attempts=attempt - 1,
                )

            try:
                status = await self._port.check_video_job(handle)
            except RunCancelled:
                raise
            except Exception as e:
                logger.error(
                    "Job status query failed",
                    extra={"job_id": handle.job_id, "attempt": attempt, "error": str(e)}
                )
                raise PollingFailed(str(e) or type(e).__name__, job_id=handle.job_id, attempts=attempt) from e

            logger.info(
                "Polled job status",
                extra={
                    "job_id": handle.job_id,
                    "attempt": attempt,
                    "done": status.done,
                    "status": status.status,
                    "elapsed_seconds": round(elapsed, 1),
                }
            )
            if self._on_attempt is not None:
                self._on_attempt(attempt, status)

            if status.error:
                raise PollingFailed(status.error, job_id=handle.job_id, attempts=attempt)
            if status.done:
                if not status.artifact:
                    raise PollingFailed(
                        f"job {handle.job_id} finished without an artifact",
                        job_id=handle.job_id,
                        attempts=attempt,
                    )
                return status

        raise PollingFailed(
            f"job {handle.job_id} still running after {self.max_attempts} polls",
            job_id=handle.job_id,
            attempts=self.max_attempts,
        )
