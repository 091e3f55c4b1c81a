"""
Unit tests for LongRunningJobPoller.
"""

import pytest
from unittest.mock import AsyncMock

from shared.errors import PollingFailed, RunCancelled
from shared.models.pipeline import JobHandle, JobStatus
from modules.pipeline_orchestrator.cancellation import CancellationToken
from modules.pipeline_orchestrator.poller import LongRunningJobPoller

HANDLE = JobHandle(job_id="job-123", provider="replicate")


def make_poller(port, recording_sleep, **kwargs):
    kwargs.setdefault("interval_seconds", 5.0)
    kwargs.setdefault("max_attempts", 10)
    kwargs.setdefault("timeout_seconds", 600.0)
    return LongRunningJobPoller(port, sleep=recording_sleep, clock=recording_sleep.clock, **kwargs)


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_until_done_at_fixed_interval(self, make_port, recording_sleep):
        """Two pending polls then a finished one: three queries, five seconds apart."""
        port = make_port(poll_statuses=[
            JobStatus(done=False, status="processing"),
            JobStatus(done=False, status="processing"),
            JobStatus(done=True, artifact="data:video/mp4;base64,RklOQUw=", status="succeeded"),
        ])
        poller = make_poller(port, recording_sleep)

        status = await poller.poll(HANDLE)

        assert status.artifact == "data:video/mp4;base64,RklOQUw="
        assert port.call_count("check_video_job") == 3
        assert recording_sleep.delays == [5.0, 5.0, 5.0]
        assert all(delay >= 5.0 for delay in recording_sleep.delays)

    @pytest.mark.asyncio
    async def test_sleeps_before_first_query(self, make_port):
        port = make_port()
        order = []

        async def sleep(seconds):
            order.append("sleep")

        async def check(handle):
            order.append("check")
            return JobStatus(done=True, artifact="video")

        port.check_video_job = check
        poller = LongRunningJobPoller(port, interval_seconds=5.0, max_attempts=3, timeout_seconds=60, sleep=sleep)

        await poller.poll(HANDLE)

        assert order == ["sleep", "check"]

    @pytest.mark.asyncio
    async def test_on_attempt_callback_sees_every_status(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[
            JobStatus(done=False, status="starting"),
            JobStatus(done=True, artifact="video", status="succeeded"),
        ])
        seen = []
        poller = make_poller(port, recording_sleep, on_attempt=lambda n, s: seen.append((n, s.status)))

        await poller.poll(HANDLE)

        assert seen == [(1, "starting"), (2, "succeeded")]


class TestPollingFailures:
    @pytest.mark.asyncio
    async def test_job_error_raises_polling_failed(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[
            JobStatus(done=False),
            JobStatus(done=True, error="content policy violation", status="failed"),
        ])
        poller = make_poller(port, recording_sleep)

        with pytest.raises(PollingFailed) as exc_info:
            await poller.poll(HANDLE)

        assert exc_info.value.cause == "content policy violation"
        assert exc_info.value.stage == "video"
        assert exc_info.value.job_id == "job-123"
        assert exc_info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_done_without_artifact_is_a_failure(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[JobStatus(done=True)])
        poller = make_poller(port, recording_sleep)

        with pytest.raises(PollingFailed, match="without an artifact"):
            await poller.poll(HANDLE)

    @pytest.mark.asyncio
    async def test_query_exception_raises_polling_failed(self, make_port, recording_sleep):
        port = make_port()
        port.check_video_job = AsyncMock(side_effect=ConnectionError("network down"))
        poller = make_poller(port, recording_sleep)

        with pytest.raises(PollingFailed) as exc_info:
            await poller.poll(HANDLE)

        assert exc_info.value.cause == "network down"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_max_attempts_bounds_polling(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[JobStatus(done=False)] * 10)
        poller = make_poller(port, recording_sleep, max_attempts=4)

        with pytest.raises(PollingFailed, match="still running after 4 polls"):
            await poller.poll(HANDLE)

        assert port.call_count("check_video_job") == 4

    @pytest.mark.asyncio
    async def test_timeout_bounds_polling(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[JobStatus(done=False)] * 10)
        poller = make_poller(port, recording_sleep, timeout_seconds=12.0)

        with pytest.raises(PollingFailed, match="timed out"):
            await poller.poll(HANDLE)

        # Queries at t=5 and t=10; the t=15 wake-up exceeds the limit
        assert port.call_count("check_video_job") == 2


class TestPollingCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_querying(self, make_port, recording_sleep):
        port = make_port(poll_statuses=[JobStatus(done=False)] * 5)
        token = CancellationToken()
        token.cancel()
        poller = make_poller(port, recording_sleep)

        with pytest.raises(RunCancelled) as exc_info:
            await poller.poll(HANDLE, token)

        assert exc_info.value.stage == "video"
        assert port.call_count("check_video_job") == 0

    @pytest.mark.asyncio
    async def test_cancel_during_sleep_stops_further_queries(self, make_port):
        port = make_port(poll_statuses=[JobStatus(done=False)] * 5)
        token = CancellationToken()
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 2:
                token.cancel()

        poller = LongRunningJobPoller(port, interval_seconds=5.0, max_attempts=5, timeout_seconds=600, sleep=sleep)

        with pytest.raises(RunCancelled):
            await poller.poll(HANDLE, token)

        assert port.call_count("check_video_job") == 1
