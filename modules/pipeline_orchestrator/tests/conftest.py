"""
Pytest configuration and fixtures for pipeline orchestrator tests.
"""

import asyncio
import os
from typing import Dict, List, Optional

import pytest

from shared.models.pipeline import JobHandle, JobStatus, Script
from modules.generation_client.port import RemoteGenerationPort


def pytest_configure(config):
    """Set up environment variables before any imports."""
    os.environ.setdefault("ENVIRONMENT", "development")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")
    os.environ.setdefault("IMAGE_FAILURE_POLICY", "fail_fast")


class FakePort(RemoteGenerationPort):
    """
    Scripted RemoteGenerationPort.

    Records every call in order. Per-paragraph behaviour is keyed by paragraph
    text: `image_delays` controls completion order, `image_errors` makes a call
    raise. `poll_statuses` is consumed one status per check_video_job call.
    """

    def __init__(
        self,
        script: Optional[Script] = None,
        images_per_paragraph: int = 3,
        video_result=None,
        poll_statuses: Optional[List[JobStatus]] = None,
    ):
        self.script = script or Script(body="Cats are curious.\nCats sleep a lot.", title="Cats")
        self.images_per_paragraph = images_per_paragraph
        self.video_result = video_result if video_result is not None else "data:video/mp4;base64,VklERU8="
        self.poll_statuses = list(poll_statuses or [])
        self.image_delays: Dict[str, float] = {}
        self.image_errors: Dict[str, Exception] = {}
        self.script_error: Optional[Exception] = None
        self.audio_error: Optional[Exception] = None
        self.video_error: Optional[Exception] = None
        self.script_delay = 0.0
        self.audio_delay = 0.0
        self.calls: List[tuple] = []
        self.image_calls: List[dict] = []
        self.image_completion_order: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def call_count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    @property
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def generate_script(self, topic: str) -> Script:
        self.calls.append(("generate_script", topic))
        if self.script_delay:
            await asyncio.sleep(self.script_delay)
        if self.script_error:
            raise self.script_error
        return self.script

    async def generate_images_for_paragraph(self, paragraph, prompt=None, style=None):
        self.calls.append(("generate_images_for_paragraph", paragraph))
        self.image_calls.append({"paragraph": paragraph, "prompt": prompt, "style": style})
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.image_delays.get(paragraph, 0))
            if paragraph in self.image_errors:
                raise self.image_errors[paragraph]
            self.image_completion_order.append(paragraph)
            return [f"img:{paragraph}:{i}" for i in range(self.images_per_paragraph)]
        finally:
            self.in_flight -= 1

    async def generate_audio(self, script: str) -> str:
        self.calls.append(("generate_audio", script))
        if self.audio_delay:
            await asyncio.sleep(self.audio_delay)
        if self.audio_error:
            raise self.audio_error
        return "data:audio/mp3;base64,QVVESU8="

    async def generate_video(self, script: str, images: List[str], audio: str):
        self.calls.append(("generate_video", script, list(images), audio))
        if self.video_error:
            raise self.video_error
        return self.video_result

    async def check_video_job(self, handle: JobHandle) -> JobStatus:
        self.calls.append(("check_video_job", handle.job_id))
        return self.poll_statuses.pop(0)

    async def refine_image(self, prompt: str, base_image: Optional[str] = None) -> str:
        self.calls.append(("refine_image", prompt, base_image))
        return f"thumb:{prompt}"


class RecordingSleep:
    """Logical-time sleep: records requested delays and advances a fake clock."""

    def __init__(self):
        self.delays: List[float] = []
        self.now = 0.0

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


@pytest.fixture
def fake_port():
    """Port whose script has two paragraphs and whose video returns immediately."""
    return FakePort()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_port():
    """Factory for FakePort with custom script, video result or poll statuses."""
    return FakePort
