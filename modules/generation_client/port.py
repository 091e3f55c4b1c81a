"""
Remote generation port.

The orchestrator and the thumbnail refiner depend only on this interface;
adapters (e.g. ReplicateGenerationClient) implement it against a hosted model.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Union

from shared.models.pipeline import JobHandle, JobStatus, Script

# generate_video returns either the finished artifact or a handle to poll
VideoSubmission = Union[str, JobHandle]


class RemoteGenerationPort(ABC):
    """One async method per generation stage. Any method may raise."""

    @abstractmethod
    async def generate_script(self, topic: str) -> Script:
        """Produce a video script for a topic."""

    @abstractmethod
    async def generate_images_for_paragraph(
        self,
        paragraph: str,
        prompt: Optional[str] = None,
        style: Optional[str] = None,
    ) -> List[str]:
        """Produce the ordered image set for one script paragraph."""

    @abstractmethod
    async def generate_audio(self, script: str) -> str:
        """Produce narration audio for the full script text."""

    @abstractmethod
    async def generate_video(self, script: str, images: List[str], audio: str) -> VideoSubmission:
        """Start video synthesis; return the artifact or a job handle."""

    @abstractmethod
    async def check_video_job(self, handle: JobHandle) -> JobStatus:
        """Query a long-running video job once."""

    @abstractmethod
    async def refine_image(self, prompt: str, base_image: Optional[str] = None) -> str:
        """Generate a thumbnail, optionally iterating on a base image."""
