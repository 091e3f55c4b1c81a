"""
Generation Client module.

RemoteGenerationPort (the interface the pipeline depends on) and its hosted
OpenAI + Replicate implementation.
"""

from .port import RemoteGenerationPort, VideoSubmission
from .replicate_client import ReplicateGenerationClient

__all__ = ["RemoteGenerationPort", "VideoSubmission", "ReplicateGenerationClient"]
