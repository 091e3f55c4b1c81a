"""
Thumbnail refinement data models.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class RefinementEntry(BaseModel):
    """One generated thumbnail version."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    image: str = Field(description="Image data URI")
    prompt: str
    base_index: Optional[int] = Field(
        default=None,
        description="Index of the version this was refined from (None for the initial generation)"
    )
    session: int = Field(default=0, ge=0, description="generate_initial call this entry belongs to")
