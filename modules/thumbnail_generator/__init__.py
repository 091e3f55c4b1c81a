"""
Thumbnail Generator module.

Iterative thumbnail refinement with a branchable version history.
"""

from .history import RefinementHistory
from .refiner import ThumbnailRefiner

__all__ = ["RefinementHistory", "ThumbnailRefiner"]
