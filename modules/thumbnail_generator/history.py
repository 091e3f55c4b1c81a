"""
Thumbnail version history.

Append-only list of generated thumbnails with an active pointer. Moving the
pointer backward never truncates; the next refinement branches from wherever
the pointer is and lands at the tail.
"""

import threading
from typing import List, Optional

from shared.errors import ValidationError
from shared.models.thumbnail import RefinementEntry


class RefinementHistory:
    """Ordered thumbnail versions for the current session."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[RefinementEntry] = []
        self._active_index: Optional[int] = None
        self._session = 0

    @property
    def entries(self) -> List[RefinementEntry]:
        with self._lock:
            return list(self._entries)

    @property
    def artifacts(self) -> List[str]:
        with self._lock:
            return [entry.image for entry in self._entries]

    @property
    def active_index(self) -> Optional[int]:
        with self._lock:
            return self._active_index

    @property
    def active(self) -> Optional[RefinementEntry]:
        with self._lock:
            if self._active_index is None:
                return None
            return self._entries[self._active_index]

    @property
    def session(self) -> int:
        """Number of generate_initial calls that have succeeded so far."""
        with self._lock:
            return self._session

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start_session(self, image: str, prompt: str) -> RefinementEntry:
        """Discard every version and start over with a freshly generated one at index 0."""
        with self._lock:
            self._session += 1
            entry = RefinementEntry(index=0, image=image, prompt=prompt, base_index=None, session=self._session)
            self._entries = [entry]
            self._active_index = 0
            return entry

    def append(self, image: str, prompt: str, base_index: int) -> RefinementEntry:
        """Append a refinement of base_index and make it active."""
        with self._lock:
            if not 0 <= base_index < len(self._entries):
                raise ValidationError(f"Base index {base_index} out of range")
            entry = RefinementEntry(
                index=len(self._entries),
                image=image,
                prompt=prompt,
                base_index=base_index,
                session=self._session,
            )
            self._entries.append(entry)
            self._active_index = entry.index
            return entry

    def select(self, index: int) -> RefinementEntry:
        """Move the active pointer. History is not modified."""
        with self._lock:
            if not 0 <= index < len(self._entries):
                if not self._entries:
                    raise ValidationError("No thumbnail versions to select")
                raise ValidationError(
                    f"Version index {index} out of range (0-{len(self._entries) - 1})"
                )
            self._active_index = index
            return self._entries[index]
