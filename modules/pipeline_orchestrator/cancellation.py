"""
Cooperative cancellation for pipeline runs.
"""

import threading
from typing import Optional

from shared.errors import RunCancelled


class CancellationToken:
    """Set once by the caller; checked by the orchestrator and poller between remote calls."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self._event.is_set():
            raise RunCancelled(stage)
