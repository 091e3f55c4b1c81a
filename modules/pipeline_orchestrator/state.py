"""
Pipeline state tracking.

PipelineState is the only object the orchestrator mutates while a run is in
flight. Transitions are checked against the stage dependency chain and
published to subscribers; observers read consistent copies via snapshot().
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from shared.errors import StateTransitionError
from shared.logging import get_logger
from shared.models.pipeline import STAGE_ORDER, StageName, StageStatus

logger = get_logger("pipeline_orchestrator.state")


@dataclass(frozen=True)
class StateChange:
    """One published transition. paragraph_index is set for per-paragraph image updates."""

    stage: StageName
    status: StageStatus
    snapshot: Dict[str, StageStatus]
    paragraph_index: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


StateListener = Callable[[StateChange], None]


def calculate_stage_progress(
    completed_items: int,
    total_items: int,
    stage_start_progress: int,
    stage_end_progress: int
) -> int:
    """
    Calculate progress percentage within a stage based on completed items.

    Returns:
        Progress percentage (0-100), clamped to stage range
    """
    if total_items == 0:
        return stage_start_progress

    stage_range = stage_end_progress - stage_start_progress
    completion_ratio = completed_items / total_items
    progress = stage_start_progress + int(completion_ratio * stage_range)

    return max(stage_start_progress, min(progress, stage_end_progress))


class PipelineState:
    """
    Stage name -> idle | running | done | error, plus per-paragraph image status.

    Rules:
    - a stage may only start once every earlier stage is done
    - once any stage is in error, no stage may start
    - running -> done | error are the only other transitions
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stages: Dict[StageName, StageStatus] = {stage: StageStatus.IDLE for stage in STAGE_ORDER}
        self._paragraphs: List[StageStatus] = []
        self._listeners: List[StateListener] = []
        self._history: List[StateChange] = []

    def status(self, stage: Union[StageName, str]) -> StageStatus:
        with self._lock:
            return self._stages[StageName(stage)]

    def snapshot(self) -> Dict[str, StageStatus]:
        """Consistent copy of every stage status, keyed by stage name."""
        with self._lock:
            return self._snapshot_locked()

    def paragraph_snapshot(self) -> List[StageStatus]:
        with self._lock:
            return list(self._paragraphs)

    @property
    def history(self) -> List[StateChange]:
        """Every stage transition published so far, in order."""
        with self._lock:
            return [change for change in self._history if change.paragraph_index is None]

    @property
    def failed_stage(self) -> Optional[StageName]:
        with self._lock:
            for stage in STAGE_ORDER:
                if self._stages[stage] == StageStatus.ERROR:
                    return stage
            return None

    def progress_percent(self) -> int:
        """Overall progress: each stage is a quarter, the image stage advances per paragraph."""
        with self._lock:
            share = 100 // len(STAGE_ORDER)
            progress = 0
            for position, stage in enumerate(STAGE_ORDER):
                status = self._stages[stage]
                if status == StageStatus.DONE:
                    progress = share * (position + 1)
                elif status == StageStatus.RUNNING and stage == StageName.IMAGES:
                    completed = sum(1 for s in self._paragraphs if s == StageStatus.DONE)
                    progress = calculate_stage_progress(
                        completed, len(self._paragraphs), share * position, share * (position + 1)
                    )
            return 100 if all(s == StageStatus.DONE for s in self._stages.values()) else progress

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener for every transition. Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def start(self, stage: Union[StageName, str]) -> None:
        stage = StageName(stage)
        with self._lock:
            current = self._stages[stage]
            if current != StageStatus.IDLE:
                raise StateTransitionError(f"Cannot start {stage.value}: already {current.value}")
            for earlier in STAGE_ORDER:
                if earlier == stage:
                    break
                if self._stages[earlier] != StageStatus.DONE:
                    raise StateTransitionError(
                        f"Cannot start {stage.value}: {earlier.value} is {self._stages[earlier].value}"
                    )
            if any(s == StageStatus.ERROR for s in self._stages.values()):
                raise StateTransitionError(f"Cannot start {stage.value}: pipeline has failed")
            change = self._set_locked(stage, StageStatus.RUNNING)
        self._publish(change)

    def complete(self, stage: Union[StageName, str]) -> None:
        self._finish(StageName(stage), StageStatus.DONE)

    def fail(self, stage: Union[StageName, str]) -> None:
        self._finish(StageName(stage), StageStatus.ERROR)

    def reset_paragraphs(self, count: int) -> None:
        with self._lock:
            self._paragraphs = [StageStatus.IDLE] * count

    def set_paragraph_status(self, index: int, status: StageStatus) -> None:
        with self._lock:
            if not 0 <= index < len(self._paragraphs):
                raise StateTransitionError(f"Paragraph index {index} out of range")
            self._paragraphs[index] = status
            change = StateChange(
                stage=StageName.IMAGES,
                status=status,
                snapshot=self._snapshot_locked(),
                paragraph_index=index,
            )
            self._history.append(change)
        self._publish(change)

    def _finish(self, stage: StageName, status: StageStatus) -> None:
        with self._lock:
            current = self._stages[stage]
            if current != StageStatus.RUNNING:
                raise StateTransitionError(
                    f"Cannot mark {stage.value} {status.value}: stage is {current.value}"
                )
            change = self._set_locked(stage, status)
        self._publish(change)

    def _set_locked(self, stage: StageName, status: StageStatus) -> StateChange:
        self._stages[stage] = status
        change = StateChange(stage=stage, status=status, snapshot=self._snapshot_locked())
        self._history.append(change)
        return change

    def _snapshot_locked(self) -> Dict[str, StageStatus]:
        return {stage.value: status for stage, status in self._stages.items()}

    def _publish(self, change: StateChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                # Observer failures must not affect the run
                logger.warning(
                    "State listener failed",
                    exc_info=e,
                    extra={"stage": change.stage.value, "status": change.status.value}
                )
