from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Protocol

from amazon_ledger_sync.logging_setup import get_logger

logger = get_logger(__name__)


class ProgressStage(Enum):
    """Milestones of one sync run, in the order they happen"""
    LOADED = "loaded"
    SELECTED = "selected"
    SUBMITTING = "submitting"
    OUTCOME = "outcome"
    PERSISTED = "persisted"
    FINISHED = "finished"


@dataclass(frozen=True)
class ProgressEvent:
    stage: ProgressStage
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class StatusSink(Protocol):
    """Receives progress events of a sync run"""

    def on_progress(self, event: ProgressEvent) -> None:
        ...


class NullStatusSink:
    def on_progress(self, event: ProgressEvent) -> None:
        pass


class LoggingStatusSink:
    """Writes every event to the package log"""

    def on_progress(self, event: ProgressEvent) -> None:
        logger.info("[%s] %s", event.stage.value, event.message)


class RecordingStatusSink:
    """Keeps every event in memory, in order"""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def stages(self) -> List[ProgressStage]:
        return [e.stage for e in self.events]
