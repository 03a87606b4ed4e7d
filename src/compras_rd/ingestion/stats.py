"""Run state and running statistics for ingestion."""

import copy
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional


class IngestionState(str, Enum):
    """Coordinator lifecycle. IDLE and RUNNING are live states; the rest are outcomes."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class IngestionError:
    """One failed release (keyed by ocid) or window (keyed batch-<start date>)."""

    key: str
    error: str


@dataclass
class IngestionStats:
    """
    Counters for one run. Only the coordinator thread records into them;
    snapshot() may be called from any thread and always sees
    total_processed == total_successful + total_failed.
    """

    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_processed: int = 0
    total_successful: int = 0
    total_failed: int = 0
    errors: list[IngestionError] = field(default_factory=list)
    windows_processed: int = 0
    end_time: Optional[datetime] = None
    duration: Optional[float] = None
    outcome: Optional[IngestionState] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def record_success(self) -> None:
        with self._lock:
            self.total_processed += 1
            self.total_successful += 1

    def record_failure(self, key: str, error: str) -> None:
        with self._lock:
            self.total_processed += 1
            self.total_failed += 1
            self.errors.append(IngestionError(key=key, error=error))

    def record_window_error(self, window_start: str, error: str) -> None:
        """Window-level failures add an error entry without touching release counts."""
        with self._lock:
            self.errors.append(IngestionError(key=f"batch-{window_start}", error=error))

    def record_window(self) -> None:
        with self._lock:
            self.windows_processed += 1

    def finish(self, outcome: IngestionState, end_time: datetime) -> None:
        with self._lock:
            self.end_time = end_time
            self.duration = (end_time - self.start_time).total_seconds()
            self.outcome = outcome

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    def snapshot(self) -> "IngestionStats":
        """Independent, consistent copy safe to hand to observers."""
        with self._lock:
            return replace(self, errors=copy.deepcopy(self.errors))


ProgressCallback = Callable[[IngestionStats], None]
