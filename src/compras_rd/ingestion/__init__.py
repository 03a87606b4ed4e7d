"""Ingestion coordination: windowed sync from a release source into the store."""

from .coordinator import IngestionCoordinator, IngestionOptions
from .stats import IngestionError, IngestionState, IngestionStats, ProgressCallback
from .windows import DateWindow, iter_windows

__all__ = [
    "DateWindow",
    "IngestionCoordinator",
    "IngestionError",
    "IngestionOptions",
    "IngestionState",
    "IngestionStats",
    "ProgressCallback",
    "iter_windows",
]
