"""Windowed, rate-limited, cancellable ingestion of releases into the store.

The upstream API has no bulk export and rate-limits implicitly, so a date
range is pulled one week at a time with a pause between windows. Each release
is normalized and stored on its own; a failing release or window is recorded
in the run statistics and the run moves on.
"""

import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

from compras_rd.connectors.base import BaseReleaseSource
from compras_rd.errors import ConcurrencyError, IngestionOptionsError, RemoteSourceError, StorageError
from compras_rd.models.raw import RawRelease
from compras_rd.models.release import CanonicalRelease
from compras_rd.normalizer import normalize_release
from compras_rd.store.sqlite_store import ReleaseStore

from .stats import IngestionState, IngestionStats, ProgressCallback
from .windows import WINDOW_DAYS, DateLike, DateWindow, iter_windows, parse_date

logger = logging.getLogger(__name__)

Normalizer = Callable[[RawRelease], CanonicalRelease]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionOptions:
    """
    Ingestion request. Dates are inclusive; batch_size is the upstream page
    limit; delay_seconds is the pause between windows and pages; the first
    detail_cap releases of each page are enriched with their detail record.
    """

    start_date: DateLike
    end_date: DateLike
    batch_size: int = 100
    delay_seconds: float = 1.0
    detail_cap: int = 20
    window_days: int = WINDOW_DAYS

    def __post_init__(self) -> None:
        self.start_date = parse_date(self.start_date, "start_date")
        self.end_date = parse_date(self.end_date, "end_date")
        if self.end_date < self.start_date:
            raise IngestionOptionsError(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        try:
            self.batch_size = int(self.batch_size)
            self.delay_seconds = float(self.delay_seconds)
            self.detail_cap = int(self.detail_cap)
            self.window_days = int(self.window_days)
        except (TypeError, ValueError) as e:
            raise IngestionOptionsError(f"Invalid numeric ingestion option: {e}") from e
        if self.batch_size < 1:
            raise IngestionOptionsError("batch_size must be positive")
        if self.delay_seconds < 0:
            raise IngestionOptionsError("delay_seconds must not be negative")
        if self.detail_cap < 0:
            raise IngestionOptionsError("detail_cap must not be negative")
        if self.window_days < 1:
            raise IngestionOptionsError("window_days must be at least 1")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "IngestionOptions":
        """Build options from a request mapping; camelCase request keys are accepted."""
        kwargs: dict[str, Any] = {}
        for key, value in values.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in _OPTION_FIELDS:
                raise IngestionOptionsError(f"Unknown ingestion option {key!r}")
            if name in kwargs:
                raise IngestionOptionsError(f"Ingestion option {name!r} given twice")
            kwargs[name] = value
        missing = [name for name in ("start_date", "end_date") if name not in kwargs]
        if missing:
            raise IngestionOptionsError(f"Missing ingestion options: {', '.join(missing)}")
        return cls(**kwargs)

    def windows(self) -> list[DateWindow]:
        return list(iter_windows(self.start_date, self.end_date, self.window_days))


_OPTION_FIELDS = {f.name for f in fields(IngestionOptions)}

_OPTION_ALIASES = {
    "startDate": "start_date",
    "endDate": "end_date",
    "batchSize": "batch_size",
    "delayBetweenRequests": "delay_seconds",
    "detailCap": "detail_cap",
    "windowDays": "window_days",
}


class IngestionCoordinator:
    """
    Drives a sync of a date range from a release source into a ReleaseStore.
    One run at a time per coordinator; stop() requests cooperative cancellation
    checked at window, page and release boundaries.
    """

    def __init__(
        self,
        source: BaseReleaseSource,
        store: ReleaseStore,
        *,
        normalizer: Optional[Normalizer] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._source = source
        self._store = store
        self._normalize = normalizer or normalize_release
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._state = IngestionState.IDLE
        self._stop_requested = threading.Event()
        self._stats: Optional[IngestionStats] = None
        self.last_outcome: Optional[IngestionState] = None

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is IngestionState.RUNNING

    def current_stats(self) -> Optional[IngestionStats]:
        """Snapshot of the active (or last) run's statistics."""
        return self._stats.snapshot() if self._stats else None

    def stop(self) -> None:
        """Request cancellation of the active run. No-op when idle."""
        with self._lock:
            if self._state is IngestionState.RUNNING:
                logger.info("Stopping data ingestion...")
                self._stop_requested.set()

    def start(
        self,
        options: Union[IngestionOptions, Mapping[str, Any]],
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestionStats:
        """
        Run an ingestion to completion or cancellation and return its stats.
        Raises ConcurrencyError if a run is active and IngestionOptionsError
        for invalid options; every other failure ends up in stats.errors.
        """
        if isinstance(options, Mapping):
            options = IngestionOptions.from_mapping(options)
        with self._lock:
            if self._state is IngestionState.RUNNING:
                raise ConcurrencyError("Ingestion is already running")
            self._state = IngestionState.RUNNING
            self._stop_requested.clear()

        stats = IngestionStats(start_time=self._clock())
        self._stats = stats
        outcome = IngestionState.FAILED
        logger.info(
            "Starting ingestion %s to %s (batch_size=%d, delay=%.2fs, detail_cap=%d)",
            options.start_date,
            options.end_date,
            options.batch_size,
            options.delay_seconds,
            options.detail_cap,
        )
        try:
            outcome = self._run(options, stats, on_progress)
        except KeyboardInterrupt:
            logger.warning("Ingestion interrupted")
            outcome = IngestionState.CANCELLED
            raise
        except Exception:
            logger.exception("Error during data ingestion")
            raise
        finally:
            stats.finish(outcome, self._clock())
            self.last_outcome = outcome
            with self._lock:
                self._state = IngestionState.IDLE
                self._stop_requested.clear()
            logger.info(
                "Ingestion %s: %d processed, %d successful, %d failed, %d errors in %.1fs",
                outcome.value,
                stats.total_processed,
                stats.total_successful,
                stats.total_failed,
                len(stats.errors),
                stats.duration or 0.0,
            )
        return stats

    def sync_recent(self, days: int = 7, on_progress: Optional[ProgressCallback] = None) -> IngestionStats:
        """Ingest releases from the last ``days`` days up to today."""
        end = self._clock().date()
        start = end - timedelta(days=days)
        return self.start(
            IngestionOptions(start_date=start, end_date=end, batch_size=50, delay_seconds=0.5),
            on_progress,
        )

    def ingest_single_release(self, ocid: str) -> bool:
        """Fetch, normalize and store one release by ocid. Returns success."""
        logger.info("Ingesting single release: %s", ocid)
        try:
            release = self._normalize(self._source.fetch_detail(ocid))
            persisted = self._store.upsert_release(release)
        except (RemoteSourceError, StorageError, ValueError) as e:
            logger.warning("Error ingesting release %s: %s", ocid, e)
            return False
        self._store_related(persisted.id, release)
        return True

    def _should_stop(self) -> bool:
        return self._stop_requested.is_set()

    def _run(
        self,
        options: IngestionOptions,
        stats: IngestionStats,
        on_progress: Optional[ProgressCallback],
    ) -> IngestionState:
        windows = options.windows()
        total_days = (options.end_date - options.start_date).days + 1
        logger.info("Processing %d days of data in %d windows", total_days, len(windows))

        for index, window in enumerate(windows):
            if self._should_stop():
                return IngestionState.CANCELLED
            completed = self._process_window(window, options, stats, on_progress)
            stats.record_window()
            # The pause is kept even when cancelling, to stay within upstream limits.
            if index < len(windows) - 1 and options.delay_seconds > 0:
                self._sleep(options.delay_seconds)
            if not completed:
                return IngestionState.CANCELLED
        return IngestionState.COMPLETED

    def _process_window(
        self,
        window: DateWindow,
        options: IngestionOptions,
        stats: IngestionStats,
        on_progress: Optional[ProgressCallback],
    ) -> bool:
        """Process every page of one window. Returns False if cancelled midway."""
        logger.info("Processing batch: %s to %s", window.date_from, window.date_to)
        page = 1
        while True:
            try:
                listing = self._source.fetch_window(
                    window.date_from, window.date_to, page, limit=options.batch_size
                )
            except Exception as e:
                logger.warning("Error fetching data for batch %s (page %d): %s", window.date_from, page, e)
                stats.record_window_error(window.date_from, str(e) or type(e).__name__)
                return True

            logger.info("Found %d releases in this batch (page %d)", len(listing.raw_releases), page)
            for position, raw in enumerate(listing.raw_releases):
                if self._should_stop():
                    return False
                self._process_release(raw, position < options.detail_cap, stats)
                self._notify(on_progress, stats)

            if page >= listing.pagination.total_pages or not listing.raw_releases:
                return True
            if self._should_stop():
                return False
            page += 1
            if options.delay_seconds > 0:
                self._sleep(options.delay_seconds)

    def _process_release(self, raw: RawRelease, enrich: bool, stats: IngestionStats) -> None:
        """Enrich, normalize and store one release; count exactly one outcome."""
        key = raw.natural_key or "unknown"
        try:
            if enrich and raw.natural_key:
                raw = self._source.enrich(raw)
            release = self._normalize(raw)
            key = release.natural_key or key
            persisted = self._store.upsert_release(release)
        except Exception as e:
            logger.warning("Error processing release %s: %s", key, e)
            stats.record_failure(key, str(e) or type(e).__name__)
            return
        self._store_related(persisted.id, release)
        stats.record_success()
        logger.debug("Successfully stored release: %s", key)

    def _store_related(self, release_id: str, release: CanonicalRelease) -> None:
        """Party and document rows are denormalized copies; failures are logged only."""
        try:
            self._store.upsert_parties(release_id, release.parties)
        except StorageError as e:
            logger.warning("Parties not stored for %s: %s", release.natural_key, e)
        try:
            self._store.upsert_documents(release_id, release.documents)
        except StorageError as e:
            logger.warning("Documents not stored for %s: %s", release.natural_key, e)

    def _notify(self, on_progress: Optional[ProgressCallback], stats: IngestionStats) -> None:
        if on_progress is None:
            return
        try:
            on_progress(stats.snapshot())
        except Exception:
            logger.exception("Progress callback raised; continuing")
