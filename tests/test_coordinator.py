"""Tests for the ingestion coordinator."""

import threading
from datetime import datetime, timezone
from typing import Any

import pytest

from compras_rd.connectors.base import Pagination, ReleaseWindow
from compras_rd.errors import ConcurrencyError, IngestionOptionsError, UpstreamError
from compras_rd.ingestion import (
    IngestionCoordinator,
    IngestionOptions,
    IngestionState,
    IngestionStats,
)
from compras_rd.models.raw import RawRelease
from compras_rd.normalizer import normalize_release
from compras_rd.store import ReleaseStore
from tests.conftest import FakeReleaseSource, make_raw

THREE_WEEKS = {"start_date": "2024-01-01", "end_date": "2024-01-20", "delay_seconds": 0.25}


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class PagedSource(FakeReleaseSource):
    """Single window split across several pages."""

    def __init__(self, pages: list[list[dict[str, Any]]]):
        super().__init__()
        self.pages = pages

    def fetch_window(self, date_from, date_to, page=1, limit=None) -> ReleaseWindow:
        self.window_calls.append((date_from, date_to, page))
        entries = self.pages[page - 1]
        return ReleaseWindow(
            raw_releases=[RawRelease(data=r) for r in entries],
            pagination=Pagination(page=page, total_pages=len(self.pages)),
        )


def _coordinator(source, store, **kwargs) -> tuple[IngestionCoordinator, RecordingSleep]:
    sleep = RecordingSleep()
    return IngestionCoordinator(source, store, sleep=sleep, **kwargs), sleep


def _three_window_source() -> FakeReleaseSource:
    return FakeReleaseSource(
        windows={
            "2024-01-01": [make_raw("ocds-w1-a"), make_raw("ocds-w1-b")],
            "2024-01-08": [make_raw("ocds-w2-a")],
            "2024-01-15": [make_raw("ocds-w3-a"), make_raw("ocds-w3-b")],
        }
    )


class TestWindowing:
    """Date range is fetched as sequential weekly windows."""

    def test_windows_fetched_in_order(self, store: ReleaseStore) -> None:
        source = _three_window_source()
        coordinator, sleep = _coordinator(source, store)
        stats = coordinator.start(THREE_WEEKS)

        assert source.window_calls == [
            ("2024-01-01", "2024-01-07", 1),
            ("2024-01-08", "2024-01-14", 1),
            ("2024-01-15", "2024-01-20", 1),
        ]
        assert sleep.calls == [0.25, 0.25]
        assert stats.windows_processed == 3
        assert stats.total_processed == 5
        assert stats.total_successful == 5
        assert stats.outcome is IngestionState.COMPLETED
        assert store.count() == 5

    def test_zero_delay_never_sleeps(self, store: ReleaseStore) -> None:
        coordinator, sleep = _coordinator(_three_window_source(), store)
        coordinator.start(dict(THREE_WEEKS, delay_seconds=0))
        assert sleep.calls == []

    def test_all_pages_followed(self, store: ReleaseStore) -> None:
        source = PagedSource([[make_raw("ocds-p1")], [make_raw("ocds-p2")], [make_raw("ocds-p3")]])
        coordinator, sleep = _coordinator(source, store)
        stats = coordinator.start({"start_date": "2024-01-01", "end_date": "2024-01-02", "delay_seconds": 2})

        assert [call[2] for call in source.window_calls] == [1, 2, 3]
        assert sleep.calls == [2, 2]
        assert stats.total_successful == 3

    def test_window_failure_recorded_and_skipped(self, store: ReleaseStore) -> None:
        source = _three_window_source()
        source.windows["2024-01-08"] = UpstreamError(500, "Internal Server Error")
        coordinator, _ = _coordinator(source, store)
        stats = coordinator.start(THREE_WEEKS)

        assert stats.outcome is IngestionState.COMPLETED
        assert stats.total_processed == 4
        assert stats.total_failed == 0
        assert [(e.key, e.error) for e in stats.errors] == [
            ("batch-2024-01-08", "API Error: 500 - Internal Server Error")
        ]
        assert len(source.window_calls) == 3


class TestDetailEnrichment:
    def test_detail_cap(self, store: ReleaseStore) -> None:
        raws = [make_raw(f"ocds-{i}") for i in range(4)]
        source = FakeReleaseSource(
            windows={"2024-01-01": raws},
            details={"ocds-0": make_raw("ocds-0", tender={"title": "Desde detalle"})},
        )
        coordinator, _ = _coordinator(source, store)
        stats = coordinator.start(
            {"start_date": "2024-01-01", "end_date": "2024-01-07", "detail_cap": 2, "delay_seconds": 0}
        )

        assert source.detail_calls == ["ocds-0", "ocds-1"]
        # A failed detail fetch falls back to the summary and is not a failure.
        assert stats.total_successful == 4
        assert store.get_release("ocds-0").title == "Desde detalle"
        assert store.get_release("ocds-1").title == "Adquisición de mobiliario escolar"


class TestCancellation:
    """stop() is honoured at the next window or release boundary."""

    def test_stop_after_first_window(self, store: ReleaseStore) -> None:
        source = _three_window_source()
        coordinator, sleep = _coordinator(source, store)

        def on_progress(stats: IngestionStats) -> None:
            if stats.total_processed == 2:
                coordinator.stop()

        stats = coordinator.start(THREE_WEEKS, on_progress=on_progress)

        assert stats.total_processed == 2
        assert stats.outcome is IngestionState.CANCELLED
        assert stats.end_time is not None
        assert stats.duration is not None
        assert len(source.window_calls) == 1
        assert sleep.calls == [0.25]
        assert coordinator.state is IngestionState.IDLE
        assert coordinator.last_outcome is IngestionState.CANCELLED

        again = coordinator.start(THREE_WEEKS)
        assert again.outcome is IngestionState.COMPLETED
        assert again.total_processed == 5

    def test_stop_mid_window(self, store: ReleaseStore) -> None:
        source = _three_window_source()
        coordinator, _ = _coordinator(source, store)

        def on_progress(stats: IngestionStats) -> None:
            coordinator.stop()

        stats = coordinator.start(THREE_WEEKS, on_progress=on_progress)
        assert stats.total_processed == 1
        assert stats.outcome is IngestionState.CANCELLED
        assert store.count() == 1

    def test_interrupt_finalizes_as_cancelled(self, store: ReleaseStore) -> None:
        source = _three_window_source()
        source.windows["2024-01-08"] = KeyboardInterrupt()
        coordinator, _ = _coordinator(source, store)

        with pytest.raises(KeyboardInterrupt):
            coordinator.start(THREE_WEEKS)

        stats = coordinator.current_stats()
        assert stats.total_processed == 2
        assert stats.outcome is IngestionState.CANCELLED
        assert stats.end_time is not None
        assert coordinator.state is IngestionState.IDLE
        assert coordinator.last_outcome is IngestionState.CANCELLED

    def test_stop_when_idle_is_noop(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(_three_window_source(), store)
        coordinator.stop()
        assert coordinator.state is IngestionState.IDLE
        assert coordinator.start(THREE_WEEKS).outcome is IngestionState.COMPLETED


class TestPartialFailure:
    def test_one_bad_release(self, store: ReleaseStore) -> None:
        raws = [make_raw(f"ocds-{i}") for i in range(1, 6)]
        source = FakeReleaseSource(windows={"2024-01-01": raws})

        def flaky_normalizer(raw: RawRelease):
            if raw.natural_key == "ocds-3":
                raise ValueError("malformed tender block")
            return normalize_release(raw)

        coordinator, _ = _coordinator(source, store, normalizer=flaky_normalizer)
        stats = coordinator.start(
            {"start_date": "2024-01-01", "end_date": "2024-01-07", "detail_cap": 0, "delay_seconds": 0}
        )

        assert (stats.total_processed, stats.total_successful, stats.total_failed) == (5, 4, 1)
        assert len(stats.errors) == 1
        assert stats.errors[0].key == "ocds-3"
        assert "malformed tender block" in stats.errors[0].error
        assert stats.outcome is IngestionState.COMPLETED
        assert store.get_release("ocds-3") is None
        assert store.count() == 4

    def test_release_without_key_fails(self, store: ReleaseStore) -> None:
        source = FakeReleaseSource(windows={"2024-01-01": [{"tender": {"title": "Sin clave"}}, make_raw("ocds-1")]})
        coordinator, _ = _coordinator(source, store)
        stats = coordinator.start({"start_date": "2024-01-01", "end_date": "2024-01-01", "delay_seconds": 0})
        assert (stats.total_processed, stats.total_successful, stats.total_failed) == (2, 1, 1)
        assert stats.errors[0].key == "unknown"


class TestConcurrency:
    def test_start_while_running_rejected(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(_three_window_source(), store)
        rejected: list[Exception] = []

        def on_progress(stats: IngestionStats) -> None:
            assert coordinator.is_running
            if not rejected:
                try:
                    coordinator.start(THREE_WEEKS)
                except ConcurrencyError as e:
                    rejected.append(e)

        stats = coordinator.start(THREE_WEEKS, on_progress=on_progress)

        assert len(rejected) == 1
        assert "already running" in str(rejected[0])
        assert stats.total_processed == 5
        assert stats.outcome is IngestionState.COMPLETED
        assert not coordinator.is_running

    def test_callback_errors_do_not_abort(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(_three_window_source(), store)

        def on_progress(stats: IngestionStats) -> None:
            raise RuntimeError("observer broke")

        assert coordinator.start(THREE_WEEKS, on_progress=on_progress).total_successful == 5


class TestProgress:
    def test_snapshots(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(_three_window_source(), store)
        seen: list[IngestionStats] = []
        stats = coordinator.start(THREE_WEEKS, on_progress=seen.append)

        assert [s.total_processed for s in seen] == [1, 2, 3, 4, 5]
        assert all(s is not stats for s in seen)
        assert seen[0].total_processed == 1
        current = coordinator.current_stats()
        assert current.total_processed == 5
        assert current is not stats

    def test_snapshot_consistent_across_threads(self) -> None:
        stats = IngestionStats()
        done = threading.Event()

        def record() -> None:
            for i in range(20000):
                if i % 3:
                    stats.record_success()
                else:
                    stats.record_failure(f"ocds-{i}", "bad")
            done.set()

        writer = threading.Thread(target=record)
        writer.start()
        torn = []
        while not done.is_set():
            snap = stats.snapshot()
            if snap.total_processed != snap.total_successful + snap.total_failed:
                torn.append(snap)
            if len(snap.errors) != snap.total_failed:
                torn.append(snap)
        writer.join()

        assert torn == []
        assert stats.total_processed == 20000

    def test_snapshot_is_independent(self) -> None:
        stats = IngestionStats()
        stats.record_failure("ocds-1", "bad")
        snap = stats.snapshot()
        stats.record_failure("ocds-2", "worse")
        stats.record_window()

        assert snap.total_failed == 1
        assert [e.key for e in snap.errors] == ["ocds-1"]
        assert snap.windows_processed == 0
        snap.record_success()
        assert stats.total_successful == 0


class TestOptions:
    def test_defaults(self) -> None:
        options = IngestionOptions(start_date="2024-01-01", end_date="2024-01-31")
        assert (options.batch_size, options.delay_seconds, options.detail_cap) == (100, 1.0, 20)
        assert len(options.windows()) == 5

    @pytest.mark.parametrize(
        "overrides",
        [
            {"start_date": "2024-02-01", "end_date": "2024-01-01"},
            {"start_date": "yesterday"},
            {"batch_size": 0},
            {"delay_seconds": -1},
            {"detail_cap": -1},
        ],
    )
    def test_invalid(self, overrides: dict) -> None:
        values = {"start_date": "2024-01-01", "end_date": "2024-01-07", **overrides}
        with pytest.raises(IngestionOptionsError):
            IngestionOptions(**values)

    def test_camel_case_request_keys(self) -> None:
        options = IngestionOptions.from_mapping(
            {"startDate": "2024-01-01", "endDate": "2024-01-20", "batchSize": 50, "delayBetweenRequests": 0.5}
        )
        assert options.batch_size == 50
        assert options.delay_seconds == 0.5
        assert len(options.windows()) == 3

    @pytest.mark.parametrize(
        "values",
        [
            {"start_date": "2024-01-01", "end_date": "2024-01-07", "delay": 1},
            {"start_date": "2024-01-01", "end_date": "2024-01-07", "batch_size": 10, "batchSize": 20},
            {"start_date": "2024-01-01"},
            {"start_date": "2024-01-01", "end_date": "2024-01-07", "batch_size": "many"},
        ],
    )
    def test_malformed_mapping(self, values: dict) -> None:
        with pytest.raises(IngestionOptionsError):
            IngestionOptions.from_mapping(values)

    def test_start_accepts_camel_case(self, store: ReleaseStore) -> None:
        coordinator, sleep = _coordinator(_three_window_source(), store)
        stats = coordinator.start(
            {"startDate": "2024-01-01", "endDate": "2024-01-20", "delayBetweenRequests": 0.1}
        )
        assert stats.total_successful == 5
        assert sleep.calls == [0.1, 0.1]

    def test_unknown_option_rejected_by_start(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(FakeReleaseSource(), store)
        with pytest.raises(IngestionOptionsError, match="retries"):
            coordinator.start({"start_date": "2024-01-01", "end_date": "2024-01-07", "retries": 3})
        assert coordinator.state is IngestionState.IDLE

    def test_invalid_options_leave_coordinator_idle(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(FakeReleaseSource(), store)
        with pytest.raises(ValueError):
            coordinator.start({"start_date": "2024-01-07", "end_date": "2024-01-01"})
        assert coordinator.state is IngestionState.IDLE


class TestSyncRecent:
    def test_last_week(self, store: ReleaseStore) -> None:
        source = FakeReleaseSource(windows={"2024-01-13": [make_raw("ocds-recent")]})
        def clock() -> datetime:
            return datetime(2024, 1, 20, 15, 30, tzinfo=timezone.utc)

        coordinator, sleep = _coordinator(source, store, clock=clock)
        stats = coordinator.sync_recent()

        assert [(c[0], c[1]) for c in source.window_calls] == [
            ("2024-01-13", "2024-01-19"),
            ("2024-01-20", "2024-01-20"),
        ]
        assert sleep.calls == [0.5]
        assert stats.total_successful == 1


class TestSingleRelease:
    def test_ingest_single_release(self, store: ReleaseStore) -> None:
        source = FakeReleaseSource(details={"ocds-one": make_raw("ocds-one")})
        coordinator, _ = _coordinator(source, store)
        assert coordinator.ingest_single_release("ocds-one") is True
        assert store.get_release("ocds-one") is not None
        assert source.detail_calls == ["ocds-one"]

    def test_missing_release(self, store: ReleaseStore) -> None:
        coordinator, _ = _coordinator(FakeReleaseSource(), store)
        assert coordinator.ingest_single_release("ocds-none") is False
        assert store.count() == 0
