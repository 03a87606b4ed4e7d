"""Main CLI entry point."""

import argparse
import json
import logging
import sys
from pathlib import Path


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def _add_db_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to SQLite database (default: COMPRAS_RD_DB_PATH or compras_rd.db)",
    )


def main(argv: list[str] | None = None) -> None:
    """Parse args and dispatch to subcommands."""
    parser = argparse.ArgumentParser(
        prog="compras-rd",
        description="Dominican Republic public procurement release ingestion",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # ingest
    ingest_parser = subparsers.add_parser("ingest", help="Ingest a date range into the store")
    ingest_parser.add_argument("--start", required=True, help="First day (YYYY-MM-DD)")
    ingest_parser.add_argument("--end", required=True, help="Last day, inclusive (YYYY-MM-DD)")
    ingest_parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Releases per upstream page (default: COMPRAS_RD_PAGE_LIMIT or 100)",
    )
    ingest_parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait between windows (default: COMPRAS_RD_REQUEST_DELAY or 1.0)",
    )
    ingest_parser.add_argument(
        "--detail-cap",
        type=int,
        default=None,
        help="Releases per page enriched with detail data (default: COMPRAS_RD_DETAIL_CAP or 20)",
    )
    _add_db_argument(ingest_parser)

    # sync-recent
    sync_parser = subparsers.add_parser("sync-recent", help="Ingest the last N days")
    sync_parser.add_argument("--days", type=int, default=7, help="Days to look back (default: 7)")
    _add_db_argument(sync_parser)

    # release
    release_parser = subparsers.add_parser("release", help="Fetch and store a single release")
    release_parser.add_argument("ocid", help="Release ocid")
    _add_db_argument(release_parser)

    # fetch
    fetch_parser = subparsers.add_parser("fetch", help="Fetch and normalize one page without storing")
    fetch_parser.add_argument("--from", dest="date_from", default=None, help="YYYY-MM-DD (default: 30 days ago)")
    fetch_parser.add_argument("--to", dest="date_to", default=None, help="YYYY-MM-DD (default: today)")
    fetch_parser.add_argument("--institution", default=None, help="Purchasing institution name")
    fetch_parser.add_argument("--keyword", default=None, help="Match tender title, description or buyer name")
    fetch_parser.add_argument("--page", type=int, default=1)
    fetch_parser.add_argument("--detail-cap", type=int, default=None)
    fetch_parser.add_argument(
        "--summary",
        action="store_true",
        help="Print distinct institutions, provinces and modalities instead of releases",
    )
    fetch_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write normalized JSON to file (default: stdout)",
    )

    # search
    search_parser = subparsers.add_parser("search", help="Search stored releases")
    search_parser.add_argument("--keyword", type=str, default=None)
    search_parser.add_argument("--entity", dest="entities", action="append", default=[])
    search_parser.add_argument("--region", dest="regions", action="append", default=[])
    search_parser.add_argument("--category", dest="categories", action="append", default=[])
    search_parser.add_argument("--method", dest="methods", action="append", default=[])
    search_parser.add_argument("--status", dest="statuses", action="append", default=[])
    search_parser.add_argument("--min-budget", type=float, default=None)
    search_parser.add_argument("--max-budget", type=float, default=None)
    search_parser.add_argument("--start", type=str, default=None, help="YYYY-MM-DD")
    search_parser.add_argument("--end", type=str, default=None, help="YYYY-MM-DD")
    search_parser.add_argument("--active", action="store_true", help="Only status 'active'")
    search_parser.add_argument("--with-documents", action="store_true")
    search_parser.add_argument("--page", type=int, default=1)
    search_parser.add_argument("--page-size", type=int, default=20)
    _add_db_argument(search_parser)

    # options
    options_parser = subparsers.add_parser("options", help="Show distinct values for search filters")
    _add_db_argument(options_parser)

    # runs
    runs_parser = subparsers.add_parser("runs", help="Show recent ingestion runs")
    runs_parser.add_argument("--limit", type=int, default=10)
    _add_db_argument(runs_parser)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    from compras_rd.config import Settings
    from compras_rd.errors import ComprasError

    try:
        settings = Settings.from_env()
        handlers = {
            "ingest": _run_ingest,
            "sync-recent": _run_sync_recent,
            "release": _run_release,
            "fetch": _run_fetch,
            "search": _run_search,
            "options": _run_options,
            "runs": _run_runs,
        }
        handlers[args.command](args, settings)
    except ComprasError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)


def _store(args: argparse.Namespace, settings):
    from compras_rd.store import ReleaseStore

    return ReleaseStore(args.db or settings.db_path)


def _connector(settings):
    from compras_rd.connectors.registry import ConnectorRegistry

    return ConnectorRegistry.get(
        "dgcp",
        base_url=settings.api_base_url,
        api_key=settings.api_key,
        page_limit=settings.page_limit,
        timeout=settings.timeout,
    )


def _print_progress(stats) -> None:
    print(
        f"\rprocessed={stats.total_processed} ok={stats.total_successful} failed={stats.total_failed}",
        end="",
        file=sys.stderr,
        flush=True,
    )


def _run_and_record(args: argparse.Namespace, settings, run) -> None:
    """Run an ingestion callable against the store and record it in run history."""
    from compras_rd.ingestion import IngestionCoordinator, IngestionState

    store = _store(args, settings)
    connector = _connector(settings)
    coordinator = IngestionCoordinator(connector, store)
    run_record = store.start_run(connector.source_id)
    stats = None
    try:
        stats = run(coordinator)
    finally:
        # Interrupted or failed runs still leave their partial counts behind.
        final = stats or coordinator.current_stats()
        if final is None:
            store.finish_run(run_record.id, 0, 0, 0, status=IngestionState.FAILED.value)
        else:
            outcome = final.outcome or coordinator.last_outcome or IngestionState.FAILED
            store.finish_run(
                run_record.id,
                items_processed=final.total_processed,
                items_successful=final.total_successful,
                items_failed=final.total_failed,
                status=outcome.value,
            )
    print(file=sys.stderr)
    print(
        f"Ingestion {stats.outcome.value if stats.outcome else 'finished'}: "
        f"{stats.total_processed} processed, {stats.total_successful} successful, "
        f"{stats.total_failed} failed in {stats.duration or 0:.1f}s"
    )
    for err in stats.errors[:20]:
        print(f"  {err.key}: {err.error}")
    if len(stats.errors) > 20:
        print(f"  ... and {len(stats.errors) - 20} more errors")


def _run_ingest(args: argparse.Namespace, settings) -> None:
    """Run ingest command."""
    from compras_rd.ingestion import IngestionOptions

    options = IngestionOptions(
        start_date=args.start,
        end_date=args.end,
        batch_size=args.batch_size or settings.page_limit,
        delay_seconds=settings.request_delay if args.delay is None else args.delay,
        detail_cap=settings.detail_cap if args.detail_cap is None else args.detail_cap,
    )
    _run_and_record(args, settings, lambda c: c.start(options, on_progress=_print_progress))


def _run_sync_recent(args: argparse.Namespace, settings) -> None:
    """Run sync-recent command."""
    if args.days < 0:
        raise SystemExit("--days must not be negative")
    _run_and_record(args, settings, lambda c: c.sync_recent(args.days, on_progress=_print_progress))


def _run_release(args: argparse.Namespace, settings) -> None:
    """Run release command."""
    from compras_rd.ingestion import IngestionCoordinator

    store = _store(args, settings)
    coordinator = IngestionCoordinator(_connector(settings), store)
    if not coordinator.ingest_single_release(args.ocid):
        print(f"Could not ingest release {args.ocid}", file=sys.stderr)
        raise SystemExit(1)
    stored = store.get_release(args.ocid)
    print(json.dumps(stored.raw_data if stored else {}, indent=2, ensure_ascii=False))


def _run_fetch(args: argparse.Namespace, settings) -> None:
    """Run fetch command."""
    from compras_rd.analytics import unique_institutions, unique_modalities, unique_provinces

    connector = _connector(settings)
    result = connector.search_remote(
        institution=args.institution,
        keyword=args.keyword,
        date_from=args.date_from,
        date_to=args.date_to,
        page=args.page,
        detail_cap=settings.detail_cap if args.detail_cap is None else args.detail_cap,
    )
    releases = result.releases
    if args.summary:
        data = {
            "institutions": unique_institutions(releases),
            "provinces": unique_provinces(releases),
            "modalities": unique_modalities(releases),
        }
    else:
        data = [r.to_ocds() for r in releases]
    output = json.dumps(data, indent=2, ensure_ascii=False)

    if args.output:
        args.output.write_text(output, encoding="utf-8")
        print(f"Wrote {len(releases)} releases to {args.output}")
    else:
        print(output)


def _run_search(args: argparse.Namespace, settings) -> None:
    """Run search command."""
    from compras_rd.store import SearchFilters

    filters = SearchFilters(
        keyword=args.keyword,
        entities=args.entities,
        regions=args.regions,
        categories=args.categories,
        methods=args.methods,
        statuses=args.statuses,
        min_budget=args.min_budget,
        max_budget=args.max_budget,
        start_date=args.start,
        end_date=args.end,
        is_active=args.active,
        has_documents=True if args.with_documents else None,
        page=args.page,
        page_size=args.page_size,
    )
    result = _store(args, settings).search(filters)
    data = result.model_dump(mode="json", exclude={"releases": {"__all__": {"raw_data"}}})
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _run_options(args: argparse.Namespace, settings) -> None:
    """Run options command."""
    options = _store(args, settings).get_filter_options()
    print(json.dumps(options.model_dump(), indent=2, ensure_ascii=False))


def _run_runs(args: argparse.Namespace, settings) -> None:
    """Run runs command."""
    for run in _store(args, settings).list_runs(args.limit):
        finished = run.finished_at.isoformat() if run.finished_at else "-"
        print(
            f"#{run.id} {run.source} {run.status} started={run.started_at.isoformat()} "
            f"finished={finished} processed={run.items_processed} "
            f"ok={run.items_successful} failed={run.items_failed}"
        )


if __name__ == "__main__":
    main()
