"""SQLite-backed release store with idempotent upserts keyed by ocid."""

import json
import logging
import math
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from compras_rd.errors import StorageError
from compras_rd.models.release import CanonicalRelease, Party, ReleaseDocument

from .filters import FilterOptions, PersistedRelease, SearchFilters, SearchResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_RELEASE_COLUMNS = (
    "title",
    "description",
    "status",
    "procurement_method",
    "procurement_method_details",
    "main_procurement_category",
    "submission_method",
    "budget_amount",
    "budget_currency",
    "start_date",
    "end_date",
    "buyer_id",
    "buyer_name",
    "published_date",
    "tender_period_start",
    "tender_period_end",
    "raw_data",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if isinstance(value, str) else None


def _or_none(value: Any) -> Any:
    """Empty flattened values are stored as NULL."""
    if value in ("", 0, 0.0) or value == []:
        return None
    return value


def _like_pattern(term: str) -> str:
    escaped = term.casefold().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass
class RunRecord:
    """Record of an ingestion run."""

    id: int
    source: str
    started_at: datetime
    finished_at: Optional[datetime]
    status: str
    items_processed: int
    items_successful: int
    items_failed: int


class ReleaseStore:
    """
    SQLite store for canonical releases plus denormalized party and document rows.
    Releases are keyed by ocid (or id when the upstream omitted it); raw_data
    holds the full canonical JSON and is the source of truth.
    """

    def __init__(self, db_path: str | Path = "compras_rd.db", clock: Optional[Clock] = None):
        self._db_path = Path(db_path)
        self._clock = clock or _utcnow
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        schema_path = Path(__file__).parent / "schema.sql"
        try:
            with self._connection() as conn:
                conn.executescript(schema_path.read_text(encoding="utf-8"))
        except sqlite3.Error as e:
            raise StorageError(f"Could not initialise schema at {self._db_path}: {e}") from e

    def _now(self) -> str:
        return self._clock().isoformat()

    def _flatten(self, release: CanonicalRelease) -> dict[str, Any]:
        """Map a canonical release to release-table columns."""
        tender = release.tender
        return {
            "title": _or_none(tender.title),
            "description": _or_none(tender.description),
            "status": _or_none(tender.status),
            "procurement_method": _or_none(tender.procurement_method),
            "procurement_method_details": _or_none(tender.procurement_method_details),
            "main_procurement_category": _or_none(tender.main_procurement_category),
            "submission_method": json.dumps(tender.submission_method) if tender.submission_method else None,
            "budget_amount": _or_none(tender.value.amount),
            "budget_currency": tender.value.currency or "DOP",
            "start_date": _or_none(tender.tender_period.start_date),
            "end_date": _or_none(tender.tender_period.end_date),
            "buyer_id": _or_none(release.buyer.id),
            "buyer_name": _or_none(release.buyer.name),
            "published_date": _or_none(release.published_date),
            "tender_period_start": _or_none(tender.tender_period.start_date),
            "tender_period_end": _or_none(tender.tender_period.end_date),
            "raw_data": json.dumps(release.to_ocds(), ensure_ascii=False),
        }

    def _deserialize(self, row: sqlite3.Row) -> PersistedRelease:
        data = dict(row)
        data["raw_data"] = json.loads(data["raw_data"])
        if data.get("submission_method"):
            data["submission_method"] = json.loads(data["submission_method"])
        return PersistedRelease.model_validate(data)

    def upsert_release(self, release: CanonicalRelease) -> PersistedRelease:
        """
        Insert or update a release keyed by ocid.
        Existing rows get every flattened column and raw_data overwritten and
        updated_at refreshed; created_at and the row id never change.
        Raises StorageError on failure.
        """
        key = release.natural_key
        if not key:
            raise StorageError("Release has neither ocid nor id; cannot be stored")
        if not release.has_stable_key:
            logger.warning("Release %s has no ocid; keying by id (best effort)", key)

        now = self._now()
        columns = self._flatten(release)
        names = ", ".join(_RELEASE_COLUMNS)
        placeholders = ", ".join("?" for _ in _RELEASE_COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _RELEASE_COLUMNS)
        sql = f"""
            INSERT INTO releases (id, ocid, {names}, created_at, updated_at)
            VALUES (?, ?, {placeholders}, ?, ?)
            ON CONFLICT(ocid) DO UPDATE SET {updates}, updated_at = excluded.updated_at
        """
        params = (uuid.uuid4().hex, key, *(columns[c] for c in _RELEASE_COLUMNS), now, now)
        try:
            with self._connection() as conn:
                conn.execute(sql, params)
                row = conn.execute("SELECT * FROM releases WHERE ocid = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store release {key}: {e}") from e
        if row is None:
            raise StorageError(f"Release {key} missing after upsert")
        return self._deserialize(row)

    def upsert_parties(self, release_id: str, parties: list[Party]) -> int:
        """
        Upsert party rows for a release, keyed by (release_id, party_id).
        Parties without an id are keyed by name, then by position.
        Returns the number of rows written.
        """
        rows = [
            (
                release_id,
                party.id or party.name or f"party-{index}",
                party.name,
                json.dumps(party.roles),
                _or_none(party.address.region),
                _or_none(party.address.locality),
                _or_none(party.contact_point.email),
                _or_none(party.contact_point.telephone),
            )
            for index, party in enumerate(parties)
        ]
        if not rows:
            return 0
        try:
            with self._connection() as conn:
                conn.executemany(
                    """
                    INSERT INTO parties (release_id, party_id, name, roles, address_region,
                                         address_locality, contact_email, contact_telephone)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(release_id, party_id) DO UPDATE SET
                        name = excluded.name, roles = excluded.roles,
                        address_region = excluded.address_region,
                        address_locality = excluded.address_locality,
                        contact_email = excluded.contact_email,
                        contact_telephone = excluded.contact_telephone
                    """,
                    rows,
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store parties for {release_id}: {e}") from e
        return len(rows)

    def upsert_documents(self, release_id: str, documents: list[ReleaseDocument]) -> int:
        """
        Upsert document rows for a release, keyed by (release_id, document_id).
        Documents without an id are keyed by url, then by position.
        """
        rows = [
            (
                release_id,
                doc.id or doc.url or f"document-{index}",
                _or_none(doc.document_type),
                _or_none(doc.title),
                _or_none(doc.description),
                _or_none(doc.url),
                _or_none(doc.format),
                _or_none(doc.date_published),
            )
            for index, doc in enumerate(documents)
        ]
        if not rows:
            return 0
        try:
            with self._connection() as conn:
                conn.executemany(
                    """
                    INSERT INTO documents (release_id, document_id, document_type, title,
                                           description, url, format, date_published)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(release_id, document_id) DO UPDATE SET
                        document_type = excluded.document_type, title = excluded.title,
                        description = excluded.description, url = excluded.url,
                        format = excluded.format, date_published = excluded.date_published
                    """,
                    rows,
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to store documents for {release_id}: {e}") from e
        return len(rows)

    def _where(self, filters: SearchFilters) -> tuple[str, list[Any]]:
        """Build the WHERE clause for search filters."""
        clauses: list[str] = []
        params: list[Any] = []

        if filters.keyword and filters.keyword.strip():
            pattern = _like_pattern(filters.keyword.strip())
            clauses.append(
                "(casefold(title) LIKE ? ESCAPE '\\' OR casefold(description) LIKE ? ESCAPE '\\'"
                " OR casefold(buyer_name) LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern] * 3)

        for column, values in (
            ("buyer_name", filters.entities),
            ("main_procurement_category", filters.categories),
            ("procurement_method", filters.methods),
            ("status", filters.statuses),
        ):
            if values:
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(values)

        if filters.regions:
            clauses.append(
                "EXISTS (SELECT 1 FROM parties p WHERE p.release_id = releases.id"
                f" AND p.address_region IN ({', '.join('?' for _ in filters.regions)}))"
            )
            params.extend(filters.regions)

        if filters.min_budget is not None:
            clauses.append("budget_amount >= ?")
            params.append(filters.min_budget)
        if filters.max_budget is not None:
            clauses.append("budget_amount <= ?")
            params.append(filters.max_budget)

        # Date bounds match published_date OR created_at so rows without a
        # published date still show up in ranged searches.
        if filters.start_date:
            start = filters.start_date.isoformat()
            clauses.append("(published_date >= ? OR created_at >= ?)")
            params.extend([start, start])
        if filters.end_date:
            end_exclusive = (filters.end_date + timedelta(days=1)).isoformat()
            clauses.append("(published_date < ? OR created_at < ?)")
            params.extend([end_exclusive, end_exclusive])

        if filters.is_active:
            clauses.append("status = 'active'")
        if filters.has_documents is not None:
            exists = "EXISTS (SELECT 1 FROM documents d WHERE d.release_id = releases.id)"
            clauses.append(exists if filters.has_documents else f"NOT {exists}")

        where = " WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    def search(self, filters: Optional[SearchFilters] = None) -> SearchResult:
        """
        Filtered, paginated search. Newest created first, ties broken by ocid
        so page boundaries are deterministic.
        """
        filters = filters or SearchFilters()
        where, params = self._where(filters)
        offset = (filters.page - 1) * filters.page_size
        try:
            with self._connection() as conn:
                total = conn.execute(f"SELECT COUNT(*) FROM releases{where}", params).fetchone()[0]
                rows = conn.execute(
                    f"SELECT * FROM releases{where} ORDER BY created_at DESC, ocid ASC LIMIT ? OFFSET ?",
                    [*params, filters.page_size, offset],
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Search failed: {e}") from e
        return SearchResult(
            releases=[self._deserialize(r) for r in rows],
            total=total,
            page=filters.page,
            total_pages=math.ceil(total / filters.page_size),
        )

    def get_filter_options(self) -> FilterOptions:
        """Distinct non-null values for each selector, queried independently."""
        queries = {
            "entities": "SELECT DISTINCT buyer_name FROM releases WHERE buyer_name IS NOT NULL ORDER BY buyer_name",
            "regions": "SELECT DISTINCT address_region FROM parties WHERE address_region IS NOT NULL ORDER BY address_region",
            "categories": (
                "SELECT DISTINCT main_procurement_category FROM releases"
                " WHERE main_procurement_category IS NOT NULL ORDER BY main_procurement_category"
            ),
            "methods": (
                "SELECT DISTINCT procurement_method FROM releases"
                " WHERE procurement_method IS NOT NULL ORDER BY procurement_method"
            ),
        }
        options: dict[str, list[str]] = {}
        try:
            with self._connection() as conn:
                for name, sql in queries.items():
                    options[name] = [row[0] for row in conn.execute(sql).fetchall()]
        except sqlite3.Error as e:
            raise StorageError(f"Could not load filter options: {e}") from e
        return FilterOptions(**options)

    def get_release(self, key: str) -> Optional[PersistedRelease]:
        """Get a stored release by ocid (or fallback id key)."""
        try:
            with self._connection() as conn:
                row = conn.execute("SELECT * FROM releases WHERE ocid = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Could not load release {key}: {e}") from e
        return self._deserialize(row) if row else None

    def count(self) -> int:
        try:
            with self._connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM releases").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"Could not count releases: {e}") from e

    def start_run(self, source: str) -> RunRecord:
        """Record start of an ingestion run. Returns RunRecord with id."""
        now = self._now()
        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO runs (source, started_at, status) VALUES (?, ?, 'running')",
                    (source, now),
                )
                run_id = cursor.lastrowid
        except sqlite3.Error as e:
            raise StorageError(f"Could not record run start for {source}: {e}") from e
        return RunRecord(
            id=run_id or 0,
            source=source,
            started_at=datetime.fromisoformat(now),
            finished_at=None,
            status="running",
            items_processed=0,
            items_successful=0,
            items_failed=0,
        )

    def finish_run(
        self,
        run_id: int,
        items_processed: int,
        items_successful: int,
        items_failed: int,
        status: str = "completed",
    ) -> None:
        """Record completion of an ingestion run."""
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    UPDATE runs SET finished_at = ?, status = ?, items_processed = ?,
                                    items_successful = ?, items_failed = ?
                    WHERE id = ?
                    """,
                    (self._now(), status, items_processed, items_successful, items_failed, run_id),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Could not record completion of run {run_id}: {e}") from e

    def list_runs(self, limit: int = 20) -> list[RunRecord]:
        """Most recent runs first."""
        try:
            with self._connection() as conn:
                rows = conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Could not list runs: {e}") from e
        return [
            RunRecord(
                id=r["id"],
                source=r["source"],
                started_at=datetime.fromisoformat(r["started_at"]),
                finished_at=datetime.fromisoformat(r["finished_at"]) if r["finished_at"] else None,
                status=r["status"],
                items_processed=r["items_processed"],
                items_successful=r["items_successful"],
                items_failed=r["items_failed"],
            )
            for r in rows
        ]
