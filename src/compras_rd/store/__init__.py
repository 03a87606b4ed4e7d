"""Local storage for releases, parties, documents and run history."""

from compras_rd.store.filters import FilterOptions, PersistedRelease, SearchFilters, SearchResult
from compras_rd.store.sqlite_store import ReleaseStore, RunRecord

__all__ = [
    "FilterOptions",
    "PersistedRelease",
    "ReleaseStore",
    "RunRecord",
    "SearchFilters",
    "SearchResult",
]
