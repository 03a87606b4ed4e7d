"""Abstract base class for remote release sources."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from compras_rd.errors import RemoteSourceError
from compras_rd.models.raw import RawRelease
from compras_rd.models.release import CanonicalRelease
from compras_rd.normalizer import normalize_release

logger = logging.getLogger(__name__)


class Pagination(BaseModel):
    """Pagination block reported by a window listing."""

    page: int = 1
    total_pages: int = 1
    total_releases: int = 0
    releases_per_page: int = 100


class ReleaseWindow(BaseModel):
    """One page of raw releases for a date window."""

    raw_releases: list[RawRelease] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class RemoteSearchResult(BaseModel):
    """Normalized releases of one remote page, after any client-side filtering."""

    releases: list[CanonicalRelease] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class BaseReleaseSource(ABC):
    """
    Standard interface for upstream release APIs.
    Sources list releases per date window, fetch per-release detail and
    normalize raw records into CanonicalRelease.
    """

    source_id: str = ""

    @abstractmethod
    def fetch_window(
        self,
        date_from: str,
        date_to: str,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ReleaseWindow:
        """
        List raw releases published between two inclusive YYYY-MM-DD dates.
        page is 1-based.
        """
        pass

    @abstractmethod
    def fetch_detail(self, natural_key: str) -> RawRelease:
        """
        Fetch the full record for one release by its ocid.
        """
        pass

    def normalize(self, raw: RawRelease) -> CanonicalRelease:
        """Convert a raw record to CanonicalRelease."""
        return normalize_release(raw)

    def enrich(self, raw: RawRelease) -> RawRelease:
        """
        Replace a list-level summary with its full detail record.
        Falls back to the summary when there is no key or the detail fetch fails.
        """
        key = raw.natural_key
        if not key:
            logger.warning("Release without ocid or id; using summary data")
            return raw
        try:
            return self.fetch_detail(key)
        except RemoteSourceError as e:
            logger.warning("Failed to fetch detail for %s, using summary: %s", key, e)
            return raw

    def fetch_normalized(
        self,
        date_from: str,
        date_to: str,
        page: int = 1,
        *,
        detail_cap: int = 20,
        limit: Optional[int] = None,
    ) -> list[CanonicalRelease]:
        """
        List one page, enrich the first detail_cap releases with their detail
        record and normalize everything. Releases past the cap keep summary data.
        """
        return self.normalize_window(self.fetch_window(date_from, date_to, page, limit=limit), detail_cap)

    def normalize_window(self, window: ReleaseWindow, detail_cap: int = 20) -> list[CanonicalRelease]:
        results: list[CanonicalRelease] = []
        for index, raw in enumerate(window.raw_releases):
            if index < detail_cap:
                raw = self.enrich(raw)
            results.append(self.normalize(raw))
        return results
