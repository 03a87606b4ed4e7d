"""DGCP connector for the Dominican Republic OCDS procurement API.

The API exposes date-window listings (``/date/{from}/{to}/{page}``) whose
records are partial summaries, and a per-release detail endpoint
(``/release/{ocid}``) carrying the full tender. Listings by purchasing
institution (``/uc/{name}/{page}``) back the live search.
"""

import logging
import os
from datetime import date, timedelta
from typing import Any, Optional
from urllib.parse import quote

import httpx

from compras_rd.connectors.base import BaseReleaseSource, ReleaseWindow, RemoteSearchResult
from compras_rd.errors import ConnectivityError, MalformedResponseError, RemoteSourceError, UpstreamError
from compras_rd.models.raw import RawRelease

from .constants import (
    BASE_URL,
    CONNECTIVITY_MESSAGE,
    DATE_WINDOW_PATH,
    DEFAULT_DETAIL_CAP,
    DEFAULT_PAGE_LIMIT,
    DEFAULT_RANGE_DAYS,
    INSTITUTION_PATH,
    RELEASE_PATH,
)
from .parsers import extract_release_array, parse_pagination

logger = logging.getLogger(__name__)


def default_date_range(today: Optional[date] = None, days: int = DEFAULT_RANGE_DAYS) -> tuple[str, str]:
    """Inclusive (from, to) ISO dates covering the last ``days`` days up to today."""
    today = today or date.today()
    return (today - timedelta(days=days)).isoformat(), today.isoformat()


def _day(value: str) -> str:
    return value[:10]


def _within(value: str, low: str, high: str) -> bool:
    """Releases without a date are kept."""
    if not value:
        return True
    return low <= _day(value) <= high


class DGCPConnector(BaseReleaseSource):
    """
    Connector for the DGCP open contracting API.
    Fetches release windows and release details as loosely typed JSON trees.
    """

    source_id = "dgcp"

    DEFAULT_HEADERS = {
        "User-Agent": "compras-rd/0.1 (Dominican procurement aggregator)",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        timeout: float = 30.0,
    ):
        """
        Args:
            client: Optional httpx client (tests pass one with a MockTransport)
            base_url: Override API root; defaults to COMPRAS_RD_API_BASE_URL or BASE_URL
            api_key: Sent as a bearer token when set; defaults to COMPRAS_RD_API_KEY
            page_limit: Default ``limit`` query parameter for listings
            timeout: Transport timeout in seconds for the default client
        """
        self._base_url = (
            base_url or os.environ.get("COMPRAS_RD_API_BASE_URL") or BASE_URL
        ).rstrip("/")
        api_key = api_key or os.environ.get("COMPRAS_RD_API_KEY")
        headers = dict(self.DEFAULT_HEADERS)
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._page_limit = page_limit
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
        )

    def _get_json(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """GET an endpoint and decode JSON, mapping failures to the error taxonomy."""
        url = self._base_url + endpoint
        logger.debug("GET %s params=%s", url, params)
        try:
            resp = self._client.get(url, params=params, headers=self._headers)
        except httpx.TransportError as e:
            logger.warning("Transport failure for %s: %s", url, e)
            raise ConnectivityError(CONNECTIVITY_MESSAGE) from e

        if not resp.is_success:
            logger.warning("API Error: %s - %s (%s)", resp.status_code, resp.reason_phrase, url)
            raise UpstreamError(resp.status_code, resp.reason_phrase)

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response from {endpoint} is not valid JSON") from e

    def _listing(self, endpoint: str, page: int, limit: Optional[int]) -> ReleaseWindow:
        payload = self._get_json(endpoint, params={"limit": limit or self._page_limit})
        releases = extract_release_array(payload)
        logger.info("Found %d releases at %s", len(releases), endpoint)
        return ReleaseWindow(
            raw_releases=[RawRelease(data=r) for r in releases],
            pagination=parse_pagination(payload, page, len(releases)),
        )

    def fetch_window(
        self,
        date_from: str,
        date_to: str,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ReleaseWindow:
        """List releases for an inclusive date window (YYYY-MM-DD)."""
        if page < 1:
            raise ValueError("page is 1-based")
        endpoint = DATE_WINDOW_PATH.format(date_from=date_from, date_to=date_to, page=page)
        return self._listing(endpoint, page, limit)

    def fetch_by_institution(
        self,
        institution: str,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> ReleaseWindow:
        """List releases of one purchasing institution (unidad de compra) by name."""
        if not institution or not institution.strip():
            raise ValueError("Institution name is required")
        endpoint = INSTITUTION_PATH.format(institution=quote(institution.strip(), safe=""), page=page)
        return self._listing(endpoint, page, limit)

    def fetch_detail(self, natural_key: str) -> RawRelease:
        """Fetch full release data by ocid."""
        if not natural_key or not natural_key.strip():
            raise ValueError("Release ID is required")
        endpoint = RELEASE_PATH.format(ocid=quote(natural_key.strip(), safe=""))
        payload = self._get_json(endpoint)
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Release detail for {natural_key} is not an object")
        return RawRelease(data=payload)

    def fetch_current(
        self,
        page: int = 1,
        *,
        detail_cap: int = DEFAULT_DETAIL_CAP,
        today: Optional[date] = None,
    ) -> RemoteSearchResult:
        """Normalized releases of the last 30 days."""
        date_from, date_to = default_date_range(today)
        window = self.fetch_window(date_from, date_to, page)
        return RemoteSearchResult(releases=self.normalize_window(window, detail_cap), pagination=window.pagination)

    def search_remote(
        self,
        *,
        institution: Optional[str] = None,
        keyword: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        page: int = 1,
        detail_cap: int = DEFAULT_DETAIL_CAP,
        today: Optional[date] = None,
    ) -> RemoteSearchResult:
        """
        Search the live API without touching the store.

        With an institution the ``/uc/`` listing is used, falling back to a
        date-window search if it fails. Missing dates default to the last 30
        days. Keyword matching (tender title, tender description, buyer name)
        and, for institution listings, the date range are applied client-side
        to the page; pagination.total_releases then counts the matches.
        """
        default_from, default_to = default_date_range(today)
        window = None
        if institution and institution.strip():
            try:
                window = self.fetch_by_institution(institution, page)
            except RemoteSourceError as e:
                logger.warning("Institution search failed, falling back to date search: %s", e)
        by_institution = window is not None
        if window is None:
            window = self.fetch_window(date_from or default_from, date_to or default_to, page)

        releases = self.normalize_window(window, detail_cap)
        filtered = False
        if keyword:
            needle = keyword.casefold()
            releases = [
                r
                for r in releases
                if needle in r.tender.title.casefold()
                or needle in r.tender.description.casefold()
                or needle in r.buyer.name.casefold()
            ]
            filtered = True
        if by_institution and (date_from or date_to):
            low, high = _day(date_from or default_from), _day(date_to or default_to)
            releases = [r for r in releases if _within(r.date or r.published_date, low, high)]
            filtered = True

        pagination = window.pagination
        if filtered:
            logger.info("Filtered %d releases down to %d", len(window.raw_releases), len(releases))
            pagination = pagination.model_copy(update={"total_releases": len(releases)})
        return RemoteSearchResult(releases=releases, pagination=pagination)

