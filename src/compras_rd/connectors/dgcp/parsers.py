"""Parsers for DGCP listing and detail responses."""

import math
from typing import Any

from compras_rd.connectors.base import Pagination
from compras_rd.errors import MalformedResponseError
from compras_rd.normalizer import get_path

from .constants import DEFAULT_PAGE_LIMIT, RELEASE_ARRAY_PATHS


def extract_release_array(payload: Any) -> list[dict[str, Any]]:
    """
    Locate the release list in a listing payload.
    Tries .data, .data.releases and .releases in that order.
    """
    for path in RELEASE_ARRAY_PATHS:
        candidate = get_path(payload, path)
        if isinstance(candidate, list):
            return [item for item in candidate if isinstance(item, dict)]
    keys = sorted(payload.keys()) if isinstance(payload, dict) else type(payload).__name__
    raise MalformedResponseError(f"Could not find releases array in response (keys: {keys})")


def _positive_int(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_pagination(payload: Any, page: int, found: int) -> Pagination:
    """Read the pagination block, deriving missing values from the page itself."""
    block = get_path(payload, "pagination") if isinstance(payload, dict) else None
    block = block if isinstance(block, dict) else {}
    per_page = _positive_int(block.get("releasesPerPage")) or DEFAULT_PAGE_LIMIT
    total = _positive_int(block.get("totalReleases")) or found
    return Pagination(
        page=_positive_int(block.get("page")) or page,
        total_pages=_positive_int(block.get("totalPages")) or max(1, math.ceil(found / per_page)),
        total_releases=total,
        releases_per_page=per_page,
    )
