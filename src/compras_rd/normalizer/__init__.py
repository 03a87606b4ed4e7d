"""Release normalization: raw upstream payloads to canonical releases."""

from .engine import normalize_document, normalize_party, normalize_release, unwrap_release
from .paths import get_path, is_empty, resolve

__all__ = [
    "get_path",
    "is_empty",
    "normalize_document",
    "normalize_party",
    "normalize_release",
    "resolve",
    "unwrap_release",
]
