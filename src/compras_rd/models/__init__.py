"""Data models for raw and normalized procurement releases."""

from compras_rd.models.raw import RawRelease
from compras_rd.models.release import (
    Address,
    Buyer,
    CanonicalRelease,
    ContactPoint,
    Party,
    Period,
    ReleaseDocument,
    Tender,
    Value,
)

__all__ = [
    "Address",
    "Buyer",
    "CanonicalRelease",
    "ContactPoint",
    "Party",
    "Period",
    "RawRelease",
    "ReleaseDocument",
    "Tender",
    "Value",
]
