"""Distinct-value helpers over canonical releases for selectors and reports."""

from compras_rd.models.release import CanonicalRelease


def unique_institutions(releases: list[CanonicalRelease]) -> list[str]:
    """Sorted distinct buyer names."""
    return sorted({r.buyer.name for r in releases if r.buyer.name})


def unique_provinces(releases: list[CanonicalRelease]) -> list[str]:
    """Sorted distinct buyer regions; releases without a buyer party count as unspecified."""
    return sorted({r.buyer_region for r in releases})


def unique_modalities(releases: list[CanonicalRelease]) -> list[str]:
    """Sorted distinct procurement methods."""
    return sorted({r.tender.procurement_method for r in releases if r.tender.procurement_method})
