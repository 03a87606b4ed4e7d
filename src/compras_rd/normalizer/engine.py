"""Pure transformation of raw upstream payloads into canonical releases."""

from collections.abc import Mapping
from typing import Any, Union

from compras_rd.models.raw import RawRelease
from compras_rd.models.release import (
    Address,
    Budget,
    Buyer,
    CanonicalRelease,
    ContactPoint,
    Identifier,
    Party,
    Period,
    Planning,
    ReleaseDocument,
    Tender,
    Value,
)

from .paths import resolve
from .rules import (
    BUYER_RULES,
    DOCUMENT_RULES,
    DOCUMENTS_PATHS,
    ENQUIRY_PERIOD_RULES,
    PARTIES_PATHS,
    PARTY_ADDRESS_RULES,
    PARTY_CONTACT_RULES,
    PARTY_IDENTIFIER_RULES,
    PARTY_RULES,
    PLANNING_RULES,
    RELEASE_RULES,
    TENDER_PERIOD_RULES,
    TENDER_RULES,
    TENDER_VALUE_RULES,
    apply_rules,
)


def unwrap_release(record: Mapping) -> Mapping:
    """Some endpoints wrap a single release in a package; use its first release."""
    releases = record.get("releases")
    if isinstance(releases, list) and releases and isinstance(releases[0], Mapping):
        return releases[0]
    return record


def _elements(record: Mapping, paths: tuple[str, ...]) -> list[Mapping]:
    items = resolve(record, paths, default=[])
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def normalize_party(entry: Mapping) -> Party:
    """Map one party entry, defaulting each missing sub-field independently."""
    return Party(
        **apply_rules(entry, PARTY_RULES),
        identifier=Identifier(**apply_rules(entry, PARTY_IDENTIFIER_RULES)),
        address=Address(**apply_rules(entry, PARTY_ADDRESS_RULES)),
        contact_point=ContactPoint(**apply_rules(entry, PARTY_CONTACT_RULES)),
    )


def normalize_document(entry: Mapping) -> ReleaseDocument:
    return ReleaseDocument(**apply_rules(entry, DOCUMENT_RULES))


def normalize_release(raw: Union[RawRelease, Mapping[str, Any]]) -> CanonicalRelease:
    """
    Convert a raw release (flat, nested under ``release`` or wrapped in a
    package) into a fully defaulted CanonicalRelease. No I/O.
    """
    data = raw.data if isinstance(raw, RawRelease) else raw
    if not isinstance(data, Mapping):
        raise TypeError(f"Expected a mapping, got {type(data).__name__}")
    record = unwrap_release(data)

    planning = apply_rules(record, PLANNING_RULES)
    tender = Tender(
        **apply_rules(record, TENDER_RULES),
        tender_period=Period(**apply_rules(record, TENDER_PERIOD_RULES)),
        enquiry_period=Period(**apply_rules(record, ENQUIRY_PERIOD_RULES)),
        value=Value(**apply_rules(record, TENDER_VALUE_RULES)),
        documents=[normalize_document(d) for d in _elements(record, DOCUMENTS_PATHS)],
    )

    return CanonicalRelease(
        **apply_rules(record, RELEASE_RULES),
        buyer=Buyer(**apply_rules(record, BUYER_RULES)),
        parties=[normalize_party(p) for p in _elements(record, PARTIES_PATHS)],
        planning=Planning(
            budget=Budget(
                amount=Value(amount=planning["amount"], currency=planning["currency"]),
                description=planning["description"],
            ),
            rationale=planning["rationale"],
        ),
        tender=tender,
    )
