"""Declarative fallback chains for every canonical release field.

Each rule lists accessor paths in priority order; the first non-empty value
wins and is coerced to the field's type, otherwise the typed default applies.
The upstream API is inconsistent about nesting records under ``release`` and
about which synonymous field carries data, hence the ``twin`` pairs.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from compras_rd.models.release import (
    DEFAULT_COUNTRY,
    DEFAULT_CURRENCY,
    DEFAULT_LANGUAGE,
    NO_DESCRIPTION,
    UNKNOWN_STATUS,
    UNSPECIFIED,
    UNSPECIFIED_BUYER,
    UNTITLED,
)

from .paths import Accessor, first_with_role, resolve, twin


def as_str(value: Any, default: str) -> str:
    if isinstance(value, (Mapping, list)):
        return default
    text = str(value).strip()
    return text or default


def as_float(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "si", "sí")
    return bool(value)


def as_str_list(value: Any, default: list) -> list[str]:
    """Strings in order of appearance, duplicates and blanks removed."""
    items = value if isinstance(value, (list, tuple)) else [value]
    seen: list[str] = []
    for item in items:
        if isinstance(item, (Mapping, list)) or item is None:
            continue
        text = str(item).strip()
        if text and text not in seen:
            seen.append(text)
    return seen or list(default)


def as_mapping_list(value: Any, default: list) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return list(default)
    return [dict(item) for item in value if isinstance(item, Mapping)]


@dataclass(frozen=True)
class FieldRule:
    """Ordered accessors, typed default and coercion for one canonical field."""

    accessors: tuple[Accessor, ...]
    default: Any = ""
    coerce: Callable[[Any, Any], Any] = as_str

    def apply(self, record: Mapping) -> Any:
        default = self.default() if callable(self.default) else self.default
        value = resolve(record, self.accessors)
        return default if value is None else self.coerce(value, default)


def _rule(*accessors: Accessor, default: Any = "", coerce: Callable[[Any, Any], Any] = as_str) -> FieldRule:
    return FieldRule(tuple(accessors), default, coerce)


RELEASE_RULES: dict[str, FieldRule] = {
    "id": _rule(*twin("id")),
    "ocid": _rule(*twin("ocid")),
    "date": _rule(*twin("date")),
    "published_date": _rule(*twin("publishedDate"), "date"),
    "tag": _rule(*twin("tag"), default=list, coerce=as_str_list),
    "initiation_type": _rule(*twin("initiationType")),
    "language": _rule(*twin("language"), default=DEFAULT_LANGUAGE),
    "awards": _rule(*twin("awards"), default=list, coerce=as_mapping_list),
    "contracts": _rule(*twin("contracts"), default=list, coerce=as_mapping_list),
}

BUYER_RULES: dict[str, FieldRule] = {
    "id": _rule(*twin("buyer.id")),
    "name": _rule(
        *twin("buyer.name"),
        *twin("tender.procuringEntity.name"),
        first_with_role("parties", "buyer", "name"),
        first_with_role("release.parties", "buyer", "name"),
        default=UNSPECIFIED_BUYER,
    ),
}

TENDER_RULES: dict[str, FieldRule] = {
    "id": _rule(*twin("tender.id")),
    "title": _rule(*twin("tender.title"), "title", default=UNTITLED),
    "description": _rule(*twin("tender.description"), "description", default=NO_DESCRIPTION),
    "status": _rule(*twin("tender.status"), default=UNKNOWN_STATUS),
    "procurement_method": _rule(
        *twin("tender.procurementMethodDetails"),
        *twin("tender.procurementMethod"),
        default=UNSPECIFIED,
    ),
    "procurement_method_details": _rule(*twin("tender.procurementMethodDetails")),
    "main_procurement_category": _rule(*twin("tender.mainProcurementCategory"), default=UNSPECIFIED),
    "submission_method": _rule(*twin("tender.submissionMethod"), default=list, coerce=as_str_list),
    "submission_method_details": _rule(*twin("tender.submissionMethodDetails")),
    "has_enquiries": _rule(*twin("tender.hasEnquiries"), default=False, coerce=as_bool),
    "eligibility_criteria": _rule(*twin("tender.eligibilityCriteria")),
    "award_criteria": _rule(*twin("tender.awardCriteria")),
    "award_criteria_details": _rule(*twin("tender.awardCriteriaDetails")),
}

TENDER_PERIOD_RULES: dict[str, FieldRule] = {
    "start_date": _rule(*twin("tender.tenderPeriod.startDate"), "date"),
    "end_date": _rule(*twin("tender.tenderPeriod.endDate")),
}

ENQUIRY_PERIOD_RULES: dict[str, FieldRule] = {
    "start_date": _rule(*twin("tender.enquiryPeriod.startDate")),
    "end_date": _rule(*twin("tender.enquiryPeriod.endDate")),
}

TENDER_VALUE_RULES: dict[str, FieldRule] = {
    "amount": _rule(
        *twin("tender.value.amount"),
        *twin("planning.budget.amount.amount"),
        default=0.0,
        coerce=as_float,
    ),
    "currency": _rule(
        *twin("tender.value.currency"),
        *twin("planning.budget.amount.currency"),
        default=DEFAULT_CURRENCY,
    ),
}

PLANNING_RULES: dict[str, FieldRule] = {
    "amount": _rule(*twin("planning.budget.amount.amount"), default=0.0, coerce=as_float),
    "currency": _rule(*twin("planning.budget.amount.currency"), default=DEFAULT_CURRENCY),
    "description": _rule(*twin("planning.budget.description")),
    "rationale": _rule(*twin("planning.rationale")),
}

PARTIES_PATHS: tuple[str, ...] = twin("parties")
DOCUMENTS_PATHS: tuple[str, ...] = twin("tender.documents")

# Element-level rules: paths are relative to one party / document entry.
PARTY_RULES: dict[str, FieldRule] = {
    "id": _rule("id"),
    "name": _rule("name", default="Unnamed party"),
    "roles": _rule("roles", default=list, coerce=as_str_list),
}

PARTY_IDENTIFIER_RULES: dict[str, FieldRule] = {
    "scheme": _rule("identifier.scheme"),
    "id": _rule("identifier.id"),
    "legal_name": _rule("identifier.legalName"),
}

PARTY_ADDRESS_RULES: dict[str, FieldRule] = {
    "locality": _rule("address.locality"),
    "region": _rule("address.region", "address.locality", default=UNSPECIFIED),
    "country_name": _rule("address.countryName", default=DEFAULT_COUNTRY),
}

PARTY_CONTACT_RULES: dict[str, FieldRule] = {
    "name": _rule("contactPoint.name"),
    "email": _rule("contactPoint.email"),
    "telephone": _rule("contactPoint.telephone"),
}

DOCUMENT_RULES: dict[str, FieldRule] = {
    "id": _rule("id"),
    "document_type": _rule("documentType", default="Unknown type"),
    "title": _rule("title", default="Untitled document"),
    "description": _rule("description"),
    "url": _rule("url"),
    "date_published": _rule("datePublished"),
    "date_modified": _rule("dateModified"),
    "format": _rule("format"),
    "language": _rule("language", default=DEFAULT_LANGUAGE),
}


def apply_rules(record: Mapping, rules: dict[str, FieldRule]) -> dict[str, Any]:
    """Resolve every rule against a record; keys are canonical attribute names."""
    return {name: rule.apply(record) for name, rule in rules.items()}
