"""Canonical procurement release model.

Attributes are snake_case; serialized keys follow OCDS camelCase so that a
stored release can be fed back through the normalizer unchanged.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_CURRENCY = "DOP"
DEFAULT_LANGUAGE = "es"
DEFAULT_COUNTRY = "Dominican Republic"
UNSPECIFIED = "No especificado"
UNSPECIFIED_BUYER = "Entidad no especificada"
UNTITLED = "Título no disponible"
NO_DESCRIPTION = "Descripción no disponible"
UNKNOWN_STATUS = "unknown"


class OCDSModel(BaseModel):
    """Base for canonical parts: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_ocds(self) -> dict[str, Any]:
        """JSON-ready dict with OCDS keys."""
        return self.model_dump(mode="json", by_alias=True)


class Period(OCDSModel):
    start_date: str = ""
    end_date: str = ""


class Value(OCDSModel):
    amount: float = 0.0
    currency: str = DEFAULT_CURRENCY


class Identifier(OCDSModel):
    scheme: str = ""
    id: str = ""
    legal_name: str = ""


class Address(OCDSModel):
    locality: str = ""
    region: str = UNSPECIFIED
    country_name: str = DEFAULT_COUNTRY


class ContactPoint(OCDSModel):
    name: str = ""
    email: str = ""
    telephone: str = ""


class Party(OCDSModel):
    """Organization involved in a release; roles behave as a set."""

    id: str = ""
    name: str = "Unnamed party"
    identifier: Identifier = Field(default_factory=Identifier)
    address: Address = Field(default_factory=Address)
    contact_point: ContactPoint = Field(default_factory=ContactPoint)
    roles: list[str] = Field(default_factory=list)

    def has_role(self, role: str) -> bool:
        return role in self.roles


class Buyer(OCDSModel):
    id: str = ""
    name: str = UNSPECIFIED_BUYER


class ReleaseDocument(OCDSModel):
    id: str = ""
    document_type: str = "Unknown type"
    title: str = "Untitled document"
    description: str = ""
    url: str = ""
    date_published: str = ""
    date_modified: str = ""
    format: str = ""
    language: str = DEFAULT_LANGUAGE


class Budget(OCDSModel):
    amount: Value = Field(default_factory=Value)
    description: str = ""


class Planning(OCDSModel):
    budget: Budget = Field(default_factory=Budget)
    rationale: str = ""


class Tender(OCDSModel):
    id: str = ""
    title: str = UNTITLED
    description: str = NO_DESCRIPTION
    status: str = UNKNOWN_STATUS
    procurement_method: str = UNSPECIFIED
    procurement_method_details: str = ""
    main_procurement_category: str = UNSPECIFIED
    submission_method: list[str] = Field(default_factory=list)
    submission_method_details: str = ""
    tender_period: Period = Field(default_factory=Period)
    enquiry_period: Period = Field(default_factory=Period)
    has_enquiries: bool = False
    eligibility_criteria: str = ""
    award_criteria: str = ""
    award_criteria_details: str = ""
    value: Value = Field(default_factory=Value)
    documents: list[ReleaseDocument] = Field(default_factory=list)


class CanonicalRelease(OCDSModel):
    """Normalized unit of work; every field is present and typed."""

    id: str = ""
    ocid: str = ""
    date: str = ""
    published_date: str = ""
    tag: list[str] = Field(default_factory=list)
    initiation_type: str = ""
    language: str = DEFAULT_LANGUAGE
    buyer: Buyer = Field(default_factory=Buyer)
    parties: list[Party] = Field(default_factory=list)
    planning: Planning = Field(default_factory=Planning)
    tender: Tender = Field(default_factory=Tender)
    awards: list[dict[str, Any]] = Field(default_factory=list)
    contracts: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def natural_key(self) -> str:
        """Persistence key: ocid, or id when the upstream omitted the ocid."""
        return self.ocid or self.id

    @property
    def has_stable_key(self) -> bool:
        """True only when upserts of this release are guaranteed idempotent."""
        return bool(self.ocid)

    @property
    def documents(self) -> list[ReleaseDocument]:
        return self.tender.documents

    def buyer_party(self) -> Party | None:
        """First party holding the buyer role, if any."""
        return next((p for p in self.parties if p.has_role("buyer")), None)

    @property
    def buyer_region(self) -> str:
        party = self.buyer_party()
        return party.address.region if party else UNSPECIFIED
