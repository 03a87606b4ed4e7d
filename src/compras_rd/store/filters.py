"""Search filters and result shapes for the release store."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from compras_rd.models.release import CanonicalRelease


class SearchFilters(BaseModel):
    """Filters accepted by ReleaseStore.search. Empty lists mean no restriction."""

    keyword: Optional[str] = None
    entities: list[str] = Field(default_factory=list, description="Buyer names")
    regions: list[str] = Field(default_factory=list, description="Party address regions")
    categories: list[str] = Field(default_factory=list)
    methods: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    min_budget: Optional[float] = None
    max_budget: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    has_documents: Optional[bool] = None
    is_active: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=500)


class PersistedRelease(BaseModel):
    """Stored release row: flattened canonical fields plus the full canonical JSON."""

    id: str
    ocid: str
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    procurement_method: Optional[str] = None
    procurement_method_details: Optional[str] = None
    main_procurement_category: Optional[str] = None
    submission_method: Optional[list[str]] = None
    budget_amount: Optional[float] = None
    budget_currency: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    buyer_id: Optional[str] = None
    buyer_name: Optional[str] = None
    published_date: Optional[str] = None
    tender_period_start: Optional[str] = None
    tender_period_end: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def to_release(self) -> CanonicalRelease:
        """Rebuild the canonical release from raw_data."""
        return CanonicalRelease.model_validate(self.raw_data)


class SearchResult(BaseModel):
    releases: list[PersistedRelease] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0


class FilterOptions(BaseModel):
    """Distinct values used to populate search selectors."""

    entities: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    methods: list[str] = Field(default_factory=list)
