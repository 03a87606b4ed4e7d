"""Pytest fixtures for compras-rd tests."""

import copy
import tempfile
from pathlib import Path
from typing import Any, Optional

import pytest

from compras_rd.connectors.base import BaseReleaseSource, Pagination, ReleaseWindow
from compras_rd.errors import RemoteSourceError
from compras_rd.models.raw import RawRelease
from compras_rd.store import ReleaseStore

SAMPLE_RELEASE: dict[str, Any] = {
    "id": "DGCP-CM-2024-0001-1",
    "ocid": "ocds-6550wx-DGCP-CM-2024-0001",
    "date": "2024-01-03T09:00:00-04:00",
    "publishedDate": "2024-01-03T10:30:00-04:00",
    "tag": ["tender"],
    "initiationType": "tender",
    "language": "es",
    "buyer": {"id": "DO-RPE-1001", "name": "Ministerio de Educación"},
    "parties": [
        {
            "id": "DO-RPE-1001",
            "name": "Ministerio de Educación",
            "identifier": {"scheme": "DO-RPE", "id": "1001", "legalName": "Ministerio de Educación de la República Dominicana"},
            "address": {"locality": "Santo Domingo de Guzmán", "region": "Distrito Nacional", "countryName": "República Dominicana"},
            "contactPoint": {"name": "Compras", "email": "compras@minerd.gob.do", "telephone": "809-555-0100"},
            "roles": ["buyer", "procuringEntity"],
        },
        {
            "id": "DO-RPE-2002",
            "name": "Suplidora del Caribe SRL",
            "address": {"locality": "Santiago de los Caballeros"},
            "roles": ["tenderer"],
        },
    ],
    "planning": {
        "budget": {"amount": {"amount": 2500000, "currency": "DOP"}, "description": "Presupuesto 2024"},
        "rationale": "Equipamiento escolar",
    },
    "tender": {
        "id": "MINERD-CCC-LPN-2024-0001",
        "title": "Adquisición de mobiliario escolar",
        "description": "Compra de pupitres y pizarras para centros educativos",
        "status": "active",
        "procurementMethod": "open",
        "procurementMethodDetails": "Licitación Pública Nacional",
        "mainProcurementCategory": "goods",
        "submissionMethod": ["electronicSubmission"],
        "tenderPeriod": {"startDate": "2024-01-04T08:00:00-04:00", "endDate": "2024-02-01T10:00:00-04:00"},
        "enquiryPeriod": {"startDate": "2024-01-04T08:00:00-04:00", "endDate": "2024-01-20T17:00:00-04:00"},
        "value": {"amount": 2350000.5, "currency": "DOP"},
        "documents": [
            {
                "id": "DOC-1",
                "documentType": "biddingDocuments",
                "title": "Pliego de condiciones",
                "url": "https://comunidad.comprasdominicana.gob.do/docs/pliego.pdf",
                "format": "application/pdf",
                "datePublished": "2024-01-03T10:30:00-04:00",
            },
            {"id": "DOC-2", "url": "https://comunidad.comprasdominicana.gob.do/docs/anexo.pdf"},
        ],
    },
    "awards": [{"id": "AW-1", "status": "pending"}],
}


def make_raw(ocid: str, **overrides: Any) -> dict[str, Any]:
    """Copy of the sample release with a new ocid and top-level overrides."""
    data = copy.deepcopy(SAMPLE_RELEASE)
    data["ocid"] = ocid
    data["id"] = f"{ocid}-1"
    data.update(overrides)
    return data


class FakeReleaseSource(BaseReleaseSource):
    """
    In-memory release source. ``windows`` maps date_from to a list of raw
    dicts (one page) or to an exception raised for that window.
    """

    source_id = "fake"

    def __init__(
        self,
        windows: Optional[dict[str, Any]] = None,
        details: Optional[dict[str, dict[str, Any]]] = None,
    ):
        self.windows = windows or {}
        self.details = details or {}
        self.window_calls: list[tuple[str, str, int]] = []
        self.detail_calls: list[str] = []

    def fetch_window(self, date_from, date_to, page=1, limit=None) -> ReleaseWindow:
        self.window_calls.append((date_from, date_to, page))
        entry = self.windows.get(date_from, [])
        if isinstance(entry, BaseException):
            raise entry
        return ReleaseWindow(
            raw_releases=[RawRelease(data=copy.deepcopy(r)) for r in entry],
            pagination=Pagination(page=page, total_pages=1, total_releases=len(entry)),
        )

    def fetch_detail(self, natural_key: str) -> RawRelease:
        self.detail_calls.append(natural_key)
        detail = self.details.get(natural_key)
        if detail is None:
            raise RemoteSourceError(f"no detail for {natural_key}")
        return RawRelease(data=copy.deepcopy(detail))


@pytest.fixture
def sample_release_data() -> dict[str, Any]:
    """Deep copy of a realistic DGCP release."""
    return copy.deepcopy(SAMPLE_RELEASE)


@pytest.fixture
def temp_db() -> Path:
    """Temporary database path for isolated tests."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def store(temp_db: Path) -> ReleaseStore:
    """ReleaseStore with temporary database."""
    return ReleaseStore(temp_db)
