"""Remote release sources."""

from compras_rd.connectors.base import BaseReleaseSource, Pagination, ReleaseWindow, RemoteSearchResult
from compras_rd.connectors.registry import ConnectorRegistry

__all__ = ["BaseReleaseSource", "ConnectorRegistry", "Pagination", "ReleaseWindow", "RemoteSearchResult"]
