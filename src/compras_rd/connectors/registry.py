"""Registry for discovering and instantiating release sources."""

from typing import Type

from compras_rd.connectors.base import BaseReleaseSource
from compras_rd.connectors.dgcp import DGCPConnector


class ConnectorRegistry:
    """Discovers and provides remote release sources."""

    _connectors: dict[str, Type[BaseReleaseSource]] = {
        "dgcp": DGCPConnector,
    }

    @classmethod
    def get(cls, source_id: str, **kwargs) -> BaseReleaseSource:
        """Get a connector instance for the given source. kwargs passed to connector __init__."""
        connector_cls = cls._connectors.get(source_id.lower())
        if not connector_cls:
            raise ValueError(f"Unknown source: {source_id}. Available: {list(cls._connectors.keys())}")
        return connector_cls(**kwargs)

    @classmethod
    def available_sources(cls) -> list[str]:
        """Return list of available source identifiers."""
        return list(cls._connectors.keys())
