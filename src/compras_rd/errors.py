"""Exception hierarchy for compras-rd."""


class ComprasError(Exception):
    """Base exception for all compras-rd failures."""


class ConfigError(ComprasError):
    """Raised for invalid environment configuration."""


class RemoteSourceError(ComprasError):
    """Raised when the upstream release API cannot serve a request."""


class ConnectivityError(RemoteSourceError):
    """Transport could not reach the upstream API."""


class UpstreamError(RemoteSourceError):
    """Upstream API answered with a non-2xx status."""

    def __init__(self, status: int, status_text: str = ""):
        self.status = status
        self.status_text = status_text
        super().__init__(f"API Error: {status} - {status_text}".rstrip(" -"))


class MalformedResponseError(RemoteSourceError):
    """Upstream payload did not have any recognized shape."""


class StorageError(ComprasError):
    """Persisting or reading a release failed."""


class ConcurrencyError(ComprasError):
    """An ingestion run was requested while another is running."""


class IngestionOptionsError(ComprasError, ValueError):
    """Ingestion request options are invalid."""
