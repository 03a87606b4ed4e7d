"""Dominican Republic public procurement release ingestion."""

__version__ = "0.1.0"
