"""DGCP (Dominican Republic) OCDS API connector."""

from .connector import DGCPConnector

__all__ = ["DGCPConnector"]
