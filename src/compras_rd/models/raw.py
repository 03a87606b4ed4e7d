"""Raw release representation before normalization."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawRelease(BaseModel):
    """
    Loosely typed release tree as returned by the upstream API.
    The shape varies between endpoints; only the normalizer interprets it.
    """

    model_config = ConfigDict(extra="allow")

    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def natural_key(self) -> str:
        """Best available identifier for detail lookups: ocid, then id."""
        for key in ("ocid", "id"):
            value = self.data.get(key)
            if value is not None and str(value).strip():
                return str(value).strip()
        return ""
