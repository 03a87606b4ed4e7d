"""Environment-driven settings."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from compras_rd.errors import ConfigError

ENV_PREFIX = "COMPRAS_RD_"


class Settings(BaseModel):
    """Runtime settings shared by the CLI, connectors and store."""

    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    db_path: Path = Path("compras_rd.db")
    timeout: float = Field(default=30.0, gt=0)
    page_limit: int = Field(default=100, gt=0)
    detail_cap: int = Field(default=20, ge=0)
    request_delay: float = Field(default=1.0, ge=0)

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None) -> "Settings":
        """Build settings from COMPRAS_RD_* variables; unset ones keep defaults."""
        env = os.environ if environ is None else environ
        values: dict = {}
        for name, caster in (
            ("api_base_url", str),
            ("api_key", str),
            ("db_path", Path),
            ("timeout", float),
            ("page_limit", int),
            ("detail_cap", int),
            ("request_delay", float),
        ):
            raw = (env.get(ENV_PREFIX + name.upper()) or "").strip()
            if not raw:
                continue
            try:
                values[name] = caster(raw)
            except ValueError as e:
                raise ConfigError(f"Invalid {ENV_PREFIX}{name.upper()}: {raw!r}") from e
        try:
            return cls.model_validate(values)
        except ValueError as e:
            raise ConfigError(str(e)) from e
