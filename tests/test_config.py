"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from compras_rd.config import Settings
from compras_rd.errors import ConfigError


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings.from_env({})
        assert settings.api_base_url is None
        assert settings.db_path == Path("compras_rd.db")
        assert settings.page_limit == 100
        assert settings.detail_cap == 20
        assert settings.request_delay == 1.0

    def test_reads_prefixed_variables(self) -> None:
        settings = Settings.from_env(
            {
                "COMPRAS_RD_API_BASE_URL": "https://mirror.test/api",
                "COMPRAS_RD_API_KEY": "secret",
                "COMPRAS_RD_DB_PATH": "/tmp/releases.db",
                "COMPRAS_RD_PAGE_LIMIT": "50",
                "COMPRAS_RD_DETAIL_CAP": "0",
                "COMPRAS_RD_REQUEST_DELAY": "0.5",
                "UNRELATED": "ignored",
            }
        )
        assert settings.api_base_url == "https://mirror.test/api"
        assert settings.api_key == "secret"
        assert settings.db_path == Path("/tmp/releases.db")
        assert settings.page_limit == 50
        assert settings.detail_cap == 0
        assert settings.request_delay == 0.5

    def test_blank_values_ignored(self) -> None:
        assert Settings.from_env({"COMPRAS_RD_PAGE_LIMIT": "  "}).page_limit == 100

    def test_unparseable_value(self) -> None:
        with pytest.raises(ConfigError, match="COMPRAS_RD_PAGE_LIMIT"):
            Settings.from_env({"COMPRAS_RD_PAGE_LIMIT": "lots"})

    def test_out_of_range_value(self) -> None:
        with pytest.raises(ConfigError):
            Settings.from_env({"COMPRAS_RD_REQUEST_DELAY": "-1"})
