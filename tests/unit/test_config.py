"""Unit tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from elcalc.calculation import CalculationParameters
from elcalc.config import AppConfig, DBConfig, get_config, reload_config
from elcalc.db.connection import display_url, engine_options


class TestAppConfig:
    def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(KeyError, match="DATABASE_URL"):
            AppConfig.from_env()

    def test_defaults(self):
        config = AppConfig.from_env()

        assert config.db.url == "sqlite+aiosqlite:///:memory:"
        assert config.estimation.hourly_rate == 450.0
        assert config.estimation.margin_percentage == 25.0
        assert config.learning.min_component_samples == 3
        assert config.locale.currency_symbol == "kr."
        assert config.offers.templates_path is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("HOURLY_RATE", "525")
        monkeypatch.setenv("DEFAULT_MARGIN_PERCENTAGE", "30")
        monkeypatch.setenv("LEARNING_MIN_SAMPLES", "5")
        monkeypatch.setenv("OFFER_TEMPLATES_PATH", "config/templates.yaml")
        monkeypatch.setenv("DB_ECHO", "true")
        monkeypatch.setenv("OFFER_COMPANY_NAME", "Nordlys El ApS")

        config = AppConfig.from_env()

        assert config.estimation.hourly_rate == 525.0
        assert config.estimation.margin_percentage == 30.0
        assert config.learning.min_component_samples == 5
        assert config.offers.templates_path == Path("config/templates.yaml")
        assert config.db.echo is True
        assert config.offers.company_name == "Nordlys El ApS"

    def test_parameters_from_config(self, monkeypatch):
        monkeypatch.setenv("HOURLY_RATE", "500")

        parameters = CalculationParameters.from_config(AppConfig.from_env())

        assert parameters.hourly_rate == 500.0
        assert parameters.component_time_overrides == {}


class TestSingleton:
    def test_cached(self):
        assert get_config() is get_config()

    def test_reload_reads_environment(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("HOURLY_RATE", "600")

        reloaded = reload_config()

        assert reloaded is not first
        assert reloaded.estimation.hourly_rate == 600.0


class TestDatabaseOptions:
    def test_password_masked(self):
        url = display_url("postgresql+asyncpg://elcalc:s3cret@db:5432/elcalc")

        assert "s3cret" not in url
        assert url == "postgresql+asyncpg://elcalc:***@db:5432/elcalc"

    def test_sqlite_has_no_pool_sizing(self):
        assert engine_options(DBConfig(url="sqlite+aiosqlite:///elcalc.db")) == {"echo": False}

    def test_server_pool(self):
        options = engine_options(
            DBConfig(url="postgresql+asyncpg://u:p@db/elcalc", pool_size=5, echo=True)
        )

        assert options["pool_size"] == 5
        assert options["max_overflow"] == 20
        assert options["pool_pre_ping"] is True
        assert options["echo"] is True
