"""Pytest configuration and fixtures for elcalc tests.

Provides common fixtures for testing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

import elcalc.config as config_module
from elcalc.db.models import Base
from elcalc.interpreter import interpret
from elcalc.models import CalculationComponent, CalculationMaterial, Interpretation

VILLA_DESCRIPTION = "Villa fra 1975 på 140 m2 med nyt køkken og 2 soveværelser"


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """In-memory database URL and a fresh config for every test."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setattr(config_module, "_config", None)


@pytest_asyncio.fixture()
async def db_session() -> AsyncSession:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    SessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture
def villa_interpretation() -> Interpretation:
    """Interpretation of the reference villa description (reference year 2025)."""
    return interpret(VILLA_DESCRIPTION, current_year=2025).interpretation


@pytest.fixture
def sample_components() -> list[CalculationComponent]:
    return [
        CalculationComponent(
            code="outlet_single",
            name="Stikkontakt enkelt",
            category="outlet",
            quantity=10,
            unit_time_minutes=25,
            unit_price=Decimal("450"),
        ),
        CalculationComponent(
            code="spot_light",
            name="LED Spot indbygning",
            category="lighting",
            quantity=6,
            unit_time_minutes=20,
            unit_price=Decimal("350"),
        ),
    ]


@pytest.fixture
def sample_materials() -> list[CalculationMaterial]:
    return [
        CalculationMaterial(
            code="cable_2_5mm",
            name="Installationskabel NYM-J 3x2,5mm²",
            quantity=60,
            unit="m",
            unit_cost=Decimal("12.50"),
            unit_price=Decimal("18.00"),
        ),
        CalculationMaterial(
            code="outlet_material",
            name="Stikkontakt komplet (FUGA)",
            quantity=10,
            unit_cost=Decimal("85.00"),
            unit_price=Decimal("120.00"),
        ),
    ]
