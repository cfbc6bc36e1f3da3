"""Tests for the catalog seed script."""

from decimal import Decimal

from sqlalchemy import func, select

from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.models import PayComponent, SalaryStructure
from scripts.seed_catalog import seed_catalog


async def test_seed_inserts_catalog(session):
    added = await seed_catalog(session)

    assert added == {"components": 6, "grades": 3, "structures": 1}


async def test_seed_is_idempotent(session):
    await seed_catalog(session)
    added = await seed_catalog(session)

    assert added == {"components": 0, "grades": 0, "structures": 0}
    count = await session.scalar(select(func.count()).select_from(PayComponent))
    assert count == 6


async def test_seeded_structure_resolves(session):
    await seed_catalog(session)
    structure = (
        await session.execute(select(SalaryStructure).where(SalaryStructure.code == "STD"))
    ).scalar_one()

    resolved = {r.code: r for r in StructureResolver().resolve(structure, Decimal("1000000"))}

    assert resolved["BASIC"].calculated_value == Decimal("400000.00")
    assert resolved["HRA"].calculated_value == Decimal("200000.00")
    assert resolved["PF"].calculated_value == Decimal("21600.00")
    assert resolved["PF"].was_clamped
    assert resolved["PT"].prorate is False
