"""Create the schema and seed a starter component catalog.

Usage:
    python -m scripts.seed_catalog [--database-url URL] [--skip-create]

Inserts the standard pay components, three salary grades and a default
salary structure. Rows whose code already exists are left untouched, so the
script can be re-run safely.
"""

from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from salary_engine.config import get_settings
from salary_engine.models import (
    Base,
    PayComponent,
    SalaryGrade,
    SalaryStructure,
    StructureComponent,
)

COMPONENTS = [
    # code, name, category, calculation_type, is_taxable, is_statutory
    ("BASIC", "Basic Salary", "BASIC", "PERCENTAGE", True, False),
    ("HRA", "House Rent Allowance", "HOUSE_RENT", "PERCENTAGE", True, False),
    ("CONVEYANCE", "Conveyance Allowance", "ALLOWANCE", "FIXED", True, False),
    ("SPECIAL", "Special Allowance", "SPECIAL", "FIXED", True, False),
    ("PF", "Provident Fund", "DEDUCTION", "PERCENTAGE", False, True),
    ("PT", "Professional Tax", "DEDUCTION", "FIXED", False, True),
]

GRADES = [
    ("G1", "Associate", Decimal("200000"), Decimal("600000")),
    ("G2", "Senior Associate", Decimal("500000"), Decimal("1500000")),
    ("G3", "Manager", Decimal("1200000"), Decimal("4000000")),
]

DEFAULT_STRUCTURE_CODE = "STD"

# code, value, percentage, base_component_code, min_value, max_value, prorate
DEFAULT_STRUCTURE = [
    ("BASIC", None, Decimal("40"), None, None, None, True),
    ("HRA", None, Decimal("50"), "BASIC", None, None, True),
    ("CONVEYANCE", Decimal("19200"), None, None, None, None, True),
    ("SPECIAL", Decimal("60000"), None, None, None, None, True),
    ("PF", None, Decimal("12"), "BASIC", None, Decimal("21600"), True),
    ("PT", Decimal("2400"), None, None, None, None, False),
]


async def seed_catalog(session: AsyncSession) -> dict[str, int]:
    """Insert missing catalog rows. Returns how many rows of each kind were added."""
    added = {"components": 0, "grades": 0, "structures": 0}

    existing = {
        c.code: c for c in (await session.execute(select(PayComponent))).scalars().all()
    }
    for code, name, category, calculation_type, taxable, statutory in COMPONENTS:
        if code in existing:
            continue
        component = PayComponent(
            code=code,
            name=name,
            category=category,
            calculation_type=calculation_type,
            is_taxable=taxable,
            is_statutory=statutory,
        )
        session.add(component)
        existing[code] = component
        added["components"] += 1

    grades = {
        g.code: g for g in (await session.execute(select(SalaryGrade))).scalars().all()
    }
    for code, name, min_salary, max_salary in GRADES:
        if code in grades:
            continue
        grade = SalaryGrade(
            code=code,
            name=name,
            min_salary=min_salary,
            max_salary=max_salary,
            currency=get_settings().currency,
        )
        session.add(grade)
        grades[code] = grade
        added["grades"] += 1

    # Primary keys are needed for the structure rows below
    await session.flush()

    # Any version of the code counts as seeded
    found = await session.execute(
        select(SalaryStructure.salary_structure_id)
        .where(SalaryStructure.code == DEFAULT_STRUCTURE_CODE)
        .limit(1)
    )
    if found.scalar_one_or_none() is None:
        grade = grades["G2"]
        session.add(
            SalaryStructure(
                name="Standard",
                code=DEFAULT_STRUCTURE_CODE,
                salary_grade_id=grade.salary_grade_id,
                grade=grade,
                components=[
                    StructureComponent(
                        pay_component_id=existing[code].pay_component_id,
                        component=existing[code],
                        value=value,
                        percentage=percentage,
                        base_component_code=base,
                        min_value=min_value,
                        max_value=max_value,
                        order=order,
                        prorate=prorate,
                    )
                    for order, (code, value, percentage, base, min_value, max_value, prorate) in enumerate(
                        DEFAULT_STRUCTURE, start=1
                    )
                ],
            )
        )
        added["structures"] += 1

    await session.commit()
    return added


async def run(database_url: str, create_schema: bool) -> None:
    print(f"Target database: {database_url.split('@')[1] if '@' in database_url else database_url}")

    engine = create_async_engine(database_url, echo=False)
    try:
        if create_schema:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("Schema ready")

        async with AsyncSession(engine, expire_on_commit=False) as session:
            added = await seed_catalog(session)

        print("\nResults:")
        for kind, count in added.items():
            print(f"  {kind}: {count} added")
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed the salary component catalog")
    parser.add_argument(
        "--database-url",
        type=str,
        default=get_settings().database_url,
        help="Database URL (default: from settings)",
    )
    parser.add_argument(
        "--skip-create",
        action="store_true",
        help="Do not create missing tables before seeding",
    )

    args = parser.parse_args()

    asyncio.run(run(args.database_url, create_schema=not args.skip_create))


if __name__ == "__main__":
    main()
