"""Pytest fixtures for salary engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from salary_engine.models import (
    Base,
    Employee,
    PayComponent,
    SalaryGrade,
    SalaryStructure,
    StructureComponent,
)
from salary_engine.services.assignment_service import AssignmentService

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STANDARD_CTC = Decimal("600000")
PAYROLL_PERIOD = "2024-06"
PERIOD_START = date(2024, 6, 1)
PERIOD_END = date(2024, 6, 30)
ASSIGNMENT_START = date(2024, 1, 1)


@pytest.fixture
async def engine():
    """Create a fresh test database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def components(session: AsyncSession) -> dict[str, PayComponent]:
    """Pay component catalog."""
    catalog = {
        "BASIC": PayComponent(code="BASIC", name="Basic Salary", category="BASIC", calculation_type="FIXED"),
        "HRA": PayComponent(
            code="HRA", name="House Rent Allowance", category="HOUSE_RENT", calculation_type="PERCENTAGE"
        ),
        "SPECIAL": PayComponent(
            code="SPECIAL", name="Special Allowance", category="SPECIAL", calculation_type="FIXED"
        ),
        "PF": PayComponent(
            code="PF",
            name="Provident Fund",
            category="DEDUCTION",
            calculation_type="PERCENTAGE",
            is_taxable=False,
            is_statutory=True,
        ),
        "PT": PayComponent(
            code="PT",
            name="Professional Tax",
            category="DEDUCTION",
            calculation_type="FIXED",
            is_taxable=False,
            is_statutory=True,
        ),
    }
    session.add_all(catalog.values())
    await session.commit()
    return catalog


@pytest.fixture
async def grade(session: AsyncSession) -> SalaryGrade:
    grade = SalaryGrade(
        code="G3",
        name="Grade 3",
        min_salary=Decimal("100000"),
        max_salary=Decimal("5000000"),
    )
    session.add(grade)
    await session.commit()
    return grade


@pytest.fixture
async def structure(
    session: AsyncSession,
    components: dict[str, PayComponent],
    grade: SalaryGrade,
) -> SalaryStructure:
    """Standard structure.

    At CTC 600000: BASIC 240000, HRA 120000, SPECIAL 10000, PF 1800 (clamped
    from 28800), PT 200. Gross 370000, deductions 2000, net 368000.
    """
    structure = SalaryStructure(
        name="Standard",
        code="STD",
        salary_grade_id=grade.salary_grade_id,
        grade=grade,
        components=[
            StructureComponent(
                pay_component_id=components["BASIC"].pay_component_id,
                component=components["BASIC"],
                percentage=Decimal("40"),
                order=1,
            ),
            StructureComponent(
                pay_component_id=components["HRA"].pay_component_id,
                component=components["HRA"],
                percentage=Decimal("50"),
                base_component_code="BASIC",
                order=2,
            ),
            StructureComponent(
                pay_component_id=components["SPECIAL"].pay_component_id,
                component=components["SPECIAL"],
                value=Decimal("10000"),
                order=3,
            ),
            StructureComponent(
                pay_component_id=components["PF"].pay_component_id,
                component=components["PF"],
                percentage=Decimal("12"),
                base_component_code="BASIC",
                max_value=Decimal("1800"),
                order=4,
            ),
            StructureComponent(
                pay_component_id=components["PT"].pay_component_id,
                component=components["PT"],
                value=Decimal("200"),
                order=5,
                prorate=False,
            ),
        ],
    )
    session.add(structure)
    await session.commit()
    return structure


def make_employee(index: int, **overrides) -> Employee:
    values = {
        "employee_code": f"EMP{index:03d}",
        "first_name": f"Employee{index}",
        "last_name": "Test",
        "email": f"emp{index}@example.com",
        "designation": "Engineer",
        "department": "Engineering",
        "joining_date": date(2023, 1, 1),
        "bank_name": "Test Bank",
        "bank_account_number": f"00011122{index:04d}",
        "bank_ifsc": "TEST0000001",
        "bank_branch": "Main",
    }
    values.update(overrides)
    return Employee(**values)


@pytest.fixture
async def employee(session: AsyncSession) -> Employee:
    employee = make_employee(1)
    session.add(employee)
    await session.commit()
    return employee


@pytest.fixture
async def assigned_employee(
    session: AsyncSession,
    employee: Employee,
    structure: SalaryStructure,
) -> Employee:
    """Employee on the standard structure at CTC 600000 since 2024-01-01."""
    await AssignmentService(session).assign_structure(
        employee.employee_id,
        structure.salary_structure_id,
        STANDARD_CTC,
        ASSIGNMENT_START,
        reason="Initial assignment",
    )
    return employee


@pytest.fixture
async def employees(
    session: AsyncSession,
    structure: SalaryStructure,
) -> list[Employee]:
    """Five employees; the third has no salary assignment."""
    staff = [make_employee(i) for i in range(1, 6)]
    session.add_all(staff)
    await session.commit()

    service = AssignmentService(session)
    for index, employee in enumerate(staff, start=1):
        if index == 3:
            continue
        await service.assign_structure(
            employee.employee_id,
            structure.salary_structure_id,
            STANDARD_CTC,
            ASSIGNMENT_START,
        )
    return staff


def record_lock_calls(service) -> list[str]:
    """Log which rows a PayrollRunService locks, in order."""
    calls: list[str] = []
    get_run, get_record = service.get_run, service.get_record

    async def locking_get_run(run_id, for_update=False):
        if for_update:
            calls.append("run")
        return await get_run(run_id, for_update=for_update)

    async def locking_get_record(record_id, for_update=False):
        if for_update:
            calls.append("record")
        return await get_record(record_id, for_update=for_update)

    service.get_run = locking_get_run
    service.get_record = locking_get_record
    return calls
