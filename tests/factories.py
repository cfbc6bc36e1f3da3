"""In-memory builders for calculator unit tests (nothing is persisted)."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from salary_engine.models import PayComponent, SalaryGrade, SalaryStructure, StructureComponent


def pay_component(code: str, category: str, calculation_type: str) -> PayComponent:
    return PayComponent(
        pay_component_id=uuid4(),
        code=code,
        name=code.title(),
        category=category,
        calculation_type=calculation_type,
    )


def line(
    component: PayComponent,
    order: int,
    value: str | None = None,
    percentage: str | None = None,
    base: str | None = None,
    min_value: str | None = None,
    max_value: str | None = None,
    prorate: bool = True,
) -> StructureComponent:
    return StructureComponent(
        structure_component_id=uuid4(),
        pay_component_id=component.pay_component_id,
        component=component,
        value=Decimal(value) if value is not None else None,
        percentage=Decimal(percentage) if percentage is not None else None,
        base_component_code=base,
        min_value=Decimal(min_value) if min_value is not None else None,
        max_value=Decimal(max_value) if max_value is not None else None,
        order=order,
        prorate=prorate,
    )


def structure(*lines: StructureComponent, min_salary: str | None = None, max_salary: str | None = None) -> SalaryStructure:
    grade = None
    if min_salary is not None and max_salary is not None:
        grade = SalaryGrade(
            salary_grade_id=uuid4(),
            code="G",
            name="Grade",
            min_salary=Decimal(min_salary),
            max_salary=Decimal(max_salary),
        )
    return SalaryStructure(
        salary_structure_id=uuid4(),
        name="Test",
        code="TEST",
        grade=grade,
        is_active=True,
        components=list(lines),
    )
