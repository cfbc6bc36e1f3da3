"""Tests for salary structure assignment."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from salary_engine.errors import CTCOutOfRangeError, NotFoundError, PayrollValidationError
from salary_engine.models import AuditEvent
from salary_engine.services.assignment_service import AssignmentService
from tests.conftest import ASSIGNMENT_START, STANDARD_CTC


class TestAssignStructure:
    async def test_creates_open_ended_assignment(self, session, employee, structure, components):
        assignment = await AssignmentService(session).assign_structure(
            employee.employee_id, structure.salary_structure_id, STANDARD_CTC, ASSIGNMENT_START
        )

        assert assignment.is_active is True
        assert assignment.is_open_ended
        assert assignment.version == 1
        assert assignment.ctc == STANDARD_CTC
        values = {c.pay_component_id: c.calculated_value for c in assignment.components}
        assert values[components["BASIC"].pay_component_id] == Decimal("240000")
        assert values[components["HRA"].pay_component_id] == Decimal("120000")
        pf = next(c for c in assignment.components if c.pay_component_id == components["PF"].pay_component_id)
        assert pf.was_clamped is True
        assert pf.base_value == Decimal("28800")

    async def test_supersedes_current_assignment(self, session, assigned_employee, structure):
        service = AssignmentService(session)
        first = await service.get_current_assignment(assigned_employee.employee_id)

        second = await service.assign_structure(
            assigned_employee.employee_id,
            structure.salary_structure_id,
            Decimal("720000"),
            date(2024, 4, 1),
            reason="Promotion",
        )

        assert first.effective_to == date(2024, 3, 31)
        assert first.is_active is False
        assert first.version == 2
        assert second.is_open_ended
        history = await service.get_history(assigned_employee.employee_id)
        assert [a.assignment_id for a in history] == [second.assignment_id, first.assignment_id]

    async def test_records_overrides(self, session, employee, structure, components):
        hra_id = components["HRA"].pay_component_id

        assignment = await AssignmentService(session).assign_structure(
            employee.employee_id,
            structure.salary_structure_id,
            STANDARD_CTC,
            ASSIGNMENT_START,
            overrides={hra_id: Decimal("100000")},
        )

        hra = next(c for c in assignment.components if c.pay_component_id == hra_id)
        assert hra.override_value == Decimal("100000")
        assert hra.calculated_value == Decimal("100000")
        assert hra.base_value == Decimal("120000")
        assert assignment.overrides() == {hra_id: Decimal("100000")}

    async def test_writes_audit_entry(self, session, assigned_employee):
        result = await session.execute(
            select(AuditEvent).where(AuditEvent.action == "assignment_created")
        )
        events = result.scalars().all()

        assert len(events) == 1
        assert Decimal(events[0].after_json["ctc"]) == STANDARD_CTC

    async def test_ctc_out_of_grade_rejected(self, session, employee, structure):
        employee_id = employee.employee_id
        structure_id = structure.salary_structure_id
        service = AssignmentService(session)

        with pytest.raises(CTCOutOfRangeError):
            await service.assign_structure(employee_id, structure_id, Decimal("50000"), ASSIGNMENT_START)

        assert await service.get_current_assignment(employee_id) is None

    async def test_start_must_follow_current_start(self, session, assigned_employee, structure):
        employee_id = assigned_employee.employee_id
        structure_id = structure.salary_structure_id
        service = AssignmentService(session)

        with pytest.raises(PayrollValidationError):
            await service.assign_structure(employee_id, structure_id, STANDARD_CTC, ASSIGNMENT_START)

        current = await service.get_current_assignment(employee_id)
        assert current is not None
        assert current.effective_to is None
        assert len(await service.get_history(employee_id)) == 1

    async def test_inactive_structure_rejected(self, session, employee, structure):
        employee_id = employee.employee_id
        structure_id = structure.salary_structure_id
        structure.is_active = False
        await session.commit()

        with pytest.raises(PayrollValidationError):
            await AssignmentService(session).assign_structure(
                employee_id, structure_id, STANDARD_CTC, ASSIGNMENT_START
            )

    async def test_structure_not_yet_in_effect_rejected(self, session, employee, structure):
        employee_id = employee.employee_id
        structure_id = structure.salary_structure_id
        structure.effective_from = date(2024, 7, 1)
        await session.commit()

        with pytest.raises(PayrollValidationError) as exc_info:
            await AssignmentService(session).assign_structure(
                employee_id, structure_id, STANDARD_CTC, ASSIGNMENT_START
            )

        assert exc_info.value.field == "effective_from"

    async def test_invalid_override_persists_nothing(self, session, employee, structure, components):
        employee_id = employee.employee_id
        service = AssignmentService(session)

        with pytest.raises(PayrollValidationError) as exc_info:
            await service.assign_structure(
                employee_id,
                structure.salary_structure_id,
                STANDARD_CTC,
                ASSIGNMENT_START,
                overrides={components["HRA"].pay_component_id: Decimal("NaN")},
            )

        assert exc_info.value.field == "overrides"
        assert await service.get_history(employee_id) == []

    async def test_unknown_employee(self, session, structure):
        with pytest.raises(NotFoundError):
            await AssignmentService(session).assign_structure(
                uuid4(), structure.salary_structure_id, STANDARD_CTC, ASSIGNMENT_START
            )


class TestRevokeAssignment:
    async def test_revoke_ends_assignment(self, session, assigned_employee):
        service = AssignmentService(session)
        current = await service.get_current_assignment(assigned_employee.employee_id)

        revoked = await service.revoke_assignment(current.assignment_id, date(2024, 8, 31))

        assert revoked.effective_to == date(2024, 8, 31)
        assert revoked.is_active is False
        assert await service.get_current_assignment(assigned_employee.employee_id) is None
        # Still pays the months it covered
        assert await service.find_assignment_for_period(
            assigned_employee.employee_id, date(2024, 8, 1), date(2024, 8, 31)
        ) is not None
        assert await service.find_assignment_for_period(
            assigned_employee.employee_id, date(2024, 9, 1), date(2024, 9, 30)
        ) is None

    async def test_revoke_before_start_rejected(self, session, assigned_employee):
        service = AssignmentService(session)
        current = await service.get_current_assignment(assigned_employee.employee_id)

        with pytest.raises(PayrollValidationError):
            await service.revoke_assignment(current.assignment_id, date(2023, 12, 31))
