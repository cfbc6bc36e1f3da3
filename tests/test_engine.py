"""Tests for the payroll calculation engine."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from salary_engine.calculators.attendance import StaticAttendanceSource
from salary_engine.calculators.engine import PayrollEngine, working_days_between
from salary_engine.calculators.types import AttendanceInput
from salary_engine.errors import NoActiveAssignmentError, PayrollValidationError
from salary_engine.models import AttendanceSummary
from salary_engine.services.assignment_service import AssignmentService
from tests.conftest import PAYROLL_PERIOD, PERIOD_END, PERIOD_START


def amounts(lines) -> dict[str, Decimal]:
    return {line.component_code: line.amount for line in lines}


class TestWorkingDays:
    def test_june_2024_excluding_weekends(self):
        assert working_days_between(PERIOD_START, PERIOD_END, (5, 6)) == 20

    def test_no_weekend(self):
        assert working_days_between(PERIOD_START, PERIOD_END, ()) == 30

    def test_single_weekend_day(self):
        assert working_days_between(date(2024, 6, 1), date(2024, 6, 2), (5, 6)) == 0


class TestCalculateEmployeePayroll:
    async def test_full_attendance(self, session, assigned_employee):
        engine = PayrollEngine(session, StaticAttendanceSource())

        calc = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert amounts(calc.earnings) == {
            "BASIC": Decimal("240000.00"),
            "HRA": Decimal("120000.00"),
            "SPECIAL": Decimal("10000.00"),
        }
        assert amounts(calc.deductions) == {"PF": Decimal("1800.00"), "PT": Decimal("200.00")}
        assert calc.gross_salary == Decimal("370000.00")
        assert calc.total_deductions == Decimal("2000.00")
        assert calc.net_salary == Decimal("368000.00")
        assert calc.payable_days == Decimal("30")
        assert calc.lop_days == Decimal("0")

    async def test_net_equals_gross_minus_deductions(self, session, assigned_employee):
        engine = PayrollEngine(session, StaticAttendanceSource({assigned_employee.employee_id: 17}))

        calc = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert calc.gross_salary == calc.total_earnings == sum(l.amount for l in calc.earnings)
        assert calc.total_deductions == sum(l.amount for l in calc.deductions)
        assert calc.net_salary == calc.gross_salary - calc.total_deductions

    async def test_half_month_proration(self, session, assigned_employee):
        engine = PayrollEngine(session, StaticAttendanceSource({assigned_employee.employee_id: 15}))

        calc = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert amounts(calc.earnings)["SPECIAL"] == Decimal("5000.00")
        assert amounts(calc.earnings)["BASIC"] == Decimal("120000.00")
        assert amounts(calc.deductions) == {"PF": Decimal("900.00"), "PT": Decimal("200.00")}
        assert calc.net_salary == Decimal("183900.00")
        assert calc.lop_days == Decimal("15")
        assert all(line.is_prorated for line in calc.earnings)
        assert not next(l for l in calc.deductions if l.component_code == "PT").is_prorated

    async def test_deterministic(self, session, assigned_employee):
        engine = PayrollEngine(session, StaticAttendanceSource({assigned_employee.employee_id: 22}))

        first = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )
        second = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert first.calculation_id == second.calculation_id
        assert first.inputs_fingerprint == second.inputs_fingerprint
        assert [l.to_canonical_dict() for l in first.lines] == [l.to_canonical_dict() for l in second.lines]
        assert first.totals == second.totals

    async def test_different_attendance_changes_calculation_id(self, session, assigned_employee):
        source = StaticAttendanceSource({assigned_employee.employee_id: 30})
        engine = PayrollEngine(session, source)
        full = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        source.set(assigned_employee.employee_id, 29)
        partial = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert full.calculation_id != partial.calculation_id

    async def test_explicit_attendance_input(self, session, assigned_employee):
        source = StaticAttendanceSource(
            {
                assigned_employee.employee_id: AttendanceInput(
                    payable_days=Decimal("27.5"), total_days=30, lop_days=Decimal("2.5")
                )
            }
        )
        engine = PayrollEngine(session, source)

        calc = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )

        assert calc.payable_days == Decimal("27.5")
        assert calc.lop_days == Decimal("2.5")
        assert amounts(calc.earnings)["SPECIAL"] == Decimal("9166.67")

    async def test_reads_attendance_summary_by_default(self, session, assigned_employee):
        session.add(
            AttendanceSummary(
                employee_id=assigned_employee.employee_id,
                period=PAYROLL_PERIOD,
                payable_days=Decimal("10"),
                lop_days=Decimal("10"),
            )
        )
        await session.commit()

        calc = await PayrollEngine(session).calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 20
        )

        assert calc.payable_days == Decimal("10")
        assert amounts(calc.earnings)["SPECIAL"] == Decimal("5000.00")

    async def test_payable_days_beyond_period_rejected(self, session, assigned_employee):
        engine = PayrollEngine(session, StaticAttendanceSource({assigned_employee.employee_id: 31}))

        with pytest.raises(PayrollValidationError):
            await engine.calculate_employee_payroll(
                assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
            )

    async def test_attendance_for_other_day_count_rejected(self, session, assigned_employee):
        source = StaticAttendanceSource(
            {assigned_employee.employee_id: AttendanceInput(payable_days=Decimal("20"), total_days=22)}
        )
        engine = PayrollEngine(session, source)

        with pytest.raises(PayrollValidationError) as exc_info:
            await engine.calculate_employee_payroll(
                assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
            )

        assert exc_info.value.field == "total_days"

    async def test_no_assignment(self, session, employee, structure):
        with pytest.raises(NoActiveAssignmentError):
            await PayrollEngine(session, StaticAttendanceSource()).calculate_employee_payroll(
                employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
            )

    async def test_assignment_starting_after_period_not_used(self, session, employee, structure):
        await AssignmentService(session).assign_structure(
            employee.employee_id, structure.salary_structure_id, Decimal("600000"), date(2024, 7, 1)
        )

        with pytest.raises(NoActiveAssignmentError):
            await PayrollEngine(session, StaticAttendanceSource()).calculate_employee_payroll(
                employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
            )

    async def test_superseded_assignment_still_pays_its_periods(self, session, assigned_employee, structure):
        await AssignmentService(session).assign_structure(
            assigned_employee.employee_id,
            structure.salary_structure_id,
            Decimal("720000"),
            date(2024, 7, 1),
        )
        engine = PayrollEngine(session, StaticAttendanceSource())

        june = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 30
        )
        july = await engine.calculate_employee_payroll(
            assigned_employee.employee_id, "2024-07", date(2024, 7, 1), date(2024, 7, 31), 31
        )

        assert amounts(june.earnings)["BASIC"] == Decimal("240000.00")
        assert amounts(july.earnings)["BASIC"] == Decimal("288000.00")
        assert june.assignment_id != july.assignment_id

    async def test_zero_working_days_rejected(self, session, assigned_employee):
        with pytest.raises(PayrollValidationError):
            await PayrollEngine(session).calculate_employee_payroll(
                assigned_employee.employee_id, PAYROLL_PERIOD, PERIOD_START, PERIOD_END, 0
            )


class TestCalculateBulkPayroll:
    async def test_partial_failure_does_not_abort(self, session, employees):
        engine = PayrollEngine(session, StaticAttendanceSource())

        result = await engine.calculate_bulk_payroll(
            [e.employee_id for e in employees], PAYROLL_PERIOD, PERIOD_START, PERIOD_END
        )

        assert result.successful_calculations == 4
        assert result.failed_calculations == 1
        assert result.errors[0].employee_id == employees[2].employee_id
        assert result.errors[0].error_code == "STRUCTURAL_ERROR"
        assert {c.employee_id for c in result.results} == {
            e.employee_id for i, e in enumerate(employees) if i != 2
        }

    async def test_uses_configured_working_days(self, session, employees):
        result = await PayrollEngine(session, StaticAttendanceSource()).calculate_bulk_payroll(
            [employees[0].employee_id], PAYROLL_PERIOD, PERIOD_START, PERIOD_END
        )

        assert result.results[0].working_days == 20
        assert result.results[0].payable_days == Decimal("20")

    async def test_unknown_employee_is_collected(self, session, employees):
        result = await PayrollEngine(session, StaticAttendanceSource()).calculate_bulk_payroll(
            [uuid4(), employees[0].employee_id], PAYROLL_PERIOD, PERIOD_START, PERIOD_END
        )

        assert result.successful_calculations == 1
        assert result.failed_calculations == 1

    async def test_bad_attendance_is_isolated(self, session, employees):
        source = StaticAttendanceSource({employees[0].employee_id: 25})

        result = await PayrollEngine(session, source).calculate_bulk_payroll(
            [e.employee_id for e in employees], PAYROLL_PERIOD, PERIOD_START, PERIOD_END
        )

        assert result.successful_calculations == 3
        assert {f.error_code for f in result.errors} == {"STRUCTURAL_ERROR", "VALIDATION_ERROR"}

    async def test_period_without_working_days(self, session, employees):
        with pytest.raises(PayrollValidationError):
            await PayrollEngine(session).calculate_bulk_payroll(
                [employees[0].employee_id], PAYROLL_PERIOD, date(2024, 6, 1), date(2024, 6, 2)
            )
