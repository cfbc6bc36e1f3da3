"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.attendance import AttendanceSource, DatabaseAttendanceSource
from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.proration import ProrationEngine
from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.calculators.types import (
    BulkCalculationResult,
    CalculationFailure,
    PayrollCalculation,
    ResolvedComponent,
)
from salary_engine.config import get_settings
from salary_engine.errors import (
    NoActiveAssignmentError,
    PayrollValidationError,
    StructuralError,
)
from salary_engine.models.employee import EmployeeSalaryAssignment

logger = logging.getLogger(__name__)


def working_days_between(start_date: date, end_date: date, weekend_days: Iterable[int]) -> int:
    """Count days in [start_date, end_date] whose weekday is not a weekend day.

    Weekdays follow date.weekday(): Monday is 0, Sunday is 6.
    """
    weekend = set(weekend_days)
    days = 0
    current = start_date
    while current <= end_date:
        if current.weekday() not in weekend:
            days += 1
        current += timedelta(days=1)
    return days


class PayrollEngine:
    """Main payroll calculation engine.

    Calculation pipeline (stable order per employee):
    1) Find the active assignment overlapping the period
    2) Resolve the structure at the assignment CTC with its overrides
    3) Read payable days from the attendance source (none = full attendance)
    4) Prorate
    5) Partition into earnings / deductions and round lines to cents
    6) Sum totals and verify net = gross - deductions

    The engine only reads. Persisting a calculation is up to the caller
    (see PayrollCalculation.to_record).
    """

    def __init__(
        self,
        session: AsyncSession,
        attendance_source: AttendanceSource | None = None,
    ):
        self.session = session
        self.attendance_source = attendance_source or DatabaseAttendanceSource(session)
        self.resolver = StructureResolver()
        self.proration = ProrationEngine()
        self.settings = get_settings()

    async def calculate_employee_payroll(
        self,
        employee_id: UUID,
        period: str,
        start_date: date,
        end_date: date,
        working_days: int,
    ) -> PayrollCalculation:
        """Calculate payroll for one employee and period.

        Raises:
            PayrollValidationError: Bad period or attendance figures
            StructuralError: No active assignment or malformed structure
            ConsistencyViolationError: Totals disagree with lines
        """
        self._validate_period(start_date, end_date)
        if working_days <= 0:
            raise PayrollValidationError("working_days", "must be greater than zero")

        # 1) Assignment
        assignment = await self._get_assignment(employee_id, start_date, end_date)
        if assignment is None:
            raise NoActiveAssignmentError(employee_id, f"for period {period}")

        # 2) Resolve
        resolved = self.resolver.resolve(assignment.structure, assignment.ctc, assignment.overrides())

        # 3) Attendance
        attendance = await self.attendance_source.get_attendance(
            employee_id, period, start_date, end_date, working_days
        )
        if attendance is None:
            payable_days = Decimal(working_days)
            lop_days = Decimal("0")
        else:
            if attendance.total_days != working_days:
                raise PayrollValidationError(
                    "total_days",
                    f"attendance covers {attendance.total_days} days, period has {working_days}",
                )
            payable_days = Decimal(attendance.payable_days)
            lop_days = Decimal(attendance.lop_days)

        # 4) Prorate
        self.proration.prorate(resolved, payable_days, working_days)

        # 5) Lines
        earnings, deductions = LineItemBuilder.split_components(resolved)

        # 6) Totals
        earning_amounts = [line.amount for line in earnings]
        deduction_amounts = [line.amount for line in deductions]
        totals = LineItemBuilder.compute_totals(earning_amounts, deduction_amounts)
        LineItemBuilder.verify_identity(totals, earning_amounts, deduction_amounts)

        inputs_fingerprint = self._compute_inputs_fingerprint(
            self._inputs_data(assignment, period, start_date, end_date, working_days, payable_days, lop_days, resolved)
        )
        calculation_id = self._generate_calculation_id(employee_id, period, inputs_fingerprint)

        return PayrollCalculation(
            employee_id=employee_id,
            assignment_id=assignment.assignment_id,
            period=period,
            start_date=start_date,
            end_date=end_date,
            working_days=working_days,
            payable_days=payable_days,
            lop_days=lop_days,
            earnings=earnings,
            deductions=deductions,
            totals=totals,
            calculation_id=calculation_id,
            inputs_fingerprint=inputs_fingerprint,
        )

    async def calculate_bulk_payroll(
        self,
        employee_ids: Iterable[UUID],
        period: str,
        start_date: date,
        end_date: date,
    ) -> BulkCalculationResult:
        """Calculate payroll for many employees.

        Structural and validation errors are collected per employee; the rest
        of the batch continues. Consistency violations propagate.
        """
        self._validate_period(start_date, end_date)
        working_days = working_days_between(start_date, end_date, self.settings.weekend_days)
        if working_days == 0:
            raise PayrollValidationError("end_date", f"period {period} contains no working days")

        result = BulkCalculationResult(period=period)
        for employee_id in employee_ids:
            try:
                calculation = await self.calculate_employee_payroll(
                    employee_id, period, start_date, end_date, working_days
                )
            except (StructuralError, PayrollValidationError) as e:
                logger.warning("Payroll calculation failed for employee %s in %s: %s", employee_id, period, e)
                result.errors.append(CalculationFailure(employee_id=employee_id, error_code=e.code, message=str(e)))
                continue
            result.results.append(calculation)

        logger.info(
            "Bulk payroll for %s: %d succeeded, %d failed",
            period,
            result.successful_calculations,
            result.failed_calculations,
        )
        return result

    @staticmethod
    def _validate_period(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise PayrollValidationError(
                "end_date", f"end date {end_date} is before start date {start_date}"
            )

    @staticmethod
    def _inputs_data(
        assignment: EmployeeSalaryAssignment,
        period: str,
        start_date: date,
        end_date: date,
        working_days: int,
        payable_days: Decimal,
        lop_days: Decimal,
        resolved: list[ResolvedComponent],
    ) -> dict[str, Any]:
        return {
            "assignment_id": str(assignment.assignment_id),
            "assignment_version": assignment.version,
            "salary_structure_id": str(assignment.salary_structure_id),
            "ctc": str(assignment.ctc),
            "period": period,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "working_days": working_days,
            "payable_days": str(payable_days),
            "lop_days": str(lop_days),
            "components": [r.to_canonical_dict() for r in resolved],
        }

    def _generate_calculation_id(
        self,
        employee_id: UUID,
        period: str,
        inputs_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "period": period,
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    @staticmethod
    def _compute_inputs_fingerprint(inputs_data: dict[str, Any]) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        json_str = json.dumps(inputs_data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    # === Data Loading Methods ===

    async def _get_assignment(
        self, employee_id: UUID, start_date: date, end_date: date
    ) -> EmployeeSalaryAssignment | None:
        """Get the active assignment effective for the period."""
        result = await self.session.execute(
            EmployeeSalaryAssignment.select_for_period(employee_id, start_date, end_date).limit(1)
        )
        return result.scalar_one_or_none()
