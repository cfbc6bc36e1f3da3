"""Payslip assembly: read-only projection of an approved or paid record."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.errors import StateConflictError
from salary_engine.models.payroll import PayrollLineItem, PayrollRecord
from salary_engine.services.payroll_run_service import PayrollRunService
from salary_engine.services.state_machine import PayrollRecordStateMachine


@dataclass(frozen=True)
class PayslipEmployee:
    employee_id: UUID
    employee_code: str
    name: str
    designation: str | None
    department: str | None
    bank_name: str | None
    bank_account_number: str | None


@dataclass(frozen=True)
class PayslipAttendance:
    working_days: int
    payable_days: Decimal
    lop_days: Decimal


@dataclass(frozen=True)
class PayslipLine:
    code: str | None
    name: str | None
    amount: Decimal
    is_prorated: bool = False
    adjustment_type: str | None = None
    reason: str | None = None

    @classmethod
    def from_line(cls, line: PayrollLineItem) -> PayslipLine:
        return cls(
            code=line.component_code,
            name=line.component_name,
            amount=line.calculated_value,
            is_prorated=line.is_prorated,
            adjustment_type=line.adjustment_type,
            reason=line.reason,
        )


@dataclass(frozen=True)
class Payslip:
    payroll_record_id: UUID
    employee: PayslipEmployee
    period: str
    start_date: date
    end_date: date
    attendance: PayslipAttendance
    earnings: list[PayslipLine] = field(default_factory=list)
    deductions: list[PayslipLine] = field(default_factory=list)
    total_earnings: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    gross_salary: Decimal = Decimal("0")
    net_salary: Decimal = Decimal("0")
    status: str = "APPROVED"
    payment_method: str | None = None
    payment_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PayslipService:
    """Assembles payslip data. No business logic and no writes."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.runs = PayrollRunService(session)

    async def assemble_payslip(self, record_id: UUID) -> Payslip:
        """Build the payslip for a record.

        Raises:
            NotFoundError: Unknown record
            StateConflictError: Record is not APPROVED or PAID
        """
        record = await self.runs.get_record(record_id)
        if record.status not in PayrollRecordStateMachine.PAYSLIP_VISIBLE:
            raise StateConflictError(
                record.status, f"Payslip for record {record_id} requires an approved or paid record"
            )
        return self.build(record)

    @staticmethod
    def build(record: PayrollRecord) -> Payslip:
        employee = record.employee
        run = record.run
        return Payslip(
            payroll_record_id=record.payroll_record_id,
            employee=PayslipEmployee(
                employee_id=employee.employee_id,
                employee_code=employee.employee_code,
                name=employee.full_name,
                designation=employee.designation,
                department=employee.department,
                bank_name=employee.bank_name,
                bank_account_number=employee.bank_account_number,
            ),
            period=run.period,
            start_date=run.start_date,
            end_date=run.end_date,
            attendance=PayslipAttendance(
                working_days=record.working_days,
                payable_days=record.payable_days,
                lop_days=record.lop_days,
            ),
            earnings=[PayslipLine.from_line(line) for line in record.earnings],
            deductions=[PayslipLine.from_line(line) for line in record.deductions],
            total_earnings=record.total_earnings,
            total_deductions=record.total_deductions,
            gross_salary=record.gross_salary,
            net_salary=record.net_salary,
            status=record.status,
            payment_method=record.payment_method,
            payment_date=record.payment_date,
        )
