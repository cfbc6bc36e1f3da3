"""Post-calculation adjustments to payroll records."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.types import AdjustmentType
from salary_engine.database import atomic
from salary_engine.errors import (
    ConsistencyViolationError,
    PayrollValidationError,
    RecordImmutableError,
)
from salary_engine.models.payroll import PayrollRecord
from salary_engine.services.audit import AuditRecorder
from salary_engine.services.payroll_run_service import (
    PayrollRunService,
    recompute_run_totals,
    reopen_record,
)
from salary_engine.services.state_machine import PayrollRecordStateMachine

logger = logging.getLogger(__name__)


class AdjustmentService:
    """Applies BONUS / ALLOWANCE / DEDUCTION / CORRECTION adjustments.

    Each adjustment appends an AdjustmentLine, rebuilds the record totals from
    its lines, sends the record back to CALCULATED, and rebuilds the owning
    run's totals from all of its records, all in one unit of work.

    CORRECTION treats the amount as the new net salary and appends an earnings
    line for the (possibly negative) difference. Deductions are left as they are.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.runs = PayrollRunService(session)
        self.audit = AuditRecorder(session)

    @staticmethod
    def _validate(adjustment_type: Any, amount: Any, reason: str | None) -> tuple[AdjustmentType, Decimal, str]:
        try:
            kind = AdjustmentType(adjustment_type)
        except ValueError:
            raise PayrollValidationError(
                "adjustment_type", f"unknown adjustment type '{adjustment_type}'"
            ) from None

        try:
            value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise PayrollValidationError("amount", f"'{amount}' is not a number") from None
        if not value.is_finite():
            raise PayrollValidationError("amount", "must be finite")
        if kind is AdjustmentType.CORRECTION:
            if value < 0:
                raise PayrollValidationError("amount", "corrected net salary must not be negative")
        elif value <= 0:
            raise PayrollValidationError("amount", "must be greater than zero")

        if not reason or not reason.strip():
            raise PayrollValidationError("reason", "is required")
        return kind, LineItemBuilder.round_to_cents(value), reason.strip()

    async def adjust_record(
        self,
        record_id: UUID,
        adjustment_type: str,
        amount: Any,
        reason: str,
        actor_id: UUID | None = None,
    ) -> PayrollRecord:
        """Apply an adjustment to an unpaid record.

        Raises:
            PayrollValidationError: Bad type, amount or reason
            RecordImmutableError: Record is PAID
            NotFoundError: Unknown record
        """
        kind, value, reason = self._validate(adjustment_type, amount, reason)

        async with atomic(self.session):
            run, record = await self.runs.lock_record(record_id)
            if PayrollRecordStateMachine.is_immutable(record.status):
                raise RecordImmutableError(record_id, "adjust")

            before = self._snapshot(record)

            if kind is AdjustmentType.CORRECTION:
                line_amount = value - record.net_salary
                if line_amount == 0:
                    raise PayrollValidationError("amount", f"net salary is already {value}")
            else:
                line_amount = value

            line = LineItemBuilder.adjustment_line(kind, line_amount, reason)
            next_line_no = max((item.line_no for item in record.lines), default=0) + 1
            record.lines.append(line.to_line_item(next_line_no, created_by=actor_id))

            LineItemBuilder.recompute_record(record)
            if kind is AdjustmentType.CORRECTION and record.net_salary != value:
                raise ConsistencyViolationError(
                    f"Correction of record {record_id} produced net {record.net_salary}, expected {value}"
                )
            reopen_record(record)

            await recompute_run_totals(self.session, run)
            self.audit.record(
                "payroll_record",
                record_id,
                f"adjustment:{kind.value}",
                actor_id,
                before=before,
                after={**self._snapshot(record), "amount": line.amount, "reason": reason},
            )

        logger.info(
            "Applied %s adjustment of %s to payroll record %s (net %s -> %s)",
            kind.value,
            line.amount,
            record_id,
            before["net_salary"],
            record.net_salary,
        )
        return record

    @staticmethod
    def _snapshot(record: PayrollRecord) -> dict[str, Any]:
        return {
            "status": record.status,
            "total_earnings": record.total_earnings,
            "total_deductions": record.total_deductions,
            "gross_salary": record.gross_salary,
            "net_salary": record.net_salary,
        }
