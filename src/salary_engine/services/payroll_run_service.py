"""Payroll run service - lifecycle of a payroll run and its records."""

from __future__ import annotations

import calendar
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.attendance import AttendanceSource
from salary_engine.calculators.engine import PayrollEngine
from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.types import PaymentMethod
from salary_engine.database import atomic
from salary_engine.errors import (
    ConsistencyViolationError,
    NotFoundError,
    PayrollValidationError,
    RecordImmutableError,
    StateConflictError,
)
from salary_engine.models.base import utcnow
from salary_engine.models.employee import Employee
from salary_engine.models.payroll import PayrollLineItem, PayrollRecord, PayrollRun
from salary_engine.services.audit import AuditRecorder
from salary_engine.services.bank_file import BankFile
from salary_engine.services.state_machine import (
    PayrollRecordStateMachine,
    PayrollRecordStatus,
    PayrollRunStateMachine,
    PayrollRunStatus,
)

logger = logging.getLogger(__name__)

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


@dataclass
class FinalizeResult:
    """Outcome of finalizing a run."""

    run: PayrollRun
    payment_count: int
    bank_file: BankFile | None = None


def parse_period(period: str) -> tuple[date, date]:
    """Validate a 'YYYY-MM' period and return its first and last day."""
    match = PERIOD_PATTERN.match(period or "")
    if match is None:
        raise PayrollValidationError("period", f"'{period}' is not in YYYY-MM format")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise PayrollValidationError("period", f"month {month} is out of range")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def reopen_record(record: PayrollRecord) -> None:
    """Send a record back to CALCULATED so it must be approved again."""
    if record.status == PayrollRecordStatus.CALCULATED.value:
        return
    PayrollRecordStateMachine.validate_transition(record.status, PayrollRecordStatus.CALCULATED)
    record.status = PayrollRecordStatus.CALCULATED.value
    record.approved_by = None
    record.approved_at = None


async def recompute_run_totals(session: AsyncSession, run: PayrollRun) -> PayrollRun:
    """Store run totals computed by summing all of the run's records.

    Totals are always rebuilt from the children, never adjusted by deltas.
    """
    await session.flush()
    result = await session.execute(
        select(
            func.coalesce(func.sum(PayrollRecord.gross_salary), 0),
            func.coalesce(func.sum(PayrollRecord.total_deductions), 0),
            func.coalesce(func.sum(PayrollRecord.net_salary), 0),
            func.count(PayrollRecord.payroll_record_id),
        ).where(PayrollRecord.payroll_run_id == run.payroll_run_id)
    )
    gross, deductions, net, count = result.one()
    run.total_gross = LineItemBuilder.round_to_cents(Decimal(str(gross)))
    run.total_deductions = LineItemBuilder.round_to_cents(Decimal(str(deductions)))
    run.total_net = LineItemBuilder.round_to_cents(Decimal(str(net)))
    run.employee_count = int(count)

    if run.total_net != run.total_gross - run.total_deductions:
        raise ConsistencyViolationError(
            f"Run {run.payroll_run_id} totals inconsistent: net {run.total_net} != "
            f"gross {run.total_gross} - deductions {run.total_deductions}"
        )
    return run


class PayrollRunService:
    """Service for managing payroll run lifecycle.

    Operations:
    - create_run: One DRAFT run per period
    - process_run: Bulk calculation, DRAFT → PROCESSING → COMPLETED | FAILED
    - cancel_run / reset_run / delete_run
    - approve_records: CALCULATED → APPROVED on a COMPLETED run
    - recalculate_record: Recompute one unpaid record
    - finalize_run: Pay every approved/calculated record in one unit of work
    - recompute_run_totals: Rebuild run totals from its records
    """

    def __init__(
        self,
        session: AsyncSession,
        attendance_source: AttendanceSource | None = None,
    ):
        self.session = session
        self.attendance_source = attendance_source
        self.audit = AuditRecorder(session)

    # === Queries ===

    async def get_run(self, run_id: UUID, for_update: bool = False) -> PayrollRun:
        stmt = select(PayrollRun).where(PayrollRun.payroll_run_id == run_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        run = result.scalar_one_or_none()
        if run is None:
            raise NotFoundError("PayrollRun", run_id)
        return run

    async def get_run_by_period(self, period: str) -> PayrollRun | None:
        result = await self.session.execute(select(PayrollRun).where(PayrollRun.period == period))
        return result.scalar_one_or_none()

    async def list_runs(self, status: str | None = None) -> list[PayrollRun]:
        stmt = select(PayrollRun).order_by(PayrollRun.period.desc())
        if status is not None:
            stmt = stmt.where(PayrollRun.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_record(self, record_id: UUID, for_update: bool = False) -> PayrollRecord:
        stmt = select(PayrollRecord).where(PayrollRecord.payroll_record_id == record_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("PayrollRecord", record_id)
        return record

    async def lock_record(self, record_id: UUID) -> tuple[PayrollRun, PayrollRecord]:
        """Lock a record's run, then the record itself.

        Every writer takes the run lock before any record lock of that run, so
        record-level edits never deadlock against approve or finalize.
        """
        record = await self.get_record(record_id)
        run = await self.get_run(record.payroll_run_id, for_update=True)
        record = await self.get_record(record_id, for_update=True)
        return run, record

    async def get_records(
        self,
        run_id: UUID,
        statuses: Iterable[str] | None = None,
        record_ids: Iterable[UUID] | None = None,
        for_update: bool = False,
    ) -> list[PayrollRecord]:
        """Records of a run ordered by employee code."""
        stmt = (
            select(PayrollRecord)
            .join(Employee, Employee.employee_id == PayrollRecord.employee_id)
            .where(PayrollRecord.payroll_run_id == run_id)
            .order_by(Employee.employee_code)
        )
        if statuses is not None:
            stmt = stmt.where(PayrollRecord.status.in_([getattr(s, "value", s) for s in statuses]))
        if record_ids is not None:
            stmt = stmt.where(PayrollRecord.payroll_record_id.in_(list(record_ids)))
        if for_update:
            stmt = stmt.with_for_update(of=PayrollRecord).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # === Run lifecycle ===

    async def create_run(
        self,
        period: str,
        start_date: date | None = None,
        end_date: date | None = None,
        actor_id: UUID | None = None,
    ) -> PayrollRun:
        """Create a DRAFT run. Dates default to the calendar month of period."""
        month_start, month_end = parse_period(period)
        start_date = start_date or month_start
        end_date = end_date or month_end
        if start_date > end_date:
            raise PayrollValidationError(
                "end_date", f"end date {end_date} is before start date {start_date}"
            )

        async with atomic(self.session):
            existing = await self.get_run_by_period(period)
            if existing is not None:
                raise StateConflictError(
                    existing.status, f"A payroll run for {period} already exists"
                )
            run = PayrollRun(
                period=period,
                start_date=start_date,
                end_date=end_date,
                status=PayrollRunStatus.DRAFT.value,
                total_gross=Decimal("0"),
                total_deductions=Decimal("0"),
                total_net=Decimal("0"),
                employee_count=0,
                failed_count=0,
                calculation_errors=[],
                created_by=actor_id,
            )
            self.session.add(run)
            await self.session.flush()
            self.audit.record("payroll_run", run.payroll_run_id, "payroll_run_created", actor_id,
                              after={"period": period})

        logger.info("Created payroll run %s for %s", run.payroll_run_id, period)
        return run

    async def transition_status(
        self,
        run: PayrollRun,
        to_status: PayrollRunStatus,
        actor_id: UUID | None = None,
        reason: str | None = None,
    ) -> PayrollRun:
        """Move a run to a new status and record the change.

        Raises InvalidTransitionError if transition is not allowed.
        """
        from_status = run.status
        PayrollRunStateMachine.validate_transition(from_status, to_status)
        run.status = to_status.value

        self.audit.record(
            "payroll_run",
            run.payroll_run_id,
            f"status_change:{from_status}:{to_status.value}",
            actor_id,
            after={"reason": reason} if reason else None,
        )
        logger.info("Payroll run %s: %s -> %s", run.payroll_run_id, from_status, to_status.value)
        return run

    async def process_run(
        self,
        run_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        actor_id: UUID | None = None,
    ) -> PayrollRun:
        """Calculate and persist records for a DRAFT run.

        All active employees are processed unless employee_ids is given.
        The run ends COMPLETED if at least one record succeeded, else FAILED.
        An unexpected error marks the run FAILED and is re-raised.
        """
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            await self.transition_status(run, PayrollRunStatus.PROCESSING, actor_id)

        try:
            async with atomic(self.session):
                if employee_ids is None:
                    ids = await self._active_employee_ids()
                else:
                    ids = list(dict.fromkeys(employee_ids))

                engine = PayrollEngine(self.session, self.attendance_source)
                bulk = await engine.calculate_bulk_payroll(ids, run.period, run.start_date, run.end_date)

                for calculation in bulk.results:
                    self.session.add(calculation.to_record(run.payroll_run_id))

                run.calculation_errors = [failure.to_dict() for failure in bulk.errors]
                run.failed_count = bulk.failed_calculations
                run.processed_at = utcnow()
                await recompute_run_totals(self.session, run)

                final_status = (
                    PayrollRunStatus.COMPLETED if bulk.successful_calculations > 0
                    else PayrollRunStatus.FAILED
                )
                await self.transition_status(run, final_status, actor_id)
        except Exception as e:
            logger.error("Processing payroll run %s failed: %s", run_id, e)
            async with atomic(self.session):
                run = await self.get_run(run_id, for_update=True)
                run.calculation_errors = [{"error_code": getattr(e, "code", "INTERNAL_ERROR"), "message": str(e)}]
                run.processed_at = utcnow()
                await self.transition_status(run, PayrollRunStatus.FAILED, actor_id, reason=str(e))
            raise

        logger.info(
            "Processed payroll run %s: %d records, %d failures",
            run_id,
            bulk.successful_calculations,
            bulk.failed_calculations,
        )
        return run

    async def cancel_run(self, run_id: UUID, actor_id: UUID | None = None) -> PayrollRun:
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            await self.transition_status(run, PayrollRunStatus.CANCELLED, actor_id)
        return run

    async def reset_run(self, run_id: UUID, actor_id: UUID | None = None) -> PayrollRun:
        """Return a FAILED or CANCELLED run to DRAFT, discarding its records."""
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            await self.transition_status(run, PayrollRunStatus.DRAFT, actor_id)
            await self._delete_records(run.payroll_run_id)
            run.calculation_errors = []
            run.failed_count = 0
            run.processed_at = None
            await recompute_run_totals(self.session, run)
        return run

    async def delete_run(self, run_id: UUID, actor_id: UUID | None = None) -> None:
        """Delete a DRAFT or FAILED run with its records."""
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            if not PayrollRunStateMachine.can_delete(run.status):
                raise StateConflictError(run.status, f"Cannot delete payroll run {run_id}")
            await self._delete_records(run.payroll_run_id)
            await self.session.delete(run)
            self.audit.record("payroll_run", run_id, "payroll_run_deleted", actor_id,
                              before={"period": run.period, "status": run.status})
        logger.info("Deleted payroll run %s", run_id)

    # === Records ===

    async def approve_records(
        self,
        run_id: UUID,
        record_ids: Iterable[UUID] | None = None,
        actor_id: UUID | None = None,
    ) -> list[PayrollRecord]:
        """Approve CALCULATED records of a COMPLETED run.

        Without record_ids every CALCULATED record is approved; explicitly
        named records must all be approvable.
        """
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            if run.status != PayrollRunStatus.COMPLETED.value:
                raise StateConflictError(run.status, "Records can only be approved on a COMPLETED run")

            if record_ids is None:
                records = await self.get_records(
                    run_id, statuses=[PayrollRecordStatus.CALCULATED.value], for_update=True
                )
            else:
                wanted = list(dict.fromkeys(record_ids))
                records = await self.get_records(run_id, record_ids=wanted, for_update=True)
                found = {r.payroll_record_id for r in records}
                missing = [rid for rid in wanted if rid not in found]
                if missing:
                    raise NotFoundError("PayrollRecord", missing[0])

            approved_at = utcnow()
            for record in records:
                PayrollRecordStateMachine.validate_transition(record.status, PayrollRecordStatus.APPROVED)
                record.status = PayrollRecordStatus.APPROVED.value
                record.approved_by = actor_id
                record.approved_at = approved_at

            self.audit.record("payroll_run", run_id, "records_approved", actor_id,
                              after={"record_ids": [r.payroll_record_id for r in records]})

        logger.info("Approved %d records in payroll run %s", len(records), run_id)
        return records

    async def recalculate_record(self, record_id: UUID, actor_id: UUID | None = None) -> PayrollRecord:
        """Recompute one unpaid record from current assignment and attendance."""
        async with atomic(self.session):
            run, record = await self.lock_record(record_id)
            if PayrollRecordStateMachine.is_immutable(record.status):
                raise RecordImmutableError(record_id, "recalculate")
            if run.status != PayrollRunStatus.COMPLETED.value:
                raise StateConflictError(run.status, "Records can only be recalculated on a COMPLETED run")

            engine = PayrollEngine(self.session, self.attendance_source)
            calculation = await engine.calculate_employee_payroll(
                record.employee_id, run.period, run.start_date, run.end_date, record.working_days
            )

            before = {"calculation_id": record.calculation_id, "net_salary": record.net_salary}
            # Flush the removals first: line numbers are unique per record
            record.lines.clear()
            await self.session.flush()
            record.lines.extend(
                line.to_line_item(i) for i, line in enumerate(calculation.lines, start=1)
            )

            record.assignment_id = calculation.assignment_id
            record.calculation_id = calculation.calculation_id
            record.inputs_fingerprint = calculation.inputs_fingerprint
            record.payable_days = calculation.payable_days
            record.lop_days = calculation.lop_days
            record.total_earnings = calculation.total_earnings
            record.total_deductions = calculation.total_deductions
            record.gross_salary = calculation.gross_salary
            record.net_salary = calculation.net_salary
            reopen_record(record)
            LineItemBuilder.verify_record(record)

            await recompute_run_totals(self.session, run)
            self.audit.record("payroll_record", record_id, "record_recalculated", actor_id,
                              before=before,
                              after={"calculation_id": record.calculation_id, "net_salary": record.net_salary})

        logger.info("Recalculated payroll record %s", record_id)
        return record

    async def finalize_run(
        self,
        run_id: UUID,
        payment_method: str,
        payment_date: date,
        actor_id: UUID | None = None,
    ) -> FinalizeResult:
        """Pay every APPROVED or CALCULATED record of a COMPLETED run.

        The run stays COMPLETED. BANK_TRANSFER also returns a bank file.
        """
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise PayrollValidationError(
                "payment_method", f"unknown payment method '{payment_method}'"
            ) from None

        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            if run.status != PayrollRunStatus.COMPLETED.value:
                raise StateConflictError(run.status, "Payroll run must be COMPLETED to finalize")

            records = await self.get_records(
                run_id, statuses=PayrollRecordStateMachine.PAYABLE, for_update=True
            )
            if not records:
                raise StateConflictError(run.status, "No approved or calculated records to finalize")

            paid_at = utcnow()
            for record in records:
                before_status = record.status
                PayrollRecordStateMachine.validate_transition(before_status, PayrollRecordStatus.PAID)
                record.status = PayrollRecordStatus.PAID.value
                record.payment_method = method.value
                record.payment_date = payment_date
                record.paid_at = paid_at
                self.audit.record(
                    "payroll_record",
                    record.payroll_record_id,
                    "salary_payment",
                    actor_id,
                    before={"status": before_status},
                    after={
                        "status": PayrollRecordStatus.PAID,
                        "employee_id": record.employee_id,
                        "amount": record.net_salary,
                        "payment_method": method,
                        "payment_date": payment_date,
                        "period": run.period,
                    },
                )

            run.finalized_at = paid_at
            await recompute_run_totals(self.session, run)
            self.audit.record("payroll_run", run_id, "payroll_finalized", actor_id,
                              after={"payment_count": len(records), "payment_method": method,
                                     "total_net": run.total_net})

        bank_file = None
        if method is PaymentMethod.BANK_TRANSFER:
            bank_file = BankFile.from_records(run, records, payment_date)

        logger.info(
            "Finalized payroll run %s: %d payments via %s", run_id, len(records), method.value
        )
        return FinalizeResult(run=run, payment_count=len(records), bank_file=bank_file)

    async def recompute_run_totals(self, run_id: UUID) -> PayrollRun:
        async with atomic(self.session):
            run = await self.get_run(run_id, for_update=True)
            await recompute_run_totals(self.session, run)
        return run

    # === Internals ===

    async def _active_employee_ids(self) -> list[UUID]:
        result = await self.session.execute(
            select(Employee.employee_id)
            .where(Employee.status == "ACTIVE")
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    async def _delete_records(self, run_id: UUID) -> None:
        record_ids = select(PayrollRecord.payroll_record_id).where(
            PayrollRecord.payroll_run_id == run_id
        )
        await self.session.execute(
            delete(PayrollLineItem)
            .where(PayrollLineItem.payroll_record_id.in_(record_ids))
        )
        await self.session.execute(
            delete(PayrollRecord)
            .where(PayrollRecord.payroll_run_id == run_id)
        )
