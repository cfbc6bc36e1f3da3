"""Tests for post-calculation adjustments."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from salary_engine.errors import PayrollValidationError, RecordImmutableError
from salary_engine.models import AuditEvent, PayrollRecord
from salary_engine.services.adjustment_service import AdjustmentService
from salary_engine.services.payroll_run_service import PayrollRunService
from tests.conftest import PAYROLL_PERIOD, record_lock_calls


@pytest.fixture
async def run(session, employees):
    service = PayrollRunService(session)
    run = await service.create_run(PAYROLL_PERIOD)
    return await service.process_run(run.payroll_run_id)


@pytest.fixture
async def record(session, run) -> PayrollRecord:
    records = await PayrollRunService(session).get_records(run.payroll_run_id)
    return records[0]


class TestAdjustRecord:
    async def test_bonus_adds_earnings_line(self, session, run, record):
        record = await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "BONUS", Decimal("5000"), "Spot award"
        )

        assert record.gross_salary == Decimal("375000.00")
        assert record.total_deductions == Decimal("2000.00")
        assert record.net_salary == Decimal("373000.00")
        line = record.lines[-1]
        assert line.line_no == 6
        assert line.source == "ADJUSTMENT"
        assert line.kind == "EARNING"
        assert line.adjustment_type == "BONUS"
        assert line.reason == "Spot award"

    async def test_deduction_adds_deductions_line(self, session, run, record):
        record = await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "DEDUCTION", "1000", "Laptop damage"
        )

        assert record.total_deductions == Decimal("3000.00")
        assert record.net_salary == Decimal("367000.00")
        assert record.gross_salary == Decimal("370000.00")

    async def test_correction_sets_net_salary(self, session, run, record):
        record = await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "CORRECTION", Decimal("360000"), "Overpayment in May"
        )

        assert record.net_salary == Decimal("360000.00")
        assert record.gross_salary == Decimal("362000.00")
        assert record.lines[-1].calculated_value == Decimal("-8000.00")
        assert record.net_salary == record.gross_salary - record.total_deductions

    async def test_run_totals_follow_adjustment(self, session, run, record):
        service = PayrollRunService(session)
        before = (await service.get_run(run.payroll_run_id)).total_net

        await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "ALLOWANCE", Decimal("1500.50"), "Travel"
        )

        run = await service.get_run(run.payroll_run_id)
        records = await service.get_records(run.payroll_run_id)
        assert run.total_net == before + Decimal("1500.50")
        assert run.total_net == sum(r.net_salary for r in records)
        assert run.total_gross == sum(r.gross_salary for r in records)

    async def test_approved_record_is_reopened(self, session, run, record):
        await PayrollRunService(session).approve_records(run.payroll_run_id)

        record = await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "BONUS", Decimal("100"), "Referral"
        )

        assert record.status == "CALCULATED"
        assert record.approved_at is None

    async def test_multiple_adjustments_keep_line_numbers_unique(self, session, run, record):
        service = AdjustmentService(session)
        await service.adjust_record(record.payroll_record_id, "BONUS", Decimal("100"), "One")
        record = await service.adjust_record(record.payroll_record_id, "DEDUCTION", Decimal("50"), "Two")

        assert [line.line_no for line in record.lines] == [1, 2, 3, 4, 5, 6, 7]
        assert record.net_salary == Decimal("368050.00")

    async def test_writes_audit_entry(self, session, run, record):
        await AdjustmentService(session).adjust_record(
            record.payroll_record_id, "BONUS", Decimal("5000"), "Spot award"
        )

        result = await session.execute(select(AuditEvent).where(AuditEvent.action == "adjustment:BONUS"))
        event = result.scalar_one()
        assert event.entity_id == record.payroll_record_id
        assert event.before_json["net_salary"] == "368000.00"
        assert event.after_json["net_salary"] == "373000.00"


class TestAdjustPaidRecord:
    async def test_paid_record_is_immutable(self, session, run, record):
        record_id = record.payroll_record_id
        await PayrollRunService(session).finalize_run(run.payroll_run_id, "CASH", date(2024, 7, 1))
        record = await session.get(PayrollRecord, record_id)
        snapshot = (
            record.status,
            record.gross_salary,
            record.total_deductions,
            record.net_salary,
            len(record.lines),
        )

        with pytest.raises(RecordImmutableError) as exc_info:
            await AdjustmentService(session).adjust_record(record_id, "BONUS", Decimal("5000"), "Late bonus")

        assert exc_info.value.current_state == "PAID"
        record = await PayrollRunService(session).get_record(record_id)
        await session.refresh(record, ["lines"])
        assert (
            record.status,
            record.gross_salary,
            record.total_deductions,
            record.net_salary,
            len(record.lines),
        ) == snapshot


class TestAdjustmentValidation:
    @pytest.mark.parametrize(
        ("adjustment_type", "amount", "reason"),
        [
            ("BONUS", "0", "Zero"),
            ("BONUS", "-10", "Negative"),
            ("ALLOWANCE", "NaN", "Not a number"),
            ("DEDUCTION", "100", ""),
            ("DEDUCTION", "100", "   "),
            ("GIFT", "100", "Unknown type"),
            ("CORRECTION", "-1", "Negative net"),
        ],
    )
    async def test_rejected(self, session, run, record, adjustment_type, amount, reason):
        with pytest.raises(PayrollValidationError):
            await AdjustmentService(session).adjust_record(
                record.payroll_record_id, adjustment_type, amount, reason
            )

    async def test_correction_to_same_net_rejected(self, session, run, record):
        with pytest.raises(PayrollValidationError):
            await AdjustmentService(session).adjust_record(
                record.payroll_record_id, "CORRECTION", Decimal("368000"), "No change"
            )


class TestAdjustLockOrder:
    async def test_run_is_locked_before_record(self, session, run, record):
        """Same order as approve and finalize, which lock the run then its records."""
        service = AdjustmentService(session)
        calls = record_lock_calls(service.runs)

        await service.adjust_record(record.payroll_record_id, "BONUS", Decimal("5000"), "Spot award")

        assert calls == ["run", "record"]
