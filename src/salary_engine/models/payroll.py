"""Attendance input, payroll run, record, line item and audit models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salary_engine.models.base import Base, TimestampMixin
from salary_engine.models.employee import Employee


# ===== Attendance =====


class AttendanceSummary(Base, TimestampMixin):
    """Computed attendance for one employee and period.

    Written by the attendance subsystem; payroll only reads it.
    """

    __tablename__ = "attendance_summary"

    attendance_summary_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    payable_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    lop_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("employee_id", "period", name="attendance_summary_employee_period"),
        CheckConstraint("payable_days >= 0", name="attendance_payable_non_negative"),
        CheckConstraint("lop_days >= 0", name="attendance_lop_non_negative"),
    )


# ===== Payroll Runs =====


class PayrollRun(Base, TimestampMixin):
    """Payroll run container: one per period."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    period: Mapped[str] = mapped_column(String(7), nullable=False, unique=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="DRAFT")

    # Derived from child records, never edited directly
    total_gross: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(16, 2), nullable=False, default=Decimal("0")
    )
    total_net: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=Decimal("0"))
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculation_errors: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED')",
            name="payroll_run_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_run_dates_check"),
    )


class PayrollRecord(Base, TimestampMixin):
    """One employee's computed payroll within a run."""

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    assignment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee_salary_assignment.assignment_id"),
        nullable=True,
    )
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)
    inputs_fingerprint: Mapped[str] = mapped_column(String, nullable=False)

    working_days: Mapped[int] = mapped_column(Integer, nullable=False)
    payable_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    lop_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))

    gross_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    status: Mapped[str] = mapped_column(String, nullable=False, default="CALCULATED")
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="payroll_record_run_employee"),
        CheckConstraint(
            "status IN ('CALCULATED', 'APPROVED', 'PAID')",
            name="payroll_record_status_check",
        ),
        CheckConstraint(
            "payment_method IS NULL OR payment_method IN ('BANK_TRANSFER', 'CASH', 'CHEQUE')",
            name="payroll_record_payment_method_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(lazy="selectin")
    run: Mapped[PayrollRun] = relationship(lazy="selectin")
    lines: Mapped[list[PayrollLineItem]] = relationship(
        back_populates="record",
        order_by="PayrollLineItem.line_no",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def earnings(self) -> list[PayrollLineItem]:
        return [line for line in self.lines if line.kind == "EARNING"]

    @property
    def deductions(self) -> list[PayrollLineItem]:
        return [line for line in self.lines if line.kind == "DEDUCTION"]


class PayrollLineItem(Base, TimestampMixin):
    """Earnings or deduction line of a payroll record.

    COMPONENT lines come from the salary structure; ADJUSTMENT lines are
    appended afterwards and carry an adjustment_type instead of a component.
    """

    __tablename__ = "payroll_line_item"

    payroll_line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_record_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id", ondelete="CASCADE"),
        nullable=False,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, default="COMPONENT")

    pay_component_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_component.pay_component_id"),
        nullable=True,
    )
    component_code: Mapped[str | None] = mapped_column(String, nullable=True)
    component_name: Mapped[str | None] = mapped_column(String, nullable=True)
    base_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    calculated_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_prorated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    adjustment_type: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_record_id", "line_no", name="payroll_line_item_record_line"),
        CheckConstraint("kind IN ('EARNING', 'DEDUCTION')", name="payroll_line_item_kind_check"),
        CheckConstraint(
            "source IN ('COMPONENT', 'ADJUSTMENT')",
            name="payroll_line_item_source_check",
        ),
        CheckConstraint(
            "(source = 'ADJUSTMENT') = (adjustment_type IS NOT NULL)",
            name="payroll_line_item_adjustment_check",
        ),
    )

    # Relationships
    record: Mapped[PayrollRecord] = relationship(back_populates="lines")


# ===== Audit =====


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
