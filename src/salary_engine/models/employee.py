"""Employee, salary assignment and salary revision models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Select,
    String,
    Text,
    UniqueConstraint,
    or_,
    select,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salary_engine.models.base import Base, TimestampMixin
from salary_engine.models.catalog import PayComponent, SalaryStructure


class Employee(Base, TimestampMixin):
    """Employee master data used by payroll."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    designation: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    joining_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")

    # Bank details (bank file and payslip only)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_ifsc: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_branch: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'TERMINATED', 'ON_LEAVE')",
            name="employee_status_check",
        ),
    )

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"


class EmployeeSalaryAssignment(Base, TimestampMixin):
    """An employee's salary structure and CTC over an effective interval.

    effective_to is the last day the assignment applies (inclusive); NULL
    means open-ended. Rows are never deleted.
    """

    __tablename__ = "employee_salary_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    salary_structure_id: Mapped[UUID] = mapped_column(
        ForeignKey("salary_structure.salary_structure_id"),
        nullable=False,
    )
    ctc: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    revision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="assignment_dates_check",
        ),
        CheckConstraint("ctc > 0", name="assignment_ctc_positive"),
    )

    # Relationships
    structure: Mapped[SalaryStructure] = relationship(lazy="selectin")
    components: Mapped[list[AssignmentComponent]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_open_ended(self) -> bool:
        return self.effective_to is None

    @classmethod
    def select_for_period(
        cls, employee_id: UUID, start: date, end: date
    ) -> Select[tuple[EmployeeSalaryAssignment]]:
        """Assignments in effect during [start, end], latest effective_from first.

        Superseded assignments stay eligible for the periods they covered; an
        assignment that is neither active nor ended is never in effect.
        """
        return (
            select(cls)
            .where(
                cls.employee_id == employee_id,
                or_(cls.is_active.is_(True), cls.effective_to.is_not(None)),
                cls.effective_from <= end,
                or_(cls.effective_to.is_(None), cls.effective_to >= start),
            )
            .order_by(cls.effective_from.desc())
        )

    def overrides(self) -> dict[UUID, Decimal]:
        """Component overrides keyed by pay component id."""
        return {
            c.pay_component_id: c.override_value
            for c in self.components
            if c.override_value is not None
        }


class AssignmentComponent(Base, TimestampMixin):
    """Resolved component value stored with an assignment."""

    __tablename__ = "assignment_component"

    assignment_component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    assignment_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee_salary_assignment.assignment_id", ondelete="CASCADE"),
        nullable=False,
    )
    pay_component_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_component.pay_component_id"),
        nullable=False,
    )
    base_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    calculated_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    override_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    was_clamped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("assignment_id", "pay_component_id", name="assignment_component_unique"),
    )

    # Relationships
    assignment: Mapped[EmployeeSalaryAssignment] = relationship(back_populates="components")
    component: Mapped[PayComponent] = relationship(lazy="selectin")

    @property
    def is_override(self) -> bool:
        return self.override_value is not None


class SalaryRevision(Base, TimestampMixin):
    """Proposed CTC change. No effect until implemented."""

    __tablename__ = "salary_revision"

    salary_revision_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    previous_ctc: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    new_ctc: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    revision_type: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    implemented_assignment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee_salary_assignment.assignment_id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "revision_type IN ('INCREMENT', 'PROMOTION', 'MARKET_CORRECTION', "
            "'BONUS', 'DEMOTION', 'SALARY_CUT')",
            name="salary_revision_type_check",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'IMPLEMENTED')",
            name="salary_revision_status_check",
        ),
        CheckConstraint("new_ctc > 0", name="salary_revision_ctc_positive"),
    )
