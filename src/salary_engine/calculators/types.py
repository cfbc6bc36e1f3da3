"""Type definitions for the calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from salary_engine.models.payroll import PayrollLineItem, PayrollRecord


class ComponentCategory(str, Enum):
    """Pay component categories."""

    BASIC = "BASIC"
    HOUSE_RENT = "HOUSE_RENT"
    ALLOWANCE = "ALLOWANCE"
    DEDUCTION = "DEDUCTION"
    SPECIAL = "SPECIAL"


EARNING_CATEGORIES = frozenset(
    {
        ComponentCategory.BASIC.value,
        ComponentCategory.HOUSE_RENT.value,
        ComponentCategory.ALLOWANCE.value,
        ComponentCategory.SPECIAL.value,
    }
)


class CalculationType(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


class LineKind(str, Enum):
    EARNING = "EARNING"
    DEDUCTION = "DEDUCTION"


class LineSource(str, Enum):
    COMPONENT = "COMPONENT"
    ADJUSTMENT = "ADJUSTMENT"


class AdjustmentType(str, Enum):
    """Post-calculation adjustment types."""

    BONUS = "BONUS"
    ALLOWANCE = "ALLOWANCE"
    DEDUCTION = "DEDUCTION"
    CORRECTION = "CORRECTION"  # amount is the new net salary

    @property
    def line_kind(self) -> LineKind:
        if self is AdjustmentType.DEDUCTION:
            return LineKind.DEDUCTION
        return LineKind.EARNING


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    CHEQUE = "CHEQUE"


class RevisionType(str, Enum):
    INCREMENT = "INCREMENT"
    PROMOTION = "PROMOTION"
    MARKET_CORRECTION = "MARKET_CORRECTION"
    BONUS = "BONUS"
    DEMOTION = "DEMOTION"
    SALARY_CUT = "SALARY_CUT"


# Base reference keywords on a structure component
BASE_CTC = "CTC"
BASE_GROSS = "GROSS"


@dataclass
class ResolvedComponent:
    """A structure component with a concrete monetary value for one employee.

    base_value is the value before any override; calculated_value is what is
    paid (after override, clamping and proration).
    """

    pay_component_id: UUID
    code: str
    name: str
    category: str
    order: int
    base_value: Decimal
    calculated_value: Decimal
    prorate: bool = True
    is_prorated: bool = False
    was_clamped: bool = False
    is_override: bool = False

    @property
    def kind(self) -> LineKind:
        if self.category in EARNING_CATEGORIES:
            return LineKind.EARNING
        return LineKind.DEDUCTION

    @property
    def is_earning(self) -> bool:
        return self.kind is LineKind.EARNING

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "pay_component_id": str(self.pay_component_id),
            "code": self.code,
            "category": self.category,
            "order": self.order,
            "base_value": str(self.base_value),
            "calculated_value": str(self.calculated_value),
            "prorate": self.prorate,
            "is_prorated": self.is_prorated,
            "was_clamped": self.was_clamped,
            "is_override": self.is_override,
        }


@dataclass
class ComponentLine:
    """A record line produced from a resolved component (amount in cents)."""

    kind: LineKind
    pay_component_id: UUID
    component_code: str
    component_name: str
    base_value: Decimal
    amount: Decimal
    is_prorated: bool = False

    source = LineSource.COMPONENT

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "kind": self.kind.value,
            "pay_component_id": str(self.pay_component_id),
            "component_code": self.component_code,
            "base_value": str(self.base_value),
            "amount": str(self.amount),
            "is_prorated": self.is_prorated,
        }

    def to_line_item(self, line_no: int) -> PayrollLineItem:
        return PayrollLineItem(
            line_no=line_no,
            kind=self.kind.value,
            source=self.source.value,
            pay_component_id=self.pay_component_id,
            component_code=self.component_code,
            component_name=self.component_name,
            base_value=self.base_value,
            calculated_value=self.amount,
            is_prorated=self.is_prorated,
        )


@dataclass
class AdjustmentLine:
    """A post-calculation adjustment appended to a record.

    Distinct from ComponentLine: it has no pay component, only a type.
    amount is signed for CORRECTION lines only.
    """

    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str

    source = LineSource.ADJUSTMENT

    @property
    def kind(self) -> LineKind:
        return self.adjustment_type.line_kind

    def to_line_item(self, line_no: int, created_by: UUID | None = None) -> PayrollLineItem:
        return PayrollLineItem(
            line_no=line_no,
            kind=self.kind.value,
            source=self.source.value,
            component_code=self.adjustment_type.value,
            component_name=f"{self.adjustment_type.value.title()} adjustment",
            base_value=self.amount,
            calculated_value=self.amount,
            is_prorated=False,
            adjustment_type=self.adjustment_type.value,
            reason=self.reason,
            created_by=created_by,
        )


@dataclass(frozen=True)
class AttendanceInput:
    """Attendance for one employee and period, as supplied by the attendance source."""

    payable_days: Decimal
    total_days: int
    lop_days: Decimal = Decimal("0")


@dataclass(frozen=True)
class RecordTotals:
    total_earnings: Decimal
    total_deductions: Decimal
    gross_salary: Decimal
    net_salary: Decimal


@dataclass
class PayrollCalculation:
    """Result of calculating payroll for one employee and period.

    Pure value: identical inputs give an identical instance, including
    calculation_id.
    """

    employee_id: UUID
    assignment_id: UUID
    period: str
    start_date: date
    end_date: date
    working_days: int
    payable_days: Decimal
    lop_days: Decimal
    earnings: list[ComponentLine]
    deductions: list[ComponentLine]
    totals: RecordTotals
    calculation_id: UUID
    inputs_fingerprint: str

    @property
    def gross_salary(self) -> Decimal:
        return self.totals.gross_salary

    @property
    def net_salary(self) -> Decimal:
        return self.totals.net_salary

    @property
    def total_earnings(self) -> Decimal:
        return self.totals.total_earnings

    @property
    def total_deductions(self) -> Decimal:
        return self.totals.total_deductions

    @property
    def lines(self) -> list[ComponentLine]:
        return self.earnings + self.deductions

    def to_record(self, payroll_run_id: UUID) -> PayrollRecord:
        """Build the persisted record (status CALCULATED) for a run."""
        return PayrollRecord(
            payroll_run_id=payroll_run_id,
            employee_id=self.employee_id,
            assignment_id=self.assignment_id,
            calculation_id=self.calculation_id,
            inputs_fingerprint=self.inputs_fingerprint,
            working_days=self.working_days,
            payable_days=self.payable_days,
            lop_days=self.lop_days,
            gross_salary=self.gross_salary,
            total_earnings=self.total_earnings,
            total_deductions=self.total_deductions,
            net_salary=self.net_salary,
            status="CALCULATED",
            lines=[line.to_line_item(i) for i, line in enumerate(self.lines, start=1)],
        )


@dataclass
class CalculationFailure:
    """One employee that could not be calculated in a bulk call."""

    employee_id: UUID
    error_code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "error_code": self.error_code,
            "message": self.message,
        }


@dataclass
class BulkCalculationResult:
    """Result of calculating payroll for many employees.

    One employee's failure never aborts the batch.
    """

    period: str
    results: list[PayrollCalculation] = field(default_factory=list)
    errors: list[CalculationFailure] = field(default_factory=list)

    @property
    def successful_calculations(self) -> int:
        return len(self.results)

    @property
    def failed_calculations(self) -> int:
        return len(self.errors)
