"""Line builder: money rounding, record totals and the net/gross identity."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from salary_engine.calculators.types import (
    AdjustmentLine,
    AdjustmentType,
    ComponentLine,
    LineKind,
    RecordTotals,
    ResolvedComponent,
)
from salary_engine.errors import ConsistencyViolationError

if TYPE_CHECKING:
    from salary_engine.models.payroll import PayrollRecord


class LineItemBuilder:
    """Builds record lines and totals.

    Rounding:
    - Internal compute at 4 decimals
    - Each line rounded to 2 decimals when the record is built
    - Totals are sums of rounded lines, so the identity holds exactly

    Identity (checked after every mutation):
    - gross_salary == total_earnings == sum(earning lines)
    - total_deductions == sum(deduction lines)
    - net_salary == gross_salary - total_deductions
    """

    PRECISION = Decimal("0.0001")  # 4 decimal places for internal calculations
    OUTPUT_PRECISION = Decimal("0.01")  # 2 decimal places for persistence

    @staticmethod
    def quantize(amount: Decimal) -> Decimal:
        """Round amount to internal precision."""
        return amount.quantize(LineItemBuilder.PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineItemBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def component_line(component: ResolvedComponent) -> ComponentLine:
        """Create a record line from a resolved component.

        Raises:
            ConsistencyViolationError: The resolved value is negative
        """
        if component.calculated_value < 0:
            raise ConsistencyViolationError(
                f"component {component.code} resolved to negative value {component.calculated_value}"
            )
        return ComponentLine(
            kind=component.kind,
            pay_component_id=component.pay_component_id,
            component_code=component.code,
            component_name=component.name,
            base_value=LineItemBuilder.quantize(component.base_value),
            amount=LineItemBuilder.round_to_cents(component.calculated_value),
            is_prorated=component.is_prorated,
        )

    @staticmethod
    def adjustment_line(
        adjustment_type: AdjustmentType,
        amount: Decimal,
        reason: str,
    ) -> AdjustmentLine:
        """Create an adjustment line.

        CORRECTION lines carry a signed delta; every other type is positive.
        """
        if adjustment_type is AdjustmentType.CORRECTION:
            value = LineItemBuilder.round_to_cents(amount)
        else:
            value = LineItemBuilder.round_to_cents(abs(amount))
        return AdjustmentLine(adjustment_type=adjustment_type, amount=value, reason=reason)

    @staticmethod
    def split_components(
        components: Iterable[ResolvedComponent],
    ) -> tuple[list[ComponentLine], list[ComponentLine]]:
        """Partition resolved components into earnings and deductions lines."""
        earnings: list[ComponentLine] = []
        deductions: list[ComponentLine] = []
        for component in components:
            line = LineItemBuilder.component_line(component)
            if line.kind is LineKind.EARNING:
                earnings.append(line)
            else:
                deductions.append(line)
        return earnings, deductions

    @staticmethod
    def compute_totals(
        earning_amounts: Iterable[Decimal],
        deduction_amounts: Iterable[Decimal],
    ) -> RecordTotals:
        """Compute record totals from rounded line amounts."""
        total_earnings = LineItemBuilder.round_to_cents(sum(earning_amounts, Decimal("0")))
        total_deductions = LineItemBuilder.round_to_cents(sum(deduction_amounts, Decimal("0")))
        return RecordTotals(
            total_earnings=total_earnings,
            total_deductions=total_deductions,
            gross_salary=total_earnings,
            net_salary=total_earnings - total_deductions,
        )

    @staticmethod
    def verify_identity(
        totals: RecordTotals,
        earning_amounts: Iterable[Decimal],
        deduction_amounts: Iterable[Decimal],
    ) -> None:
        """Raise ConsistencyViolationError if totals disagree with their lines."""
        errors: list[str] = []
        earnings_sum = sum(earning_amounts, Decimal("0"))
        deductions_sum = sum(deduction_amounts, Decimal("0"))

        if totals.gross_salary != totals.total_earnings:
            errors.append(
                f"gross_salary {totals.gross_salary} != total_earnings {totals.total_earnings}"
            )
        if totals.net_salary != totals.gross_salary - totals.total_deductions:
            errors.append(
                f"net_salary {totals.net_salary} != gross_salary {totals.gross_salary} "
                f"- total_deductions {totals.total_deductions}"
            )
        if earnings_sum != totals.total_earnings:
            errors.append(f"earning lines sum {earnings_sum} != total_earnings")
        if deductions_sum != totals.total_deductions:
            errors.append(f"deduction lines sum {deductions_sum} != total_deductions")

        if errors:
            raise ConsistencyViolationError("; ".join(errors))

    @staticmethod
    def totals_of(record: PayrollRecord) -> RecordTotals:
        return RecordTotals(
            total_earnings=record.total_earnings,
            total_deductions=record.total_deductions,
            gross_salary=record.gross_salary,
            net_salary=record.net_salary,
        )

    @staticmethod
    def recompute_record(record: PayrollRecord) -> None:
        """Rewrite a record's totals from its lines, then verify them."""
        earnings = [line.calculated_value for line in record.lines if line.kind == LineKind.EARNING.value]
        deductions = [
            line.calculated_value for line in record.lines if line.kind == LineKind.DEDUCTION.value
        ]
        totals = LineItemBuilder.compute_totals(earnings, deductions)
        record.total_earnings = totals.total_earnings
        record.total_deductions = totals.total_deductions
        record.gross_salary = totals.gross_salary
        record.net_salary = totals.net_salary
        LineItemBuilder.verify_record(record)

    @staticmethod
    def verify_record(record: PayrollRecord) -> None:
        """Verify the identity on a persisted record and its lines."""
        LineItemBuilder.verify_identity(
            LineItemBuilder.totals_of(record),
            (line.calculated_value for line in record.lines if line.kind == LineKind.EARNING.value),
            (line.calculated_value for line in record.lines if line.kind == LineKind.DEDUCTION.value),
        )
