"""Proration of resolved components over a partially payable period."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.types import ResolvedComponent
from salary_engine.errors import PayrollValidationError


class ProrationEngine:
    """Scales component values by payable_days / total_days.

    Components whose structure row has prorate=False are left untouched.
    Values keep 4 decimal places; rounding to cents happens when record lines
    are built. payable_days is an input and never derived here.
    """

    @staticmethod
    def _to_decimal(field: str, value: Any) -> Decimal:
        try:
            result = value if isinstance(value, Decimal) else Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise PayrollValidationError(field, f"'{value}' is not a number") from None
        if not result.is_finite():
            raise PayrollValidationError(field, "must be finite")
        return result

    def validate(self, payable_days: Any, total_days: Any) -> tuple[Decimal, Decimal]:
        payable = self._to_decimal("payable_days", payable_days)
        total = self._to_decimal("total_days", total_days)
        if total <= 0:
            raise PayrollValidationError("total_days", "must be greater than zero")
        if payable < 0:
            raise PayrollValidationError("payable_days", "must not be negative")
        if payable > total:
            raise PayrollValidationError(
                "payable_days", f"{payable} exceeds total days in period {total}"
            )
        return payable, total

    def prorate(
        self,
        components: list[ResolvedComponent],
        payable_days: Any,
        total_days: Any,
    ) -> list[ResolvedComponent]:
        """Prorate components in place and return them.

        Full attendance leaves every value unchanged and is_prorated False.
        """
        payable, total = self.validate(payable_days, total_days)
        if payable == total:
            return components

        for component in components:
            if not component.prorate:
                continue
            component.calculated_value = LineItemBuilder.quantize(
                component.calculated_value * payable / total
            )
            component.is_prorated = True
        return components
