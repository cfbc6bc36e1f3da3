"""Salary structure resolution: structure + CTC -> component values."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.types import (
    BASE_CTC,
    BASE_GROSS,
    CalculationType,
    ComponentCategory,
    ResolvedComponent,
)
from salary_engine.errors import (
    CTCOutOfRangeError,
    ForwardReferenceError,
    MissingBaseComponentError,
    PayrollValidationError,
    StructureDefinitionError,
)
from salary_engine.models.catalog import SalaryStructure, StructureComponent

HUNDRED = Decimal("100")


class StructureResolver:
    """Resolves a salary structure into monetary component values.

    Resolution rules (components visited in ascending order):
    1. FIXED: the declared value. A BASIC-category component that declares a
       percentage is re-based to ctc * percentage / 100 instead.
    2. PERCENTAGE: base * percentage / 100 where the base is
       - the CTC when base_component_code is unset or 'CTC'
       - the earnings resolved so far when it is 'GROSS'
       - otherwise the resolved value of an earlier component
    3. An override for the component replaces the computed value
    4. Clamp into [min_value, max_value]

    The resolver is pure: it reads the structure already loaded in memory and
    never touches the database.
    """

    def validate_ctc(self, structure: SalaryStructure, ctc: Any) -> Decimal:
        """Coerce and validate a CTC against the structure grade.

        Raises:
            PayrollValidationError: CTC is not a finite positive number
            CTCOutOfRangeError: CTC is outside the grade bounds
        """
        try:
            value = ctc if isinstance(ctc, Decimal) else Decimal(str(ctc))
        except (InvalidOperation, ValueError):
            raise PayrollValidationError("ctc", f"'{ctc}' is not a number") from None

        if not value.is_finite() or value <= 0:
            raise PayrollValidationError("ctc", "must be a finite positive amount")

        grade = structure.grade
        if grade is not None and not grade.contains(value):
            raise CTCOutOfRangeError(value, grade.min_salary, grade.max_salary)
        return value

    def validate_overrides(
        self,
        structure: SalaryStructure,
        overrides: Mapping[UUID, Any] | None,
    ) -> dict[UUID, Decimal]:
        """Coerce overrides to Decimals keyed by the structure's pay components.

        Raises:
            PayrollValidationError: An override is not a finite non-negative
                number, or names a component the structure does not carry
        """
        if not overrides:
            return {}

        known = {sc.pay_component_id for sc in structure.components}
        validated: dict[UUID, Decimal] = {}
        for pay_component_id, raw in overrides.items():
            if pay_component_id not in known:
                raise PayrollValidationError(
                    "overrides",
                    f"component {pay_component_id} is not part of structure {structure.code}",
                )
            try:
                value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
            except (InvalidOperation, ValueError):
                raise PayrollValidationError("overrides", f"'{raw}' is not a number") from None
            if not value.is_finite() or value < 0:
                raise PayrollValidationError(
                    "overrides",
                    f"override for component {pay_component_id} must be a finite non-negative amount",
                )
            validated[pay_component_id] = value
        return validated

    def resolve(
        self,
        structure: SalaryStructure,
        ctc: Any,
        overrides: Mapping[UUID, Decimal] | None = None,
    ) -> list[ResolvedComponent]:
        """Resolve every component of a structure for a CTC.

        Args:
            structure: Structure with its components (and their pay components) loaded
            ctc: Target cost-to-company
            overrides: pay_component_id -> value replacing the computed value

        Returns:
            Resolved components in structure order, none dropped

        Raises:
            PayrollValidationError: Invalid CTC or overrides
            StructuralError: Malformed structure (missing/forward base reference,
                incomplete component definition)
        """
        ctc_value = self.validate_ctc(structure, ctc)
        overrides = self.validate_overrides(structure, overrides)

        ordered = structure.ordered_components()
        positions = {sc.component.code: sc.order for sc in ordered}
        basic_code = next(
            (sc.component.code for sc in ordered if sc.component.category == ComponentCategory.BASIC.value),
            None,
        )

        resolved: list[ResolvedComponent] = []
        by_code: dict[str, ResolvedComponent] = {}

        for sc in ordered:
            component = sc.component
            base_value = self._compute_value(sc, ctc_value, resolved, by_code, positions, basic_code)

            value = base_value
            is_override = False
            override = overrides.get(component.pay_component_id)
            if override is not None:
                value = override
                is_override = True

            value, was_clamped = self._clamp(sc, value)

            item = ResolvedComponent(
                pay_component_id=component.pay_component_id,
                code=component.code,
                name=component.name,
                category=component.category,
                order=sc.order,
                base_value=LineItemBuilder.quantize(base_value),
                calculated_value=LineItemBuilder.quantize(value),
                prorate=sc.prorate,
                was_clamped=was_clamped,
                is_override=is_override,
            )
            resolved.append(item)
            by_code[component.code] = item

        return resolved

    def _compute_value(
        self,
        sc: StructureComponent,
        ctc: Decimal,
        resolved: list[ResolvedComponent],
        by_code: dict[str, ResolvedComponent],
        positions: dict[str, int],
        basic_code: str | None,
    ) -> Decimal:
        component = sc.component

        if component.calculation_type == CalculationType.FIXED.value:
            # Dual mode: basic declared as a share of CTC
            if component.category == ComponentCategory.BASIC.value and sc.percentage is not None:
                return ctc * sc.percentage / HUNDRED
            if sc.value is None:
                raise StructureDefinitionError(
                    f"Component {component.code} is FIXED but declares no value"
                )
            return sc.value

        if sc.percentage is None:
            raise StructureDefinitionError(
                f"Component {component.code} is PERCENTAGE but declares no percentage"
            )
        base = self._resolve_base(sc, ctc, resolved, by_code, positions, basic_code)
        return base * sc.percentage / HUNDRED

    def _resolve_base(
        self,
        sc: StructureComponent,
        ctc: Decimal,
        resolved: list[ResolvedComponent],
        by_code: dict[str, ResolvedComponent],
        positions: dict[str, int],
        basic_code: str | None,
    ) -> Decimal:
        ref = (sc.base_component_code or BASE_CTC).strip()
        code = sc.component.code

        if ref.upper() == BASE_CTC:
            return ctc
        if ref.upper() == BASE_GROSS:
            return sum((r.calculated_value for r in resolved if r.is_earning), Decimal("0"))

        target = ref
        if target not in positions and ref.upper() == ComponentCategory.BASIC.value:
            target = basic_code or ref

        if target not in positions:
            raise MissingBaseComponentError(code, ref)
        if target == code or positions[target] >= sc.order or target not in by_code:
            raise ForwardReferenceError(code, ref)
        return by_code[target].calculated_value

    @staticmethod
    def _clamp(sc: StructureComponent, value: Decimal) -> tuple[Decimal, bool]:
        """Clamp a value into the component bounds. Returns (value, was_clamped)."""
        if sc.min_value is not None and value < sc.min_value:
            return sc.min_value, True
        if sc.max_value is not None and value > sc.max_value:
            return sc.max_value, True
        return value, False
