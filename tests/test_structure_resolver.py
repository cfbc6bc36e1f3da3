"""Tests for salary structure resolution."""

from decimal import Decimal

import pytest

from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.errors import (
    CTCOutOfRangeError,
    ForwardReferenceError,
    MissingBaseComponentError,
    PayrollValidationError,
    StructureDefinitionError,
)
from tests.factories import line, pay_component, structure


@pytest.fixture
def resolver() -> StructureResolver:
    return StructureResolver()


@pytest.fixture
def basic():
    return pay_component("BASIC", "BASIC", "FIXED")


@pytest.fixture
def hra():
    return pay_component("HRA", "HOUSE_RENT", "PERCENTAGE")


def values(resolved) -> dict[str, Decimal]:
    return {r.code: r.calculated_value for r in resolved}


class TestPercentageChaining:
    def test_basic_share_of_ctc_and_hra_share_of_basic(self, resolver, basic, hra):
        """BASIC 40% of 600000 is 240000; HRA 50% of BASIC is 120000."""
        s = structure(
            line(basic, 1, percentage="40"),
            line(hra, 2, percentage="50", base="BASIC"),
        )

        resolved = resolver.resolve(s, Decimal("600000"))

        assert values(resolved) == {"BASIC": Decimal("240000"), "HRA": Decimal("120000")}

    def test_percentage_of_ctc_by_default(self, resolver):
        conveyance = pay_component("CONV", "ALLOWANCE", "PERCENTAGE")
        s = structure(line(conveyance, 1, percentage="5"))

        resolved = resolver.resolve(s, Decimal("600000"))

        assert resolved[0].calculated_value == Decimal("30000")

    def test_percentage_of_gross_sums_earlier_earnings(self, resolver, basic, hra):
        special = pay_component("SPECIAL", "SPECIAL", "FIXED")
        pf = pay_component("PF", "DEDUCTION", "PERCENTAGE")
        bonus = pay_component("PERF", "ALLOWANCE", "PERCENTAGE")
        s = structure(
            line(basic, 1, percentage="40"),
            line(hra, 2, percentage="50", base="BASIC"),
            line(pf, 3, percentage="12", base="BASIC"),
            line(special, 4, value="40000"),
            line(bonus, 5, percentage="10", base="GROSS"),
        )

        resolved = resolver.resolve(s, Decimal("600000"))

        # Deductions never contribute to GROSS
        assert values(resolved)["PERF"] == Decimal("40000")

    def test_fixed_component_uses_declared_value(self, resolver, basic):
        s = structure(line(basic, 1, value="25000"))

        resolved = resolver.resolve(s, Decimal("600000"))

        assert resolved[0].calculated_value == Decimal("25000")
        assert resolved[0].base_value == Decimal("25000")

    def test_order_is_preserved_and_nothing_dropped(self, resolver, basic, hra):
        special = pay_component("SPECIAL", "SPECIAL", "FIXED")
        s = structure(
            line(special, 3, value="0"),
            line(hra, 2, percentage="50", base="BASIC"),
            line(basic, 1, percentage="40"),
        )

        resolved = resolver.resolve(s, Decimal("100000"))

        assert [r.code for r in resolved] == ["BASIC", "HRA", "SPECIAL"]
        assert resolved[2].calculated_value == Decimal("0")

    def test_resolution_is_pure(self, resolver, basic, hra):
        s = structure(
            line(basic, 1, percentage="40"),
            line(hra, 2, percentage="50", base="BASIC"),
        )

        first = resolver.resolve(s, Decimal("600000"))
        second = resolver.resolve(s, Decimal("600000"))

        assert [r.to_canonical_dict() for r in first] == [r.to_canonical_dict() for r in second]


class TestClamping:
    def test_clamped_up_to_minimum(self, resolver):
        conveyance = pay_component("CONV", "ALLOWANCE", "PERCENTAGE")
        s = structure(line(conveyance, 1, percentage="1", min_value="5000", max_value="20000"))

        resolved = resolver.resolve(s, Decimal("300000"))  # 1% = 3000

        assert resolved[0].calculated_value == Decimal("5000")
        assert resolved[0].base_value == Decimal("3000")
        assert resolved[0].was_clamped is True

    def test_clamped_down_to_maximum(self, resolver):
        conveyance = pay_component("CONV", "ALLOWANCE", "PERCENTAGE")
        s = structure(line(conveyance, 1, percentage="10", min_value="5000", max_value="20000"))

        resolved = resolver.resolve(s, Decimal("600000"))  # 10% = 60000

        assert resolved[0].calculated_value == Decimal("20000")
        assert resolved[0].was_clamped is True

    def test_within_bounds_untouched(self, resolver):
        conveyance = pay_component("CONV", "ALLOWANCE", "PERCENTAGE")
        s = structure(line(conveyance, 1, percentage="2", min_value="5000", max_value="20000"))

        resolved = resolver.resolve(s, Decimal("600000"))  # 12000

        assert resolved[0].calculated_value == Decimal("12000")
        assert resolved[0].was_clamped is False

    def test_clamped_value_feeds_dependents(self, resolver, basic, hra):
        s = structure(
            line(basic, 1, percentage="40", max_value="100000"),
            line(hra, 2, percentage="50", base="BASIC"),
        )

        resolved = resolver.resolve(s, Decimal("600000"))

        assert values(resolved) == {"BASIC": Decimal("100000"), "HRA": Decimal("50000")}


class TestOverrides:
    def test_override_replaces_value_then_clamps(self, resolver, basic, hra):
        s = structure(
            line(basic, 1, percentage="40"),
            line(hra, 2, percentage="50", base="BASIC", max_value="100000"),
        )

        resolved = resolver.resolve(
            s, Decimal("600000"), {hra.pay_component_id: Decimal("150000")}
        )

        hra_line = resolved[1]
        assert hra_line.is_override is True
        assert hra_line.base_value == Decimal("120000")
        assert hra_line.calculated_value == Decimal("100000")
        assert hra_line.was_clamped is True

    def test_override_accepts_numeric_strings(self, resolver, basic, hra):
        s = structure(line(basic, 1, percentage="40"), line(hra, 2, percentage="50", base="BASIC"))

        resolved = resolver.resolve(s, Decimal("600000"), {hra.pay_component_id: "90000"})

        assert resolved[1].calculated_value == Decimal("90000")

    def test_zero_override_is_allowed(self, resolver, basic, hra):
        s = structure(line(basic, 1, percentage="40"), line(hra, 2, percentage="50", base="BASIC"))

        resolved = resolver.resolve(s, Decimal("600000"), {hra.pay_component_id: Decimal("0")})

        assert resolved[1].calculated_value == Decimal("0")

    def test_negative_override_rejected(self, resolver, basic, hra):
        s = structure(line(basic, 1, percentage="40"), line(hra, 2, percentage="50", base="BASIC"))

        with pytest.raises(PayrollValidationError) as exc_info:
            resolver.resolve(s, Decimal("600000"), {hra.pay_component_id: Decimal("-5000")})

        assert exc_info.value.field == "overrides"

    @pytest.mark.parametrize("raw", [Decimal("NaN"), Decimal("Infinity"), "abc"])
    def test_non_finite_override_rejected(self, resolver, basic, hra, raw):
        s = structure(line(basic, 1, percentage="40"), line(hra, 2, percentage="50", base="BASIC"))

        with pytest.raises(PayrollValidationError) as exc_info:
            resolver.resolve(s, Decimal("600000"), {hra.pay_component_id: raw})

        assert exc_info.value.field == "overrides"

    def test_override_for_foreign_component_rejected(self, resolver, basic, hra):
        """An override naming a component outside the structure is never dropped silently."""
        s = structure(line(basic, 1, percentage="40"))

        with pytest.raises(PayrollValidationError) as exc_info:
            resolver.resolve(s, Decimal("600000"), {hra.pay_component_id: Decimal("1000")})

        assert exc_info.value.field == "overrides"


class TestResolutionErrors:
    def test_unknown_base_component(self, resolver, hra):
        s = structure(line(hra, 1, percentage="50", base="BASIC"))

        with pytest.raises(MissingBaseComponentError):
            resolver.resolve(s, Decimal("600000"))

    def test_forward_reference(self, resolver, basic, hra):
        s = structure(
            line(hra, 1, percentage="50", base="BASIC"),
            line(basic, 2, percentage="40"),
        )

        with pytest.raises(ForwardReferenceError):
            resolver.resolve(s, Decimal("600000"))

    def test_self_reference(self, resolver, hra):
        s = structure(line(hra, 1, percentage="50", base="HRA"))

        with pytest.raises(ForwardReferenceError):
            resolver.resolve(s, Decimal("600000"))

    def test_fixed_without_value(self, resolver):
        special = pay_component("SPECIAL", "SPECIAL", "FIXED")
        s = structure(line(special, 1))

        with pytest.raises(StructureDefinitionError):
            resolver.resolve(s, Decimal("600000"))

    def test_percentage_without_percentage(self, resolver, hra):
        s = structure(line(hra, 1, value="100"))

        with pytest.raises(StructureDefinitionError):
            resolver.resolve(s, Decimal("600000"))

    @pytest.mark.parametrize("ctc", ["0", "-1", "NaN", "Infinity", "abc"])
    def test_invalid_ctc(self, resolver, basic, ctc):
        s = structure(line(basic, 1, percentage="40"))

        with pytest.raises(PayrollValidationError):
            resolver.resolve(s, ctc)

    @pytest.mark.parametrize("ctc", ["99999.99", "5000000.01"])
    def test_ctc_outside_grade(self, resolver, basic, ctc):
        s = structure(line(basic, 1, percentage="40"), min_salary="100000", max_salary="5000000")

        with pytest.raises(CTCOutOfRangeError):
            resolver.resolve(s, Decimal(ctc))

    def test_ctc_on_grade_boundary_is_accepted(self, resolver, basic):
        s = structure(line(basic, 1, percentage="40"), min_salary="100000", max_salary="5000000")

        resolved = resolver.resolve(s, Decimal("5000000"))

        assert resolved[0].calculated_value == Decimal("2000000")
