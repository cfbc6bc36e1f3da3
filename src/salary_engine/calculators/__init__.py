"""Payroll calculation engine."""

from salary_engine.calculators.engine import PayrollEngine, working_days_between
from salary_engine.calculators.line_builder import LineItemBuilder
from salary_engine.calculators.proration import ProrationEngine
from salary_engine.calculators.structure_resolver import StructureResolver

__all__ = [
    "PayrollEngine",
    "LineItemBuilder",
    "ProrationEngine",
    "StructureResolver",
    "working_days_between",
]
