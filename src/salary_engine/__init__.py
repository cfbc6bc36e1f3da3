"""Salary engine: structure resolution, payroll calculation and run lifecycle."""

__version__ = "0.1.0"
