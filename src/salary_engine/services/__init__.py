"""Payroll services."""

from salary_engine.services.adjustment_service import AdjustmentService
from salary_engine.services.assignment_service import AssignmentService
from salary_engine.services.payroll_run_service import FinalizeResult, PayrollRunService
from salary_engine.services.payslip_service import Payslip, PayslipService
from salary_engine.services.revision_service import SalaryRevisionService

__all__ = [
    "AdjustmentService",
    "AssignmentService",
    "FinalizeResult",
    "PayrollRunService",
    "Payslip",
    "PayslipService",
    "SalaryRevisionService",
]
