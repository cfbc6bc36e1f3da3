"""ORM models. Importing this package registers every table on Base.metadata."""

from salary_engine.models.base import Base
from salary_engine.models.catalog import PayComponent, SalaryGrade, SalaryStructure, StructureComponent
from salary_engine.models.employee import (
    AssignmentComponent,
    Employee,
    EmployeeSalaryAssignment,
    SalaryRevision,
)
from salary_engine.models.payroll import (
    AttendanceSummary,
    AuditEvent,
    PayrollLineItem,
    PayrollRecord,
    PayrollRun,
)

__all__ = [
    "Base",
    "PayComponent",
    "SalaryGrade",
    "SalaryStructure",
    "StructureComponent",
    "Employee",
    "EmployeeSalaryAssignment",
    "AssignmentComponent",
    "SalaryRevision",
    "AttendanceSummary",
    "PayrollRun",
    "PayrollRecord",
    "PayrollLineItem",
    "AuditEvent",
]
