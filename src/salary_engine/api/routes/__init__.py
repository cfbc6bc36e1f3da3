"""API routes."""

from salary_engine.api.routes.assignments import router as assignments_router
from salary_engine.api.routes.health import router as health_router
from salary_engine.api.routes.payroll_runs import router as payroll_runs_router
from salary_engine.api.routes.payslips import router as payslips_router
from salary_engine.api.routes.records import router as records_router
from salary_engine.api.routes.revisions import router as revisions_router
from salary_engine.api.routes.structures import router as structures_router

__all__ = [
    "assignments_router",
    "health_router",
    "payroll_runs_router",
    "payslips_router",
    "records_router",
    "revisions_router",
    "structures_router",
]
