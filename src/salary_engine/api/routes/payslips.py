"""Payslip API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from salary_engine.api.dependencies import DbSession
from salary_engine.api.schemas import ErrorResponse, PayslipResponse
from salary_engine.services.payslip_service import PayslipService

router = APIRouter(prefix="/payslips", tags=["payslips"])


@router.get(
    "/{record_id}",
    response_model=PayslipResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def get_payslip(
    db: DbSession,
    record_id: Annotated[UUID, Path()],
) -> PayslipResponse:
    """Payslip of an approved or paid payroll record."""
    payslip = await PayslipService(db).assemble_payslip(record_id)
    return PayslipResponse.model_validate(payslip)
