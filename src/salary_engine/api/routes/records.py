"""Payroll record API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import AdjustmentRequest, ErrorResponse, PayrollRecordResponse
from salary_engine.services.adjustment_service import AdjustmentService
from salary_engine.services.payroll_run_service import PayrollRunService

router = APIRouter(prefix="/payroll-records", tags=["payroll-records"])


@router.get(
    "/{record_id}",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_record(
    db: DbSession,
    record_id: Annotated[UUID, Path()],
) -> PayrollRecordResponse:
    record = await PayrollRunService(db).get_record(record_id)
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/{record_id}/adjust",
    response_model=PayrollRecordResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def adjust_payroll_record(
    db: DbSession,
    actor_id: ActorId,
    record_id: Annotated[UUID, Path()],
    payload: AdjustmentRequest,
) -> PayrollRecordResponse:
    """Apply a bonus, allowance, deduction or net-salary correction."""
    record = await AdjustmentService(db).adjust_record(
        record_id, payload.adjustment_type, payload.amount, payload.reason, actor_id
    )
    return PayrollRecordResponse.model_validate(record)
