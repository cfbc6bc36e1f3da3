"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import (
    ApproveRecordsRequest,
    ApproveRecordsResponse,
    BankFileResponse,
    BankFileRowResponse,
    ErrorResponse,
    FinalizeRequest,
    FinalizeResponse,
    PayrollRunCreate,
    PayrollRunResponse,
    ProcessRunRequest,
)
from salary_engine.services.payroll_run_service import PayrollRunService

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])

RunId = Annotated[UUID, Path()]


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payload: PayrollRunCreate,
) -> PayrollRunResponse:
    """Create a payroll run in DRAFT status."""
    run = await PayrollRunService(db).create_run(
        payload.period, payload.start_date, payload.end_date, actor_id
    )
    return PayrollRunResponse.model_validate(run)


@router.get(
    "",
    response_model=list[PayrollRunResponse],
)
async def list_payroll_runs(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[PayrollRunResponse]:
    runs = await PayrollRunService(db).list_runs(status_filter)
    return [PayrollRunResponse.model_validate(run) for run in runs]


@router.get(
    "/{run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(db: DbSession, run_id: RunId) -> PayrollRunResponse:
    run = await PayrollRunService(db).get_run(run_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{run_id}/process",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def process_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    run_id: RunId,
    payload: ProcessRunRequest | None = None,
) -> PayrollRunResponse:
    """Calculate every employee of a DRAFT run.

    Per-employee failures are stored on the run; the request still succeeds.
    """
    employee_ids = payload.employee_ids if payload else None
    run = await PayrollRunService(db).process_run(run_id, employee_ids, actor_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{run_id}/cancel",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_payroll_run(db: DbSession, actor_id: ActorId, run_id: RunId) -> PayrollRunResponse:
    run = await PayrollRunService(db).cancel_run(run_id, actor_id)
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{run_id}/reset",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reset_payroll_run(db: DbSession, actor_id: ActorId, run_id: RunId) -> PayrollRunResponse:
    run = await PayrollRunService(db).reset_run(run_id, actor_id)
    return PayrollRunResponse.model_validate(run)


@router.delete(
    "/{run_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_payroll_run(db: DbSession, actor_id: ActorId, run_id: RunId) -> Response:
    await PayrollRunService(db).delete_run(run_id, actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{run_id}/approve",
    response_model=ApproveRecordsResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_payroll_records(
    db: DbSession,
    actor_id: ActorId,
    run_id: RunId,
    payload: ApproveRecordsRequest | None = None,
) -> ApproveRecordsResponse:
    """Approve all CALCULATED records, or only the listed ones."""
    record_ids = payload.record_ids if payload else None
    records = await PayrollRunService(db).approve_records(run_id, record_ids, actor_id)
    return ApproveRecordsResponse(
        payroll_run_id=run_id,
        approved_count=len(records),
        record_ids=[record.payroll_record_id for record in records],
    )


@router.post(
    "/{run_id}/finalize",
    response_model=FinalizeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def finalize_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    run_id: RunId,
    payload: FinalizeRequest,
) -> FinalizeResponse:
    """Pay the run's unpaid records. Bank transfers also return the bank file."""
    result = await PayrollRunService(db).finalize_run(
        run_id, payload.payment_method, payload.payment_date, actor_id
    )

    bank_file = None
    if result.bank_file is not None:
        bank_file = BankFileResponse(
            file_name=result.bank_file.file_name,
            period=result.bank_file.period,
            payment_date=result.bank_file.payment_date,
            total_records=result.bank_file.total_records,
            total_amount=result.bank_file.total_amount,
            rows=[BankFileRowResponse.model_validate(row) for row in result.bank_file.rows],
            csv_content=result.bank_file.to_csv(),
        )

    return FinalizeResponse(
        run=PayrollRunResponse.model_validate(result.run),
        payment_count=result.payment_count,
        bank_file=bank_file,
    )
