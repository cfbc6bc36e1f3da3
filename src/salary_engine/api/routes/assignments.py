"""Salary assignment API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import (
    ErrorResponse,
    SalaryAssignmentCreate,
    SalaryAssignmentResponse,
    SalaryHistoryResponse,
)
from salary_engine.services.assignment_service import AssignmentService

router = APIRouter(tags=["salary-assignments"])


@router.post(
    "/salary-assignments",
    response_model=SalaryAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def create_salary_assignment(
    db: DbSession,
    actor_id: ActorId,
    payload: SalaryAssignmentCreate,
) -> SalaryAssignmentResponse:
    """Assign a salary structure, ending the current assignment the day before."""
    overrides = {o.pay_component_id: o.value for o in payload.overrides}
    assignment = await AssignmentService(db).assign_structure(
        employee_id=payload.employee_id,
        salary_structure_id=payload.salary_structure_id,
        ctc=payload.ctc,
        effective_from=payload.effective_from,
        overrides=overrides or None,
        reason=payload.reason,
        actor_id=actor_id,
    )
    return SalaryAssignmentResponse.model_validate(assignment)


@router.get(
    "/employees/{employee_id}/salary-history",
    response_model=SalaryHistoryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_salary_history(
    db: DbSession,
    employee_id: Annotated[UUID, Path()],
) -> SalaryHistoryResponse:
    service = AssignmentService(db)
    await service.get_employee(employee_id)
    history = await service.get_history(employee_id)
    return SalaryHistoryResponse(
        employee_id=employee_id,
        assignments=[SalaryAssignmentResponse.model_validate(a) for a in history],
    )
