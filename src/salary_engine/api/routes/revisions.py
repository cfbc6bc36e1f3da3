"""Salary revision API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import (
    ErrorResponse,
    RevisionDecision,
    SalaryRevisionCreate,
    SalaryRevisionResponse,
)
from salary_engine.services.revision_service import SalaryRevisionService

router = APIRouter(prefix="/salary-revisions", tags=["salary-revisions"])

RevisionId = Annotated[UUID, Path()]


@router.post(
    "",
    response_model=SalaryRevisionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def create_salary_revision(
    db: DbSession,
    payload: SalaryRevisionCreate,
) -> SalaryRevisionResponse:
    revision = await SalaryRevisionService(db).create_revision(
        payload.employee_id,
        payload.new_ctc,
        payload.effective_from,
        payload.revision_type,
        payload.reason,
    )
    return SalaryRevisionResponse.model_validate(revision)


@router.get(
    "",
    response_model=list[SalaryRevisionResponse],
)
async def list_salary_revisions(
    db: DbSession,
    employee_id: Annotated[UUID | None, Query()] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[SalaryRevisionResponse]:
    revisions = await SalaryRevisionService(db).list_revisions(employee_id, status_filter)
    return [SalaryRevisionResponse.model_validate(revision) for revision in revisions]


@router.post(
    "/{revision_id}/approve",
    response_model=SalaryRevisionResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def approve_salary_revision(
    db: DbSession,
    actor_id: ActorId,
    revision_id: RevisionId,
    payload: RevisionDecision | None = None,
) -> SalaryRevisionResponse:
    """Approve a pending revision and supersede the current assignment."""
    comments = payload.comments if payload else None
    revision = await SalaryRevisionService(db).approve_revision(revision_id, actor_id, comments)
    return SalaryRevisionResponse.model_validate(revision)


@router.post(
    "/{revision_id}/reject",
    response_model=SalaryRevisionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_salary_revision(
    db: DbSession,
    actor_id: ActorId,
    revision_id: RevisionId,
    payload: RevisionDecision | None = None,
) -> SalaryRevisionResponse:
    comments = payload.comments if payload else None
    revision = await SalaryRevisionService(db).reject_revision(revision_id, comments, actor_id)
    return SalaryRevisionResponse.model_validate(revision)
