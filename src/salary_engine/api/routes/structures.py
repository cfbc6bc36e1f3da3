"""Salary structure version API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from salary_engine.api.dependencies import ActorId, DbSession
from salary_engine.api.schemas import (
    EffectiveDateCheck,
    EffectiveDateValidationResponse,
    ErrorResponse,
    ReassignmentRequest,
    SalaryAssignmentResponse,
    SalaryStructureResponse,
    StructureVersionCreate,
)
from salary_engine.errors import NotFoundError
from salary_engine.services.structure_service import (
    ComponentSpec,
    SalaryUpdate,
    StructureVersionService,
)

router = APIRouter(prefix="/salary-structures", tags=["salary-structures"])

StructureId = Annotated[UUID, Path()]


@router.get(
    "/active",
    response_model=SalaryStructureResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_active_structure(
    db: DbSession,
    code: Annotated[str, Query()],
    on_date: Annotated[date, Query(alias="date")],
) -> SalaryStructureResponse:
    """The version of a structure code in effect on a date."""
    structure = await StructureVersionService(db).get_active_structure(code, on_date)
    if structure is None:
        raise NotFoundError("SalaryStructure", f"{code} on {on_date}")
    return SalaryStructureResponse.model_validate(structure)


@router.get(
    "/{structure_id}",
    response_model=SalaryStructureResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_structure(db: DbSession, structure_id: StructureId) -> SalaryStructureResponse:
    structure = await StructureVersionService(db).get_structure(structure_id)
    return SalaryStructureResponse.model_validate(structure)


@router.get(
    "/{structure_id}/versions",
    response_model=list[SalaryStructureResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_structure_versions(db: DbSession, structure_id: StructureId) -> list[SalaryStructureResponse]:
    versions = await StructureVersionService(db).get_versions(structure_id)
    return [SalaryStructureResponse.model_validate(v) for v in versions]


@router.post(
    "/{structure_id}/versions",
    response_model=SalaryStructureResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_structure_version(
    db: DbSession,
    actor_id: ActorId,
    structure_id: StructureId,
    payload: StructureVersionCreate,
) -> SalaryStructureResponse:
    """Create the next version, ending the open-ended one the day before."""
    components = None
    if payload.components is not None:
        components = [ComponentSpec(**c.model_dump()) for c in payload.components]
    structure = await StructureVersionService(db).create_version(
        structure_id,
        payload.effective_from,
        effective_to=payload.effective_to,
        change_log=payload.change_log,
        components=components,
        actor_id=actor_id,
    )
    return SalaryStructureResponse.model_validate(structure)


@router.post(
    "/{structure_id}/versions/validate",
    response_model=EffectiveDateValidationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def validate_version_dates(
    db: DbSession,
    structure_id: StructureId,
    payload: EffectiveDateCheck,
) -> EffectiveDateValidationResponse:
    validation = await StructureVersionService(db).validate_effective_date(
        structure_id, payload.effective_from, payload.effective_to
    )
    return EffectiveDateValidationResponse(
        is_valid=validation.is_valid,
        errors=validation.errors,
        warnings=validation.warnings,
        affected_employees=validation.affected_employees,
    )


@router.get(
    "/{structure_id}/affected-employees",
    response_model=list[SalaryAssignmentResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_affected_employees(
    db: DbSession,
    structure_id: StructureId,
    effective_date: Annotated[date, Query()],
) -> list[SalaryAssignmentResponse]:
    service = StructureVersionService(db)
    await service.get_structure(structure_id)
    assignments = await service.get_affected_employees(structure_id, effective_date)
    return [SalaryAssignmentResponse.model_validate(a) for a in assignments]


@router.post(
    "/{structure_id}/reassign",
    response_model=list[SalaryAssignmentResponse],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def reassign_employees(
    db: DbSession,
    actor_id: ActorId,
    structure_id: StructureId,
    payload: ReassignmentRequest,
) -> list[SalaryAssignmentResponse]:
    """Move employees onto this version in one unit of work."""
    updates = None
    if payload.updates is not None:
        updates = [
            SalaryUpdate(
                employee_id=u.employee_id,
                ctc=u.ctc,
                overrides={o.pay_component_id: o.value for o in u.overrides} if u.overrides is not None else None,
                reason=u.reason,
            )
            for u in payload.updates
        ]
    assignments = await StructureVersionService(db).reassign_employees(
        structure_id, payload.effective_date, updates, actor_id
    )
    return [SalaryAssignmentResponse.model_validate(a) for a in assignments]
