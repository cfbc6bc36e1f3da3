"""Salary assignment service: initial assignment, revocation and history."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.calculators.types import ResolvedComponent
from salary_engine.database import atomic
from salary_engine.errors import NotFoundError, PayrollValidationError
from salary_engine.models.catalog import SalaryStructure
from salary_engine.models.employee import (
    AssignmentComponent,
    Employee,
    EmployeeSalaryAssignment,
)
from salary_engine.services.audit import AuditRecorder
from salary_engine.services.locking_service import LockingService

logger = logging.getLogger(__name__)


class AssignmentService:
    """Manages EmployeeSalaryAssignment history.

    Invariant kept by every operation: an employee's active assignments never
    overlap and at most one is open-ended. Rows are ended, never deleted.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = StructureResolver()
        self.locking = LockingService(session)
        self.audit = AuditRecorder(session)

    # === Queries ===

    async def get_employee(self, employee_id: UUID) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def get_structure(self, salary_structure_id: UUID) -> SalaryStructure:
        structure = await self.session.get(SalaryStructure, salary_structure_id)
        if structure is None:
            raise NotFoundError("SalaryStructure", salary_structure_id)
        return structure

    async def get_assignment(self, assignment_id: UUID, for_update: bool = False) -> EmployeeSalaryAssignment:
        stmt = select(EmployeeSalaryAssignment).where(
            EmployeeSalaryAssignment.assignment_id == assignment_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        assignment = result.scalar_one_or_none()
        if assignment is None:
            raise NotFoundError("EmployeeSalaryAssignment", assignment_id)
        return assignment

    async def get_current_assignment(
        self, employee_id: UUID, for_update: bool = False
    ) -> EmployeeSalaryAssignment | None:
        """The active open-ended assignment, if any."""
        stmt = (
            select(EmployeeSalaryAssignment)
            .where(
                EmployeeSalaryAssignment.employee_id == employee_id,
                EmployeeSalaryAssignment.is_active.is_(True),
                EmployeeSalaryAssignment.effective_to.is_(None),
            )
            .order_by(EmployeeSalaryAssignment.effective_from.desc())
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_assignment_for_period(
        self, employee_id: UUID, start_date: date, end_date: date
    ) -> EmployeeSalaryAssignment | None:
        """The assignment in effect for a period (latest effective_from wins)."""
        result = await self.session.execute(
            EmployeeSalaryAssignment.select_for_period(employee_id, start_date, end_date).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_history(self, employee_id: UUID) -> list[EmployeeSalaryAssignment]:
        """All assignments of an employee, newest first."""
        result = await self.session.execute(
            select(EmployeeSalaryAssignment)
            .where(EmployeeSalaryAssignment.employee_id == employee_id)
            .order_by(EmployeeSalaryAssignment.effective_from.desc())
        )
        return list(result.scalars().all())

    # === Mutations ===

    async def assign_structure(
        self,
        employee_id: UUID,
        salary_structure_id: UUID,
        ctc: Decimal,
        effective_from: date,
        overrides: Mapping[UUID, Decimal] | None = None,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> EmployeeSalaryAssignment:
        """Assign a structure and CTC to an employee from effective_from.

        Any current open-ended assignment is ended the day before.

        Raises:
            NotFoundError: Unknown employee or structure
            PayrollValidationError: Inactive structure, CTC out of range, bad date
            StructuralError: Structure cannot be resolved
            StateConflictError: Concurrent change to the current assignment
        """
        async with self.locking.employee_lock(employee_id):
            async with atomic(self.session):
                await self.get_employee(employee_id)
                structure = await self.get_structure(salary_structure_id)
                self.validate_assignable(structure, effective_from)

                current = await self.get_current_assignment(employee_id, for_update=True)
                if current is not None:
                    self.validate_supersession(current, effective_from)

                overrides = self.resolver.validate_overrides(structure, overrides)
                resolved = self.resolver.resolve(structure, ctc, overrides)

                if current is not None:
                    await self.locking.end_assignment(current, effective_from - timedelta(days=1))

                assignment = self.build_assignment(
                    employee_id=employee_id,
                    structure=structure,
                    ctc=Decimal(str(ctc)),
                    effective_from=effective_from,
                    resolved=resolved,
                    overrides=overrides,
                    reason=reason,
                    actor_id=actor_id,
                )
                self.session.add(assignment)
                await self.session.flush()

                self.audit.record(
                    "employee_salary_assignment",
                    assignment.assignment_id,
                    "assignment_created",
                    actor_id,
                    before={"superseded_assignment_id": current.assignment_id} if current else None,
                    after={
                        "employee_id": employee_id,
                        "salary_structure_id": salary_structure_id,
                        "ctc": assignment.ctc,
                        "effective_from": effective_from,
                    },
                )

        logger.info(
            "Assigned structure %s to employee %s from %s (CTC %s)",
            structure.code,
            employee_id,
            effective_from,
            assignment.ctc,
        )
        return assignment

    async def revoke_assignment(
        self,
        assignment_id: UUID,
        end_date: date,
        actor_id: UUID | None = None,
    ) -> EmployeeSalaryAssignment:
        """End an active assignment on end_date without a successor."""
        assignment = await self.get_assignment(assignment_id)
        async with self.locking.employee_lock(assignment.employee_id):
            async with atomic(self.session):
                assignment = await self.get_assignment(assignment_id, for_update=True)
                if not assignment.is_active:
                    raise PayrollValidationError("assignment_id", "assignment is not active")
                if end_date < assignment.effective_from:
                    raise PayrollValidationError(
                        "end_date",
                        f"end date {end_date} is before effective_from {assignment.effective_from}",
                    )
                if assignment.effective_to is not None and end_date > assignment.effective_to:
                    raise PayrollValidationError(
                        "end_date", f"end date {end_date} is after effective_to {assignment.effective_to}"
                    )

                await self.locking.end_assignment(assignment, end_date)
                self.audit.record(
                    "employee_salary_assignment",
                    assignment.assignment_id,
                    "assignment_revoked",
                    actor_id,
                    after={"effective_to": end_date},
                )

        logger.info("Revoked assignment %s effective %s", assignment_id, end_date)
        return assignment

    # === Helpers shared with the revision and versioning pipelines ===

    @staticmethod
    def validate_assignable(structure: SalaryStructure, effective_from: date) -> None:
        """New assignments need an active structure version in effect on their start date."""
        if not structure.is_active:
            raise PayrollValidationError(
                "salary_structure_id", f"structure {structure.label} is inactive"
            )
        if not structure.is_effective_on(effective_from):
            raise PayrollValidationError(
                "effective_from",
                f"structure {structure.label} is not in effect on {effective_from}",
            )

    @staticmethod
    def validate_supersession(current: EmployeeSalaryAssignment, effective_from: date) -> None:
        """A successor must start after the current assignment started."""
        if effective_from <= current.effective_from:
            raise PayrollValidationError(
                "effective_from",
                f"{effective_from} must be after the current assignment start "
                f"{current.effective_from}",
            )

    @staticmethod
    def build_assignment(
        employee_id: UUID,
        structure: SalaryStructure,
        ctc: Decimal,
        effective_from: date,
        resolved: list[ResolvedComponent],
        overrides: Mapping[UUID, Decimal] | None = None,
        reason: str | None = None,
        actor_id: UUID | None = None,
        approved_at: datetime | None = None,
    ) -> EmployeeSalaryAssignment:
        """Build a new open-ended assignment with its resolved component rows."""
        overrides = overrides or {}
        return EmployeeSalaryAssignment(
            employee_id=employee_id,
            salary_structure_id=structure.salary_structure_id,
            structure=structure,
            ctc=ctc,
            effective_from=effective_from,
            effective_to=None,
            is_active=True,
            revision_reason=reason,
            approved_by=actor_id,
            approved_at=approved_at,
            version=1,
            components=[
                AssignmentComponent(
                    pay_component_id=r.pay_component_id,
                    base_value=r.base_value,
                    calculated_value=r.calculated_value,
                    override_value=overrides.get(r.pay_component_id),
                    was_clamped=r.was_clamped,
                )
                for r in resolved
            ],
        )
