"""Salary revision pipeline: create, reject and approve CTC changes."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.calculators.types import RevisionType
from salary_engine.database import atomic
from salary_engine.errors import (
    NoActiveAssignmentError,
    NotFoundError,
    PayrollValidationError,
)
from salary_engine.models.base import utcnow
from salary_engine.models.employee import EmployeeSalaryAssignment, SalaryRevision
from salary_engine.services.assignment_service import AssignmentService
from salary_engine.services.audit import AuditRecorder
from salary_engine.services.locking_service import LockingService
from salary_engine.services.state_machine import RevisionStateMachine, RevisionStatus

logger = logging.getLogger(__name__)


class SalaryRevisionService:
    """Service for salary revisions.

    States: PENDING → REJECTED, or PENDING → APPROVED → IMPLEMENTED.

    Approval supersedes the employee's current assignment in one unit of work:
    1. Load the current open-ended assignment (absent = structural error)
    2. End it on revision.effective_from - 1 day (optimistic version check)
    3. Re-resolve the same structure at the new CTC, carrying overrides forward
    4. Create the new assignment and its component rows
    5. Mark the revision IMPLEMENTED

    Approvals for one employee are serialized by LockingService.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = StructureResolver()
        self.assignments = AssignmentService(session)
        self.locking = LockingService(session)
        self.audit = AuditRecorder(session)

    async def get_revision(self, revision_id: UUID, for_update: bool = False) -> SalaryRevision:
        stmt = select(SalaryRevision).where(SalaryRevision.salary_revision_id == revision_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        revision = result.scalar_one_or_none()
        if revision is None:
            raise NotFoundError("SalaryRevision", revision_id)
        return revision

    async def list_revisions(
        self, employee_id: UUID | None = None, status: str | None = None
    ) -> list[SalaryRevision]:
        stmt = select(SalaryRevision).order_by(SalaryRevision.created_at.desc())
        if employee_id is not None:
            stmt = stmt.where(SalaryRevision.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(SalaryRevision.status == status)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_revision(
        self,
        employee_id: UUID,
        new_ctc: Any,
        effective_from: date,
        revision_type: str,
        reason: str | None = None,
    ) -> SalaryRevision:
        """Create a PENDING revision. Has no effect until approved.

        Raises:
            PayrollValidationError: Bad CTC or revision type
            NoActiveAssignmentError: Employee has no current assignment
        """
        try:
            ctc = Decimal(str(new_ctc))
        except (InvalidOperation, ValueError):
            raise PayrollValidationError("new_ctc", f"'{new_ctc}' is not a number") from None
        if not ctc.is_finite() or ctc <= 0:
            raise PayrollValidationError("new_ctc", "must be a finite positive amount")
        try:
            revision_type = RevisionType(revision_type).value
        except ValueError:
            raise PayrollValidationError(
                "revision_type", f"unknown revision type '{revision_type}'"
            ) from None

        async with atomic(self.session):
            await self.assignments.get_employee(employee_id)
            current = await self.assignments.get_current_assignment(employee_id)
            if current is None:
                raise NoActiveAssignmentError(employee_id)

            revision = SalaryRevision(
                employee_id=employee_id,
                previous_ctc=current.ctc,
                new_ctc=ctc,
                effective_from=effective_from,
                revision_type=revision_type,
                reason=reason,
                status=RevisionStatus.PENDING.value,
            )
            self.session.add(revision)

        logger.info(
            "Created %s revision %s for employee %s: %s -> %s",
            revision_type,
            revision.salary_revision_id,
            employee_id,
            revision.previous_ctc,
            ctc,
        )
        return revision

    async def reject_revision(
        self,
        revision_id: UUID,
        comments: str | None = None,
        actor_id: UUID | None = None,
    ) -> SalaryRevision:
        """Reject a PENDING revision. Nothing else changes."""
        async with atomic(self.session):
            revision = await self.get_revision(revision_id, for_update=True)
            RevisionStateMachine.validate_transition(revision.status, RevisionStatus.REJECTED)

            revision.status = RevisionStatus.REJECTED.value
            revision.approved_by = actor_id
            revision.approved_at = utcnow()
            revision.comments = comments

            self.audit.record(
                "salary_revision",
                revision.salary_revision_id,
                "revision_rejected",
                actor_id,
                before={"status": RevisionStatus.PENDING},
                after={"status": RevisionStatus.REJECTED, "comments": comments},
            )

        logger.info("Rejected salary revision %s", revision_id)
        return revision

    async def approve_revision(
        self,
        revision_id: UUID,
        actor_id: UUID | None = None,
        comments: str | None = None,
    ) -> SalaryRevision:
        """Approve and implement a PENDING revision.

        Raises:
            InvalidTransitionError: Revision is not PENDING
            NoActiveAssignmentError: Employee has no current assignment
            PayrollValidationError: New CTC outside grade, or effective date not
                after the current assignment start
            StructuralError: Structure cannot be resolved at the new CTC
            RevisionInFlightError / StaleAssignmentError: Concurrent supersession
        """
        revision = await self.get_revision(revision_id)
        RevisionStateMachine.validate_transition(revision.status, RevisionStatus.APPROVED)
        employee_id = revision.employee_id

        async with self.locking.employee_lock(employee_id):
            async with atomic(self.session):
                revision = await self.get_revision(revision_id, for_update=True)
                RevisionStateMachine.validate_transition(revision.status, RevisionStatus.APPROVED)

                # 1) Current assignment
                current = await self.assignments.get_current_assignment(employee_id, for_update=True)
                if current is None:
                    raise NoActiveAssignmentError(employee_id, "to supersede")
                AssignmentService.validate_supersession(current, revision.effective_from)

                # 3) Fresh resolution of the same structure at the new CTC
                structure = current.structure
                overrides = current.overrides()
                resolved = self.resolver.resolve(structure, revision.new_ctc, overrides)

                # 2) End the current assignment
                previous_ctc = current.ctc
                await self.locking.end_assignment(
                    current, revision.effective_from - timedelta(days=1)
                )

                # 4) New assignment
                approved_at = utcnow()
                assignment = AssignmentService.build_assignment(
                    employee_id=employee_id,
                    structure=structure,
                    ctc=revision.new_ctc,
                    effective_from=revision.effective_from,
                    resolved=resolved,
                    overrides=overrides,
                    reason=revision.reason or revision.revision_type,
                    actor_id=actor_id,
                    approved_at=approved_at,
                )
                self.session.add(assignment)
                await self.session.flush()

                # 5) Revision status
                revision.status = RevisionStatus.APPROVED.value
                RevisionStateMachine.validate_transition(revision.status, RevisionStatus.IMPLEMENTED)
                revision.status = RevisionStatus.IMPLEMENTED.value
                revision.previous_ctc = previous_ctc
                revision.approved_by = actor_id
                revision.approved_at = approved_at
                revision.comments = comments
                revision.implemented_assignment_id = assignment.assignment_id

                self.audit.record(
                    "salary_revision",
                    revision.salary_revision_id,
                    "revision_implemented",
                    actor_id,
                    before={
                        "status": RevisionStatus.PENDING,
                        "assignment_id": current.assignment_id,
                        "ctc": previous_ctc,
                    },
                    after={
                        "status": RevisionStatus.IMPLEMENTED,
                        "assignment_id": assignment.assignment_id,
                        "ctc": revision.new_ctc,
                        "effective_from": revision.effective_from,
                    },
                )

        logger.info(
            "Implemented salary revision %s for employee %s: assignment %s superseded by %s",
            revision_id,
            employee_id,
            current.assignment_id,
            assignment.assignment_id,
        )
        return revision

    async def get_active_assignments(self, employee_id: UUID) -> list[EmployeeSalaryAssignment]:
        """Active assignments of an employee, oldest first."""
        result = await self.session.execute(
            select(EmployeeSalaryAssignment)
            .where(
                EmployeeSalaryAssignment.employee_id == employee_id,
                EmployeeSalaryAssignment.is_active.is_(True),
            )
            .order_by(EmployeeSalaryAssignment.effective_from)
        )
        return list(result.scalars().all())
