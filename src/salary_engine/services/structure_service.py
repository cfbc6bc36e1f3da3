"""Salary structure versioning and bulk re-assignment onto a version."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.structure_resolver import StructureResolver
from salary_engine.database import atomic
from salary_engine.errors import NoActiveAssignmentError, NotFoundError, PayrollValidationError
from salary_engine.models.base import utcnow
from salary_engine.models.catalog import PayComponent, SalaryStructure, StructureComponent
from salary_engine.models.employee import Employee, EmployeeSalaryAssignment
from salary_engine.services.assignment_service import AssignmentService
from salary_engine.services.audit import AuditRecorder
from salary_engine.services.locking_service import LockingService

logger = logging.getLogger(__name__)


@dataclass
class ComponentSpec:
    """One component line of a new structure version."""

    pay_component_id: UUID
    order: int
    value: Decimal | None = None
    percentage: Decimal | None = None
    base_component_code: str | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    prorate: bool = True


@dataclass
class EffectiveDateValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    affected_employees: list[UUID] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class SalaryUpdate:
    """Per-employee terms for a move onto a structure version.

    Unset ctc keeps the current CTC; unset overrides carries forward the
    current overrides the target version still has a component for.
    """

    employee_id: UUID
    ctc: Decimal | None = None
    overrides: Mapping[UUID, Decimal] | None = None
    reason: str | None = None


class StructureVersionService:
    """Versions of a salary structure code.

    Creating a version:
    1. Lock every version of the code
    2. Check the new window against the others (no overlap, end after start)
    3. End the open-ended version the day before the new one starts
    4. Insert version max + 1 with copied or supplied components

    Existing assignments keep the version they were resolved against. Moving
    employees onto a new version is an explicit bulk re-assignment.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.resolver = StructureResolver()
        self.assignments = AssignmentService(session)
        self.locking = LockingService(session)
        self.audit = AuditRecorder(session)

    # === Queries ===

    async def get_structure(self, salary_structure_id: UUID) -> SalaryStructure:
        return await self.assignments.get_structure(salary_structure_id)

    async def get_versions(self, salary_structure_id: UUID) -> list[SalaryStructure]:
        """All versions sharing the structure's code, newest first."""
        structure = await self.get_structure(salary_structure_id)
        return await self._versions_of(structure.code)

    async def get_active_structure(self, code: str, on_date: date) -> SalaryStructure | None:
        """The active version of a code in effect on a date."""
        result = await self.session.execute(
            select(SalaryStructure)
            .where(
                SalaryStructure.code == code,
                SalaryStructure.is_active.is_(True),
                (SalaryStructure.effective_from.is_(None)) | (SalaryStructure.effective_from <= on_date),
                (SalaryStructure.effective_to.is_(None)) | (SalaryStructure.effective_to >= on_date),
            )
            .order_by(SalaryStructure.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_affected_employees(
        self, salary_structure_id: UUID, effective_date: date
    ) -> list[EmployeeSalaryAssignment]:
        """Active assignments on a version that cover effective_date."""
        result = await self.session.execute(
            select(EmployeeSalaryAssignment)
            .join(Employee, Employee.employee_id == EmployeeSalaryAssignment.employee_id)
            .where(
                EmployeeSalaryAssignment.salary_structure_id == salary_structure_id,
                EmployeeSalaryAssignment.is_active.is_(True),
                EmployeeSalaryAssignment.effective_from <= effective_date,
                (EmployeeSalaryAssignment.effective_to.is_(None))
                | (EmployeeSalaryAssignment.effective_to >= effective_date),
            )
            .order_by(Employee.employee_code)
        )
        return list(result.scalars().all())

    async def validate_effective_date(
        self,
        salary_structure_id: UUID,
        effective_from: date,
        effective_to: date | None = None,
        today: date | None = None,
    ) -> EffectiveDateValidation:
        """Check a proposed window for a new version without changing anything.

        Errors block create_version. Warnings flag a backdated start and
        employees still assigned to the version being ended.
        """
        structure = await self.get_structure(salary_structure_id)
        versions = await self._versions_of(structure.code)
        today = today or utcnow().date()

        validation = EffectiveDateValidation(
            errors=[message for _, message in self._window_errors(versions, effective_from, effective_to)]
        )
        if effective_from < today:
            validation.warnings.append(f"effective date {effective_from} is in the past")

        open_version = next((v for v in versions if v.effective_to is None), None)
        if open_version is not None:
            affected = await self.get_affected_employees(open_version.salary_structure_id, effective_from)
            validation.affected_employees = [a.employee_id for a in affected]
            if affected:
                validation.warnings.append(
                    f"{len(affected)} employee(s) on {open_version.label} are assigned on "
                    f"{effective_from} and stay on it until re-assigned"
                )
        return validation

    # === Mutations ===

    async def create_version(
        self,
        salary_structure_id: UUID,
        effective_from: date,
        effective_to: date | None = None,
        change_log: str | None = None,
        components: Sequence[ComponentSpec] | None = None,
        actor_id: UUID | None = None,
    ) -> SalaryStructure:
        """Create the next version of a structure's code from effective_from.

        Components are copied from the given version unless supplied.

        Raises:
            NotFoundError: Unknown structure or pay component
            PayrollValidationError: Overlapping or inverted window, bad components
        """
        async with atomic(self.session):
            source = await self.get_structure(salary_structure_id)
            versions = await self._versions_of(source.code, for_update=True)

            errors = self._window_errors(versions, effective_from, effective_to)
            if errors:
                raise PayrollValidationError(*errors[0])

            if components is None:
                lines = [self._copy_line(sc) for sc in source.ordered_components()]
            else:
                lines = await self._build_lines(components)

            ended = None
            for version in versions:
                if version.effective_to is None:
                    version.effective_to = effective_from - timedelta(days=1)
                    ended = version
            await self.session.flush()

            structure = SalaryStructure(
                name=source.name,
                code=source.code,
                version=max(v.version for v in versions) + 1,
                salary_grade_id=source.salary_grade_id,
                grade=source.grade,
                description=source.description,
                is_active=True,
                effective_from=effective_from,
                effective_to=effective_to,
                change_log=change_log,
                components=lines,
            )
            self.session.add(structure)
            await self.session.flush()

            before = None
            if ended is not None:
                before = {"ended_structure_id": ended.salary_structure_id, "effective_to": ended.effective_to}
            self.audit.record(
                "salary_structure",
                structure.salary_structure_id,
                "structure_version_created",
                actor_id,
                before=before,
                after={
                    "code": structure.code,
                    "version": structure.version,
                    "effective_from": effective_from,
                    "effective_to": effective_to,
                    "change_log": change_log,
                },
            )

        logger.info(
            "Created structure %s effective %s (source %s)",
            structure.label,
            effective_from,
            source.label,
        )
        return structure

    async def reassign_employees(
        self,
        salary_structure_id: UUID,
        effective_date: date,
        updates: Iterable[SalaryUpdate] | None = None,
        actor_id: UUID | None = None,
    ) -> list[EmployeeSalaryAssignment]:
        """Move employees onto a structure version from effective_date.

        Without updates, every employee whose active assignment on another
        version of the same code covers effective_date is moved at the same
        CTC. All moves commit together or not at all.

        Raises:
            PayrollValidationError: Target not assignable on the date, duplicate
                employees, bad CTC or overrides, date not after a current start
            NoActiveAssignmentError: An employee has no current assignment
            RevisionInFlightError / StaleAssignmentError: Concurrent supersession
        """
        target = await self.get_structure(salary_structure_id)
        AssignmentService.validate_assignable(target, effective_date)

        if updates is None:
            updates = []
            for version in await self._versions_of(target.code):
                if version.salary_structure_id == target.salary_structure_id:
                    continue
                affected = await self.get_affected_employees(version.salary_structure_id, effective_date)
                updates.extend(SalaryUpdate(employee_id=a.employee_id) for a in affected)
        updates = list(updates)
        employee_ids = [u.employee_id for u in updates]
        if len(set(employee_ids)) != len(employee_ids):
            raise PayrollValidationError("updates", "each employee may appear only once")
        if not updates:
            return []

        target_components = {sc.pay_component_id for sc in target.components}
        created: list[EmployeeSalaryAssignment] = []

        async with AsyncExitStack() as stack:
            # Fixed order so overlapping batches cannot deadlock
            for employee_id in sorted(employee_ids):
                await stack.enter_async_context(self.locking.employee_lock(employee_id))

            async with atomic(self.session):
                for update in updates:
                    current = await self.assignments.get_current_assignment(update.employee_id, for_update=True)
                    if current is None:
                        raise NoActiveAssignmentError(update.employee_id, f"to move onto {target.label}")
                    AssignmentService.validate_supersession(current, effective_date)

                    ctc = update.ctc if update.ctc is not None else current.ctc
                    if update.overrides is not None:
                        overrides = update.overrides
                    else:
                        overrides = {k: v for k, v in current.overrides().items() if k in target_components}
                    overrides = self.resolver.validate_overrides(target, overrides)
                    resolved = self.resolver.resolve(target, ctc, overrides)

                    await self.locking.end_assignment(current, effective_date - timedelta(days=1))
                    assignment = AssignmentService.build_assignment(
                        employee_id=update.employee_id,
                        structure=target,
                        ctc=Decimal(str(ctc)),
                        effective_from=effective_date,
                        resolved=resolved,
                        overrides=overrides,
                        reason=update.reason or f"Moved to {target.label}",
                        actor_id=actor_id,
                    )
                    self.session.add(assignment)
                    await self.session.flush()

                    self.audit.record(
                        "employee_salary_assignment",
                        assignment.assignment_id,
                        "assignment_created",
                        actor_id,
                        before={
                            "superseded_assignment_id": current.assignment_id,
                            "salary_structure_id": current.salary_structure_id,
                            "ctc": current.ctc,
                        },
                        after={
                            "employee_id": update.employee_id,
                            "salary_structure_id": target.salary_structure_id,
                            "ctc": assignment.ctc,
                            "effective_from": effective_date,
                        },
                    )
                    created.append(assignment)

                self.audit.record(
                    "salary_structure",
                    target.salary_structure_id,
                    "employees_reassigned",
                    actor_id,
                    after={"effective_date": effective_date, "employee_ids": employee_ids},
                )

        logger.info(
            "Moved %d employees onto structure %s from %s",
            len(created),
            target.label,
            effective_date,
        )
        return created

    # === Helpers ===

    async def _versions_of(self, code: str, for_update: bool = False) -> list[SalaryStructure]:
        stmt = (
            select(SalaryStructure)
            .where(SalaryStructure.code == code)
            .order_by(SalaryStructure.version.desc())
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _window_errors(
        versions: Sequence[SalaryStructure],
        effective_from: date,
        effective_to: date | None,
    ) -> list[tuple[str, str]]:
        """(field, message) for every way the window clashes with existing versions."""
        errors: list[tuple[str, str]] = []
        if effective_to is not None and effective_to <= effective_from:
            errors.append(("effective_to", f"{effective_to} must be after effective_from {effective_from}"))

        for version in versions:
            if version.effective_to is None:
                # Ended the day before the new version starts
                if version.effective_from is not None and version.effective_from >= effective_from:
                    errors.append(
                        (
                            "effective_from",
                            f"{version.label} starts {version.effective_from}, "
                            f"a new version must start after it",
                        )
                    )
                continue
            starts_in_window = (
                effective_to is None
                or version.effective_from is None
                or version.effective_from <= effective_to
            )
            if starts_in_window and version.effective_to >= effective_from:
                errors.append(
                    (
                        "effective_from",
                        f"overlaps {version.label} "
                        f"({version.effective_from or 'start'} to {version.effective_to})",
                    )
                )
        return errors

    @staticmethod
    def _copy_line(sc: StructureComponent) -> StructureComponent:
        return StructureComponent(
            pay_component_id=sc.pay_component_id,
            component=sc.component,
            value=sc.value,
            percentage=sc.percentage,
            base_component_code=sc.base_component_code,
            min_value=sc.min_value,
            max_value=sc.max_value,
            order=sc.order,
            prorate=sc.prorate,
        )

    async def _build_lines(self, components: Sequence[ComponentSpec]) -> list[StructureComponent]:
        if not components:
            raise PayrollValidationError("components", "a structure needs at least one component")
        seen_ids = [c.pay_component_id for c in components]
        if len(set(seen_ids)) != len(seen_ids):
            raise PayrollValidationError("components", "a pay component may appear only once")
        seen_orders = [c.order for c in components]
        if len(set(seen_orders)) != len(seen_orders):
            raise PayrollValidationError("components", "component order values must be unique")

        lines: list[StructureComponent] = []
        for item in components:
            component = await self.session.get(PayComponent, item.pay_component_id)
            if component is None:
                raise NotFoundError("PayComponent", item.pay_component_id)
            lines.append(
                StructureComponent(
                    pay_component_id=item.pay_component_id,
                    component=component,
                    value=item.value,
                    percentage=item.percentage,
                    base_component_code=item.base_component_code,
                    min_value=item.min_value,
                    max_value=item.max_value,
                    order=item.order,
                    prorate=item.prorate,
                )
            )
        return lines
