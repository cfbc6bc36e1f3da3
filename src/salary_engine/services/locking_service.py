"""Per-employee serialization of salary assignment supersession."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from salary_engine.database import acquire_advisory_xact_lock, is_postgres
from salary_engine.errors import RevisionInFlightError, StaleAssignmentError
from salary_engine.models.employee import EmployeeSalaryAssignment


class LockingService:
    """Serializes changes to an employee's current assignment.

    Two layers:
    1. A per-employee lock held for the unit of work: a transaction-scoped
       PostgreSQL advisory lock, or an in-process asyncio.Lock on other
       databases. A second caller fails fast with RevisionInFlightError.
    2. An optimistic version check when ending the current assignment: the
       conditional update matches only the version that was read.
    """

    _local_locks: dict[str, asyncio.Lock] = {}

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _lock_key(employee_id: UUID) -> str:
        return f"salary_assignment:{employee_id}"

    @classmethod
    def _local_lock(cls, key: str) -> asyncio.Lock:
        lock = cls._local_locks.get(key)
        if lock is None:
            lock = cls._local_locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def employee_lock(self, employee_id: UUID) -> AsyncIterator[None]:
        """Hold the per-employee assignment lock for the enclosed block.

        Raises:
            RevisionInFlightError: Another supersession for the employee is running
        """
        key = self._lock_key(employee_id)

        if is_postgres(self.session):
            # Released by the database when the transaction ends
            if not await acquire_advisory_xact_lock(self.session, key):
                raise RevisionInFlightError(employee_id)
            yield
            return

        lock = self._local_lock(key)
        if lock.locked():
            raise RevisionInFlightError(employee_id)
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            # Nobody ever waits on these locks, so the entry can go
            if self._local_locks.get(key) is lock:
                del self._local_locks[key]

    async def end_assignment(
        self,
        assignment: EmployeeSalaryAssignment,
        end_date: date,
    ) -> EmployeeSalaryAssignment:
        """End an assignment on end_date (inclusive) and clear is_active.

        Raises:
            StaleAssignmentError: The row changed since it was read
        """
        expected_version = assignment.version
        result = await self.session.execute(
            update(EmployeeSalaryAssignment)
            .where(
                EmployeeSalaryAssignment.assignment_id == assignment.assignment_id,
                EmployeeSalaryAssignment.version == expected_version,
                EmployeeSalaryAssignment.is_active.is_(True),
            )
            .values(
                effective_to=end_date,
                is_active=False,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleAssignmentError(assignment.assignment_id, expected_version)

        set_committed_value(assignment, "effective_to", end_date)
        set_committed_value(assignment, "is_active", False)
        set_committed_value(assignment, "version", expected_version + 1)
        return assignment
