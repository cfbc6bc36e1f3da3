"""Attendance source contract consumed by the payroll engine."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salary_engine.calculators.types import AttendanceInput
from salary_engine.models.payroll import AttendanceSummary


class AttendanceSource(Protocol):
    """Supplies payable days for an employee and period.

    Returning None means no attendance data, which the engine treats as full
    attendance.
    """

    async def get_attendance(
        self,
        employee_id: UUID,
        period: str,
        start_date: date,
        end_date: date,
        total_days: int,
    ) -> AttendanceInput | None: ...


class DatabaseAttendanceSource:
    """Reads AttendanceSummary rows written by the attendance subsystem."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_attendance(
        self,
        employee_id: UUID,
        period: str,
        start_date: date,
        end_date: date,
        total_days: int,
    ) -> AttendanceInput | None:
        result = await self.session.execute(
            select(AttendanceSummary).where(
                AttendanceSummary.employee_id == employee_id,
                AttendanceSummary.period == period,
            )
        )
        summary = result.scalar_one_or_none()
        if summary is None:
            return None
        return AttendanceInput(
            payable_days=summary.payable_days,
            lop_days=summary.lop_days,
            total_days=total_days,
        )


class StaticAttendanceSource:
    """In-memory attendance: employee_id -> payable days (or AttendanceInput)."""

    def __init__(self, payable_days: Mapping[UUID, Decimal | int | AttendanceInput] | None = None):
        self._data = dict(payable_days or {})

    def set(self, employee_id: UUID, payable_days: Decimal | int | AttendanceInput) -> None:
        self._data[employee_id] = payable_days

    async def get_attendance(
        self,
        employee_id: UUID,
        period: str,
        start_date: date,
        end_date: date,
        total_days: int,
    ) -> AttendanceInput | None:
        value = self._data.get(employee_id)
        if value is None:
            return None
        if isinstance(value, AttendanceInput):
            return value
        payable = Decimal(value)
        return AttendanceInput(
            payable_days=payable,
            lop_days=max(Decimal(total_days) - payable, Decimal("0")),
            total_days=total_days,
        )
