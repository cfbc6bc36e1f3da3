"""Payroll run, payroll record and salary revision state machines."""

from __future__ import annotations

from enum import Enum

from salary_engine.errors import StateConflictError


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "DRAFT"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PayrollRecordStatus(str, Enum):
    """Payroll record status values."""

    CALCULATED = "CALCULATED"
    APPROVED = "APPROVED"
    PAID = "PAID"


class RevisionStatus(str, Enum):
    """Salary revision status values."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    IMPLEMENTED = "IMPLEMENTED"


class InvalidTransitionError(StateConflictError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = _value(from_status)
        self.to_status = _value(to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(self.from_status, msg)


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class _StateMachine:
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return _value(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return list(cls.VALID_TRANSITIONS.get(_value(current_status), []))


class PayrollRunStateMachine(_StateMachine):
    """State machine for payroll run status transitions.

    Allowed transitions:
    - DRAFT → PROCESSING
    - DRAFT → CANCELLED
    - PROCESSING → COMPLETED
    - PROCESSING → FAILED
    - FAILED → DRAFT (retry)
    - CANCELLED → DRAFT

    COMPLETED is terminal; payment is recorded on the records.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRunStatus.DRAFT.value: [PayrollRunStatus.PROCESSING.value, PayrollRunStatus.CANCELLED.value],
        PayrollRunStatus.PROCESSING.value: [PayrollRunStatus.COMPLETED.value, PayrollRunStatus.FAILED.value],
        PayrollRunStatus.FAILED.value: [PayrollRunStatus.DRAFT.value],
        PayrollRunStatus.CANCELLED.value: [PayrollRunStatus.DRAFT.value],
        PayrollRunStatus.COMPLETED.value: [],
    }

    # Statuses where the run and its records may be deleted
    DELETABLE = {PayrollRunStatus.DRAFT.value, PayrollRunStatus.FAILED.value}

    @classmethod
    def can_delete(cls, status: str) -> bool:
        return _value(status) in cls.DELETABLE


class PayrollRecordStateMachine(_StateMachine):
    """State machine for payroll record status transitions.

    Allowed transitions:
    - CALCULATED → APPROVED
    - CALCULATED → PAID (finalize without approval)
    - APPROVED → PAID
    - APPROVED → CALCULATED (reopen after adjustment)

    PAID is terminal and the record is immutable.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollRecordStatus.CALCULATED.value: [PayrollRecordStatus.APPROVED.value, PayrollRecordStatus.PAID.value],
        PayrollRecordStatus.APPROVED.value: [PayrollRecordStatus.PAID.value, PayrollRecordStatus.CALCULATED.value],
        PayrollRecordStatus.PAID.value: [],
    }

    PAYABLE = {PayrollRecordStatus.CALCULATED.value, PayrollRecordStatus.APPROVED.value}
    PAYSLIP_VISIBLE = {PayrollRecordStatus.APPROVED.value, PayrollRecordStatus.PAID.value}

    @classmethod
    def is_immutable(cls, status: str) -> bool:
        return _value(status) == PayrollRecordStatus.PAID.value

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen (APPROVED → CALCULATED)."""
        return (
            _value(from_status) == PayrollRecordStatus.APPROVED.value
            and _value(to_status) == PayrollRecordStatus.CALCULATED.value
        )


class RevisionStateMachine(_StateMachine):
    """State machine for salary revisions.

    PENDING → REJECTED (terminal) or PENDING → APPROVED → IMPLEMENTED (terminal).
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RevisionStatus.PENDING.value: [RevisionStatus.APPROVED.value, RevisionStatus.REJECTED.value],
        RevisionStatus.APPROVED.value: [RevisionStatus.IMPLEMENTED.value],
        RevisionStatus.REJECTED.value: [],
        RevisionStatus.IMPLEMENTED.value: [],
    }
