"""Error taxonomy for the salary engine.

- PayrollValidationError: bad input, rejected before any effect.
- StructuralError: the data needed to compute one employee is malformed or
  missing. Fatal for that employee, isolated per item in bulk flows.
- StateConflictError: the operation is not allowed in the current state.
- ConsistencyViolationError: a derived invariant failed after a computed
  mutation. Internal; the transaction must not commit.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class PayrollError(Exception):
    """Base class for all engine errors."""

    code = "PAYROLL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": str(self)}


class PayrollValidationError(PayrollError):
    """Raised when an input fails validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": str(self), "field": self.field}


class CTCOutOfRangeError(PayrollValidationError):
    """Raised when a CTC falls outside the structure grade's bounds."""

    def __init__(self, ctc: Any, min_salary: Any, max_salary: Any):
        self.ctc = ctc
        self.min_salary = min_salary
        self.max_salary = max_salary
        super().__init__(
            "ctc",
            f"CTC {ctc} must be between {min_salary} and {max_salary}",
        )


class NotFoundError(PayrollError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: UUID | str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class StructuralError(PayrollError):
    """Raised when salary data for an employee cannot be resolved."""

    code = "STRUCTURAL_ERROR"

    def __init__(self, message: str, employee_id: UUID | None = None):
        self.employee_id = employee_id
        super().__init__(message)


class NoActiveAssignmentError(StructuralError):
    """Raised when an employee has no active salary assignment."""

    def __init__(self, employee_id: UUID, detail: str | None = None):
        message = f"No active salary assignment for employee {employee_id}"
        if detail:
            message += f" {detail}"
        super().__init__(message, employee_id)


class MissingBaseComponentError(StructuralError):
    """Raised when a percentage component references an unknown base."""

    def __init__(self, component_code: str, base_ref: str):
        self.component_code = component_code
        self.base_ref = base_ref
        super().__init__(
            f"Component {component_code} references base '{base_ref}' "
            "which is not part of the structure"
        )


class ForwardReferenceError(StructuralError):
    """Raised when a component references a component resolved after it."""

    def __init__(self, component_code: str, base_ref: str):
        self.component_code = component_code
        self.base_ref = base_ref
        super().__init__(
            f"Component {component_code} references '{base_ref}' "
            "which does not precede it in the structure order"
        )


class StructureDefinitionError(StructuralError):
    """Raised when a structure row is incomplete for its calculation type."""


class StateConflictError(PayrollError):
    """Raised when an operation conflicts with the current state."""

    code = "STATE_CONFLICT"

    def __init__(self, current_state: str, message: str):
        self.current_state = current_state
        super().__init__(f"{message} (current state: {current_state})")

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "detail": str(self),
            "current_state": self.current_state,
        }


class RecordImmutableError(StateConflictError):
    """Raised when mutating a record that has been paid."""

    def __init__(self, record_id: UUID, operation: str):
        self.record_id = record_id
        self.operation = operation
        super().__init__("PAID", f"Cannot {operation} payroll record {record_id}")


class StaleAssignmentError(StateConflictError):
    """Raised when the assignment being superseded changed concurrently."""

    def __init__(self, assignment_id: UUID, expected_version: int):
        self.assignment_id = assignment_id
        self.expected_version = expected_version
        super().__init__(
            "modified",
            f"Salary assignment {assignment_id} changed since version "
            f"{expected_version} was read",
        )


class RevisionInFlightError(StateConflictError):
    """Raised when another revision for the same employee is being applied."""

    def __init__(self, employee_id: UUID):
        self.employee_id = employee_id
        super().__init__(
            "locked",
            f"Another salary revision for employee {employee_id} is in progress",
        )


class ConsistencyViolationError(PayrollError):
    """Raised when a derived invariant does not hold after a mutation."""

    code = "INTERNAL_ERROR"
