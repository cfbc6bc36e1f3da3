"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll run schemas
# ============================================================================


class PayrollRunCreate(BaseModel):
    """Schema for creating a new payroll run."""

    period: str = Field(pattern=r"^\d{4}-\d{2}$", examples=["2024-06"])
    start_date: date | None = None
    end_date: date | None = None


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    period: str
    start_date: date
    end_date: date
    status: str
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employee_count: int
    failed_count: int
    calculation_errors: list[dict[str, Any]] = Field(default_factory=list)
    created_by: UUID | None = None
    processed_at: datetime | None = None
    finalized_at: datetime | None = None
    created_at: datetime


class ProcessRunRequest(BaseModel):
    """Restrict processing to some employees; all active employees otherwise."""

    employee_ids: list[UUID] | None = None


class ApproveRecordsRequest(BaseModel):
    record_ids: list[UUID] | None = None


class ApproveRecordsResponse(BaseModel):
    payroll_run_id: UUID
    approved_count: int
    record_ids: list[UUID]


class FinalizeRequest(BaseModel):
    payment_method: str = "BANK_TRANSFER"
    payment_date: date


class BankFileRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    serial_no: int
    employee_code: str
    employee_name: str
    net_amount: Decimal
    bank_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    branch: str | None = None
    period: str


class BankFileResponse(BaseModel):
    """Bank transfer file. Built on finalize, never stored."""

    file_name: str
    period: str
    payment_date: date
    total_records: int
    total_amount: Decimal
    rows: list[BankFileRowResponse]
    csv_content: str


class FinalizeResponse(BaseModel):
    run: PayrollRunResponse
    payment_count: int
    bank_file: BankFileResponse | None = None


# ============================================================================
# Payroll record schemas
# ============================================================================


class PayrollLineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    line_no: int
    kind: str
    source: str
    component_code: str | None = None
    component_name: str | None = None
    base_value: Decimal
    calculated_value: Decimal
    is_prorated: bool
    adjustment_type: str | None = None
    reason: str | None = None


class PayrollRecordResponse(BaseModel):
    """Schema for payroll record response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    payroll_run_id: UUID
    employee_id: UUID
    assignment_id: UUID | None = None
    calculation_id: UUID
    inputs_fingerprint: str
    working_days: int
    payable_days: Decimal
    lop_days: Decimal
    total_earnings: Decimal
    total_deductions: Decimal
    gross_salary: Decimal
    net_salary: Decimal
    status: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    payment_method: str | None = None
    payment_date: date | None = None
    paid_at: datetime | None = None
    lines: list[PayrollLineItemResponse] = Field(default_factory=list)


class AdjustmentRequest(BaseModel):
    """Schema for adjusting a payroll record."""

    adjustment_type: str = Field(examples=["BONUS"])
    amount: Decimal
    reason: str


# ============================================================================
# Salary assignment schemas
# ============================================================================


class ComponentOverride(BaseModel):
    pay_component_id: UUID
    value: Decimal


class SalaryAssignmentCreate(BaseModel):
    """Schema for assigning a salary structure to an employee."""

    employee_id: UUID
    salary_structure_id: UUID
    ctc: Decimal
    effective_from: date
    overrides: list[ComponentOverride] = Field(default_factory=list)
    reason: str | None = None


class AssignmentComponentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pay_component_id: UUID
    base_value: Decimal
    calculated_value: Decimal
    override_value: Decimal | None = None
    was_clamped: bool


class SalaryAssignmentResponse(BaseModel):
    """Schema for salary assignment response."""

    model_config = ConfigDict(from_attributes=True)

    assignment_id: UUID
    employee_id: UUID
    salary_structure_id: UUID
    ctc: Decimal
    effective_from: date
    effective_to: date | None = None
    is_active: bool
    revision_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    version: int
    components: list[AssignmentComponentResponse] = Field(default_factory=list)


class SalaryHistoryResponse(BaseModel):
    employee_id: UUID
    assignments: list[SalaryAssignmentResponse]


# ============================================================================
# Salary structure version schemas
# ============================================================================


class StructureComponentInput(BaseModel):
    pay_component_id: UUID
    order: int = Field(ge=1)
    value: Decimal | None = None
    percentage: Decimal | None = None
    base_component_code: str | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    prorate: bool = True


class StructureComponentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    pay_component_id: UUID
    order: int
    value: Decimal | None = None
    percentage: Decimal | None = None
    base_component_code: str | None = None
    min_value: Decimal | None = None
    max_value: Decimal | None = None
    prorate: bool


class StructureVersionCreate(BaseModel):
    """Schema for creating the next version of a structure.

    Components are copied from the source version when omitted.
    """

    effective_from: date
    effective_to: date | None = None
    change_log: str | None = None
    components: list[StructureComponentInput] | None = None


class EffectiveDateCheck(BaseModel):
    effective_from: date
    effective_to: date | None = None


class EffectiveDateValidationResponse(BaseModel):
    is_valid: bool
    errors: list[str]
    warnings: list[str]
    affected_employees: list[UUID]


class SalaryStructureResponse(BaseModel):
    """Schema for one salary structure version."""

    model_config = ConfigDict(from_attributes=True)

    salary_structure_id: UUID
    name: str
    code: str
    version: int
    salary_grade_id: UUID | None = None
    description: str | None = None
    is_active: bool
    effective_from: date | None = None
    effective_to: date | None = None
    change_log: str | None = None
    components: list[StructureComponentResponse] = Field(default_factory=list)


class EmployeeSalaryUpdate(BaseModel):
    employee_id: UUID
    ctc: Decimal | None = None
    overrides: list[ComponentOverride] | None = None
    reason: str | None = None


class ReassignmentRequest(BaseModel):
    """Schema for moving employees onto a structure version.

    Without updates, everyone on another version of the code on
    effective_date is moved at their current CTC.
    """

    effective_date: date
    updates: list[EmployeeSalaryUpdate] | None = None


# ============================================================================
# Salary revision schemas
# ============================================================================


class SalaryRevisionCreate(BaseModel):
    """Schema for proposing a salary revision."""

    employee_id: UUID
    new_ctc: Decimal
    effective_from: date
    revision_type: str = Field(examples=["INCREMENT"])
    reason: str | None = None


class RevisionDecision(BaseModel):
    comments: str | None = None


class SalaryRevisionResponse(BaseModel):
    """Schema for salary revision response."""

    model_config = ConfigDict(from_attributes=True)

    salary_revision_id: UUID
    employee_id: UUID
    previous_ctc: Decimal | None = None
    new_ctc: Decimal
    effective_from: date
    revision_type: str
    reason: str | None = None
    status: str
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    comments: str | None = None
    implemented_assignment_id: UUID | None = None


# ============================================================================
# Payslip schemas
# ============================================================================


class PayslipEmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_code: str
    name: str
    designation: str | None = None
    department: str | None = None
    bank_name: str | None = None
    bank_account_number: str | None = None


class PayslipAttendanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    working_days: int
    payable_days: Decimal
    lop_days: Decimal


class PayslipLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str | None = None
    name: str | None = None
    amount: Decimal
    is_prorated: bool = False
    adjustment_type: str | None = None
    reason: str | None = None


class PayslipResponse(BaseModel):
    """Schema for payslip response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    employee: PayslipEmployeeResponse
    period: str
    start_date: date
    end_date: date
    attendance: PayslipAttendanceResponse
    earnings: list[PayslipLineResponse]
    deductions: list[PayslipLineResponse]
    total_earnings: Decimal
    total_deductions: Decimal
    gross_salary: Decimal
    net_salary: Decimal
    status: str
    payment_method: str | None = None
    payment_date: date | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    field: str | None = None
    current_state: str | None = None
