"""Bank transfer file projection of paid payroll records (never persisted)."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from salary_engine.models.payroll import PayrollRecord, PayrollRun


@dataclass(frozen=True)
class BankFileRow:
    serial_no: int
    employee_code: str
    employee_name: str
    net_amount: Decimal
    bank_name: str | None
    account_number: str | None
    ifsc_code: str | None
    branch: str | None
    period: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "serial_no": self.serial_no,
            "employee_code": self.employee_code,
            "employee_name": self.employee_name,
            "net_amount": str(self.net_amount),
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "ifsc_code": self.ifsc_code,
            "branch": self.branch,
            "period": self.period,
        }


@dataclass
class BankFile:
    """Salary transfer instructions for one finalized run."""

    file_name: str
    period: str
    payment_date: date
    rows: list[BankFileRow] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return len(self.rows)

    @property
    def total_amount(self) -> Decimal:
        return sum((row.net_amount for row in self.rows), Decimal("0"))

    @classmethod
    def from_records(
        cls,
        run: PayrollRun,
        records: list[PayrollRecord],
        payment_date: date,
    ) -> BankFile:
        """Project paid records (employee relationship loaded) into a bank file."""
        year, month = run.period.split("-")
        rows = [
            BankFileRow(
                serial_no=i,
                employee_code=record.employee.employee_code,
                employee_name=record.employee.full_name,
                net_amount=record.net_salary,
                bank_name=record.employee.bank_name,
                account_number=record.employee.bank_account_number,
                ifsc_code=record.employee.bank_ifsc,
                branch=record.employee.bank_branch,
                period=run.period,
            )
            for i, record in enumerate(records, start=1)
        ]
        return cls(
            file_name=f"salary_{year}_{month}.csv",
            period=run.period,
            payment_date=payment_date,
            rows=rows,
        )

    def to_csv(self) -> str:
        """Render the bank file as CSV content."""
        output = io.StringIO()
        writer = csv.writer(output)

        # Header
        writer.writerow([
            "S.No",
            "Employee Code",
            "Employee Name",
            "Net Amount",
            "Bank Name",
            "Account Number",
            "IFSC Code",
            "Branch",
            "Period",
        ])

        for row in self.rows:
            writer.writerow([
                row.serial_no,
                row.employee_code,
                row.employee_name,
                str(row.net_amount),
                row.bank_name or "",
                row.account_number or "",
                row.ifsc_code or "",
                row.branch or "",
                row.period,
            ])

        return output.getvalue()
