"""Pay component catalog, salary grades and salary structures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from salary_engine.models.base import Base, TimestampMixin


class PayComponent(Base, TimestampMixin):
    """Pay component definition (reference data)."""

    __tablename__ = "pay_component"

    pay_component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    calculation_type: Mapped[str] = mapped_column(String, nullable=False)
    is_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_statutory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "category IN ('BASIC', 'HOUSE_RENT', 'ALLOWANCE', 'DEDUCTION', 'SPECIAL')",
            name="pay_component_category_check",
        ),
        CheckConstraint(
            "calculation_type IN ('FIXED', 'PERCENTAGE')",
            name="pay_component_calc_type_check",
        ),
    )


class SalaryGrade(Base, TimestampMixin):
    """Salary band bounding the CTC of structures assigned to it."""

    __tablename__ = "salary_grade"

    salary_grade_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    min_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    max_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")

    __table_args__ = (
        CheckConstraint("max_salary >= min_salary", name="salary_grade_bounds_check"),
    )

    def contains(self, ctc: Decimal) -> bool:
        """Check whether a CTC lies within the grade bounds (inclusive)."""
        return self.min_salary <= ctc <= self.max_salary


class SalaryStructure(Base, TimestampMixin):
    """Salary structure template: an ordered list of components.

    A structure code has one row per version. Versions of a code cover
    disjoint effective windows (effective_to inclusive, None = open-ended);
    is_active only retires a version from new assignments.
    """

    __tablename__ = "salary_structure"

    salary_structure_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    salary_grade_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("salary_grade.salary_grade_id"),
        nullable=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    change_log: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("code", "version", name="salary_structure_code_version"),
        CheckConstraint(
            "effective_from IS NULL OR effective_to IS NULL OR effective_to >= effective_from",
            name="salary_structure_effective_range_check",
        ),
    )

    # Relationships
    grade: Mapped[SalaryGrade | None] = relationship(lazy="selectin")
    components: Mapped[list[StructureComponent]] = relationship(
        back_populates="structure",
        order_by="StructureComponent.order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def ordered_components(self) -> list[StructureComponent]:
        """Components in resolution order."""
        return sorted(self.components, key=lambda sc: sc.order)

    def is_effective_on(self, day: date) -> bool:
        if self.effective_from is not None and day < self.effective_from:
            return False
        return self.effective_to is None or day <= self.effective_to

    @property
    def label(self) -> str:
        return f"{self.code} v{self.version}"


class StructureComponent(Base, TimestampMixin):
    """One line of a salary structure."""

    __tablename__ = "structure_component"

    structure_component_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    salary_structure_id: Mapped[UUID] = mapped_column(
        ForeignKey("salary_structure.salary_structure_id", ondelete="CASCADE"),
        nullable=False,
    )
    pay_component_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_component.pay_component_id"),
        nullable=False,
    )
    value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    # None or 'CTC' = CTC, 'GROSS' = earnings resolved so far, else a component code
    base_component_code: Mapped[str | None] = mapped_column(String, nullable=True)
    min_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    max_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    order: Mapped[int] = mapped_column(Integer, nullable=False)
    prorate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint(
            "salary_structure_id",
            "pay_component_id",
            name="structure_component_unique",
        ),
        CheckConstraint(
            "min_value IS NULL OR max_value IS NULL OR max_value >= min_value",
            name="structure_component_bounds_check",
        ),
    )

    # Relationships
    structure: Mapped[SalaryStructure] = relationship(back_populates="components")
    component: Mapped[PayComponent] = relationship(lazy="selectin")
