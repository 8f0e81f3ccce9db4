"""
Input data model for payroll calculation.

Employees and salary components are owned by the employee management
system; variable components are supplied fresh for every payroll run.
All of them are immutable once handed to the engine.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from idpayroll.core.money import ZERO, to_decimal


class PTKPStatus(Enum):
    """Taxpayer status codes used for the PTKP (non-taxable income) lookup."""
    TK_0 = "TK/0"
    TK_1 = "TK/1"
    TK_2 = "TK/2"
    TK_3 = "TK/3"
    K_0 = "K/0"
    K_1 = "K/1"
    K_2 = "K/2"
    K_3 = "K/3"

    @classmethod
    def parse(cls, value: Any) -> "PTKPStatus":
        """
        Parse a status code.

        Accepts "TK/0", "TK_0", "tk/0" and PTKPStatus members.

        Raises:
            ValueError: If the code is not one of the 8 statuses
        """
        if isinstance(value, cls):
            return value
        code = str(value or "").strip().upper().replace("_", "/")
        for status in cls:
            if status.value == code:
                return status
        raise ValueError(f"Unknown PTKP status: {value!r}")

    @property
    def married(self) -> bool:
        return self.value.startswith("K/")

    @property
    def dependents(self) -> int:
        return int(self.value.split("/")[1])

    @property
    def description(self) -> str:
        """Indonesian description, as printed on tax forms."""
        marital = "Kawin" if self.married else "Tidak Kawin"
        if self.dependents == 0:
            return f"{marital}, tanpa tanggungan"
        return f"{marital}, {self.dependents} tanggungan"


class ComponentType(Enum):
    """Type of a recurring salary component."""
    BASIC_SALARY = "basic_salary"
    FIXED_ALLOWANCE = "fixed_allowance"
    DEDUCTION = "deduction"  # Rendered on the payslip, not used by the engine


@dataclass(frozen=True)
class Employee:
    """Employee attributes the engine needs."""
    id: str
    ptkp_status: PTKPStatus
    bpjs_health_enrolled: bool = True
    bpjs_manpower_enrolled: bool = True
    employee_code: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.employee_code or self.id


@dataclass(frozen=True)
class SalaryComponent:
    """One recurring salary component of an employee."""
    employee_id: str
    component_type: ComponentType
    amount: Decimal
    is_active: bool = True
    name: str = ""

    def __post_init__(self):
        # Normalize raw amounts (int/str/float) to Decimal
        amount = to_decimal(self.amount)
        if amount < 0:
            raise ValueError(f"Salary component amount must be non-negative: {amount}")
        object.__setattr__(self, "amount", amount)
        if not isinstance(self.component_type, ComponentType):
            object.__setattr__(self, "component_type", ComponentType(self.component_type))

    def counts_as(self, component_type: ComponentType) -> bool:
        """True if this component is active and of the given type."""
        return self.is_active and self.component_type == component_type


@dataclass(frozen=True)
class VariableComponents:
    """Per-period variable pay. All amounts default to zero."""
    bonus: Decimal = ZERO
    overtime_pay: Decimal = ZERO
    other_allowances: Decimal = ZERO
    other_deductions: Decimal = ZERO

    def __post_init__(self):
        for name in ("bonus", "overtime_pay", "other_allowances", "other_deductions"):
            amount = to_decimal(getattr(self, name))
            if amount < 0:
                raise ValueError(f"Variable pay {name} must be non-negative: {amount}")
            object.__setattr__(self, name, amount)

    @property
    def total_earnings(self) -> Decimal:
        """Variable pay that is part of gross salary (excludes other_deductions)."""
        return self.bonus + self.overtime_pay + self.other_allowances

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "VariableComponents":
        """
        Build from a mapping using snake_case or camelCase keys.

        Missing keys default to zero; None means no variable pay.
        """
        if not data:
            return cls()

        def pick(*keys):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return ZERO

        return cls(
            bonus=pick("bonus"),
            overtime_pay=pick("overtime_pay", "overtimePay"),
            other_allowances=pick("other_allowances", "otherAllowances"),
            other_deductions=pick("other_deductions", "otherDeductions"),
        )


@dataclass(frozen=True)
class PayrollInput:
    """One employee's inputs for a payroll run."""
    employee: Employee
    salary_components: tuple = ()
    variable_components: VariableComponents = field(default_factory=VariableComponents)

    def __post_init__(self):
        object.__setattr__(self, "salary_components", tuple(self.salary_components))
        if self.variable_components is None:
            object.__setattr__(self, "variable_components", VariableComponents())
