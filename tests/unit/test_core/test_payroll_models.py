"""Tests for the payroll input model."""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal

from idpayroll.core.models import (
    ComponentType,
    Employee,
    PayrollInput,
    PTKPStatus,
    SalaryComponent,
    VariableComponents,
)


class TestPTKPStatus:
    """Tests for PTKP status parsing and descriptions."""

    @pytest.mark.parametrize("raw,expected", [
        ("TK/0", PTKPStatus.TK_0),
        ("TK_0", PTKPStatus.TK_0),
        ("tk/2", PTKPStatus.TK_2),
        (" K/3 ", PTKPStatus.K_3),
        ("k_1", PTKPStatus.K_1),
        (PTKPStatus.K_0, PTKPStatus.K_0),
    ])
    def test_parse(self, raw, expected):
        assert PTKPStatus.parse(raw) == expected

    @pytest.mark.parametrize("raw", ["TK/4", "K", "", None, "X/0"])
    def test_parse_invalid(self, raw):
        with pytest.raises(ValueError):
            PTKPStatus.parse(raw)

    def test_married_and_dependents(self):
        assert PTKPStatus.K_2.married is True
        assert PTKPStatus.K_2.dependents == 2
        assert PTKPStatus.TK_0.married is False
        assert PTKPStatus.TK_0.dependents == 0

    def test_description(self):
        assert PTKPStatus.TK_0.description == "Tidak Kawin, tanpa tanggungan"
        assert PTKPStatus.K_2.description == "Kawin, 2 tanggungan"


class TestEmployee:
    """Tests for the Employee record."""

    def test_defaults_enrolled(self):
        employee = Employee(id="E1", ptkp_status=PTKPStatus.TK_0)
        assert employee.bpjs_health_enrolled is True
        assert employee.bpjs_manpower_enrolled is True

    def test_immutable(self):
        employee = Employee(id="E1", ptkp_status=PTKPStatus.TK_0)
        with pytest.raises(FrozenInstanceError):
            employee.id = "E2"

    def test_display_name_fallbacks(self):
        assert Employee("E1", PTKPStatus.TK_0, full_name="Siti").display_name == "Siti"
        assert Employee("E1", PTKPStatus.TK_0, employee_code="C-01").display_name == "C-01"
        assert Employee("E1", PTKPStatus.TK_0).display_name == "E1"


class TestSalaryComponent:
    """Tests for SalaryComponent normalization."""

    def test_amount_converted_to_decimal(self):
        component = SalaryComponent("E1", ComponentType.BASIC_SALARY, 5000000)
        assert component.amount == Decimal("5000000")
        assert isinstance(component.amount, Decimal)

    def test_component_type_from_string(self):
        component = SalaryComponent("E1", "fixed_allowance", "750000")
        assert component.component_type == ComponentType.FIXED_ALLOWANCE

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            SalaryComponent("E1", ComponentType.BASIC_SALARY, -1)

    def test_counts_as_requires_active(self):
        active = SalaryComponent("E1", ComponentType.BASIC_SALARY, 100)
        inactive = SalaryComponent("E1", ComponentType.BASIC_SALARY, 100, is_active=False)
        assert active.counts_as(ComponentType.BASIC_SALARY)
        assert not active.counts_as(ComponentType.FIXED_ALLOWANCE)
        assert not inactive.counts_as(ComponentType.BASIC_SALARY)


class TestVariableComponents:
    """Tests for per-period variable pay."""

    def test_defaults_zero(self):
        variables = VariableComponents()
        assert variables.total_earnings == Decimal("0")
        assert variables.other_deductions == Decimal("0")

    def test_total_earnings_excludes_deductions(self):
        variables = VariableComponents(bonus=1000, overtime_pay=200, other_allowances=50, other_deductions=999)
        assert variables.total_earnings == Decimal("1250")

    def test_from_dict_snake_case(self):
        variables = VariableComponents.from_dict({"bonus": 500000, "overtime_pay": "250000"})
        assert variables.bonus == Decimal("500000")
        assert variables.overtime_pay == Decimal("250000")
        assert variables.other_allowances == Decimal("0")

    def test_from_dict_camel_case(self):
        variables = VariableComponents.from_dict({
            "overtimePay": 100, "otherAllowances": 200, "otherDeductions": 300,
        })
        assert variables.overtime_pay == Decimal("100")
        assert variables.other_allowances == Decimal("200")
        assert variables.other_deductions == Decimal("300")

    def test_from_dict_none(self):
        assert VariableComponents.from_dict(None) == VariableComponents()

    @pytest.mark.parametrize("name", ["bonus", "overtime_pay", "other_allowances", "other_deductions"])
    def test_negative_amount_rejected(self, name):
        with pytest.raises(ValueError, match=name):
            VariableComponents(**{name: -1})

    def test_from_dict_negative_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            VariableComponents.from_dict({"otherAllowances": "-3000000"})

    def test_zero_allowed(self):
        assert VariableComponents(bonus=0).bonus == Decimal("0")


class TestPayrollInput:
    """Tests for PayrollInput."""

    def test_components_become_tuple(self):
        employee = Employee("E1", PTKPStatus.TK_0)
        payroll_input = PayrollInput(employee, [SalaryComponent("E1", ComponentType.BASIC_SALARY, 1)])
        assert isinstance(payroll_input.salary_components, tuple)

    def test_none_variables_default_to_zero(self):
        payroll_input = PayrollInput(Employee("E1", PTKPStatus.TK_0), (), None)
        assert payroll_input.variable_components == VariableComponents()
