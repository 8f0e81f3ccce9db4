"""
Unit tests for Payroll Aggregator.

Tests cover:
- Gross to net for one employee, including variable pay
- Calculation trail and line item output
- Batch isolation of per-employee failures
- Zero/negative net salary warnings
- Thread pool equivalence and order-independent totals
"""

import itertools
import pytest
from dataclasses import replace
from decimal import Decimal

from idpayroll.core.config import TaxBracket
from idpayroll.core.exceptions import CalculationError, ConfigurationError, MissingBasicSalaryError
from idpayroll.core.models import (
    ComponentType,
    Employee,
    PayrollInput,
    PTKPStatus,
    SalaryComponent,
    VariableComponents,
)
from idpayroll.services.calculation_trail import render_trail
from idpayroll.services.payroll_aggregator import (
    IssueType,
    PayrollAggregator,
    PayrollTotals,
)


class TestCalculateOne:
    """Tests for PayrollAggregator.calculate_one()."""

    def test_canonical_employee(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m)

        assert result.basic_salary == Decimal("8000000")
        assert result.fixed_allowances == Decimal("2000000")
        assert result.gross_salary == Decimal("10000000")
        assert result.contribution.total_employee_contribution == Decimal("400000")
        assert result.tax.tax_monthly == Decimal("358600")
        assert result.total_deductions == Decimal("758600")
        assert result.net_salary == Decimal("9241400")

    def test_variable_pay_in_gross(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(
            employee_tk0, components_10m,
            VariableComponents(bonus=500000, overtime_pay=300000, other_allowances=200000),
        )
        assert result.gross_salary == Decimal("11000000")

    def test_other_deductions_only_reduce_net(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m, {"otherDeductions": 100000})

        assert result.gross_salary == Decimal("10000000")
        assert result.tax.tax_monthly == Decimal("358600")
        assert result.total_deductions == Decimal("858600")
        assert result.net_salary == Decimal("9141400")

    def test_inactive_and_deduction_components_ignored(self, aggregator, employee_tk0, components_10m):
        extra = [
            SalaryComponent(employee_tk0.id, ComponentType.FIXED_ALLOWANCE, 5000000, is_active=False),
            SalaryComponent(employee_tk0.id, ComponentType.DEDUCTION, 250000, name="Koperasi"),
        ]
        result = aggregator.calculate_one(employee_tk0, components_10m + extra)

        assert result.gross_salary == Decimal("10000000")
        assert result.net_salary == Decimal("9241400")

    def test_multiple_basic_components_summed(self, aggregator, employee_tk0, component_factory):
        components = component_factory(employee_tk0.id, 6000000) + component_factory(employee_tk0.id, 4000000)
        result = aggregator.calculate_one(employee_tk0, components)
        assert result.basic_salary == Decimal("10000000")

    def test_missing_basic_salary(self, aggregator, employee_tk0):
        components = [SalaryComponent(employee_tk0.id, ComponentType.FIXED_ALLOWANCE, 1000000)]
        with pytest.raises(MissingBasicSalaryError) as exc_info:
            aggregator.calculate_one(employee_tk0, components)
        assert exc_info.value.employee_id == employee_tk0.id
        assert exc_info.value.code == "MISSING_BASIC_SALARY"

    def test_inactive_basic_salary_is_missing(self, aggregator, employee_tk0):
        components = [SalaryComponent(employee_tk0.id, ComponentType.BASIC_SALARY, 1000000, is_active=False)]
        with pytest.raises(MissingBasicSalaryError):
            aggregator.calculate_one(employee_tk0, components)

    def test_zero_gross(self, aggregator, employee_tk0, component_factory):
        """An active basic salary of 0 is valid and yields all zeros."""
        result = aggregator.calculate_one(employee_tk0, component_factory(employee_tk0.id, 0))

        assert result.gross_salary == 0
        assert result.contribution.total_employer_contribution == 0
        assert result.tax.tax_monthly == 0
        assert result.net_salary == 0

    def test_component_of_other_employee(self, aggregator, employee_tk0, component_factory):
        with pytest.raises(CalculationError) as exc_info:
            aggregator.calculate_one(employee_tk0, component_factory("EMP999", 1000000))
        assert exc_info.value.employee_id == employee_tk0.id

    def test_enrollment_flags(self, aggregator, component_factory):
        employee = Employee("EMP002", PTKPStatus.TK_0, bpjs_health_enrolled=False, bpjs_manpower_enrolled=False)
        result = aggregator.calculate_one(employee, component_factory("EMP002", 10000000))

        assert result.contribution.total_employee_contribution == 0
        assert result.tax.tax_monthly == Decimal("250000")
        assert result.net_salary == Decimal("9750000")

    def test_invalid_configuration_rejected_up_front(self, reference_config):
        broken = replace(reference_config, tax_brackets=(TaxBracket(Decimal("0"), Decimal("60000000"), Decimal("0.05")),))
        with pytest.raises(ConfigurationError):
            PayrollAggregator(broken)


class TestTrailAndLineItem:
    """Tests for the calculation trail and persisted line item."""

    def test_trail_has_four_steps(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m)

        assert [step.label for step in result.trail] == ["gross", "bpjs", "pph21", "net"]
        assert result.step("gross").result == Decimal("10000000")
        assert result.step("bpjs").result == Decimal("400000")
        assert result.step("pph21").result == Decimal("358600")
        assert result.step("net").result == Decimal("9241400")

    def test_step_inputs(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m)

        gross_inputs = result.step("gross").inputs
        assert list(gross_inputs) == ["basic_salary", "fixed_allowances", "bonus", "overtime_pay", "other_allowances"]
        assert result.step("pph21").inputs["pkp_yearly"] == Decimal("68688000")

        with pytest.raises(TypeError):
            gross_inputs["bonus"] = Decimal("1")

    def test_unknown_step(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m)
        with pytest.raises(KeyError):
            result.step("overtime")

    def test_render_trail(self, aggregator, employee_tk0, components_10m):
        lines = render_trail(aggregator.calculate_one(employee_tk0, components_10m).trail)

        assert len(lines) == 4
        assert lines[0].startswith("Gross salary:")
        assert "= Rp 10.000.000" in lines[0]
        assert "basic_salary Rp 8.000.000" in lines[0]
        assert "= Rp 358.600" in lines[2]
        assert lines[3].startswith("Net salary:")
        assert "= Rp 9.241.400" in lines[3]

    def test_line_item(self, aggregator, employee_tk0, components_10m):
        result = aggregator.calculate_one(employee_tk0, components_10m, {"bonus": 0})
        item = result.to_line_item("PAY-2024-01")

        assert item["payroll_id"] == "PAY-2024-01"
        assert item["employee_id"] == "EMP001"
        assert item["gross_salary"] == Decimal("10000000")
        assert item["bpjs_jkk_employer"] == Decimal("24000")
        assert item["taxable_income"] == Decimal("11024000")
        assert item["occupational_cost"] == Decimal("500000")
        assert item["ptkp_amount"] == Decimal("54000000")
        assert item["pkp_yearly"] == Decimal("68688000")
        assert item["pph21_yearly"] == Decimal("4303200")
        assert item["pph21_monthly"] == Decimal("358600")
        assert item["net_salary"] == Decimal("9241400")


class TestCalculateBatch:
    """Tests for PayrollAggregator.calculate_batch()."""

    def test_failures_are_isolated(self, aggregator, employee_tk0, components_10m, component_factory):
        no_basic = Employee("EMP002", PTKPStatus.K_1)
        wrong_owner = Employee("EMP003", PTKPStatus.TK_1)

        batch = aggregator.calculate_batch([
            PayrollInput(employee_tk0, components_10m),
            PayrollInput(no_basic, [SalaryComponent("EMP002", ComponentType.FIXED_ALLOWANCE, 1000000)]),
            PayrollInput(wrong_owner, component_factory("EMP001", 5000000)),
        ])

        assert [o.employee_id for o in batch.outcomes] == ["EMP001", "EMP002", "EMP003"]
        assert [o.succeeded for o in batch.outcomes] == [True, False, False]
        assert batch.outcomes[1].issue.issue_type == IssueType.MISSING_BASIC_SALARY
        assert batch.outcomes[2].issue.issue_type == IssueType.CALCULATION_ERROR
        assert batch.outcomes[2].issue.employee_id == "EMP003"

        assert batch.processed_count == 1
        assert batch.total_employees == 3
        assert batch.totals.total_employees == 1
        assert batch.totals.total_net_salary == Decimal("9241400")
        assert batch.summary() == "1 of 3 employees processed, 2 issues"

    def test_outcome_has_result_or_issue(self, aggregator, employee_tk0, components_10m):
        batch = aggregator.calculate_batch([
            PayrollInput(employee_tk0, components_10m),
            PayrollInput(Employee("EMP002", PTKPStatus.TK_0), []),
        ])
        for outcome in batch.outcomes:
            assert (outcome.result is None) != (outcome.issue is None)

    def test_zero_net_is_warning(self, aggregator, employee_tk0, component_factory):
        batch = aggregator.calculate_batch([
            PayrollInput(employee_tk0, component_factory(employee_tk0.id, 0)),
        ])

        assert batch.processed_count == 1
        assert len(batch.issues) == 1
        assert batch.issues[0].issue_type == IssueType.ZERO_NET_SALARY
        assert batch.issues[0].is_warning
        assert batch.warnings == batch.issues
        assert batch.errors == []
        assert batch.totals.total_employees == 1

    def test_negative_net_is_counted(self, aggregator, employee_tk0, component_factory):
        batch = aggregator.calculate_batch([
            PayrollInput(
                employee_tk0,
                component_factory(employee_tk0.id, 1000000),
                VariableComponents(other_deductions=2000000),
            ),
        ])

        result = batch.results[0]
        assert result.net_salary < 0
        assert batch.totals.total_net_salary == result.net_salary
        assert batch.issues[0].issue_type == IssueType.ZERO_NET_SALARY

    def test_tuple_entries(self, aggregator, employee_tk0, components_10m):
        batch = aggregator.calculate_batch([
            (employee_tk0, components_10m),
            (employee_tk0, components_10m, {"bonus": 1000000}),
        ])
        assert [r.gross_salary for r in batch.results] == [Decimal("10000000"), Decimal("11000000")]

    def test_negative_variable_pay_is_isolated(self, aggregator, employee_tk0, components_10m, component_factory):
        low_paid = Employee("EMP002", PTKPStatus.TK_0)

        batch = aggregator.calculate_batch([
            (low_paid, component_factory("EMP002", 1000000), {"other_allowances": -3000000}),
            (employee_tk0, components_10m),
        ])

        assert [o.employee_id for o in batch.outcomes] == ["EMP002", "EMP001"]
        assert batch.outcomes[0].issue.issue_type == IssueType.CALCULATION_ERROR
        assert batch.outcomes[0].issue.employee_id == "EMP002"
        assert "non-negative" in batch.outcomes[0].issue.message
        assert [r.employee.id for r in batch.results] == ["EMP001"]
        assert batch.totals.total_bpjs_employee == Decimal("400000")
        assert batch.summary() == "1 of 2 employees processed, 1 issues"

    def test_add_rejected(self, aggregator, employee_tk0, components_10m):
        batch = aggregator.calculate_batch([PayrollInput(employee_tk0, components_10m)])
        batch.add_rejected("EMP009", "Row 3: basic_salary for EMP009: Not an amount: 'abc'")

        assert batch.total_employees == 2
        assert batch.processed_count == 1
        assert batch.errors[0].issue_type == IssueType.CALCULATION_ERROR
        assert batch.errors[0].employee_id == "EMP009"
        assert batch.totals.total_employees == 1
        assert batch.summary() == "1 of 2 employees processed, 1 issues"

    def test_unsupported_entry(self, aggregator):
        batch = aggregator.calculate_batch(["not an entry"])

        assert batch.processed_count == 0
        assert batch.issues[0].issue_type == IssueType.CALCULATION_ERROR
        assert batch.issues[0].employee_id is None

    def test_empty_batch(self, aggregator):
        batch = aggregator.calculate_batch([])
        assert batch.totals == PayrollTotals()
        assert batch.summary() == "0 of 0 employees processed, 0 issues"

    def test_thread_pool_matches_sequential(self, reference_config, component_factory):
        statuses = list(PTKPStatus)
        entries = []
        for i in range(24):
            employee = Employee(
                f"EMP{i:03d}",
                statuses[i % len(statuses)],
                bpjs_health_enrolled=i % 3 != 0,
                bpjs_manpower_enrolled=i % 4 != 0,
            )
            entries.append(PayrollInput(employee, component_factory(employee.id, 3000000 + i * 1750000, 250000)))
        entries.append(PayrollInput(Employee("EMP999", PTKPStatus.TK_0), []))

        sequential = PayrollAggregator(reference_config).calculate_batch(entries)
        threaded = PayrollAggregator(reference_config, max_workers=4).calculate_batch(entries)

        assert [o.employee_id for o in threaded.outcomes] == [o.employee_id for o in sequential.outcomes]
        assert [r.net_salary for r in threaded.results] == [r.net_salary for r in sequential.results]
        assert threaded.totals == sequential.totals
        assert threaded.summary() == sequential.summary() == "24 of 25 employees processed, 1 issues"


class TestTotals:
    """Tests for run totals."""

    def _results(self, aggregator, component_factory):
        results = []
        for i, gross in enumerate([5000000, 10000000, 25000000, 80000000]):
            employee = Employee(f"EMP{i}", PTKPStatus.K_2)
            results.append(aggregator.calculate_one(employee, component_factory(employee.id, gross)))
        return results

    def test_canonical_totals(self, aggregator, employee_tk0, components_10m):
        totals = aggregator.reduce_totals([aggregator.calculate_one(employee_tk0, components_10m)])

        assert totals.total_employees == 1
        assert totals.total_gross_salary == Decimal("10000000")
        assert totals.total_pph21 == Decimal("358600")
        assert totals.total_bpjs_employee == Decimal("400000")
        assert totals.total_bpjs_employer == Decimal("1024000")
        assert totals.total_net_salary == Decimal("9241400")

    @pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
    def test_order_independent(self, aggregator, component_factory, order):
        results = self._results(aggregator, component_factory)
        shuffled = [results[i] for i in order]
        assert aggregator.reduce_totals(shuffled) == aggregator.reduce_totals(results)

    def test_split_and_combine(self, aggregator, component_factory):
        results = self._results(aggregator, component_factory)
        combined = aggregator.reduce_totals(results[:2]) + aggregator.reduce_totals(results[2:])
        assert combined == aggregator.reduce_totals(results)

    def test_identity(self, aggregator, component_factory):
        totals = aggregator.reduce_totals(self._results(aggregator, component_factory))
        assert PayrollTotals() + totals == totals
        assert totals + PayrollTotals() == totals

    def test_empty(self, aggregator):
        assert aggregator.reduce_totals([]) == PayrollTotals()

    def test_to_dict(self, aggregator, employee_tk0, components_10m):
        totals = aggregator.reduce_totals([aggregator.calculate_one(employee_tk0, components_10m)])
        assert totals.to_dict()["total_net_salary"] == Decimal("9241400")


class TestRunHelpers:
    """Tests for calculate_run() and find_missing_employees()."""

    def test_calculate_run_with_flat_components(self, aggregator, component_factory):
        employees = [Employee("A", PTKPStatus.TK_0), Employee("B", PTKPStatus.K_0)]
        components = (
            component_factory("A", 10000000) +
            component_factory("B", 7000000, 500000) +
            component_factory("GHOST", 1000000)
        )
        batch = aggregator.calculate_run(employees, components, {"B": {"bonus": 1000000}})

        assert batch.processed_count == 2
        assert batch.results[0].net_salary == Decimal("9241400")
        assert batch.results[1].gross_salary == Decimal("8500000")

    def test_calculate_run_with_grouped_components(self, aggregator, component_factory):
        employees = [Employee("A", PTKPStatus.TK_0), Employee("B", PTKPStatus.K_0)]
        batch = aggregator.calculate_run(employees, {"A": component_factory("A", 10000000)})

        assert batch.outcomes[0].succeeded
        assert batch.outcomes[1].issue.issue_type == IssueType.MISSING_BASIC_SALARY

    def test_calculate_run_negative_variable_pay_fails_one_employee(self, aggregator, component_factory):
        employees = [Employee("A", PTKPStatus.TK_0), Employee("B", PTKPStatus.K_0)]
        components = component_factory("A", 10000000) + component_factory("B", 1000000)

        batch = aggregator.calculate_run(employees, components, {"B": {"otherAllowances": -3000000}})

        assert [r.employee.id for r in batch.results] == ["A"]
        assert batch.issues[0].issue_type == IssueType.CALCULATION_ERROR
        assert batch.issues[0].employee_id == "B"

    def test_find_missing_employees(self, aggregator, employee_tk0, components_10m):
        batch = aggregator.calculate_batch([
            PayrollInput(employee_tk0, components_10m),
            PayrollInput(Employee("EMP002", PTKPStatus.TK_0), []),
        ])
        missing = aggregator.find_missing_employees(batch, ["EMP001", "EMP002", "EMP003"])

        assert [i.employee_id for i in missing] == ["EMP002", "EMP003"]
        assert all(i.issue_type == IssueType.MISSING_EMPLOYEE for i in missing)
