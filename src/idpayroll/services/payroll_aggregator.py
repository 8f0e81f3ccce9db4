"""
Payroll Aggregator for the payroll engine.

Turns salary components and variable pay into gross salary, runs the BPJS
and PPh 21 calculators, derives net salary and reduces a whole run into
totals.

Batch runs never abort on a single employee: every employee yields an
EmployeeOutcome carrying either a result or a typed issue, so a caller can
report "N of M employees processed, K issues" instead of failing the run.
Only a configuration error stops a run, and it does so in the constructor,
before any employee is processed.
"""

import logging
import operator
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from functools import reduce
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from idpayroll.core.config import PayrollConfiguration
from idpayroll.core.exceptions import CalculationError, MissingBasicSalaryError
from idpayroll.core.models import (
    ComponentType,
    Employee,
    PayrollInput,
    SalaryComponent,
    VariableComponents,
)
from idpayroll.core.money import MONTHS_PER_YEAR, ZERO
from idpayroll.services.bpjs_calculator import ContributionCalculator, ContributionResult
from idpayroll.services.calculation_trail import CalculationStep
from idpayroll.services.pph21_calculator import IncomeTaxCalculator, TaxResult

logger = logging.getLogger(__name__)


class IssueType(Enum):
    """Kind of problem recorded for one employee in a run."""

    MISSING_BASIC_SALARY = "missing_basic_salary"
    CALCULATION_ERROR = "calculation_error"
    ZERO_NET_SALARY = "zero_net_salary"  # warning; the result is still counted
    MISSING_EMPLOYEE = "missing_employee"


@dataclass(frozen=True)
class PayrollIssue:
    """A validation issue for one employee."""

    issue_type: IssueType
    employee_id: Optional[str]
    message: str

    @property
    def is_warning(self) -> bool:
        return self.issue_type == IssueType.ZERO_NET_SALARY


@dataclass(frozen=True)
class PayrollCalculationResult:
    """One employee's full breakdown for one payroll period."""

    employee: Employee
    basic_salary: Decimal
    fixed_allowances: Decimal
    variable_components: VariableComponents
    gross_salary: Decimal
    contribution: ContributionResult
    tax: TaxResult
    total_deductions: Decimal
    net_salary: Decimal
    trail: tuple = ()

    def step(self, label: str) -> CalculationStep:
        """Trail step by label ('gross', 'bpjs', 'pph21' or 'net')."""
        for step in self.trail:
            if step.label == label:
                return step
        raise KeyError(label)

    def to_line_item(self, payroll_id: str) -> Dict[str, Any]:
        """
        Flatten into the payroll line item stored per employee per run.

        Taxable income and occupational cost are stored as monthly figures;
        PKP and PPh 21 keep their yearly values next to the monthly tax.
        """
        c = self.contribution
        v = self.variable_components
        return {
            "payroll_id": payroll_id,
            "employee_id": self.employee.id,
            "bonus": v.bonus,
            "overtime_pay": v.overtime_pay,
            "other_allowances": v.other_allowances,
            "other_deductions": v.other_deductions,
            "basic_salary": self.basic_salary,
            "fixed_allowances": self.fixed_allowances,
            "gross_salary": self.gross_salary,
            "bpjs_health_employee": c.health_employee,
            "bpjs_health_employer": c.health_employer,
            "bpjs_jht_employee": c.jht_employee,
            "bpjs_jht_employer": c.jht_employer,
            "bpjs_jp_employee": c.jp_employee,
            "bpjs_jp_employer": c.jp_employer,
            "bpjs_jkk_employer": c.jkk_employer,
            "bpjs_jkm_employer": c.jkm_employer,
            "taxable_income": self.tax.taxable_base / MONTHS_PER_YEAR,
            "occupational_cost": self.tax.occupational_cost_monthly,
            "ptkp_amount": self.tax.ptkp_amount,
            "pkp_yearly": self.tax.pkp_yearly,
            "pph21_yearly": self.tax.tax_yearly,
            "pph21_monthly": self.tax.tax_monthly,
            "total_deductions": self.total_deductions,
            "net_salary": self.net_salary,
        }


@dataclass(frozen=True)
class PayrollTotals:
    """
    Run-level totals.

    Addition is associative and commutative with PayrollTotals() as the
    identity, so totals can be reduced in any order or in parallel.
    """

    total_employees: int = 0
    total_gross_salary: Decimal = ZERO
    total_pph21: Decimal = ZERO
    total_bpjs_employee: Decimal = ZERO
    total_bpjs_employer: Decimal = ZERO
    total_net_salary: Decimal = ZERO

    @classmethod
    def from_result(cls, result: PayrollCalculationResult) -> "PayrollTotals":
        return cls(
            total_employees=1,
            total_gross_salary=result.gross_salary,
            total_pph21=result.tax.tax_monthly,
            total_bpjs_employee=result.contribution.total_employee_contribution,
            total_bpjs_employer=result.contribution.total_employer_contribution,
            total_net_salary=result.net_salary,
        )

    def __add__(self, other: "PayrollTotals") -> "PayrollTotals":
        if not isinstance(other, PayrollTotals):
            return NotImplemented
        return PayrollTotals(
            total_employees=self.total_employees + other.total_employees,
            total_gross_salary=self.total_gross_salary + other.total_gross_salary,
            total_pph21=self.total_pph21 + other.total_pph21,
            total_bpjs_employee=self.total_bpjs_employee + other.total_bpjs_employee,
            total_bpjs_employer=self.total_bpjs_employer + other.total_bpjs_employer,
            total_net_salary=self.total_net_salary + other.total_net_salary,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_employees": self.total_employees,
            "total_gross_salary": self.total_gross_salary,
            "total_pph21": self.total_pph21,
            "total_bpjs_employee": self.total_bpjs_employee,
            "total_bpjs_employer": self.total_bpjs_employer,
            "total_net_salary": self.total_net_salary,
        }


@dataclass(frozen=True)
class EmployeeOutcome:
    """Outcome of one employee in a batch: a result or an issue, never both."""

    employee_id: Optional[str]
    result: Optional[PayrollCalculationResult] = None
    issue: Optional[PayrollIssue] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


@dataclass
class BatchResult:
    """Result of a payroll batch run."""

    outcomes: List[EmployeeOutcome] = field(default_factory=list)
    issues: List[PayrollIssue] = field(default_factory=list)
    totals: PayrollTotals = field(default_factory=PayrollTotals)

    @property
    def results(self) -> List[PayrollCalculationResult]:
        return [o.result for o in self.outcomes if o.succeeded]

    @property
    def total_employees(self) -> int:
        return len(self.outcomes)

    @property
    def processed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def errors(self) -> List[PayrollIssue]:
        return [i for i in self.issues if not i.is_warning]

    @property
    def warnings(self) -> List[PayrollIssue]:
        return [i for i in self.issues if i.is_warning]

    def summary(self) -> str:
        return (
            f"{self.processed_count} of {self.total_employees} employees processed, "
            f"{len(self.issues)} issues"
        )

    def add_rejected(self, employee_id: str, message: str):
        """Record an employee whose input was rejected before calculation."""
        issue = PayrollIssue(IssueType.CALCULATION_ERROR, employee_id, message)
        self.outcomes.append(EmployeeOutcome(employee_id=employee_id, issue=issue))
        self.issues.append(issue)


class PayrollAggregator:
    """
    Payroll calculation pipeline for one configuration snapshot.

    Usage:
        aggregator = PayrollAggregator(config, max_workers=4)

        result = aggregator.calculate_one(employee, components, {"bonus": 500000})

        batch = aggregator.calculate_batch(inputs)
        print(batch.summary())
        for issue in batch.issues:
            print(issue.issue_type.value, issue.employee_id, issue.message)
    """

    def __init__(self, config: PayrollConfiguration, max_workers: Optional[int] = None):
        """
        Initialize aggregator.

        Args:
            config: Configuration snapshot; validated here
            max_workers: Thread pool size for batches (None or 1 = sequential)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self.config = config.validate()
        self.max_workers = max_workers
        self.contribution_calculator = ContributionCalculator()
        self.tax_calculator = IncomeTaxCalculator()

    def calculate_one(
        self,
        employee: Employee,
        salary_components: Sequence[SalaryComponent],
        variable_inputs: Any = None
    ) -> PayrollCalculationResult:
        """
        Calculate one employee's payroll for one period.

        Args:
            employee: Employee record
            salary_components: The employee's salary components
            variable_inputs: VariableComponents, a mapping, or None for zero

        Returns:
            PayrollCalculationResult; net salary may be zero or negative

        Raises:
            MissingBasicSalaryError: If no active basic salary component exists
            CalculationError: If a component belongs to another employee
        """
        variables = (
            variable_inputs if isinstance(variable_inputs, VariableComponents)
            else VariableComponents.from_dict(variable_inputs)
        )

        for component in salary_components:
            if component.employee_id != employee.id:
                raise CalculationError(
                    f"Salary component '{component.name}' belongs to employee "
                    f"{component.employee_id}, not {employee.id}",
                    employee_id=employee.id,
                )

        basic_components = [c for c in salary_components if c.counts_as(ComponentType.BASIC_SALARY)]
        if not basic_components:
            raise MissingBasicSalaryError(employee.id)

        # Step 1: Gross salary
        basic_salary = sum((c.amount for c in basic_components), ZERO)
        fixed_allowances = sum(
            (c.amount for c in salary_components if c.counts_as(ComponentType.FIXED_ALLOWANCE)),
            ZERO,
        )
        gross_salary = basic_salary + fixed_allowances + variables.total_earnings

        # Step 2: BPJS
        contribution = self.contribution_calculator.calculate(
            gross_salary,
            employee.bpjs_health_enrolled,
            employee.bpjs_manpower_enrolled,
            self.config.contribution_rates,
        )

        # Step 3: PPh 21
        tax = self.tax_calculator.calculate_with_config(
            gross_salary, employee.ptkp_status, contribution, self.config
        )

        # Step 4: Net salary; other_deductions only applies here
        total_deductions = (
            contribution.total_employee_contribution +
            tax.tax_monthly +
            variables.other_deductions
        )
        net_salary = gross_salary - total_deductions

        logger.debug(f"Employee {employee.id}: gross {gross_salary}, net {net_salary}")

        return PayrollCalculationResult(
            employee=employee,
            basic_salary=basic_salary,
            fixed_allowances=fixed_allowances,
            variable_components=variables,
            gross_salary=gross_salary,
            contribution=contribution,
            tax=tax,
            total_deductions=total_deductions,
            net_salary=net_salary,
            trail=self._build_trail(
                basic_salary, fixed_allowances, variables, gross_salary,
                contribution, tax, net_salary,
            ),
        )

    def calculate_batch(self, entries: Iterable[Any]) -> BatchResult:
        """
        Calculate a whole run.

        Each entry is a PayrollInput or an (employee, components[, variables])
        tuple. Employees are independent; with max_workers > 1 they run on a
        thread pool. Outcomes keep the input order either way.

        Per-employee failures become issues; this method does not raise for
        them. Results with net salary <= 0 are kept and flagged with a
        zero_net_salary warning.

        Returns:
            BatchResult with outcomes, issues and totals
        """
        entries = list(entries)

        if self.max_workers and self.max_workers > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(self._calculate_outcome, entries))
        else:
            outcomes = [self._calculate_outcome(entry) for entry in entries]

        issues = [o.issue for o in outcomes if o.issue is not None]

        for outcome in outcomes:
            if outcome.succeeded and outcome.result.net_salary <= 0:
                issues.append(PayrollIssue(
                    issue_type=IssueType.ZERO_NET_SALARY,
                    employee_id=outcome.employee_id,
                    message=f"Net salary is {outcome.result.net_salary}",
                ))

        batch = BatchResult(
            outcomes=outcomes,
            issues=issues,
            totals=self.reduce_totals(o.result for o in outcomes if o.succeeded),
        )

        logger.info(f"Payroll batch: {batch.summary()}")
        for issue in issues:
            logger.warning(f"{issue.issue_type.value} [{issue.employee_id}]: {issue.message}")

        return batch

    def calculate_run(
        self,
        employees: Iterable[Employee],
        components_by_employee: Any,
        variables_by_employee: Optional[Mapping[str, Any]] = None
    ) -> BatchResult:
        """
        Calculate a run from master data.

        Args:
            employees: Employees to pay
            components_by_employee: employee id -> components, or a flat
                iterable of every employee's components
            variables_by_employee: employee id -> VariableComponents or
                mapping; employees not listed get zero variable pay

        Returns:
            BatchResult
        """
        employees = list(employees)
        known_ids = {e.id for e in employees}

        if isinstance(components_by_employee, Mapping):
            flat_components = [c for group in components_by_employee.values() for c in group]
        else:
            flat_components = list(components_by_employee)

        grouped = defaultdict(list)
        for component in flat_components:
            if component.employee_id not in known_ids:
                logger.warning(f"Ignoring component for unknown employee {component.employee_id}")
                continue
            grouped[component.employee_id].append(component)

        # Variable pay is converted inside each employee's calculation
        variables_by_employee = variables_by_employee or {}
        entries = [
            (employee, grouped.get(employee.id, []), variables_by_employee.get(employee.id))
            for employee in employees
        ]

        return self.calculate_batch(entries)

    @staticmethod
    def reduce_totals(results: Iterable[PayrollCalculationResult]) -> PayrollTotals:
        """Sum results into run totals; order does not matter."""
        return reduce(operator.add, (PayrollTotals.from_result(r) for r in results), PayrollTotals())

    @staticmethod
    def find_missing_employees(
        batch: BatchResult,
        expected_employee_ids: Iterable[str]
    ) -> List[PayrollIssue]:
        """
        Report expected employees that have no result in a batch.

        Args:
            batch: Completed batch
            expected_employee_ids: Ids of every active employee for the period

        Returns:
            One missing_employee issue per employee without a result
        """
        processed = {r.employee.id for r in batch.results}
        return [
            PayrollIssue(
                issue_type=IssueType.MISSING_EMPLOYEE,
                employee_id=employee_id,
                message=f"Active employee {employee_id} was not processed",
            )
            for employee_id in expected_employee_ids
            if employee_id not in processed
        ]

    def _calculate_outcome(self, entry: Any) -> EmployeeOutcome:
        """Run one entry, converting per-employee failures into issues."""
        employee_id = _entry_employee_id(entry)
        try:
            payroll_input = _as_payroll_input(entry)
            employee_id = payroll_input.employee.id
            result = self.calculate_one(
                payroll_input.employee,
                payroll_input.salary_components,
                payroll_input.variable_components,
            )
            return EmployeeOutcome(employee_id=employee_id, result=result)

        except MissingBasicSalaryError as e:
            return EmployeeOutcome(
                employee_id=employee_id,
                issue=PayrollIssue(IssueType.MISSING_BASIC_SALARY, employee_id, e.message),
            )

        except Exception as e:
            logger.exception(f"Payroll calculation failed for employee {employee_id}")
            return EmployeeOutcome(
                employee_id=employee_id,
                issue=PayrollIssue(IssueType.CALCULATION_ERROR, employee_id, str(e)),
            )

    @staticmethod
    def _build_trail(
        basic_salary: Decimal,
        fixed_allowances: Decimal,
        variables: VariableComponents,
        gross_salary: Decimal,
        contribution: ContributionResult,
        tax: TaxResult,
        net_salary: Decimal
    ) -> tuple:
        return (
            CalculationStep(
                label="gross",
                formula="basic_salary + fixed_allowances + bonus + overtime_pay + other_allowances",
                inputs={
                    "basic_salary": basic_salary,
                    "fixed_allowances": fixed_allowances,
                    "bonus": variables.bonus,
                    "overtime_pay": variables.overtime_pay,
                    "other_allowances": variables.other_allowances,
                },
                result=gross_salary,
            ),
            CalculationStep(
                label="bpjs",
                formula="health_employee + jht_employee + jp_employee",
                inputs={
                    "health_employee": contribution.health_employee,
                    "jht_employee": contribution.jht_employee,
                    "jp_employee": contribution.jp_employee,
                },
                result=contribution.total_employee_contribution,
            ),
            CalculationStep(
                label="pph21",
                formula="round(progressive_tax(pkp_yearly) / 12)",
                inputs={
                    "net_before_ptkp_yearly": tax.net_before_ptkp_yearly,
                    "ptkp_amount": tax.ptkp_amount,
                    "pkp_yearly": tax.pkp_yearly,
                    "tax_yearly": tax.tax_yearly,
                },
                result=tax.tax_monthly,
            ),
            CalculationStep(
                label="net",
                formula="gross_salary - bpjs_employee - pph21_monthly - other_deductions",
                inputs={
                    "gross_salary": gross_salary,
                    "bpjs_employee": contribution.total_employee_contribution,
                    "pph21_monthly": tax.tax_monthly,
                    "other_deductions": variables.other_deductions,
                },
                result=net_salary,
            ),
        )


def _as_payroll_input(entry: Any) -> PayrollInput:
    if isinstance(entry, PayrollInput):
        return entry
    if isinstance(entry, (tuple, list)) and len(entry) in (2, 3):
        employee, components = entry[0], entry[1]
        raw = entry[2] if len(entry) == 3 else None
        variables = raw if isinstance(raw, VariableComponents) else VariableComponents.from_dict(raw)
        return PayrollInput(employee=employee, salary_components=components, variable_components=variables)
    raise CalculationError(f"Unsupported payroll batch entry: {type(entry).__name__}")


def _entry_employee_id(entry: Any) -> Optional[str]:
    if isinstance(entry, PayrollInput):
        return entry.employee.id
    if isinstance(entry, (tuple, list)) and entry:
        return getattr(entry[0], "id", None)
    return None
