"""Services module for payroll business logic.

Provides services for:
- BPJS Calculator: Health and Manpower contributions
- PPh 21 Calculator: Annualized progressive income tax
- Payroll Aggregator: Gross to net, batch runs and run totals
- Calculation Trail: Structured audit steps and their text rendering
"""

from .bpjs_calculator import ContributionCalculator, ContributionResult
from .pph21_calculator import IncomeTaxCalculator, TaxResult, calculate_progressive_tax
from .calculation_trail import CalculationStep, render_trail
from .payroll_aggregator import (
    PayrollAggregator,
    PayrollCalculationResult,
    PayrollTotals,
    PayrollIssue,
    IssueType,
    EmployeeOutcome,
    BatchResult,
)

__all__ = [
    # Contributions and tax
    "ContributionCalculator",
    "ContributionResult",
    "IncomeTaxCalculator",
    "TaxResult",
    "calculate_progressive_tax",
    # Aggregation
    "PayrollAggregator",
    "PayrollCalculationResult",
    "PayrollTotals",
    "PayrollIssue",
    "IssueType",
    "EmployeeOutcome",
    "BatchResult",
    "CalculationStep",
    "render_trail",
]
