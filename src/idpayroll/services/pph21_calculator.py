"""PPh 21 Income Tax Calculator.

Annualized progressive withholding on monthly employment income:

1. Gross yearly = monthly gross x 12
2. Employer-paid BPJS is a taxable benefit: add it back (x 12)
3. Deduct occupational cost (biaya jabatan): rate of gross, capped monthly
4. Deduct employee JHT + JP contributions (Health is not deductible)
5. Deduct PTKP for the taxpayer status
6. PKP (clamped at 0) goes through the progressive brackets
7. Monthly withholding = yearly tax / 12, rounded

Brackets, PTKP thresholds and occupational cost all come from the caller.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from idpayroll.core.config import PayrollConfiguration, TaxBracket, lookup_ptkp
from idpayroll.core.models import PTKPStatus
from idpayroll.core.money import MONTHS_PER_YEAR, ZERO, round_rupiah, to_decimal
from idpayroll.services.bpjs_calculator import ContributionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaxResult:
    """Every intermediate figure of one PPh 21 computation (yearly unless noted)."""
    gross_yearly: Decimal
    employer_bpjs_yearly: Decimal
    taxable_base: Decimal
    occupational_cost_monthly: Decimal
    occupational_cost_yearly: Decimal
    employee_bpjs_deduction_yearly: Decimal
    net_before_ptkp_yearly: Decimal
    ptkp_amount: Decimal
    pkp_yearly: Decimal
    tax_yearly: Decimal
    tax_monthly: Decimal

    @property
    def pkp_monthly(self) -> Decimal:
        return self.pkp_yearly / MONTHS_PER_YEAR


def calculate_progressive_tax(pkp: Decimal, brackets: Iterable[TaxBracket]) -> Decimal:
    """
    Tax a yearly PKP through progressive brackets.

    Walks the brackets in ascending order, taxing the part of the remaining
    income that fits in each bracket at that bracket's rate. The sum is
    rounded once at the end.

    Args:
        pkp: Yearly taxable income
        brackets: Contiguous brackets starting at 0, last one unbounded

    Returns:
        Yearly tax in whole Rupiah
    """
    pkp = to_decimal(pkp)
    if pkp <= 0:
        return ZERO

    tax = ZERO
    remaining = pkp

    for bracket in brackets:
        if remaining <= 0:
            break

        width = bracket.width
        taxable_in_bracket = remaining if width is None else min(remaining, width)

        if taxable_in_bracket > 0:
            tax += taxable_in_bracket * bracket.rate
            remaining -= taxable_in_bracket

    return round_rupiah(tax)


class IncomeTaxCalculator:
    """
    Calculate monthly PPh 21 withholding.

    Stateless; one instance may be shared by any number of threads.
    """

    def calculate(
        self,
        gross_monthly_salary: Decimal,
        ptkp_status: PTKPStatus,
        contribution: ContributionResult,
        occupational_cost_rate: Decimal,
        occupational_cost_cap_monthly: Decimal,
        ptkp_table: Mapping[PTKPStatus, Decimal],
        brackets: Iterable[TaxBracket]
    ) -> TaxResult:
        """
        Calculate PPh 21 for one month.

        Args:
            gross_monthly_salary: Monthly gross salary
            ptkp_status: Employee's taxpayer status
            contribution: BPJS result for the same gross salary
            occupational_cost_rate: Fraction of gross (e.g. 0.05)
            occupational_cost_cap_monthly: Monthly cap (e.g. 500,000)
            ptkp_table: Yearly PTKP by status
            brackets: Progressive brackets

        Returns:
            TaxResult with the full audit trail

        Raises:
            ConfigurationError: If the PTKP table has no entry for the status
        """
        gross = to_decimal(gross_monthly_salary)

        gross_yearly = gross * MONTHS_PER_YEAR
        employer_bpjs_yearly = contribution.total_employer_contribution * MONTHS_PER_YEAR
        taxable_base = gross_yearly + employer_bpjs_yearly

        occupational_cost_monthly = min(gross * occupational_cost_rate, occupational_cost_cap_monthly)
        occupational_cost_yearly = occupational_cost_monthly * MONTHS_PER_YEAR

        # Only the retirement legs (JHT + JP) reduce taxable income
        employee_bpjs_deduction_yearly = contribution.pension_employee_contribution * MONTHS_PER_YEAR

        net_before_ptkp_yearly = taxable_base - occupational_cost_yearly - employee_bpjs_deduction_yearly

        ptkp_amount = lookup_ptkp(ptkp_table, ptkp_status)
        pkp_yearly = max(ZERO, net_before_ptkp_yearly - ptkp_amount)

        tax_yearly = calculate_progressive_tax(pkp_yearly, brackets)
        tax_monthly = round_rupiah(tax_yearly / MONTHS_PER_YEAR)

        logger.debug(
            f"PPh 21 {ptkp_status.value}: gross {gross}, PKP {pkp_yearly}, "
            f"tax {tax_yearly}/yr {tax_monthly}/mo"
        )

        return TaxResult(
            gross_yearly=gross_yearly,
            employer_bpjs_yearly=employer_bpjs_yearly,
            taxable_base=taxable_base,
            occupational_cost_monthly=occupational_cost_monthly,
            occupational_cost_yearly=occupational_cost_yearly,
            employee_bpjs_deduction_yearly=employee_bpjs_deduction_yearly,
            net_before_ptkp_yearly=net_before_ptkp_yearly,
            ptkp_amount=ptkp_amount,
            pkp_yearly=pkp_yearly,
            tax_yearly=tax_yearly,
            tax_monthly=tax_monthly,
        )

    def calculate_with_config(
        self,
        gross_monthly_salary: Decimal,
        ptkp_status: PTKPStatus,
        contribution: ContributionResult,
        config: PayrollConfiguration
    ) -> TaxResult:
        """Same as calculate(), taking every parameter from a configuration snapshot."""
        return self.calculate(
            gross_monthly_salary,
            ptkp_status,
            contribution,
            occupational_cost_rate=config.occupational_cost.rate,
            occupational_cost_cap_monthly=config.occupational_cost.max_monthly,
            ptkp_table=config.ptkp_amounts,
            brackets=config.tax_brackets,
        )
