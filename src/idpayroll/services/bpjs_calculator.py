"""BPJS Contribution Calculator.

Computes employee and employer social-security contributions:

BPJS Kesehatan (Health):
- Employee and employer share of the health premium
- Base salary capped at ContributionRates.health_max_salary

BPJS Ketenagakerjaan (Manpower):
- JHT (old-age savings): employee + employer share
- JP (pension): employee + employer share
- JKK (workplace accident): employer only
- JKM (death benefit): employer only
- No salary cap

Each amount is rounded to whole Rupiah on its own (half away from zero);
totals are sums of the rounded amounts.
"""

from dataclasses import dataclass
from decimal import Decimal

from idpayroll.core.config import ContributionRates
from idpayroll.core.money import ZERO, round_rupiah, to_decimal


@dataclass(frozen=True)
class ContributionResult:
    """Result of a BPJS contribution calculation."""
    health_employee: Decimal = ZERO
    health_employer: Decimal = ZERO
    jht_employee: Decimal = ZERO
    jht_employer: Decimal = ZERO
    jp_employee: Decimal = ZERO
    jp_employer: Decimal = ZERO
    jkk_employer: Decimal = ZERO
    jkm_employer: Decimal = ZERO

    @property
    def total_employee_contribution(self) -> Decimal:
        return self.health_employee + self.jht_employee + self.jp_employee

    @property
    def total_employer_contribution(self) -> Decimal:
        return (
            self.health_employer + self.jht_employer + self.jp_employer +
            self.jkk_employer + self.jkm_employer
        )

    @property
    def pension_employee_contribution(self) -> Decimal:
        """JHT + JP employee share; the part deductible from taxable income."""
        return self.jht_employee + self.jp_employee


class ContributionCalculator:
    """
    Calculate BPJS Health and Manpower contributions.

    Stateless; one instance may be shared by any number of threads.
    """

    def calculate(
        self,
        gross_salary: Decimal,
        health_enrolled: bool,
        manpower_enrolled: bool,
        rates: ContributionRates
    ) -> ContributionResult:
        """
        Calculate contributions for one month.

        Args:
            gross_salary: Monthly gross salary (non-negative)
            health_enrolled: Employee is enrolled in BPJS Kesehatan
            manpower_enrolled: Employee is enrolled in BPJS Ketenagakerjaan
            rates: Contribution rates from the active configuration

        Returns:
            ContributionResult with the 8 amounts and both totals
        """
        gross = to_decimal(gross_salary)

        health_employee = health_employer = ZERO
        if health_enrolled:
            health_base = self.health_base_salary(gross, rates)
            health_employee = round_rupiah(health_base * rates.health_employee_rate)
            health_employer = round_rupiah(health_base * rates.health_employer_rate)

        if not manpower_enrolled:
            return ContributionResult(
                health_employee=health_employee,
                health_employer=health_employer,
            )

        return ContributionResult(
            health_employee=health_employee,
            health_employer=health_employer,
            jht_employee=round_rupiah(gross * rates.jht_employee_rate),
            jht_employer=round_rupiah(gross * rates.jht_employer_rate),
            jp_employee=round_rupiah(gross * rates.jp_employee_rate),
            jp_employer=round_rupiah(gross * rates.jp_employer_rate),
            jkk_employer=round_rupiah(gross * rates.jkk_employer_rate),
            jkm_employer=round_rupiah(gross * rates.jkm_employer_rate),
        )

    @staticmethod
    def health_base_salary(gross_salary: Decimal, rates: ContributionRates) -> Decimal:
        """Salary subject to the health premium (capped)."""
        return min(to_decimal(gross_salary), rates.health_max_salary)
