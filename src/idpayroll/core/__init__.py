"""
Core module - Foundation components for the payroll engine.

Provides:
- Input model: Employee, SalaryComponent, VariableComponents, PayrollInput
- PTKPStatus and ComponentType enums
- PayrollConfiguration: versioned rates, PTKP table and tax brackets
- Money helpers: Decimal conversion, Rupiah rounding and formatting
- Exception taxonomy rooted at PayrollError
"""

from idpayroll.core.exceptions import (
    PayrollError,
    ConfigurationError,
    MissingBasicSalaryError,
    CalculationError,
)
from idpayroll.core.money import ZERO, to_decimal, round_rupiah, format_idr
from idpayroll.core.models import (
    PTKPStatus,
    ComponentType,
    Employee,
    SalaryComponent,
    VariableComponents,
    PayrollInput,
)
from idpayroll.core.config import (
    ContributionRates,
    TaxBracket,
    OccupationalCost,
    PayrollConfiguration,
    REFERENCE_CONFIGURATION,
    load_configuration,
    load_configurations,
    select_effective_configuration,
)

__all__ = [
    # Exceptions
    "PayrollError",
    "ConfigurationError",
    "MissingBasicSalaryError",
    "CalculationError",
    # Money
    "ZERO",
    "to_decimal",
    "round_rupiah",
    "format_idr",
    # Models
    "PTKPStatus",
    "ComponentType",
    "Employee",
    "SalaryComponent",
    "VariableComponents",
    "PayrollInput",
    # Configuration
    "ContributionRates",
    "TaxBracket",
    "OccupationalCost",
    "PayrollConfiguration",
    "REFERENCE_CONFIGURATION",
    "load_configuration",
    "load_configurations",
    "select_effective_configuration",
]
