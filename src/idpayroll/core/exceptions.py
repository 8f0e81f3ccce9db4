"""
Custom exceptions for the payroll engine.

All payroll-specific exceptions inherit from PayrollError for easy catching.
"""

from typing import Optional


class PayrollError(Exception):
    """Base exception for all payroll errors."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(PayrollError):
    """
    Raised when a rate table, PTKP table or bracket list is malformed.

    Fatal for a whole run: every result computed with a broken
    configuration would be wrong, so this is raised before any
    employee is processed.
    """

    def __init__(self, message: str, field: Optional[str] = None, code: str = "CONFIG_ERROR"):
        super().__init__(message, code)
        self.field = field


class MissingBasicSalaryError(PayrollError):
    """Raised when an employee has no active basic salary component."""

    def __init__(self, employee_id: str, code: str = "MISSING_BASIC_SALARY"):
        super().__init__(f"Employee {employee_id} has no active basic salary component", code)
        self.employee_id = employee_id


class CalculationError(PayrollError):
    """Raised when an employee's input data cannot be calculated."""

    def __init__(self, message: str, employee_id: Optional[str] = None, code: str = "CALCULATION_ERROR"):
        super().__init__(message, code)
        self.employee_id = employee_id
