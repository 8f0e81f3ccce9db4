"""Structured calculation trail for payslips and compliance audit."""

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Iterable, List, Mapping

from idpayroll.core.money import format_idr

STEP_TITLES = {
    "gross": "Gross salary",
    "bpjs": "BPJS employee contribution",
    "pph21": "PPh 21",
    "net": "Net salary",
}


@dataclass(frozen=True)
class CalculationStep:
    """
    One labeled step of a payroll calculation.

    inputs keeps insertion order, so rendering lists the operands in the
    order the formula uses them.
    """
    label: str
    formula: str
    inputs: Mapping[str, Decimal]
    result: Decimal

    def __post_init__(self):
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))

    @property
    def title(self) -> str:
        return STEP_TITLES.get(self.label, self.label)

    def render(self) -> str:
        """
        Render as one line of text.

        Example:
            Gross salary: basic_salary + fixed_allowances + ... = Rp 10.000.000
              (basic_salary Rp 10.000.000, fixed_allowances Rp 0, ...)
        """
        operands = ", ".join(f"{name} {format_idr(value)}" for name, value in self.inputs.items())
        return f"{self.title}: {self.formula} = {format_idr(self.result)} ({operands})"


def render_trail(steps: Iterable[CalculationStep]) -> List[str]:
    """Render every step of a trail, one line each."""
    return [step.render() for step in steps]
