"""Payroll configuration snapshots.

Every rate, cap, PTKP threshold and tax bracket the engine uses comes from a
PayrollConfiguration passed in by the caller. Nothing is hardcoded inside the
calculators; the 2024 numbers live in REFERENCE_CONFIGURATION, a named
snapshot that callers opt into explicitly.

Snapshots are versioned by effective date and loaded either from a JSON
document or from flat key/value rows. Loading validates the whole snapshot
and raises ConfigurationError on the first problem, so a broken configuration
aborts a run before any employee is processed.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from idpayroll.core.exceptions import ConfigurationError
from idpayroll.core.models import PTKPStatus
from idpayroll.core.money import ZERO, to_decimal

logger = logging.getLogger(__name__)

ONE = Decimal("1")


@dataclass(frozen=True)
class ContributionRates:
    """BPJS contribution rates, as fractions (0.01 = 1%)."""
    health_employee_rate: Decimal
    health_employer_rate: Decimal
    health_max_salary: Decimal
    jht_employee_rate: Decimal
    jht_employer_rate: Decimal
    jp_employee_rate: Decimal
    jp_employer_rate: Decimal
    jkk_employer_rate: Decimal
    jkm_employer_rate: Decimal

    RATE_FIELDS = (
        "health_employee_rate", "health_employer_rate",
        "jht_employee_rate", "jht_employer_rate",
        "jp_employee_rate", "jp_employer_rate",
        "jkk_employer_rate", "jkm_employer_rate",
    )

    def validate(self) -> None:
        for name in self.RATE_FIELDS:
            _check_rate(getattr(self, name), f"bpjs_rates.{name}")
        if self.health_max_salary < 0:
            raise ConfigurationError(
                f"Health salary cap must be non-negative: {self.health_max_salary}",
                field="bpjs_rates.health_max_salary",
            )


@dataclass(frozen=True)
class TaxBracket:
    """One progressive tax bracket; upper_limit None means unbounded."""
    lower_limit: Decimal
    upper_limit: Optional[Decimal]
    rate: Decimal

    @property
    def width(self) -> Optional[Decimal]:
        if self.upper_limit is None:
            return None
        return self.upper_limit - self.lower_limit


@dataclass(frozen=True)
class OccupationalCost:
    """Biaya jabatan: rate of monthly gross, capped per month."""
    rate: Decimal
    max_monthly: Decimal

    def validate(self) -> None:
        _check_rate(self.rate, "occupational_cost.rate")
        if self.max_monthly < 0:
            raise ConfigurationError(
                f"Occupational cost cap must be non-negative: {self.max_monthly}",
                field="occupational_cost.max_monthly",
            )


@dataclass(frozen=True)
class PayrollConfiguration:
    """
    Immutable configuration snapshot for one payroll run.

    Safe to share between threads; nothing in it is ever mutated.
    """
    contribution_rates: ContributionRates
    ptkp_amounts: Mapping[PTKPStatus, Decimal]
    tax_brackets: Tuple[TaxBracket, ...]
    occupational_cost: OccupationalCost
    effective_date: date
    version_label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "ptkp_amounts", MappingProxyType(dict(self.ptkp_amounts)))
        object.__setattr__(self, "tax_brackets", tuple(self.tax_brackets))

    def validate(self) -> "PayrollConfiguration":
        """
        Validate the whole snapshot.

        Returns:
            self, so construction and validation chain

        Raises:
            ConfigurationError: On the first invalid value
        """
        self.contribution_rates.validate()
        self.occupational_cost.validate()
        validate_ptkp_amounts(self.ptkp_amounts)
        validate_brackets(self.tax_brackets)
        return self

    def ptkp_amount(self, status: PTKPStatus) -> Decimal:
        return lookup_ptkp(self.ptkp_amounts, status)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PayrollConfiguration":
        """
        Build and validate a configuration from a nested dictionary.

        Expected shape (rates as fractions):
            {
                "effective_date": "2024-01-01",
                "bpjs_rates": {
                    "health": {"employee_rate": 0.01, "employer_rate": 0.04,
                               "max_salary": 12000000},
                    "employment": {
                        "jht": {"employee_rate": 0.02, "employer_rate": 0.037},
                        "jp": {"employee_rate": 0.01, "employer_rate": 0.02},
                        "jkk_rate": 0.0024, "jkm_rate": 0.003
                    }
                },
                "ptkp_amounts": {"TK/0": 54000000, ...},
                "tax_brackets": [{"min": 0, "max": 60000000, "rate": 0.05}, ...],
                "occupational_cost": {"rate": 0.05, "max_monthly": 500000}
            }

        "company_rate" is accepted as an alias of "employer_rate".

        Raises:
            ConfigurationError: If a section is missing or a value is invalid
        """
        bpjs = _section(data, "bpjs_rates")
        health = _section(bpjs, "health", "bpjs_rates.health")
        employment = _section(bpjs, "employment", "bpjs_rates.employment")
        jht = _section(employment, "jht", "bpjs_rates.employment.jht")
        jp = _section(employment, "jp", "bpjs_rates.employment.jp")

        rates = ContributionRates(
            health_employee_rate=_amount(health, "employee_rate", "bpjs_rates.health"),
            health_employer_rate=_employer_rate(health, "bpjs_rates.health"),
            health_max_salary=_amount(health, "max_salary", "bpjs_rates.health"),
            jht_employee_rate=_amount(jht, "employee_rate", "bpjs_rates.employment.jht"),
            jht_employer_rate=_employer_rate(jht, "bpjs_rates.employment.jht"),
            jp_employee_rate=_amount(jp, "employee_rate", "bpjs_rates.employment.jp"),
            jp_employer_rate=_employer_rate(jp, "bpjs_rates.employment.jp"),
            jkk_employer_rate=_amount(employment, "jkk_rate", "bpjs_rates.employment"),
            jkm_employer_rate=_amount(employment, "jkm_rate", "bpjs_rates.employment"),
        )

        ptkp_raw = _section(data, "ptkp_amounts")
        ptkp_amounts = {}
        for key, value in ptkp_raw.items():
            try:
                status = PTKPStatus.parse(key)
            except ValueError as e:
                raise ConfigurationError(str(e), field=f"ptkp_amounts.{key}") from None
            ptkp_amounts[status] = _to_amount(value, f"ptkp_amounts.{key}")

        brackets_raw = data.get("tax_brackets")
        if not isinstance(brackets_raw, list):
            raise ConfigurationError("Missing configuration section: tax_brackets", field="tax_brackets")
        brackets = [
            _bracket(raw, f"tax_brackets[{i}]") for i, raw in enumerate(brackets_raw)
        ]

        occupational = _section(data, "occupational_cost")
        occupational_cost = OccupationalCost(
            rate=_amount(occupational, "rate", "occupational_cost"),
            max_monthly=_amount(occupational, "max_monthly", "occupational_cost"),
        )

        config = cls(
            contribution_rates=rates,
            ptkp_amounts=ptkp_amounts,
            tax_brackets=tuple(brackets),
            occupational_cost=occupational_cost,
            effective_date=_parse_date(data.get("effective_date"), "effective_date"),
            version_label=str(data.get("version_label") or ""),
        )
        return config.validate()

    @classmethod
    def from_key_values(cls, rows: Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]) -> "PayrollConfiguration":
        """
        Build a configuration from flat key/value rows.

        This is the layout the configuration management screens store:
        ptkp_TK_0 ... ptkp_K_3, tax_bracket_1 ... tax_bracket_N (JSON with
        min/max/rate), bpjs_health_employee_rate, bpjs_health_company_rate,
        bpjs_health_max_salary, bpjs_jht_*, bpjs_jp_*, bpjs_jkk_rate,
        bpjs_jkm_rate, occupational_cost_rate, occupational_cost_max_monthly,
        effective_date.

        Unlike a lenient parser, a missing key is an error; there is no
        fallback to reference values.

        Raises:
            ConfigurationError: On a missing key or unparsable value
        """
        values = dict(rows.items() if isinstance(rows, Mapping) else rows)

        def require(key: str) -> Any:
            if key not in values or values[key] in (None, ""):
                raise ConfigurationError(f"Missing configuration key: {key}", field=key)
            return values[key]

        bracket_keys = sorted(
            (key for key in values if key.startswith("tax_bracket_")),
            key=lambda k: _bracket_index(k),
        )
        brackets = []
        for key in bracket_keys:
            raw = values[key]
            if isinstance(raw, str):
                try:
                    raw = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ConfigurationError(f"Invalid JSON in {key}: {e}", field=key) from None
            brackets.append(raw)

        data = {
            "effective_date": require("effective_date"),
            "version_label": values.get("version_label", ""),
            "bpjs_rates": {
                "health": {
                    "employee_rate": require("bpjs_health_employee_rate"),
                    "employer_rate": require("bpjs_health_company_rate"),
                    "max_salary": require("bpjs_health_max_salary"),
                },
                "employment": {
                    "jht": {
                        "employee_rate": require("bpjs_jht_employee_rate"),
                        "employer_rate": require("bpjs_jht_company_rate"),
                    },
                    "jp": {
                        "employee_rate": require("bpjs_jp_employee_rate"),
                        "employer_rate": require("bpjs_jp_company_rate"),
                    },
                    "jkk_rate": require("bpjs_jkk_rate"),
                    "jkm_rate": require("bpjs_jkm_rate"),
                },
            },
            "ptkp_amounts": {
                status.value: require(f"ptkp_{status.name}") for status in PTKPStatus
            },
            "tax_brackets": brackets,
            "occupational_cost": {
                "rate": require("occupational_cost_rate"),
                "max_monthly": require("occupational_cost_max_monthly"),
            },
        }
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON shape accepted by from_dict (amounts as strings)."""
        r = self.contribution_rates
        return {
            "effective_date": self.effective_date.isoformat(),
            "version_label": self.version_label,
            "bpjs_rates": {
                "health": {
                    "employee_rate": str(r.health_employee_rate),
                    "employer_rate": str(r.health_employer_rate),
                    "max_salary": str(r.health_max_salary),
                },
                "employment": {
                    "jht": {
                        "employee_rate": str(r.jht_employee_rate),
                        "employer_rate": str(r.jht_employer_rate),
                    },
                    "jp": {
                        "employee_rate": str(r.jp_employee_rate),
                        "employer_rate": str(r.jp_employer_rate),
                    },
                    "jkk_rate": str(r.jkk_employer_rate),
                    "jkm_rate": str(r.jkm_employer_rate),
                },
            },
            "ptkp_amounts": {status.value: str(amount) for status, amount in self.ptkp_amounts.items()},
            "tax_brackets": [
                {
                    "min": str(b.lower_limit),
                    "max": str(b.upper_limit) if b.upper_limit is not None else None,
                    "rate": str(b.rate),
                }
                for b in self.tax_brackets
            ],
            "occupational_cost": {
                "rate": str(self.occupational_cost.rate),
                "max_monthly": str(self.occupational_cost.max_monthly),
            },
        }


def lookup_ptkp(ptkp_amounts: Mapping[PTKPStatus, Decimal], status: PTKPStatus) -> Decimal:
    """Yearly PTKP threshold for a status."""
    try:
        return ptkp_amounts[status]
    except KeyError:
        raise ConfigurationError(
            f"No PTKP amount configured for status {status.value}",
            field=f"ptkp_amounts.{status.value}",
        ) from None


def validate_ptkp_amounts(ptkp_amounts: Mapping[PTKPStatus, Decimal]) -> None:
    """All 8 statuses present, none negative."""
    missing = [s.value for s in PTKPStatus if s not in ptkp_amounts]
    if missing:
        raise ConfigurationError(
            f"PTKP table is missing statuses: {', '.join(missing)}",
            field="ptkp_amounts",
        )
    for status, amount in ptkp_amounts.items():
        if amount < 0:
            raise ConfigurationError(
                f"PTKP amount for {status.value} must be non-negative: {amount}",
                field=f"ptkp_amounts.{status.value}",
            )


def validate_brackets(brackets: Iterable[TaxBracket]) -> None:
    """
    Check that brackets cover [0, infinity) with no gaps or overlaps.

    - at least one bracket
    - the first bracket starts at 0
    - each bracket starts where the previous one ended
    - every bounded bracket has upper > lower
    - only the last bracket is unbounded, and it must be
    - every rate is within [0, 1]
    """
    brackets = list(brackets)
    if not brackets:
        raise ConfigurationError("At least one tax bracket is required", field="tax_brackets")

    if brackets[0].lower_limit != 0:
        raise ConfigurationError(
            f"First tax bracket must start at 0, not {brackets[0].lower_limit}",
            field="tax_brackets[0]",
        )

    previous_upper = ZERO
    last = len(brackets) - 1
    for i, bracket in enumerate(brackets):
        where = f"tax_brackets[{i}]"
        _check_rate(bracket.rate, f"{where}.rate")

        if bracket.lower_limit != previous_upper:
            raise ConfigurationError(
                f"Tax bracket {i} starts at {bracket.lower_limit}, "
                f"expected {previous_upper} (brackets must be contiguous)",
                field=where,
            )

        if bracket.upper_limit is None:
            if i != last:
                raise ConfigurationError(
                    f"Only the last tax bracket may be unbounded (bracket {i} is)",
                    field=where,
                )
            continue

        if bracket.upper_limit <= bracket.lower_limit:
            raise ConfigurationError(
                f"Tax bracket {i} upper limit {bracket.upper_limit} "
                f"must exceed lower limit {bracket.lower_limit}",
                field=where,
            )
        previous_upper = bracket.upper_limit

    if brackets[last].upper_limit is not None:
        raise ConfigurationError("The last tax bracket must be unbounded", field=f"tax_brackets[{last}]")


def load_configuration(path: Union[str, Path]) -> PayrollConfiguration:
    """
    Load a configuration snapshot from a JSON file.

    A file holding a list of snapshots is not accepted here; use
    load_configurations() and select_effective_configuration().

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a JSON object in {path}")
    config = PayrollConfiguration.from_dict(data)
    logger.info(f"Loaded payroll configuration effective {config.effective_date} from {path}")
    return config


def load_configurations(path: Union[str, Path]) -> List[PayrollConfiguration]:
    """Load one snapshot or a JSON list of snapshots."""
    data = _read_json(path)
    items = data if isinstance(data, list) else [data]
    configs = [PayrollConfiguration.from_dict(item) for item in items]
    logger.info(f"Loaded {len(configs)} payroll configuration version(s) from {path}")
    return configs


def select_effective_configuration(
    configs: Iterable[PayrollConfiguration],
    as_of: date
) -> PayrollConfiguration:
    """
    Pick the configuration in force on a date.

    Returns the snapshot with the latest effective_date that is not after
    as_of.

    Raises:
        ConfigurationError: If no snapshot is effective on that date
    """
    candidates = [c for c in configs if c.effective_date <= as_of]
    if not candidates:
        raise ConfigurationError(f"No payroll configuration is effective on {as_of.isoformat()}")
    return max(candidates, key=lambda c: c.effective_date)


# Reference snapshot: BPJS and PPh 21 rules as of 2024 (UU HPP brackets,
# PMK 101/2016 PTKP). Callers must pass it explicitly.
REFERENCE_CONFIGURATION = PayrollConfiguration(
    contribution_rates=ContributionRates(
        health_employee_rate=Decimal("0.01"),
        health_employer_rate=Decimal("0.04"),
        health_max_salary=Decimal("12000000"),
        jht_employee_rate=Decimal("0.02"),
        jht_employer_rate=Decimal("0.037"),
        jp_employee_rate=Decimal("0.01"),
        jp_employer_rate=Decimal("0.02"),
        jkk_employer_rate=Decimal("0.0024"),
        jkm_employer_rate=Decimal("0.003"),
    ),
    ptkp_amounts={
        PTKPStatus.TK_0: Decimal("54000000"),
        PTKPStatus.TK_1: Decimal("58500000"),
        PTKPStatus.TK_2: Decimal("63000000"),
        PTKPStatus.TK_3: Decimal("67500000"),
        PTKPStatus.K_0: Decimal("58500000"),
        PTKPStatus.K_1: Decimal("63000000"),
        PTKPStatus.K_2: Decimal("67500000"),
        PTKPStatus.K_3: Decimal("72000000"),
    },
    tax_brackets=(
        TaxBracket(Decimal("0"), Decimal("60000000"), Decimal("0.05")),
        TaxBracket(Decimal("60000000"), Decimal("250000000"), Decimal("0.15")),
        TaxBracket(Decimal("250000000"), Decimal("500000000"), Decimal("0.25")),
        TaxBracket(Decimal("500000000"), Decimal("5000000000"), Decimal("0.30")),
        TaxBracket(Decimal("5000000000"), None, Decimal("0.35")),
    ),
    occupational_cost=OccupationalCost(rate=Decimal("0.05"), max_monthly=Decimal("500000")),
    effective_date=date(2024, 1, 1),
    version_label="reference-2024",
)


def _check_rate(rate: Decimal, field_name: str) -> None:
    if rate < 0 or rate > ONE:
        raise ConfigurationError(
            f"Rate {field_name} must be a fraction between 0 and 1, got {rate}",
            field=field_name,
        )


def _section(data: Mapping[str, Any], key: str, path: Optional[str] = None) -> Mapping[str, Any]:
    value = data.get(key) if isinstance(data, Mapping) else None
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Missing configuration section: {path or key}", field=path or key)
    return value


def _to_amount(value: Any, field_name: str) -> Decimal:
    if value is None or value == "":
        raise ConfigurationError(f"Missing configuration value: {field_name}", field=field_name)
    try:
        return to_decimal(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {field_name}: {e}", field=field_name) from None


def _amount(section: Mapping[str, Any], key: str, path: str) -> Decimal:
    return _to_amount(section.get(key), f"{path}.{key}")


def _employer_rate(section: Mapping[str, Any], path: str) -> Decimal:
    key = "employer_rate" if "employer_rate" in section else "company_rate"
    return _amount(section, key, path)


def _bracket(raw: Any, where: str) -> TaxBracket:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Tax bracket must be an object: {where}", field=where)
    upper = raw.get("max")
    return TaxBracket(
        lower_limit=_to_amount(raw.get("min"), f"{where}.min"),
        upper_limit=None if upper in (None, "") else _to_amount(upper, f"{where}.max"),
        rate=_to_amount(raw.get("rate"), f"{where}.rate"),
    )


def _bracket_index(key: str) -> int:
    suffix = key[len("tax_bracket_"):]
    if not suffix.isdigit():
        raise ConfigurationError(f"Invalid tax bracket key: {key}", field=key)
    return int(suffix)


def _parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if not value:
        raise ConfigurationError(f"Missing configuration value: {field_name}", field=field_name)
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ConfigurationError(f"Invalid date for {field_name}: {value!r}", field=field_name) from None


def _read_json(path: Union[str, Path]) -> Any:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from None
