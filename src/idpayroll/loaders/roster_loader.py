"""Payroll roster loader (Excel/CSV)."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from idpayroll.core.models import (
    ComponentType,
    Employee,
    PayrollInput,
    PTKPStatus,
    SalaryComponent,
    VariableComponents,
)
from idpayroll.core.money import to_decimal

logger = logging.getLogger(__name__)

TRUE_VALUES = {"1", "TRUE", "YES", "Y", "YA"}
FALSE_VALUES = {"0", "FALSE", "NO", "N", "TIDAK"}

VARIABLE_COLUMNS = {
    "BONUS": "bonus",
    "OVERTIME_PAY": "overtime_pay",
    "OTHER_ALLOWANCES": "other_allowances",
    "OTHER_DEDUCTIONS": "other_deductions",
}


@dataclass
class RosterLoadResult:
    """Result of loading a payroll roster."""
    success: bool
    employees: List[Employee] = field(default_factory=list)
    components: List[SalaryComponent] = field(default_factory=list)
    variables: Dict[str, VariableComponents] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    rejected: Dict[str, str] = field(default_factory=dict)
    source_file: str = ""

    def add_error(self, error: str):
        """Add an error message."""
        self.errors.append(error)
        self.success = False

    def add_warning(self, warning: str):
        """Add a warning message."""
        self.warnings.append(warning)

    def reject(self, employee_id: str, message: str):
        """Exclude an employee from the run; the first reason is kept."""
        logger.warning(message)
        self.rejected.setdefault(employee_id, message)

    @property
    def employee_ids(self) -> List[str]:
        return [e.id for e in self.employees]

    @property
    def entries(self) -> List[PayrollInput]:
        """One PayrollInput per accepted employee, in roster order."""
        accepted = [e for e in self.employees if e.id not in self.rejected]
        by_employee: Dict[str, List[SalaryComponent]] = {e.id: [] for e in accepted}
        for component in self.components:
            if component.employee_id in by_employee:
                by_employee[component.employee_id].append(component)
        return [
            PayrollInput(
                employee=employee,
                salary_components=by_employee[employee.id],
                variable_components=self.variables.get(employee.id, VariableComponents()),
            )
            for employee in accepted
        ]


class RosterLoader:
    """
    Loader for payroll rosters exported from the HR system.

    Two layouts are supported:

    Workbook with separate sheets (XLSX):
    - Employees: EMPLOYEE_ID, PTKP_STATUS, BPJS_HEALTH, BPJS_MANPOWER,
      EMPLOYEE_CODE, FULL_NAME (+ optional variable pay columns)
    - Components: EMPLOYEE_ID, COMPONENT_TYPE, AMOUNT, IS_ACTIVE, NAME
    - Variables (optional): EMPLOYEE_ID, BONUS, OVERTIME_PAY,
      OTHER_ALLOWANCES, OTHER_DEDUCTIONS

    Combined (CSV, or a workbook without an Employees sheet):
    - one row per employee with the employee columns plus BASIC_SALARY,
      FIXED_ALLOWANCE and optional variable pay columns

    Column names are case-insensitive; spaces and dashes count as
    underscores. BPJS flags default to enrolled when blank.

    A malformed row rejects its employee: the employee is listed in
    `rejected` with the reason and left out of `entries`, and the rest of
    the roster still loads. Errors are reserved for problems with the file
    itself, such as missing required columns. Loading never raises.
    """

    EMPLOYEES_SHEET = "EMPLOYEES"
    COMPONENTS_SHEET = "COMPONENTS"
    VARIABLES_SHEET = "VARIABLES"

    def load(self, file_path: Path) -> RosterLoadResult:
        """
        Load a roster file.

        Args:
            file_path: Path to .xlsx or .csv roster

        Returns:
            RosterLoadResult with employees, components and variable pay

        Examples:
            >>> result = RosterLoader().load(Path("roster.xlsx"))
            >>> batch = aggregator.calculate_batch(result.entries)
        """
        file_path = Path(file_path)
        result = RosterLoadResult(success=True, source_file=str(file_path))

        if not file_path.exists():
            result.add_error(f"File not found: {file_path}")
            return result

        try:
            suffix = file_path.suffix.lower()
            if suffix in [".xlsx", ".xlsm"]:
                sheets = pd.read_excel(
                    file_path, sheet_name=None, dtype=str, keep_default_na=False, engine="openpyxl"
                )
                sheets = {name.strip().upper(): _normalize_columns(df) for name, df in sheets.items()}
            elif suffix == ".csv":
                df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
                sheets = {"ROSTER": _normalize_columns(df)}
            else:
                result.add_error(f"Unsupported format: {file_path.suffix}")
                return result

            if not sheets:
                result.add_error(f"Workbook has no worksheets: {file_path.name}")
                return result

            if self.EMPLOYEES_SHEET in sheets:
                self._load_workbook(sheets, result)
            else:
                self._load_combined(next(iter(sheets.values())), result)

            if not result.employees and not result.rejected and result.success:
                result.add_error("Roster has no employee rows")

        except Exception as e:
            logger.exception(f"Failed to load roster {file_path}")
            result.add_error(f"Failed to load roster: {str(e)}")

        logger.info(
            f"Loaded roster {file_path.name}: {len(result.employees)} employees, "
            f"{len(result.components)} components, {len(result.rejected)} rejected, "
            f"{len(result.errors)} errors"
        )
        return result

    def _load_workbook(self, sheets: Dict[str, pd.DataFrame], result: RosterLoadResult):
        employees_df = sheets[self.EMPLOYEES_SHEET]
        if not self._require_columns(employees_df, ["EMPLOYEE_ID", "PTKP_STATUS"], "Employees", result):
            return
        self._parse_employees(employees_df, result)
        self._parse_variables(employees_df, result)

        components_df = sheets.get(self.COMPONENTS_SHEET)
        if components_df is None:
            result.add_error("Workbook has an Employees sheet but no Components sheet")
            return
        required = ["EMPLOYEE_ID", "COMPONENT_TYPE", "AMOUNT"]
        if self._require_columns(components_df, required, "Components", result):
            self._parse_components(components_df, result)

        variables_df = sheets.get(self.VARIABLES_SHEET)
        if variables_df is not None and self._require_columns(variables_df, ["EMPLOYEE_ID"], "Variables", result):
            self._parse_variables(variables_df, result)

    def _load_combined(self, df: pd.DataFrame, result: RosterLoadResult):
        required = ["EMPLOYEE_ID", "PTKP_STATUS", "BASIC_SALARY"]
        if not self._require_columns(df, required, "Roster", result):
            return

        self._parse_employees(df, result)
        self._parse_variables(df, result)

        # First row per employee only; duplicates were reported by _parse_employees
        pending = set(result.employee_ids)
        for row_number, row in _rows(df):
            employee_id = row["EMPLOYEE_ID"]
            if employee_id not in pending:
                continue
            pending.discard(employee_id)
            for column, component_type in [
                ("BASIC_SALARY", ComponentType.BASIC_SALARY),
                ("FIXED_ALLOWANCE", ComponentType.FIXED_ALLOWANCE),
            ]:
                raw = row.get(column, "")
                if raw == "":
                    # Blank basic salary is reported by the payroll run, not here
                    continue
                component = self._make_component(
                    row_number, employee_id, component_type, raw, True, column.lower(), result
                )
                if component:
                    result.components.append(component)

    def _parse_employees(self, df: pd.DataFrame, result: RosterLoadResult):
        seen = set()
        for row_number, row in _rows(df):
            employee_id = row["EMPLOYEE_ID"]
            if not employee_id:
                result.add_warning(f"Row {row_number}: blank EMPLOYEE_ID, row skipped")
                continue
            if employee_id in seen:
                result.add_warning(f"Row {row_number}: duplicate employee {employee_id}, row skipped")
                continue
            seen.add(employee_id)

            try:
                employee = Employee(
                    id=employee_id,
                    ptkp_status=PTKPStatus.parse(row["PTKP_STATUS"]),
                    bpjs_health_enrolled=_parse_flag(row.get("BPJS_HEALTH", "")),
                    bpjs_manpower_enrolled=_parse_flag(row.get("BPJS_MANPOWER", "")),
                    employee_code=row.get("EMPLOYEE_CODE") or None,
                    full_name=row.get("FULL_NAME") or None,
                )
            except ValueError as e:
                result.reject(employee_id, f"Row {row_number}: employee {employee_id}: {e}")
                continue

            result.employees.append(employee)

    def _parse_components(self, df: pd.DataFrame, result: RosterLoadResult):
        known = set(result.employee_ids)
        for row_number, row in _rows(df):
            employee_id = row["EMPLOYEE_ID"]
            if employee_id in result.rejected:
                continue
            if employee_id not in known:
                result.add_warning(f"Components row {row_number}: unknown employee {employee_id!r}, row skipped")
                continue

            try:
                component_type = ComponentType(row["COMPONENT_TYPE"].strip().lower())
                is_active = _parse_flag(row.get("IS_ACTIVE", ""))
            except ValueError as e:
                result.reject(employee_id, f"Components row {row_number}: {employee_id}: {e}")
                continue

            component = self._make_component(
                row_number, employee_id, component_type, row["AMOUNT"], is_active,
                row.get("NAME", ""), result
            )
            if component:
                result.components.append(component)

    def _parse_variables(self, df: pd.DataFrame, result: RosterLoadResult):
        columns = [c for c in VARIABLE_COLUMNS if c in df.columns]
        if not columns:
            return

        pending = set(result.employee_ids)
        for row_number, row in _rows(df):
            employee_id = row["EMPLOYEE_ID"]
            if employee_id not in pending:
                continue
            pending.discard(employee_id)
            values = {VARIABLE_COLUMNS[c]: row[c] for c in columns if row[c] != ""}
            if not values:
                continue
            try:
                result.variables[employee_id] = VariableComponents.from_dict(values)
            except ValueError as e:
                result.reject(employee_id, f"Row {row_number}: variable pay for {employee_id}: {e}")

    def _make_component(
        self,
        row_number: int,
        employee_id: str,
        component_type: ComponentType,
        amount: str,
        is_active: bool,
        name: str,
        result: RosterLoadResult
    ) -> Optional[SalaryComponent]:
        try:
            return SalaryComponent(
                employee_id=employee_id,
                component_type=component_type,
                amount=to_decimal(amount),
                is_active=is_active,
                name=name,
            )
        except ValueError as e:
            result.reject(employee_id, f"Row {row_number}: {component_type.value} for {employee_id}: {e}")
            return None

    def _require_columns(
        self, df: pd.DataFrame, columns: List[str], sheet: str, result: RosterLoadResult
    ) -> bool:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            result.add_error(
                f"{sheet}: missing column(s) {', '.join(missing)}. Found columns: {list(df.columns)}"
            )
            return False
        return True


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = (
        df.columns.astype(str).str.strip().str.upper()
        .str.replace(" ", "_", regex=False).str.replace("-", "_", regex=False)
    )
    return df


def _rows(df: pd.DataFrame):
    """Yield (spreadsheet row number, row dict with stripped strings)."""
    for index, row in enumerate(df.to_dict(orient="records")):
        # +2: header row and 1-based numbering
        yield index + 2, {k: str(v).strip() for k, v in row.items()}


def _parse_flag(value: str) -> bool:
    text = str(value).strip().upper()
    if text == "":
        return True
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Invalid yes/no value: {value!r}")
