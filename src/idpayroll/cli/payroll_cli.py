#!/usr/bin/env python3
"""
idpayroll CLI - Indonesian payroll calculation from the command line.

Usage:
    idpayroll calculate --gross 10000000 --ptkp TK/0
    idpayroll calculate --gross 15000000 --ptkp K/2 --no-health --json
    idpayroll run --roster roster.xlsx --config payroll-2024.json --workers 4
"""

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from idpayroll.core.config import REFERENCE_CONFIGURATION, PayrollConfiguration, load_configuration
from idpayroll.core.exceptions import PayrollError
from idpayroll.core.models import ComponentType, Employee, PTKPStatus, SalaryComponent
from idpayroll.core.money import format_idr, to_decimal
from idpayroll.loaders.roster_loader import RosterLoader
from idpayroll.services.calculation_trail import render_trail
from idpayroll.services.payroll_aggregator import PayrollAggregator

logger = logging.getLogger(__name__)

CLI_EMPLOYEE_ID = "cli"


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def get_configuration(config_path: Optional[str]) -> PayrollConfiguration:
    """Load --config, or the reference configuration when the flag is omitted."""
    if config_path:
        return load_configuration(Path(config_path))
    logger.info(f"No --config given, using {REFERENCE_CONFIGURATION.version_label}")
    return REFERENCE_CONFIGURATION


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Not JSON serializable: {type(value).__name__}")


def _print_json(data):
    print(json.dumps(data, indent=2, default=_json_default))


# ============================================================================
# Command Handlers
# ============================================================================

def cmd_calculate(args) -> int:
    """Handle calculate command - one gross salary through the whole pipeline."""
    config = get_configuration(args.config)
    aggregator = PayrollAggregator(config)

    employee = Employee(
        id=CLI_EMPLOYEE_ID,
        ptkp_status=PTKPStatus.parse(args.ptkp),
        bpjs_health_enrolled=not args.no_health,
        bpjs_manpower_enrolled=not args.no_manpower,
    )
    components = [
        SalaryComponent(CLI_EMPLOYEE_ID, ComponentType.BASIC_SALARY, to_decimal(args.gross), name="basic_salary")
    ]
    result = aggregator.calculate_one(employee, components)

    if args.json:
        line_item = result.to_line_item(payroll_id=CLI_EMPLOYEE_ID)
        line_item["trail"] = render_trail(result.trail)
        _print_json(line_item)
        return 0

    c = result.contribution
    t = result.tax
    print(f"\nPayroll calculation ({config.version_label or config.effective_date})")
    print(f"PTKP status: {employee.ptkp_status.value} ({employee.ptkp_status.description})")
    print("=" * 60)
    print(f"  Gross salary:            {format_idr(result.gross_salary):>22}")
    print(f"  BPJS Kesehatan (emp):    {format_idr(c.health_employee):>22}")
    print(f"  BPJS JHT (emp):          {format_idr(c.jht_employee):>22}")
    print(f"  BPJS JP (emp):           {format_idr(c.jp_employee):>22}")
    print(f"  PPh 21 (monthly):        {format_idr(t.tax_monthly):>22}")
    print(f"  Total deductions:        {format_idr(result.total_deductions):>22}")
    print(f"  Net salary:              {format_idr(result.net_salary):>22}")
    print("-" * 60)
    print(f"  Employer BPJS:           {format_idr(c.total_employer_contribution):>22}")
    print(f"  PKP (yearly):            {format_idr(t.pkp_yearly):>22}")
    print(f"  PPh 21 (yearly):         {format_idr(t.tax_yearly):>22}")

    print("\nCalculation trail:")
    for line in render_trail(result.trail):
        print(f"  {line}")

    return 0


def cmd_run(args) -> int:
    """Handle run command - full batch from a roster file."""
    config = get_configuration(args.config)
    aggregator = PayrollAggregator(config, max_workers=args.workers)

    loaded = RosterLoader().load(Path(args.roster))
    for warning in loaded.warnings:
        logger.warning(warning)
    if not loaded.success:
        print(f"Roster errors in {args.roster}:")
        for error in loaded.errors:
            print(f"  - {error}")
        return 1

    batch = aggregator.calculate_batch(loaded.entries)
    for employee_id, message in loaded.rejected.items():
        batch.add_rejected(employee_id, message)
    issues = batch.issues

    if args.json:
        _print_json({
            "summary": batch.summary(),
            "results": [r.to_line_item(payroll_id=args.payroll_id) for r in batch.results],
            "issues": [
                {"type": i.issue_type.value, "employee_id": i.employee_id, "message": i.message}
                for i in issues
            ],
            "totals": batch.totals.to_dict(),
        })
        return 0

    print(f"\nPayroll run: {loaded.source_file}")
    print("=" * 72)
    print(f"  {'Employee':<24} {'Gross':>15} {'PPh 21':>13} {'Net':>15}")
    for r in batch.results:
        print(
            f"  {r.employee.display_name[:24]:<24} {format_idr(r.gross_salary, show_symbol=False):>15} "
            f"{format_idr(r.tax.tax_monthly, show_symbol=False):>13} "
            f"{format_idr(r.net_salary, show_symbol=False):>15}"
        )

    if issues:
        print("\nIssues:")
        for issue in issues:
            print(f"  [{issue.issue_type.value}] {issue.employee_id}: {issue.message}")

    totals = batch.totals
    print("\nTotals:")
    print(f"  Employees:               {totals.total_employees}")
    print(f"  Gross salary:            {format_idr(totals.total_gross_salary):>22}")
    print(f"  PPh 21:                  {format_idr(totals.total_pph21):>22}")
    print(f"  BPJS employee:           {format_idr(totals.total_bpjs_employee):>22}")
    print(f"  BPJS employer:           {format_idr(totals.total_bpjs_employer):>22}")
    print(f"  Net salary:              {format_idr(totals.total_net_salary):>22}")
    print(f"\n{batch.summary()}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='idpayroll',
        description='Indonesian payroll calculation (BPJS, PPh 21, net salary)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  idpayroll calculate --gross 10000000 --ptkp TK/0
  idpayroll calculate --gross 8000000 --ptkp K/1 --no-manpower --json
  idpayroll run --roster roster.xlsx --workers 4
  idpayroll run --roster roster.csv --config payroll-2024.json --json
        """
    )

    # Global arguments
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug output')

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Command')

    # calculate command
    calc_parser = subparsers.add_parser('calculate', help='Calculate one gross salary')
    calc_parser.add_argument('--gross', '-g', required=True, help='Monthly gross salary in Rupiah')
    calc_parser.add_argument('--ptkp', '-p', default='TK/0',
                             help='PTKP status: TK/0-TK/3 or K/0-K/3 (TK_0 also accepted)')
    calc_parser.add_argument('--no-health', action='store_true',
                             help='Not enrolled in BPJS Kesehatan')
    calc_parser.add_argument('--no-manpower', action='store_true',
                             help='Not enrolled in BPJS Ketenagakerjaan')
    calc_parser.add_argument('--config', '-c', help='Configuration JSON (default: reference 2024)')
    calc_parser.add_argument('--json', action='store_true', help='Print JSON')

    # run command
    run_parser = subparsers.add_parser('run', help='Run payroll for a roster file')
    run_parser.add_argument('--roster', '-r', required=True, help='Roster file (.xlsx or .csv)')
    run_parser.add_argument('--config', '-c', help='Configuration JSON (default: reference 2024)')
    run_parser.add_argument('--workers', '-w', type=int, default=1,
                            help='Worker threads for the batch')
    run_parser.add_argument('--payroll-id', default='run', help='Payroll id for line items')
    run_parser.add_argument('--json', action='store_true', help='Print JSON')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose, args.debug)

    try:
        if args.command == 'calculate':
            return cmd_calculate(args)
        elif args.command == 'run':
            return cmd_run(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled")
        return 130
    except (PayrollError, ValueError) as e:
        print(f"\nError: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
