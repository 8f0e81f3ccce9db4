"""
Roster loaders - Spreadsheet input for payroll runs.

Supports loading of:
- XLSX workbooks with Employees / Components / Variables sheets
- Combined CSV or XLSX rosters with one row per employee
"""

from .roster_loader import RosterLoader, RosterLoadResult

__all__ = ["RosterLoader", "RosterLoadResult"]
