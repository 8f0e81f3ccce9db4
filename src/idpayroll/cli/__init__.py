"""idpayroll Command Line Interface.

Available commands:
- calculate: One gross salary through BPJS, PPh 21 and net salary
- run: Full payroll batch from a roster file
"""

from .payroll_cli import main

__all__ = ["main"]
