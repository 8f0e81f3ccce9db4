"""
Shared pytest fixtures for idpayroll tests.

Provides configuration snapshots, employees, salary components and
an aggregator wired to the reference configuration.
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from idpayroll.core.config import REFERENCE_CONFIGURATION
from idpayroll.core.models import ComponentType, Employee, PTKPStatus, SalaryComponent
from idpayroll.services.payroll_aggregator import PayrollAggregator


@pytest.fixture
def reference_config():
    """Reference 2024 configuration snapshot."""
    return REFERENCE_CONFIGURATION


@pytest.fixture
def reference_rates(reference_config):
    """BPJS rates of the reference configuration."""
    return reference_config.contribution_rates


@pytest.fixture
def config_dict(reference_config):
    """Reference configuration as a JSON-shaped dictionary (a fresh copy per test)."""
    return reference_config.to_dict()


@pytest.fixture
def aggregator(reference_config):
    """Sequential aggregator on the reference configuration."""
    return PayrollAggregator(reference_config)


@pytest.fixture
def employee_tk0():
    """Single employee, no dependents, enrolled in both BPJS programs."""
    return Employee(id="EMP001", ptkp_status=PTKPStatus.TK_0, full_name="Budi Santoso")


def make_components(employee_id, basic, fixed=None):
    """Basic salary plus an optional fixed allowance."""
    components = [
        SalaryComponent(employee_id, ComponentType.BASIC_SALARY, Decimal(str(basic)), name="Gaji Pokok")
    ]
    if fixed is not None:
        components.append(
            SalaryComponent(employee_id, ComponentType.FIXED_ALLOWANCE, Decimal(str(fixed)), name="Tunjangan Tetap")
        )
    return components


@pytest.fixture
def components_10m(employee_tk0):
    """Components adding up to a 10,000,000 gross salary."""
    return make_components(employee_tk0.id, 8000000, 2000000)


@pytest.fixture
def component_factory():
    """Build component lists: component_factory(employee_id, basic, fixed=None)."""
    return make_components
