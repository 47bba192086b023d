"""
Shared fixtures for module tests.

DESIGN RULE: Every fixture is opt-in.  No autouse.  Each test declares the
master data it depends on in its signature.
"""

import pytest

from settlement_modules.lease_revenue.config import LeaseRevenueConfig
from settlement_modules.lease_revenue.service import LeaseRevenueService
from tests.factories import seed_windpark


@pytest.fixture
def windpark(session):
    """The reference park (see ``tests.factories``), flushed into ``session``."""
    return seed_windpark(session)


@pytest.fixture
def lease_revenue_config():
    return LeaseRevenueConfig.with_defaults()


@pytest.fixture
def lease_service(session, deterministic_clock, lease_revenue_config):
    """LeaseRevenueService on the rolled-back test session."""
    return LeaseRevenueService(session, clock=deterministic_clock, config=lease_revenue_config)
