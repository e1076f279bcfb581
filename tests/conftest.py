"""
conftest.py - Shared pytest fixtures for lockup tests

Provides common fixtures used across unit, conformance and functional tests:
- Bare capabilities (token ledger, relay, registry)
- A wired deployment with a whitelisted pool (LockupHarness)
- A deployment with one standard vesting record
"""

import pytest

from lockup import TokenLedger, WhitelistRelay, WhitelistRegistry, CustodyEngine

from tests.harness import LockupHarness, ADMIN


# =============================================================================
# CAPABILITY FIXTURES
# =============================================================================

@pytest.fixture
def tokens():
    """Empty token ledger."""
    return TokenLedger("SRM", verbose=False)


@pytest.fixture
def relay(tokens):
    """Relay with no processors deployed."""
    return WhitelistRelay(tokens, verbose=False)


@pytest.fixture
def engine(tokens, relay):
    """Engine with no records."""
    return CustodyEngine("lockup", tokens, relay, verbose=False)


@pytest.fixture
def registry():
    """Empty registry owned by ADMIN."""
    return WhitelistRegistry(ADMIN, verbose=False)


# =============================================================================
# DEPLOYMENT FIXTURES
# =============================================================================

@pytest.fixture
def harness():
    """Deployment with a whitelisted CustodyPool and no records."""
    return LockupHarness()


@pytest.fixture
def vesting(harness):
    """
    Deployment with one record, "vesting_1":
    start_ts=0, end_ts=100, period_count=4, start_balance=1000.
    """
    harness.create_vesting("vesting_1", deposit=1000, now=0, end_ts=100, period_count=4)
    return harness
