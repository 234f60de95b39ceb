"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit and functional tests:
- Bare collaborators (store, asset ledger, auth, clock)
- Initialized platforms with and without a platform fee
- A best-effort distribution platform
- Loans in each lifecycle stage (open, funded)
"""

import pytest

from microlend import (
    MemoryStore, AssetLedger, AuthContext, LedgerClock,
    LoanLifecycleEngine, DistributionPolicy, CUSTODY_WALLET,
)

from tests.fake_platform import (
    build_platform, ScriptedTransfers, T0, ASSET, BORROWERS, LENDERS,
)


# =============================================================================
# COLLABORATOR FIXTURES
# =============================================================================

@pytest.fixture
def store():
    """Fresh in-memory store."""
    return MemoryStore()


@pytest.fixture
def asset_ledger():
    """AssetLedger with XLM, custody and funded parties."""
    ledger = AssetLedger("test", verbose=False, test_mode=True)
    ledger.register_asset(ASSET)
    ledger.register_wallet(CUSTODY_WALLET)
    for wallet in BORROWERS + LENDERS:
        ledger.register_wallet(wallet)
        ledger.issue(wallet, ASSET, 1_000_000)
    return ledger


@pytest.fixture
def auth():
    """AuthContext that authorizes every party."""
    return AuthContext(mock_all=True)


@pytest.fixture
def clock():
    return LedgerClock(T0)


@pytest.fixture
def uninitialized_engine(store, asset_ledger, auth, clock):
    """Engine whose platform configuration was never set."""
    return LoanLifecycleEngine(store, asset_ledger, auth, clock)


# =============================================================================
# PLATFORM FIXTURES
# =============================================================================

@pytest.fixture
def platform():
    """Initialized platform, no fee, atomic distribution."""
    return build_platform()


@pytest.fixture
def fee_platform():
    """Initialized platform charging a 2% platform fee."""
    return build_platform(platform_fee_bps=200)


@pytest.fixture
def best_effort_platform():
    """Initialized platform distributing repayments best-effort."""
    return build_platform(distribution_policy=DistributionPolicy.BEST_EFFORT)


@pytest.fixture
def scripted_engine(store, auth, clock):
    """Engine over ScriptedTransfers (no balances, scripted rejections)."""
    transfers = ScriptedTransfers()
    engine = LoanLifecycleEngine(store, transfers, auth, clock)
    engine.initialize(ASSET, min_loan_amount=100, max_loan_amount=100_000)
    return engine, transfers


# =============================================================================
# LOAN FIXTURES
# =============================================================================

@pytest.fixture
def open_loan(platform):
    """1000 @ 1000 bps for 90 days, requested by alice, unfunded."""
    loan_id = platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
    return platform, loan_id


@pytest.fixture
def funded_loan(open_loan):
    """The open loan funded 600 by bob and 400 by carol."""
    platform, loan_id = open_loan
    platform.engine.contribute_to_loan("bob", loan_id, 600)
    platform.engine.contribute_to_loan("carol", loan_id, 400)
    return platform, loan_id
