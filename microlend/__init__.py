"""
microlend - Peer-to-Peer Micro-Lending Ledger

Borrowers post loan requests, lenders fund them incrementally, and the full
repayment (principal plus flat interest) is distributed back to lenders in
proportion to their contributions.

Usage:
    from microlend import (
        LoanLifecycleEngine, MemoryStore, AssetLedger, AuthContext, LedgerClock,
        CUSTODY_WALLET,
    )

    assets = AssetLedger("main")
    assets.register_asset("XLM")
    for wallet in (CUSTODY_WALLET, "alice", "bob", "carol"):
        assets.register_wallet(wallet)
    assets.issue("bob", "XLM", 1_000)
    assets.issue("carol", "XLM", 1_000)

    auth = AuthContext(mock_all=True)
    engine = LoanLifecycleEngine(MemoryStore(), assets, auth, LedgerClock(1_700_000_000))
    engine.initialize("XLM", min_loan_amount=100, max_loan_amount=100_000, platform_fee_bps=100)

    loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
    engine.contribute_to_loan("bob", loan_id, 600)
    engine.contribute_to_loan("carol", loan_id, 600)    # clamped to 400, disburses 990
"""

# Core types
from .core import (
    LedgerStore,
    ValueTransfer,
    Authorizer,
    Clock,
    Scope,
    ExecuteResult,
    DistributionPolicy,
    DataKey,
    is_loan_id,
    KeyKind,
    Transfer,
    TransferBatch,
    build_batch,
    LoanRecord,
    LendingError,
    AuthorizationError,
    ValidationError,
    RangeViolation,
    InvalidInterestRate,
    InvalidDuration,
    InvalidAmount,
    InvalidPurpose,
    NotFoundError,
    LoanNotFound,
    StateConflictError,
    LoanInactive,
    LoanNotFunded,
    LoanFullyFunded,
    WrongBorrower,
    NothingToClaim,
    TransferError,
    ConfigError,
    NotInitialized,
    AlreadyInitialized,
    BPS_SCALE,
    SECONDS_PER_DAY,
    MIN_INTEREST_RATE_BPS,
    MAX_INTEREST_RATE_BPS,
    MIN_DURATION_DAYS,
    MAX_DURATION_DAYS,
    CUSTODY_WALLET,
)

# Configuration
from .config import PlatformConfig, load_config, save_config, is_initialized

# Collaborators
from .store import MemoryStore
from .asset_ledger import (
    AssetLedger,
    AssetLedgerError,
    InsufficientFunds,
    TransferRuleViolation,
    WalletNotRegistered,
    AssetNotRegistered,
    ExecutedBatch,
    blocked_wallets_rule,
    SYSTEM_WALLET,
)
from .auth import AuthContext
from .clock import LedgerClock, SystemClock

# Registry
from .registry import LoanRegistry, ContributionLedger

# Funds accounting
from .loans import (
    validate_loan_request,
    validate_purpose,
    calculate_platform_fee,
    calculate_disbursement,
    calculate_interest,
    calculate_total_repayment,
    calculate_contribution,
    calculate_due_at,
    calculate_lender_shares,
    quote_repayment,
    compute_contribution,
    compute_repayment,
    RepaymentQuote,
    ContributionPlan,
    RepaymentPlan,
)

# Engine
from .engine import LoanLifecycleEngine

# Reporting
from .reporting import (
    LoanStatus,
    loan_status,
    filter_loans,
    summarize_loans,
    summarize_party,
    interest_rate_distribution,
    INTEREST_RATE_BANDS_BPS,
    PlatformStatistics,
    PartySummary,
)

# Amount text
from .amounts import AMOUNT_DECIMALS, format_amount, parse_amount
