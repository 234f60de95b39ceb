"""
Core types for the micro-lending ledger.

This module provides the foundational data structures and protocols:
1. Constants: basis-point scale, policy bounds, custody wallet
2. Protocols: LedgerStore, ValueTransfer, Authorizer, Clock (external collaborators)
3. Enums: Scope, ExecuteResult, DistributionPolicy
4. Exceptions: LendingError and the typed failure taxonomy
5. Storage keys: DataKey, an explicit tagged key space over the two store scopes
6. Immutable data structures: Transfer, TransferBatch, LoanRecord

All amounts are plain Python integers (fixed-point, smallest asset unit).
Nothing in this module mutates state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import re
from typing import (
    Dict, List, Optional, Any, Protocol, Tuple, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Basis points: 10000 bps = 100%.
BPS_SCALE = 10_000

SECONDS_PER_DAY = 24 * 60 * 60

# Interest rate bounds enforced at loan creation (5% - 50%).
MIN_INTEREST_RATE_BPS = 500
MAX_INTEREST_RATE_BPS = 5_000

# Duration bounds enforced at loan creation.
MIN_DURATION_DAYS = 30
MAX_DURATION_DAYS = 365

# Platform fee may not exceed the principal.
MAX_PLATFORM_FEE_BPS = BPS_SCALE

# Integer ranges of the persisted fields.
I128_MAX = 2 ** 127 - 1
U32_MAX = 2 ** 32 - 1

# Purpose labels are short symbols.
MAX_PURPOSE_LENGTH = 32
PURPOSE_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

# Wallet holding funds on behalf of the platform between funding and repayment.
# Platform fees and distribution remainders stay here.
CUSTODY_WALLET = "custody"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque party reference (account address).
Party = str

# Mapping from lender to cumulative contributed amount for one loan.
ContributionMap = Dict[str, int]

# Persisted representation of a LoanRecord.
LoanState = Dict[str, Any]


# ============================================================================
# ENUMS
# ============================================================================

class Scope(Enum):
    """
    Retention tier of a stored entry.

    INSTANCE: short-lived platform configuration (asset, limits, counter).
    PERSISTENT: long-lived per-loan records.
    """
    INSTANCE = "instance"
    PERSISTENT = "persistent"


class ExecuteResult(Enum):
    """
    Outcome of a transfer batch execution attempt.

    APPLIED: Every transfer in the batch was validated and applied.
    REJECTED: The batch failed validation; no transfer was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class DistributionPolicy(Enum):
    """
    How repayment shares are paid out to lenders.

    ATOMIC: collection and every lender share execute as one batch.
            Any rejected transfer aborts the repayment.
    BEST_EFFORT: collection executes first, then each share on its own.
            Rejected shares are recorded as unpaid and can be claimed later.
    """
    ATOMIC = "atomic"
    BEST_EFFORT = "best_effort"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending errors."""
    pass


class AuthorizationError(LendingError):
    """Raised when the caller did not prove the required identity."""
    pass


class ValidationError(LendingError):
    """Raised when an input is outside policy bounds."""
    pass


class RangeViolation(ValidationError):
    """Loan amount outside [min_loan_amount, max_loan_amount]."""
    pass


class InvalidInterestRate(ValidationError):
    """Interest rate outside [500, 5000] basis points."""
    pass


class InvalidDuration(ValidationError):
    """Duration outside [30, 365] days."""
    pass


class InvalidAmount(ValidationError):
    """Contribution amount is not strictly positive."""
    pass


class InvalidPurpose(ValidationError):
    """Purpose is not a short alphanumeric symbol."""
    pass


class NotFoundError(LendingError):
    """Raised when a referenced record does not exist."""
    pass


class LoanNotFound(NotFoundError):
    """No loan record for the given identifier."""
    pass


class StateConflictError(LendingError):
    """Raised when an operation is invalid for the loan's lifecycle state."""
    pass


class LoanInactive(StateConflictError):
    """The loan has already been repaid."""
    pass


class LoanNotFunded(StateConflictError):
    """The loan has not reached its funding target."""
    pass


class LoanFullyFunded(StateConflictError):
    """The loan has already reached its funding target."""
    pass


class WrongBorrower(StateConflictError, AuthorizationError):
    """Only the loan's borrower can repay it."""
    pass


class NothingToClaim(StateConflictError):
    """The lender has no unpaid share on this loan."""
    pass


class TransferError(LendingError):
    """Raised when the value-transfer service rejected a batch."""
    pass


class ConfigError(LendingError):
    """Raised for invalid or missing platform configuration."""
    pass


class NotInitialized(ConfigError):
    """The platform has not been initialized."""
    pass


class AlreadyInitialized(ConfigError):
    """The platform configuration is set once and cannot be replaced."""
    pass


# ============================================================================
# STORAGE KEYS
# ============================================================================

class KeyKind(Enum):
    """Every kind of entry the engine persists."""
    ASSET = "Asset"
    MIN_LOAN_AMOUNT = "MinLoanAmount"
    MAX_LOAN_AMOUNT = "MaxLoanAmount"
    PLATFORM_FEE = "PlatformFee"
    DISTRIBUTION_POLICY = "DistributionPolicy"
    LOAN_COUNTER = "LoanCounter"
    LOAN = "Loan"
    LOAN_CONTRIBUTIONS = "LoanContributions"
    UNPAID_SHARES = "UnpaidShares"


# Exhaustive kind -> scope mapping. Kinds in the persistent scope are keyed by loan id.
_KIND_SCOPES: Dict[KeyKind, Scope] = {
    KeyKind.ASSET: Scope.INSTANCE,
    KeyKind.MIN_LOAN_AMOUNT: Scope.INSTANCE,
    KeyKind.MAX_LOAN_AMOUNT: Scope.INSTANCE,
    KeyKind.PLATFORM_FEE: Scope.INSTANCE,
    KeyKind.DISTRIBUTION_POLICY: Scope.INSTANCE,
    KeyKind.LOAN_COUNTER: Scope.INSTANCE,
    KeyKind.LOAN: Scope.PERSISTENT,
    KeyKind.LOAN_CONTRIBUTIONS: Scope.PERSISTENT,
    KeyKind.UNPAID_SHARES: Scope.PERSISTENT,
}


def is_loan_id(value: Any) -> bool:
    """True for an int in the u32 range. Booleans are not loan ids."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= U32_MAX


@dataclass(frozen=True, slots=True)
class DataKey:
    """
    A key in the ledger store.

    Config keys carry no loan id; per-loan keys must carry one. The scope is
    derived from the kind, so callers never choose a tier by hand.

    Example:
        store.set(DataKey.loan(1), state)
        store.get(DataKey.LOAN_COUNTER_KEY)
    """
    kind: KeyKind
    loan_id: Optional[int] = None

    def __post_init__(self):
        keyed = _KIND_SCOPES[self.kind] is Scope.PERSISTENT
        if keyed and self.loan_id is None:
            raise ValueError(f"{self.kind.value} key requires a loan_id")
        if not keyed and self.loan_id is not None:
            raise ValueError(f"{self.kind.value} key does not take a loan_id")
        if keyed and not is_loan_id(self.loan_id):
            raise TypeError(f"loan_id must be a u32 int, got {self.loan_id!r}")

    @property
    def scope(self) -> Scope:
        return _KIND_SCOPES[self.kind]

    @property
    def storage_key(self) -> str:
        """Flat string form, e.g. 'Loan(3)' or 'LoanCounter'."""
        if self.loan_id is None:
            return self.kind.value
        return f"{self.kind.value}({self.loan_id})"

    @classmethod
    def loan(cls, loan_id: int) -> DataKey:
        return cls(KeyKind.LOAN, loan_id)

    @classmethod
    def loan_contributions(cls, loan_id: int) -> DataKey:
        return cls(KeyKind.LOAN_CONTRIBUTIONS, loan_id)

    @classmethod
    def unpaid_shares(cls, loan_id: int) -> DataKey:
        return cls(KeyKind.UNPAID_SHARES, loan_id)

    def __repr__(self) -> str:
        return f"DataKey({self.scope.value}:{self.storage_key})"


DataKey.ASSET_KEY = DataKey(KeyKind.ASSET)
DataKey.MIN_LOAN_AMOUNT_KEY = DataKey(KeyKind.MIN_LOAN_AMOUNT)
DataKey.MAX_LOAN_AMOUNT_KEY = DataKey(KeyKind.MAX_LOAN_AMOUNT)
DataKey.PLATFORM_FEE_KEY = DataKey(KeyKind.PLATFORM_FEE)
DataKey.DISTRIBUTION_POLICY_KEY = DataKey(KeyKind.DISTRIBUTION_POLICY)
DataKey.LOAN_COUNTER_KEY = DataKey(KeyKind.LOAN_COUNTER)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerStore(Protocol):
    """
    Durable key-value storage with two retention scopes.

    The scope of every entry is carried by its DataKey.
    Implementations must return copies so callers cannot mutate stored values.
    """

    def get(self, key: DataKey, default: Any = None) -> Any:
        """Return the stored value, or default if the key is absent."""
        ...

    def set(self, key: DataKey, value: Any) -> None:
        """Store a value, replacing any previous one."""
        ...

    def has(self, key: DataKey) -> bool:
        """Return True if the key holds a value."""
        ...

    def delete(self, key: DataKey) -> None:
        """Remove the key. Deleting an absent key is a no-op."""
        ...


@runtime_checkable
class ValueTransfer(Protocol):
    """
    Moves a fungible asset between parties.

    A batch either applies fully or not at all. Rejections are reported
    through the result, with a human-readable reason in last_rejection.
    """

    last_rejection: Optional[str]

    def execute(self, batch: TransferBatch) -> ExecuteResult:
        ...


@runtime_checkable
class Authorizer(Protocol):
    """Verifies that the current invocation was authorized by a party."""

    def require_auth(self, party: Party) -> None:
        """
        Raises:
            AuthorizationError: If party did not authorize the invocation.
        """
        ...


@runtime_checkable
class Clock(Protocol):
    """Monotonic time source in whole seconds."""

    def now(self) -> int:
        ...


# ============================================================================
# TRANSFERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Transfer:
    """
    A single movement of an asset between two parties.

    Attributes:
        amount: Quantity in the smallest asset unit (positive int).
        asset: Asset identifier.
        source: Party debited.
        dest: Party credited.
        memo: Identifier of the operation generating this transfer.
    """
    amount: int
    asset: str
    source: str
    dest: str
    memo: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Transfer source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Transfer dest cannot be empty")
        if not self.asset or not self.asset.strip():
            raise ValueError("Transfer asset cannot be empty")
        if not self.memo or not self.memo.strip():
            raise ValueError("Transfer memo cannot be empty")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"Transfer amount must be int, got {type(self.amount)}")
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Transfer({self.amount} {self.asset}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class TransferBatch:
    """
    An ordered group of transfers executed all-or-nothing.

    Attributes:
        transfers: Transfers in execution order.
        reference: Operation that produced the batch (e.g. "contribute:1").
        timestamp: Clock time at which the batch was built.
    """
    transfers: Tuple[Transfer, ...]
    reference: str
    timestamp: int = 0

    def is_empty(self) -> bool:
        return not self.transfers

    def total(self) -> int:
        return sum(t.amount for t in self.transfers)

    def __repr__(self) -> str:
        return f"TransferBatch({len(self.transfers)} transfers, {self.reference})"


def build_batch(
    transfers: List[Transfer],
    reference: str,
    timestamp: int = 0,
) -> TransferBatch:
    """Build a TransferBatch from a list of transfers."""
    return TransferBatch(transfers=tuple(transfers), reference=reference, timestamp=timestamp)


# ============================================================================
# LOAN RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class LoanRecord:
    """
    Terms and funding state of one loan.

    Each state change produces a new instance (value semantics); the registry
    persists it as a plain dict.
    """
    borrower: str
    amount_requested: int
    interest_rate: int            # basis points
    duration_days: int
    purpose: str
    is_active: bool = True
    amount_funded: int = 0
    funded_at: int = 0            # 0 until fully funded
    due_at: int = 0               # funded_at + duration_days * SECONDS_PER_DAY

    @property
    def remaining_amount(self) -> int:
        """Amount still needed to reach the funding target."""
        if self.amount_funded >= self.amount_requested:
            return 0
        return self.amount_requested - self.amount_funded

    @property
    def is_funded(self) -> bool:
        return self.amount_funded >= self.amount_requested

    def to_state(self) -> LoanState:
        return {
            'borrower': self.borrower,
            'amount_requested': self.amount_requested,
            'interest_rate': self.interest_rate,
            'duration_days': self.duration_days,
            'purpose': self.purpose,
            'is_active': self.is_active,
            'amount_funded': self.amount_funded,
            'funded_at': self.funded_at,
            'due_at': self.due_at,
        }

    @classmethod
    def from_state(cls, state: LoanState) -> LoanRecord:
        return cls(
            borrower=state['borrower'],
            amount_requested=state['amount_requested'],
            interest_rate=state['interest_rate'],
            duration_days=state['duration_days'],
            purpose=state['purpose'],
            is_active=state.get('is_active', True),
            amount_funded=state.get('amount_funded', 0),
            funded_at=state.get('funded_at', 0),
            due_at=state.get('due_at', 0),
        )
