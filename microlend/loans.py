"""
loans.py - Funds Accounting for Peer-to-Peer Loans

This module holds the lending arithmetic and the lifecycle transitions as
pure functions with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. VALIDATION (validate_*):
   - Check request terms against platform policy
   - Raise the typed ValidationError subclasses

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - Integer fixed-point arithmetic, floor division everywhere
   - No store, no transfers, no clock
   - Example: calculate_total_repayment(10_000, 500) -> 10_500

3. PLAN BUILDERS (compute_*):
   - Take the current LoanRecord and contributions
   - Enforce lifecycle rules (inactive, not funded, wrong borrower, ...)
   - Return a frozen plan: the transfers to execute plus the new state
   - The engine executes the transfers first and persists the state only
     after they were applied

Key Formulas:
    platform_fee      = floor(amount_requested * platform_fee_bps / 10000)
    disbursement      = amount_requested - platform_fee
    interest          = floor(amount_requested * interest_rate / 10000)
    total_repayment   = amount_requested + interest
    lender_share      = floor(total_repayment * contribution / amount_requested)
    remainder         = total_repayment - sum(lender_share)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Mapping, Tuple

from .config import PlatformConfig
from .core import (
    LoanRecord, Transfer, TransferBatch, ContributionMap, build_batch,
    BPS_SCALE, SECONDS_PER_DAY, CUSTODY_WALLET,
    MIN_INTEREST_RATE_BPS, MAX_INTEREST_RATE_BPS,
    MIN_DURATION_DAYS, MAX_DURATION_DAYS,
    MAX_PURPOSE_LENGTH, PURPOSE_PATTERN,
    RangeViolation, InvalidInterestRate, InvalidDuration, InvalidAmount, InvalidPurpose,
    LoanInactive, LoanNotFunded, LoanFullyFunded, WrongBorrower,
)


# ============================================================================
# VALIDATION
# ============================================================================

def _require_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be int, got {type(value).__name__}")


def validate_purpose(purpose: str) -> None:
    """
    Purpose is a short symbol: 1-32 characters of letters, digits and underscore.

    Raises:
        InvalidPurpose: If purpose is not a valid symbol
    """
    if not isinstance(purpose, str) or not purpose:
        raise InvalidPurpose("purpose cannot be empty")
    if len(purpose) > MAX_PURPOSE_LENGTH:
        raise InvalidPurpose(
            f"purpose must be at most {MAX_PURPOSE_LENGTH} characters, got {len(purpose)}"
        )
    if not PURPOSE_PATTERN.match(purpose):
        raise InvalidPurpose(f"purpose must match [A-Za-z0-9_]+, got {purpose!r}")


def validate_loan_request(
    config: PlatformConfig,
    amount: int,
    interest_rate: int,
    duration_days: int,
    purpose: str,
) -> None:
    """
    Check loan terms against platform policy. Bounds are inclusive.

    Raises:
        RangeViolation: amount outside [min_loan_amount, max_loan_amount]
        InvalidInterestRate: interest_rate outside [500, 5000]
        InvalidDuration: duration_days outside [30, 365]
        InvalidPurpose: purpose is not a valid symbol
    """
    _require_int("amount", amount)
    _require_int("interest_rate", interest_rate)
    _require_int("duration_days", duration_days)

    if amount < config.min_loan_amount or amount > config.max_loan_amount:
        raise RangeViolation(
            f"Loan amount {amount} outside allowed range "
            f"[{config.min_loan_amount}, {config.max_loan_amount}]"
        )
    if interest_rate < MIN_INTEREST_RATE_BPS or interest_rate > MAX_INTEREST_RATE_BPS:
        raise InvalidInterestRate(
            f"Interest rate must be between {MIN_INTEREST_RATE_BPS} and "
            f"{MAX_INTEREST_RATE_BPS} bps, got {interest_rate}"
        )
    if duration_days < MIN_DURATION_DAYS or duration_days > MAX_DURATION_DAYS:
        raise InvalidDuration(
            f"Loan duration must be between {MIN_DURATION_DAYS} and "
            f"{MAX_DURATION_DAYS} days, got {duration_days}"
        )
    validate_purpose(purpose)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_platform_fee(amount_requested: int, platform_fee_bps: int) -> int:
    return (amount_requested * platform_fee_bps) // BPS_SCALE


def calculate_disbursement(amount_requested: int, platform_fee_bps: int) -> int:
    """Principal paid to the borrower once the loan is fully funded."""
    return amount_requested - calculate_platform_fee(amount_requested, platform_fee_bps)


def calculate_interest(amount_requested: int, interest_rate: int) -> int:
    """Flat interest over the whole loan term (not annualized)."""
    return (amount_requested * interest_rate) // BPS_SCALE


def calculate_total_repayment(amount_requested: int, interest_rate: int) -> int:
    return amount_requested + calculate_interest(amount_requested, interest_rate)


def calculate_contribution(amount_requested: int, amount_funded: int, contribution_amount: int) -> int:
    """
    Clamp a contribution to the remaining need.

    The excess is never charged to the lender.
    """
    remaining = max(amount_requested - amount_funded, 0)
    return min(contribution_amount, remaining)


def calculate_due_at(funded_at: int, duration_days: int) -> int:
    return funded_at + duration_days * SECONDS_PER_DAY


def calculate_lender_shares(
    total_repayment: int,
    contributions: Mapping[str, int],
    amount_requested: int,
) -> Dict[str, int]:
    """
    Split a repayment in proportion to contributions, flooring each share.

    Returns:
        Dict of lender -> share, in sorted lender order. The sum of shares can
        fall short of total_repayment by less than one unit per lender.

    Example:
        calculate_lender_shares(1050, {"a": 600, "b": 400}, 1000)
        # {"a": 630, "b": 420}
    """
    if amount_requested <= 0:
        raise ValueError(f"amount_requested must be positive, got {amount_requested}")
    return {
        lender: (total_repayment * contributions[lender]) // amount_requested
        for lender in sorted(contributions)
    }


@dataclass(frozen=True, slots=True)
class RepaymentQuote:
    """
    What a repayment would collect and pay out, without executing it.

    Attributes:
        principal: amount_requested
        interest: floor(principal * interest_rate / 10000)
        total: principal + interest, collected from the borrower
        shares: lender -> share paid out (sorted by lender)
        remainder: total - sum(shares), retained in custody
    """
    principal: int
    interest: int
    total: int
    shares: Mapping[str, int]
    remainder: int


def quote_repayment(record: LoanRecord, contributions: Mapping[str, int]) -> RepaymentQuote:
    interest = calculate_interest(record.amount_requested, record.interest_rate)
    total = record.amount_requested + interest
    shares = calculate_lender_shares(total, contributions, record.amount_requested)
    return RepaymentQuote(
        principal=record.amount_requested,
        interest=interest,
        total=total,
        shares=shares,
        remainder=total - sum(shares.values()),
    )


# ============================================================================
# PLAN BUILDERS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ContributionPlan:
    """
    Transfers and resulting state of one contribution.

    Attributes:
        batch: lender -> custody, plus custody -> borrower when this
               contribution completes funding (one atomic batch)
        record: Loan Record after the contribution
        contributions: Contribution map after the contribution
        actual_contribution: Clamped amount charged to the lender
        disbursement: Amount paid to the borrower (0 unless funding completed)
        platform_fee: Fee withheld from the principal (0 unless funding completed)
    """
    batch: TransferBatch
    record: LoanRecord
    contributions: ContributionMap
    actual_contribution: int
    disbursement: int = 0
    platform_fee: int = 0

    @property
    def completes_funding(self) -> bool:
        # Plans are only built for loans below target
        return self.record.is_funded


def compute_contribution(
    record: LoanRecord,
    contributions: Mapping[str, int],
    config: PlatformConfig,
    loan_id: int,
    lender: str,
    contribution_amount: int,
    now: int,
) -> ContributionPlan:
    """
    Build the plan for a lender contributing to a loan.

    Raises:
        LoanInactive: The loan has been repaid
        InvalidAmount: contribution_amount <= 0
        LoanFullyFunded: The loan already reached its target
        ValueError: This contribution completes funding but now <= 0
    """
    if not record.is_active:
        raise LoanInactive(f"Loan {loan_id} is not active")
    _require_int("contribution_amount", contribution_amount)
    if contribution_amount <= 0:
        raise InvalidAmount(f"Contribution must be positive, got {contribution_amount}")
    if record.is_funded:
        raise LoanFullyFunded(f"Loan {loan_id} is already fully funded")

    actual = calculate_contribution(record.amount_requested, record.amount_funded, contribution_amount)

    transfers: List[Transfer] = [
        Transfer(actual, config.asset, lender, CUSTODY_WALLET, f"contribute_{loan_id}_{lender}"),
    ]

    new_contributions = dict(contributions)
    new_contributions[lender] = new_contributions.get(lender, 0) + actual
    amount_funded = record.amount_funded + actual

    disbursement = 0
    platform_fee = 0
    funded_at = record.funded_at
    due_at = record.due_at

    if amount_funded >= record.amount_requested:
        # funded_at == 0 means "not funded yet"
        if now <= 0:
            raise ValueError(f"Funding time must be positive, got {now}")
        platform_fee = calculate_platform_fee(record.amount_requested, config.platform_fee_bps)
        disbursement = record.amount_requested - platform_fee
        if disbursement > 0:
            transfers.append(Transfer(
                disbursement, config.asset, CUSTODY_WALLET, record.borrower,
                f"disburse_{loan_id}",
            ))
        funded_at = now
        due_at = calculate_due_at(now, record.duration_days)

    new_record = LoanRecord(
        borrower=record.borrower,
        amount_requested=record.amount_requested,
        interest_rate=record.interest_rate,
        duration_days=record.duration_days,
        purpose=record.purpose,
        is_active=record.is_active,
        amount_funded=amount_funded,
        funded_at=funded_at,
        due_at=due_at,
    )

    return ContributionPlan(
        batch=build_batch(transfers, reference=f"contribute:{loan_id}", timestamp=now),
        record=new_record,
        contributions=new_contributions,
        actual_contribution=actual,
        disbursement=disbursement,
        platform_fee=platform_fee,
    )


@dataclass(frozen=True, slots=True)
class RepaymentPlan:
    """
    Transfers and resulting state of a repayment.

    Attributes:
        collection: borrower -> custody for the full repayment total
        payouts: (lender, custody -> lender transfer) pairs in sorted lender
                 order; zero shares produce no transfer
        record: Loan Record after repayment (inactive)
        quote: The amounts behind the transfers
    """
    collection: Transfer
    payouts: Tuple[Tuple[str, Transfer], ...]
    record: LoanRecord
    quote: RepaymentQuote

    def atomic_batch(self, reference: str, timestamp: int = 0) -> TransferBatch:
        """Collection and every payout as one all-or-nothing batch."""
        transfers = [self.collection] + [t for _, t in self.payouts]
        return build_batch(transfers, reference=reference, timestamp=timestamp)


def compute_repayment(
    record: LoanRecord,
    contributions: Mapping[str, int],
    config: PlatformConfig,
    loan_id: int,
    borrower: str,
) -> RepaymentPlan:
    """
    Build the plan for the borrower repaying a loan in full.

    Raises:
        WrongBorrower: borrower is not the loan's borrower
        LoanNotFunded: The loan never reached its target
        LoanInactive: The loan was already repaid
    """
    if record.borrower != borrower:
        raise WrongBorrower(f"Only borrower can repay loan {loan_id}")
    if not record.is_funded:
        raise LoanNotFunded(f"Loan {loan_id} was not fully funded")
    if not record.is_active:
        raise LoanInactive(f"Loan {loan_id} is not active")

    quote = quote_repayment(record, contributions)

    collection = Transfer(
        quote.total, config.asset, borrower, CUSTODY_WALLET, f"repay_{loan_id}",
    )
    payouts = tuple(
        (lender, Transfer(share, config.asset, CUSTODY_WALLET, lender, f"distribute_{loan_id}_{lender}"))
        for lender, share in quote.shares.items()
        if share > 0
    )

    new_record = LoanRecord(
        borrower=record.borrower,
        amount_requested=record.amount_requested,
        interest_rate=record.interest_rate,
        duration_days=record.duration_days,
        purpose=record.purpose,
        is_active=False,
        amount_funded=record.amount_funded,
        funded_at=record.funded_at,
        due_at=record.due_at,
    )

    return RepaymentPlan(
        collection=collection,
        payouts=payouts,
        record=new_record,
        quote=quote,
    )
