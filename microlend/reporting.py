"""
reporting.py - Loan Listings and Platform Statistics

Read-only views over (loan_id, LoanRecord) pairs as returned by
LoanLifecycleEngine.list_loans():

1. loan_status() - OPEN / FUNDED / REPAID classification
2. filter_loans() - listing by status, purpose or borrower
3. summarize_loans() - platform-wide counts, totals and averages
4. summarize_party() - what one party has borrowed and lent
5. interest_rate_distribution() - loan counts per interest-rate band

Amount totals are summed as Python ints so they stay exact for large
principals. Counts and the mean interest rate are computed with numpy.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .core import LoanRecord


LoanEntry = Tuple[int, LoanRecord]

# Edges of the dashboard interest-rate bands, in bps (5-10%, ..., 40-50%).
INTEREST_RATE_BANDS_BPS = (500, 1_000, 1_500, 2_000, 3_000, 4_000, 5_000)


class LoanStatus(Enum):
    """
    Lifecycle stage of a loan.

    OPEN: Active and still collecting contributions.
    FUNDED: Active, fully funded and disbursed, awaiting repayment.
    REPAID: Repaid and deactivated.
    """
    OPEN = "open"
    FUNDED = "funded"
    REPAID = "repaid"


def loan_status(record: LoanRecord) -> LoanStatus:
    if not record.is_active:
        return LoanStatus.REPAID
    if record.is_funded:
        return LoanStatus.FUNDED
    return LoanStatus.OPEN


def filter_loans(
    loans: Iterable[LoanEntry],
    status: Optional[LoanStatus] = None,
    purpose: Optional[str] = None,
    borrower: Optional[str] = None,
) -> List[LoanEntry]:
    """
    Select loans matching every given criterion, in input order.

    Example:
        filter_loans(engine.list_loans(), status=LoanStatus.OPEN, purpose="education")
    """
    selected = []
    for loan_id, record in loans:
        if status is not None and loan_status(record) is not status:
            continue
        if purpose is not None and record.purpose != purpose:
            continue
        if borrower is not None and record.borrower != borrower:
            continue
        selected.append((loan_id, record))
    return selected


@dataclass(frozen=True, slots=True)
class PlatformStatistics:
    """
    Aggregate view of every loan on the platform.

    Attributes:
        total_loans: Number of loans
        open_loans: Loans still collecting contributions
        funded_loans: Funded loans awaiting repayment
        repaid_loans: Loans repaid in full
        total_requested: Sum of principals requested
        total_funded: Sum of amounts funded so far
        average_interest_rate: Mean interest rate in bps (0.0 for no loans)
        funding_ratio: total_funded / total_requested (0.0 for no loans)
    """
    total_loans: int
    open_loans: int
    funded_loans: int
    repaid_loans: int
    total_requested: int
    total_funded: int
    average_interest_rate: float
    funding_ratio: float

    @property
    def active_loans(self) -> int:
        return self.open_loans + self.funded_loans


def summarize_loans(loans: Iterable[LoanEntry]) -> PlatformStatistics:
    records = [record for _, record in loans]
    if not records:
        return PlatformStatistics(0, 0, 0, 0, 0, 0, 0.0, 0.0)

    statuses = np.array([loan_status(r).value for r in records])
    rates = np.array([r.interest_rate for r in records], dtype=np.int64)
    total_requested = sum(r.amount_requested for r in records)
    total_funded = sum(r.amount_funded for r in records)

    return PlatformStatistics(
        total_loans=len(records),
        open_loans=int(np.count_nonzero(statuses == LoanStatus.OPEN.value)),
        funded_loans=int(np.count_nonzero(statuses == LoanStatus.FUNDED.value)),
        repaid_loans=int(np.count_nonzero(statuses == LoanStatus.REPAID.value)),
        total_requested=total_requested,
        total_funded=total_funded,
        average_interest_rate=float(np.mean(rates)),
        funding_ratio=total_funded / total_requested,
    )


@dataclass(frozen=True, slots=True)
class PartySummary:
    """
    One party's position across all loans.

    Attributes:
        party: The party summarized
        total_borrowed: Amount funded on loans the party requested
        total_lent: Sum of the party's contributions
        loans_borrowed: Number of loans the party requested
        loans_lent: Number of loans the party contributed to
    """
    party: str
    total_borrowed: int
    total_lent: int
    loans_borrowed: int
    loans_lent: int


def summarize_party(
    loans: Iterable[LoanEntry],
    contributions_by_loan: Mapping[int, Mapping[str, int]],
    party: str,
) -> PartySummary:
    """
    Args:
        loans: (loan_id, record) pairs
        contributions_by_loan: loan_id -> {lender: amount}
        party: Borrower or lender to summarize
    """
    total_borrowed = 0
    loans_borrowed = 0
    total_lent = 0
    loans_lent = 0
    for loan_id, record in loans:
        if record.borrower == party:
            total_borrowed += record.amount_funded
            loans_borrowed += 1
        contributed = contributions_by_loan.get(loan_id, {}).get(party, 0)
        if contributed > 0:
            total_lent += contributed
            loans_lent += 1
    return PartySummary(
        party=party,
        total_borrowed=total_borrowed,
        total_lent=total_lent,
        loans_borrowed=loans_borrowed,
        loans_lent=loans_lent,
    )


def interest_rate_distribution(loans: Iterable[LoanEntry]) -> Dict[str, int]:
    """
    Count loans per interest-rate band.

    Bands are half-open [low, high) except the last, which includes 50%.
    Every band is present, in ascending order, even when empty.

    Example:
        interest_rate_distribution(engine.list_loans())
        # {"5-10%": 1, "10-15%": 3, "15-20%": 0, "20-30%": 0, "30-40%": 0, "40-50%": 1}
    """
    rates = np.array([record.interest_rate for _, record in loans], dtype=np.int64)
    counts, _ = np.histogram(rates, bins=np.array(INTEREST_RATE_BANDS_BPS))
    return {
        f"{low // 100}-{high // 100}%": int(count)
        for low, high, count in zip(INTEREST_RATE_BANDS_BPS, INTEREST_RATE_BANDS_BPS[1:], counts)
    }
