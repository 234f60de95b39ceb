"""
registry.py - Loan Registry and Contribution Ledger

Thin typed accessors over the ledger store:

1. LoanRegistry - assigns dense, 1-based loan identifiers and stores one
   LoanRecord per identifier
2. ContributionLedger - per-loan mapping of lender -> cumulative contribution,
   plus the unpaid-share book used by best-effort distribution

Neither class validates lifecycle rules; that is the engine's job.
"""

from __future__ import annotations
from typing import Dict, Iterator, Tuple

from .core import (
    LedgerStore, DataKey, LoanRecord, ContributionMap,
    LoanNotFound, U32_MAX, LendingError, is_loan_id,
)


class LoanRegistry:
    """Loan identifiers and Loan Records."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def count(self) -> int:
        """Number of loans ever created (0 before initialization)."""
        return self.store.get(DataKey.LOAN_COUNTER_KEY, 0)

    def exists(self, loan_id: int) -> bool:
        return is_loan_id(loan_id) and self.store.has(DataKey.loan(loan_id))

    def load(self, loan_id: int) -> LoanRecord:
        """
        Raises:
            LoanNotFound: If no record is stored under loan_id
        """
        state = self.store.get(DataKey.loan(loan_id)) if is_loan_id(loan_id) else None
        if state is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return LoanRecord.from_state(state)

    def save(self, loan_id: int, record: LoanRecord) -> None:
        self.store.set(DataKey.loan(loan_id), record.to_state())

    def create(self, record: LoanRecord) -> int:
        """
        Allocate the next identifier and persist the record under it.

        Returns:
            The new loan identifier (previous count + 1)
        """
        loan_id = self.count() + 1
        if loan_id > U32_MAX:
            raise LendingError("loan identifier space exhausted")
        self.save(loan_id, record)
        self.store.set(DataKey.LOAN_COUNTER_KEY, loan_id)
        return loan_id

    def iter_loans(self) -> Iterator[Tuple[int, LoanRecord]]:
        """Yield (loan_id, record) pairs in identifier order."""
        for loan_id in range(1, self.count() + 1):
            if self.exists(loan_id):
                yield loan_id, self.load(loan_id)


class ContributionLedger:
    """Per-loan lender contributions and unpaid repayment shares."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def open(self, loan_id: int) -> None:
        """Create the empty contribution map for a new loan."""
        self.store.set(DataKey.loan_contributions(loan_id), {})

    def get(self, loan_id: int) -> ContributionMap:
        """Contributions for a loan; empty for an unknown loan."""
        if not is_loan_id(loan_id):
            return {}
        return self.store.get(DataKey.loan_contributions(loan_id), {})

    def save(self, loan_id: int, contributions: ContributionMap) -> None:
        self.store.set(DataKey.loan_contributions(loan_id), contributions)

    def total(self, loan_id: int) -> int:
        return sum(self.get(loan_id).values())

    def unpaid_shares(self, loan_id: int) -> Dict[str, int]:
        if not is_loan_id(loan_id):
            return {}
        return self.store.get(DataKey.unpaid_shares(loan_id), {})

    def save_unpaid_shares(self, loan_id: int, shares: Dict[str, int]) -> None:
        """Persist unpaid shares; an empty mapping removes the entry."""
        if shares:
            self.store.set(DataKey.unpaid_shares(loan_id), shares)
        else:
            self.store.delete(DataKey.unpaid_shares(loan_id))
