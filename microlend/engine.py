"""
engine.py - Loan Lifecycle Engine

The public operation surface of the lending platform.

Each operation is one synchronous unit of work:
1. Authorize the acting party
2. Load configuration and the loan's current state
3. Build a plan with the pure functions in loans.py
4. Execute the plan's transfers through the ValueTransfer collaborator
5. Persist the new state, only after the transfers were applied

A rejected transfer batch raises TransferError before anything is written,
so a failed call leaves no trace. The one exception is best-effort
distribution, where rejected lender shares are booked as unpaid instead.

The engine implements no locking; callers serialize invocations.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from .core import (
    LedgerStore, ValueTransfer, Authorizer, Clock,
    TransferBatch, Transfer, LoanRecord, ContributionMap,
    ExecuteResult, DistributionPolicy, CUSTODY_WALLET,
    TransferError, NothingToClaim, build_batch,
)
from .config import PlatformConfig, save_config, load_config, is_initialized
from .registry import LoanRegistry, ContributionLedger
from .loans import (
    RepaymentQuote, validate_loan_request, quote_repayment,
    compute_contribution, compute_repayment,
)


class LoanLifecycleEngine:
    """
    Peer-to-peer loan lifecycle: request, fund, disburse, repay, distribute.

    Example:
        engine = LoanLifecycleEngine(store, asset_ledger, auth, clock)
        engine.initialize("XLM", min_loan_amount=100, max_loan_amount=100_000)

        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 600)
        engine.contribute_to_loan("carol", loan_id, 600)   # clamped to 400
        engine.repay_loan("alice", loan_id)                # bob 660, carol 440
    """

    def __init__(
        self,
        store: LedgerStore,
        transfers: ValueTransfer,
        auth: Authorizer,
        clock: Clock,
        config: Optional[PlatformConfig] = None,
        verbose: bool = False,
    ):
        """
        Create an engine over its collaborators.

        Args:
            store: Durable key-value storage for config and loan state
            transfers: Service that moves the loan asset between parties
            auth: Authorization check for acting parties
            clock: Time source for funded_at / due_at
            config: If given, the platform is initialized with it
            verbose: Print one line per state change (default: False)
        """
        self.store = store
        self.transfers = transfers
        self.auth = auth
        self.clock = clock
        self.verbose = verbose
        self.registry = LoanRegistry(store)
        self.contributions = ContributionLedger(store)

        if config is not None:
            self._initialize(config)

    # ========================================================================
    # INITIALIZATION
    # ========================================================================

    def initialize(
        self,
        asset: str,
        min_loan_amount: int,
        max_loan_amount: int,
        platform_fee_bps: int = 0,
        distribution_policy: DistributionPolicy = DistributionPolicy.ATOMIC,
    ) -> PlatformConfig:
        """
        Set the platform configuration. Allowed exactly once.

        Raises:
            ConfigError: If any parameter is invalid
            AlreadyInitialized: If the platform was already initialized
        """
        config = PlatformConfig(
            asset=asset,
            min_loan_amount=min_loan_amount,
            max_loan_amount=max_loan_amount,
            platform_fee_bps=platform_fee_bps,
            distribution_policy=distribution_policy,
        )
        self._initialize(config)
        return config

    def _initialize(self, config: PlatformConfig) -> None:
        save_config(self.store, config)
        if self.verbose:
            print(
                f"[LOAN] Platform initialized: {config.asset}, "
                f"limits [{config.min_loan_amount}, {config.max_loan_amount}], "
                f"fee {config.platform_fee_bps} bps, {config.distribution_policy.value}"
            )

    def get_config(self) -> PlatformConfig:
        """
        Raises:
            NotInitialized: If initialize() was never called
        """
        return load_config(self.store)

    @property
    def is_initialized(self) -> bool:
        return is_initialized(self.store)

    # ========================================================================
    # LOAN OPERATIONS (Mutating)
    # ========================================================================

    def request_loan(
        self,
        borrower: str,
        amount: int,
        interest_rate: int,
        duration_days: int,
        purpose: str,
    ) -> int:
        """
        Post a new loan request.

        Args:
            borrower: Party requesting the loan (must authorize)
            amount: Principal in the smallest asset unit
            interest_rate: Flat interest over the term, in basis points
            duration_days: Term, counted from full funding
            purpose: Short label, e.g. "education"

        Returns:
            The new loan identifier

        Raises:
            AuthorizationError: borrower did not authorize
            NotInitialized: The platform is not initialized
            RangeViolation, InvalidInterestRate, InvalidDuration, InvalidPurpose
        """
        self.auth.require_auth(borrower)
        config = self.get_config()
        validate_loan_request(config, amount, interest_rate, duration_days, purpose)

        record = LoanRecord(
            borrower=borrower,
            amount_requested=amount,
            interest_rate=interest_rate,
            duration_days=duration_days,
            purpose=purpose,
        )
        loan_id = self.registry.create(record)
        self.contributions.open(loan_id)

        if self.verbose:
            print(
                f"[LOAN] #{loan_id} requested by {borrower}: {amount} {config.asset} "
                f"@ {interest_rate} bps, {duration_days} days ({purpose})"
            )
        return loan_id

    def contribute_to_loan(self, lender: str, loan_id: int, contribution_amount: int) -> int:
        """
        Fund part or all of a loan.

        The contribution is clamped to the remaining need. When it completes
        funding, principal minus the platform fee is disbursed to the borrower
        in the same batch.

        Returns:
            The amount actually charged to the lender

        Raises:
            AuthorizationError: lender did not authorize
            LoanNotFound, LoanInactive, InvalidAmount, LoanFullyFunded
            TransferError: The transfer batch was rejected (nothing persisted)
        """
        self.auth.require_auth(lender)
        config = self.get_config()
        record = self.registry.load(loan_id)
        current = self.contributions.get(loan_id)

        plan = compute_contribution(
            record, current, config, loan_id, lender, contribution_amount, self.clock.now(),
        )
        self._execute(plan.batch)

        self.registry.save(loan_id, plan.record)
        self.contributions.save(loan_id, plan.contributions)

        if self.verbose:
            print(
                f"[LOAN] #{loan_id} {lender} contributed {plan.actual_contribution} "
                f"({plan.record.amount_funded}/{plan.record.amount_requested})"
            )
            if plan.completes_funding:
                print(
                    f"[LOAN] #{loan_id} fully funded: disbursed {plan.disbursement} to "
                    f"{plan.record.borrower} (fee {plan.platform_fee}), due at {plan.record.due_at}"
                )
        return plan.actual_contribution

    def repay_loan(self, borrower: str, loan_id: int) -> RepaymentQuote:
        """
        Repay a funded loan in full and distribute the proceeds to lenders.

        Under ATOMIC distribution the collection and every lender share form
        one batch. Under BEST_EFFORT the collection runs first and each share
        runs on its own; rejected shares are booked as unpaid.

        Returns:
            The RepaymentQuote that was collected and distributed

        Raises:
            AuthorizationError: borrower did not authorize
            LoanNotFound, WrongBorrower, LoanNotFunded, LoanInactive
            TransferError: The collection (or, under ATOMIC, any share) was rejected
        """
        self.auth.require_auth(borrower)
        config = self.get_config()
        record = self.registry.load(loan_id)
        current = self.contributions.get(loan_id)

        plan = compute_repayment(record, current, config, loan_id, borrower)
        now = self.clock.now()

        if config.distribution_policy is DistributionPolicy.ATOMIC:
            self._execute(plan.atomic_batch(f"repay:{loan_id}", timestamp=now))
            unpaid: Dict[str, int] = {}
        else:
            self._execute(build_batch([plan.collection], reference=f"repay:{loan_id}", timestamp=now))
            unpaid = self._distribute_best_effort(loan_id, plan.payouts, now)

        self.registry.save(loan_id, plan.record)
        if unpaid:
            self.contributions.save_unpaid_shares(loan_id, unpaid)

        if self.verbose:
            quote = plan.quote
            print(
                f"[LOAN] #{loan_id} repaid by {borrower}: {quote.total} "
                f"(principal {quote.principal}, interest {quote.interest}), "
                f"remainder {quote.remainder} retained"
            )
        return plan.quote

    def _distribute_best_effort(
        self,
        loan_id: int,
        payouts: Tuple[Tuple[str, Transfer], ...],
        timestamp: int,
    ) -> Dict[str, int]:
        """Pay each share in its own batch; return the shares that were rejected."""
        unpaid: Dict[str, int] = {}
        for lender, transfer in payouts:
            batch = build_batch([transfer], reference=f"distribute:{loan_id}:{lender}", timestamp=timestamp)
            if self.transfers.execute(batch) == ExecuteResult.REJECTED:
                unpaid[lender] = transfer.amount
                if self.verbose:
                    print(
                        f"[LOAN] #{loan_id} share {transfer.amount} to {lender} unpaid: "
                        f"{self.transfers.last_rejection}"
                    )
        return unpaid

    def claim_unpaid_share(self, lender: str, loan_id: int) -> int:
        """
        Retry the payout of a share that best-effort distribution could not pay.

        Returns:
            The amount paid to the lender

        Raises:
            AuthorizationError: lender did not authorize
            LoanNotFound: Unknown loan
            NothingToClaim: No unpaid share for this lender
            TransferError: The payout was rejected again (entry kept)
        """
        self.auth.require_auth(lender)
        config = self.get_config()
        self.registry.load(loan_id)

        unpaid = self.contributions.unpaid_shares(loan_id)
        amount = unpaid.get(lender, 0)
        if amount <= 0:
            raise NothingToClaim(f"{lender} has no unpaid share on loan {loan_id}")

        self._execute(build_batch(
            [Transfer(amount, config.asset, CUSTODY_WALLET, lender, f"claim_{loan_id}_{lender}")],
            reference=f"claim:{loan_id}:{lender}",
            timestamp=self.clock.now(),
        ))

        del unpaid[lender]
        self.contributions.save_unpaid_shares(loan_id, unpaid)

        if self.verbose:
            print(f"[LOAN] #{loan_id} {lender} claimed unpaid share {amount}")
        return amount

    def _execute(self, batch: TransferBatch) -> None:
        """
        Raises:
            TransferError: If the transfer service rejected the batch
        """
        result = self.transfers.execute(batch)
        if result == ExecuteResult.REJECTED:
            reason = self.transfers.last_rejection or "rejected"
            raise TransferError(f"Transfer batch {batch.reference} rejected: {reason}")

    # ========================================================================
    # QUERIES (Read-only, no authorization)
    # ========================================================================

    def get_loan(self, loan_id: int) -> LoanRecord:
        return self.registry.load(loan_id)

    def get_loan_contributions(self, loan_id: int) -> ContributionMap:
        return self.contributions.get(loan_id)

    def get_loan_count(self) -> int:
        return self.registry.count()

    def is_loan_funded(self, loan_id: int) -> bool:
        return self.registry.load(loan_id).is_funded

    def get_remaining_amount(self, loan_id: int) -> int:
        return self.registry.load(loan_id).remaining_amount

    def quote_repayment(self, loan_id: int) -> RepaymentQuote:
        """What repay_loan would collect and distribute, given current contributions."""
        record = self.registry.load(loan_id)
        return quote_repayment(record, self.contributions.get(loan_id))

    def get_unpaid_shares(self, loan_id: int) -> Dict[str, int]:
        return self.contributions.unpaid_shares(loan_id)

    def list_loans(self) -> List[Tuple[int, LoanRecord]]:
        return list(self.registry.iter_loans())
