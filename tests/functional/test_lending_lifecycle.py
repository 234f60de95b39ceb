"""
test_lending_lifecycle.py - Functional tests for the loan lifecycle engine

Tests complete workflows through LoanLifecycleEngine over a real AssetLedger:
- Initialization (set once, required before operations)
- Request validation and identifier assignment
- Incremental funding, clamping, disbursement with platform fee
- Repayment and proportional distribution (atomic and best-effort)
- Claims of unpaid shares
- Authorization and error ordering
- Transfer rejection leaves no persisted state
"""

import pytest

from microlend import (
    LoanLifecycleEngine, PlatformConfig, DistributionPolicy, MemoryStore,
    Transfer, build_batch, CUSTODY_WALLET, SECONDS_PER_DAY,
    AuthorizationError, RangeViolation, InvalidInterestRate, InvalidDuration,
    InvalidAmount, InvalidPurpose, LoanNotFound, LoanInactive, LoanNotFunded,
    LoanFullyFunded, WrongBorrower, NothingToClaim, TransferError,
    NotInitialized, AlreadyInitialized, ConfigError,
)

from tests.fake_platform import build_platform, T0, ASSET


# =============================================================================
# INITIALIZATION
# =============================================================================

class TestInitialization:
    """Platform configuration lifecycle."""

    def test_uninitialized_operations_raise(self, uninitialized_engine):
        engine = uninitialized_engine
        assert not engine.is_initialized
        assert engine.get_loan_count() == 0
        with pytest.raises(NotInitialized):
            engine.get_config()
        with pytest.raises(NotInitialized):
            engine.request_loan("alice", 1_000, 1_000, 90, "education")

    def test_initialize_sets_config(self, uninitialized_engine):
        config = uninitialized_engine.initialize("XLM", 100, 10_000, 50)
        assert uninitialized_engine.get_config() == config
        assert uninitialized_engine.get_loan_count() == 0

    def test_second_initialize_rejected(self, platform):
        with pytest.raises(AlreadyInitialized):
            platform.engine.initialize("USDC", 1, 2)
        assert platform.engine.get_config().asset == ASSET

    def test_invalid_config_rejected(self, uninitialized_engine):
        with pytest.raises(ConfigError):
            uninitialized_engine.initialize("XLM", 1_000, 100)
        assert not uninitialized_engine.is_initialized

    def test_construct_with_config(self, asset_ledger, auth, clock):
        store = MemoryStore()
        config = PlatformConfig("XLM", 100, 10_000, 0, DistributionPolicy.BEST_EFFORT)
        engine = LoanLifecycleEngine(store, asset_ledger, auth, clock, config=config)
        assert engine.get_config().distribution_policy is DistributionPolicy.BEST_EFFORT


# =============================================================================
# LOAN REQUESTS
# =============================================================================

class TestRequestLoan:
    """Loan creation."""

    def test_first_loan(self, platform):
        engine = platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        assert loan_id == 1
        assert engine.get_loan_count() == 1

        loan = engine.get_loan(loan_id)
        assert loan.borrower == "alice"
        assert loan.amount_requested == 1_000
        assert loan.interest_rate == 1_000
        assert loan.duration_days == 90
        assert loan.purpose == "education"
        assert loan.is_active
        assert loan.amount_funded == 0
        assert (loan.funded_at, loan.due_at) == (0, 0)
        assert engine.get_loan_contributions(loan_id) == {}
        assert engine.get_remaining_amount(loan_id) == 1_000
        assert not engine.is_loan_funded(loan_id)

    def test_ids_increase(self, platform):
        engine = platform.engine
        ids = [engine.request_loan(b, 500, 800, 60, "farming") for b in ("alice", "zoe", "alice")]
        assert ids == [1, 2, 3]
        assert [i for i, _ in engine.list_loans()] == [1, 2, 3]

    def test_request_moves_no_funds(self, platform):
        before = platform.balances()
        platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
        assert platform.balances() == before

    @pytest.mark.parametrize("amount, rate, days, purpose, error", [
        (99, 1_000, 90, "education", RangeViolation),
        (100_001, 1_000, 90, "education", RangeViolation),
        (1_000, 499, 90, "education", InvalidInterestRate),
        (1_000, 5_001, 90, "education", InvalidInterestRate),
        (1_000, 1_000, 29, "education", InvalidDuration),
        (1_000, 1_000, 366, "education", InvalidDuration),
        (1_000, 1_000, 90, "bad purpose", InvalidPurpose),
    ])
    def test_invalid_request_leaves_no_state(self, platform, amount, rate, days, purpose, error):
        with pytest.raises(error):
            platform.engine.request_loan("alice", amount, rate, days, purpose)
        assert platform.engine.get_loan_count() == 0
        assert platform.engine.list_loans() == []

    @pytest.mark.parametrize("amount, rate, days", [
        (100, 500, 30),
        (100_000, 5_000, 365),
    ])
    def test_boundaries_accepted(self, platform, amount, rate, days):
        assert platform.engine.request_loan("alice", amount, rate, days, "edge") == 1


# =============================================================================
# FUNDING
# =============================================================================

class TestContribution:
    """Incremental funding and disbursement."""

    def test_partial_contribution(self, open_loan):
        platform, loan_id = open_loan
        charged = platform.engine.contribute_to_loan("bob", loan_id, 300)

        assert charged == 300
        assert platform.engine.get_loan(loan_id).amount_funded == 300
        assert platform.engine.get_loan_contributions(loan_id) == {"bob": 300}
        assert platform.engine.get_remaining_amount(loan_id) == 700
        assert platform.balance("bob") == 1_000_000 - 300
        assert platform.balance(CUSTODY_WALLET) == 300
        assert platform.balance("alice") == 1_000_000

    def test_repeat_contributions_accumulate(self, open_loan):
        platform, loan_id = open_loan
        platform.engine.contribute_to_loan("bob", loan_id, 100)
        platform.engine.contribute_to_loan("bob", loan_id, 150)
        assert platform.engine.get_loan_contributions(loan_id) == {"bob": 250}

    def test_overfunding_clamped(self, open_loan):
        platform, loan_id = open_loan
        engine = platform.engine
        engine.contribute_to_loan("bob", loan_id, 600)
        charged = engine.contribute_to_loan("carol", loan_id, 600)

        assert charged == 400
        assert platform.balance("carol") == 1_000_000 - 400
        assert engine.get_loan_contributions(loan_id) == {"bob": 600, "carol": 400}
        assert engine.is_loan_funded(loan_id)
        assert engine.get_remaining_amount(loan_id) == 0

    def test_disbursement_on_full_funding(self, open_loan):
        platform, loan_id = open_loan
        platform.clock.advance_days(3)
        platform.engine.contribute_to_loan("bob", loan_id, 1_000)

        loan = platform.engine.get_loan(loan_id)
        assert loan.funded_at == T0 + 3 * SECONDS_PER_DAY
        assert loan.due_at == loan.funded_at + 90 * SECONDS_PER_DAY
        assert platform.balance("alice") == 1_000_000 + 1_000
        assert platform.balance(CUSTODY_WALLET) == 0

    def test_platform_fee_retained(self, fee_platform):
        engine = fee_platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 600)
        engine.contribute_to_loan("carol", loan_id, 600)

        # 2% of 1000
        assert fee_platform.balance("alice") == 1_000_000 + 980
        assert fee_platform.balance(CUSTODY_WALLET) == 20

    def test_contribution_after_full_funding_rejected(self, funded_loan):
        platform, loan_id = funded_loan
        before = platform.engine.get_loan(loan_id)
        platform.clock.advance_days(1)

        with pytest.raises(LoanFullyFunded):
            platform.engine.contribute_to_loan("dave", loan_id, 50)

        after = platform.engine.get_loan(loan_id)
        assert after == before
        assert platform.balance("dave") == 1_000_000
        assert platform.balance("alice") == 1_000_000 + 1_000

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_contribution(self, open_loan, amount):
        platform, loan_id = open_loan
        with pytest.raises(InvalidAmount):
            platform.engine.contribute_to_loan("bob", loan_id, amount)

    def test_unknown_loan(self, platform):
        with pytest.raises(LoanNotFound):
            platform.engine.contribute_to_loan("bob", 42, 100)

    def test_rejected_contribution_persists_nothing(self, open_loan):
        platform, loan_id = open_loan
        platform.blocked.add("dave")
        with pytest.raises(TransferError, match="dave is blocked"):
            platform.engine.contribute_to_loan("dave", loan_id, 300)
        assert platform.engine.get_loan(loan_id).amount_funded == 0
        assert platform.engine.get_loan_contributions(loan_id) == {}

    def test_rejected_disbursement_rolls_back_contribution(self, open_loan):
        """The completing contribution and the disbursement form one batch."""
        platform, loan_id = open_loan
        platform.engine.contribute_to_loan("bob", loan_id, 600)
        platform.blocked.add("alice")

        with pytest.raises(TransferError):
            platform.engine.contribute_to_loan("carol", loan_id, 400)

        loan = platform.engine.get_loan(loan_id)
        assert loan.amount_funded == 600
        assert loan.funded_at == 0
        assert platform.balance("carol") == 1_000_000
        assert platform.balance(CUSTODY_WALLET) == 600

    def test_completion_at_epoch_rejected(self, open_loan):
        """A clock reading 0 cannot stamp funded_at, so completion is refused."""
        platform, loan_id = open_loan
        platform.engine.clock = EpochClock()
        platform.engine.contribute_to_loan("bob", loan_id, 600)
        balances = platform.balances()

        with pytest.raises(ValueError, match="Funding time"):
            platform.engine.contribute_to_loan("carol", loan_id, 400)

        loan = platform.engine.get_loan(loan_id)
        assert loan.amount_funded == 600
        assert (loan.funded_at, loan.due_at) == (0, 0)
        assert platform.balances() == balances


class EpochClock:
    def now(self) -> int:
        return 0


# =============================================================================
# QUERIES
# =============================================================================

class TestQueries:
    """Read-only queries on unknown or malformed loan ids."""

    @pytest.mark.parametrize("query", ["get_loan", "is_loan_funded", "get_remaining_amount"])
    @pytest.mark.parametrize("loan_id", [0, 2, 99])
    def test_unknown_loan_raises(self, open_loan, query, loan_id):
        platform, _ = open_loan
        with pytest.raises(LoanNotFound):
            getattr(platform.engine, query)(loan_id)

    @pytest.mark.parametrize("loan_id", [0, 2, 99])
    def test_unknown_loan_has_no_contributions(self, open_loan, loan_id):
        platform, _ = open_loan
        assert platform.engine.get_loan_contributions(loan_id) == {}
        assert platform.engine.get_unpaid_shares(loan_id) == {}

    @pytest.mark.parametrize("loan_id", ["1", 1.0, True, None])
    def test_non_int_id_is_not_a_loan(self, funded_loan, loan_id):
        platform, _ = funded_loan
        engine = platform.engine
        with pytest.raises(LoanNotFound):
            engine.get_loan(loan_id)
        with pytest.raises(LoanNotFound):
            engine.contribute_to_loan("dave", loan_id, 10)
        assert engine.get_loan_contributions(loan_id) == {}

    def test_queries_on_existing_loan(self, funded_loan):
        platform, loan_id = funded_loan
        engine = platform.engine
        assert engine.get_loan(loan_id).borrower == "alice"
        assert engine.is_loan_funded(loan_id)
        assert engine.get_remaining_amount(loan_id) == 0
        assert engine.get_loan_contributions(loan_id) == {"bob": 600, "carol": 400}


# =============================================================================
# REPAYMENT
# =============================================================================

class TestRepayment:
    """Repayment and proportional distribution."""

    def test_reference_scenario(self, fee_platform):
        """1000 @ 10% for 90 days, funded 600 + 600 (clamped to 400), repaid 1100."""
        engine = fee_platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 600)
        engine.contribute_to_loan("carol", loan_id, 600)
        fee_platform.clock.advance_days(90)

        quote = engine.repay_loan("alice", loan_id)

        assert quote.total == 1_100
        assert dict(quote.shares) == {"bob": 660, "carol": 440}
        assert fee_platform.balance("bob") == 1_000_000 - 600 + 660
        assert fee_platform.balance("carol") == 1_000_000 - 400 + 440
        assert fee_platform.balance("alice") == 1_000_000 + 980 - 1_100
        assert fee_platform.balance(CUSTODY_WALLET) == 20
        assert not engine.get_loan(loan_id).is_active
        assert engine.get_loan_contributions(loan_id) == {"bob": 600, "carol": 400}

    def test_floor_remainder_retained(self):
        platform = build_platform(min_loan_amount=1)
        engine = platform.engine
        loan_id = engine.request_loan("alice", 3, 5_000, 30, "tiny")
        for lender in ("bob", "carol", "dave"):
            engine.contribute_to_loan(lender, loan_id, 1)

        quote = engine.repay_loan("alice", loan_id)

        assert quote.total == 4
        assert quote.remainder == 1
        for lender in ("bob", "carol", "dave"):
            assert platform.balance(lender) == 1_000_000
        assert platform.balance(CUSTODY_WALLET) == 1

    def test_quote_matches_repayment(self, funded_loan):
        platform, loan_id = funded_loan
        quote = platform.engine.quote_repayment(loan_id)
        assert platform.engine.repay_loan("alice", loan_id) == quote

    def test_repay_unfunded(self, open_loan):
        platform, loan_id = open_loan
        platform.engine.contribute_to_loan("bob", loan_id, 999)
        with pytest.raises(LoanNotFunded):
            platform.engine.repay_loan("alice", loan_id)

    def test_repay_by_non_borrower(self, funded_loan):
        platform, loan_id = funded_loan
        with pytest.raises(WrongBorrower):
            platform.engine.repay_loan("bob", loan_id)

    def test_repay_twice(self, funded_loan):
        platform, loan_id = funded_loan
        platform.engine.repay_loan("alice", loan_id)
        before = platform.balances()
        with pytest.raises(LoanInactive):
            platform.engine.repay_loan("alice", loan_id)
        assert platform.balances() == before

    def test_repay_unknown(self, platform):
        with pytest.raises(LoanNotFound):
            platform.engine.repay_loan("alice", 9)

    def test_contribute_after_repayment(self, funded_loan):
        platform, loan_id = funded_loan
        platform.engine.repay_loan("alice", loan_id)
        with pytest.raises(LoanInactive):
            platform.engine.contribute_to_loan("dave", loan_id, 10)

    def test_insufficient_borrower_funds(self):
        platform = build_platform(initial_balance=1_000)
        engine = platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 1_000)
        # alice spends the principal elsewhere and cannot cover 1100
        platform.assets.execute(build_batch(
            [Transfer(1_950, ASSET, "alice", "zoe", "spend")], reference="spend",
        ))

        with pytest.raises(TransferError, match="alice"):
            engine.repay_loan("alice", loan_id)
        assert engine.get_loan(loan_id).is_active
        assert platform.balance("alice") == 50
        assert platform.balance("bob") == 0

    def test_atomic_distribution_rejection_aborts(self, funded_loan):
        platform, loan_id = funded_loan
        platform.blocked.add("carol")
        before = platform.balances()

        with pytest.raises(TransferError, match="carol is blocked"):
            platform.engine.repay_loan("alice", loan_id)

        assert platform.balances() == before
        assert platform.engine.get_loan(loan_id).is_active
        assert platform.engine.get_unpaid_shares(loan_id) == {}


# =============================================================================
# BEST-EFFORT DISTRIBUTION
# =============================================================================

class TestBestEffortDistribution:
    """Unpaid shares and claims."""

    def _funded(self, platform):
        engine = platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 600)
        engine.contribute_to_loan("carol", loan_id, 400)
        return loan_id

    def test_all_shares_paid(self, best_effort_platform):
        loan_id = self._funded(best_effort_platform)
        best_effort_platform.engine.repay_loan("alice", loan_id)
        assert best_effort_platform.balance("bob") == 1_000_000 + 60
        assert best_effort_platform.balance("carol") == 1_000_000 + 40
        assert best_effort_platform.engine.get_unpaid_shares(loan_id) == {}

    def test_rejected_share_recorded(self, best_effort_platform):
        platform = best_effort_platform
        loan_id = self._funded(platform)
        platform.blocked.add("carol")

        platform.engine.repay_loan("alice", loan_id)

        assert not platform.engine.get_loan(loan_id).is_active
        assert platform.balance("bob") == 1_000_000 + 60
        assert platform.balance("carol") == 1_000_000 - 400
        assert platform.balance(CUSTODY_WALLET) == 440
        assert platform.engine.get_unpaid_shares(loan_id) == {"carol": 440}

    def test_claim_unpaid_share(self, best_effort_platform):
        platform = best_effort_platform
        loan_id = self._funded(platform)
        platform.blocked.add("carol")
        platform.engine.repay_loan("alice", loan_id)

        with pytest.raises(TransferError):
            platform.engine.claim_unpaid_share("carol", loan_id)
        assert platform.engine.get_unpaid_shares(loan_id) == {"carol": 440}

        platform.blocked.discard("carol")
        assert platform.engine.claim_unpaid_share("carol", loan_id) == 440
        assert platform.balance("carol") == 1_000_000 + 40
        assert platform.balance(CUSTODY_WALLET) == 0
        assert platform.engine.get_unpaid_shares(loan_id) == {}

        with pytest.raises(NothingToClaim):
            platform.engine.claim_unpaid_share("carol", loan_id)

    def test_claim_without_unpaid_share(self, best_effort_platform):
        loan_id = self._funded(best_effort_platform)
        with pytest.raises(NothingToClaim):
            best_effort_platform.engine.claim_unpaid_share("bob", loan_id)

    def test_claim_unknown_loan(self, best_effort_platform):
        with pytest.raises(LoanNotFound):
            best_effort_platform.engine.claim_unpaid_share("bob", 5)

    def test_rejected_collection_aborts(self, best_effort_platform):
        platform = best_effort_platform
        loan_id = self._funded(platform)
        platform.blocked.add("alice")
        with pytest.raises(TransferError):
            platform.engine.repay_loan("alice", loan_id)
        assert platform.engine.get_loan(loan_id).is_active


# =============================================================================
# AUTHORIZATION
# =============================================================================

class TestAuthorization:
    """Every mutating operation requires the acting party's signature."""

    def test_request_requires_borrower(self):
        platform = build_platform(mock_auth=False)
        with pytest.raises(AuthorizationError):
            platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
        with platform.auth.signed_by("bob"):
            with pytest.raises(AuthorizationError):
                platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
        assert platform.engine.get_loan_count() == 0

    def test_signed_flow(self):
        platform = build_platform(mock_auth=False)
        engine = platform.engine
        with platform.auth.signed_by("alice"):
            loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        with platform.auth.signed_by("bob"):
            engine.contribute_to_loan("bob", loan_id, 1_000)
        with platform.auth.signed_by("alice"):
            engine.repay_loan("alice", loan_id)
        assert platform.auth.authorized_calls == ["alice", "bob", "alice"]

    def test_contribution_requires_lender(self):
        platform = build_platform(mock_auth=False)
        with platform.auth.signed_by("alice"):
            loan_id = platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
            with pytest.raises(AuthorizationError):
                platform.engine.contribute_to_loan("bob", loan_id, 100)

    def test_auth_checked_before_lookup(self):
        platform = build_platform(mock_auth=False)
        with pytest.raises(AuthorizationError):
            platform.engine.repay_loan("alice", 99)


# =============================================================================
# COLLABORATOR BOUNDARY
# =============================================================================

class TestTransferBatches:
    """What the engine hands to the value-transfer service."""

    def test_batches_and_references(self, scripted_engine):
        engine, transfers = scripted_engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 400)
        engine.contribute_to_loan("carol", loan_id, 600)
        engine.repay_loan("alice", loan_id)

        assert [b.reference for b in transfers.batches] == [
            "contribute:1", "contribute:1", "repay:1",
        ]
        assert [len(b.transfers) for b in transfers.batches] == [1, 2, 3]

        repay = transfers.batches[-1]
        assert [(t.source, t.dest, t.amount) for t in repay.transfers] == [
            ("alice", CUSTODY_WALLET, 1_100),
            (CUSTODY_WALLET, "bob", 440),
            (CUSTODY_WALLET, "carol", 660),
        ]

    def test_rejection_reason_surfaced(self, scripted_engine):
        engine, transfers = scripted_engine
        transfers.reject_prefixes.append("contribute:")
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        with pytest.raises(TransferError, match="scripted rejection of contribute:1"):
            engine.contribute_to_loan("bob", loan_id, 100)
        assert engine.get_loan(loan_id).amount_funded == 0


# =============================================================================
# LOGGING
# =============================================================================

class TestVerboseOutput:

    def test_verbose_engine_prints_lifecycle(self, capsys):
        platform = build_platform(verbose=True)
        engine = platform.engine
        loan_id = engine.request_loan("alice", 1_000, 1_000, 90, "education")
        engine.contribute_to_loan("bob", loan_id, 1_000)
        engine.repay_loan("alice", loan_id)

        out = capsys.readouterr().out
        assert "[LOAN] Platform initialized" in out
        assert "[LOAN] #1 requested by alice" in out
        assert "[LOAN] #1 fully funded" in out
        assert "[LOAN] #1 repaid by alice" in out

    def test_quiet_by_default(self, platform, capsys):
        platform.engine.request_loan("alice", 1_000, 1_000, 90, "education")
        assert capsys.readouterr().out == ""
