#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Peer-to-Peer Loan Step by Step

Walks one loan through its whole life on an in-memory platform.
Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup       - Asset ledger, platform configuration, a loan request
  4-6:  Funding     - Partial contributions, clamping, disbursement with fee
  7-8:  Repayment   - Proportional distribution, best-effort payouts and claims
  9:    Reporting   - Platform statistics and amounts as text

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from microlend import (
    AssetLedger, MemoryStore, AuthContext, LedgerClock, LoanLifecycleEngine,
    DistributionPolicy, LendingError, blocked_wallets_rule, CUSTODY_WALLET,
    summarize_loans, summarize_party, filter_loans, LoanStatus, interest_rate_distribution,
    format_amount, parse_amount,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    asset: str = "XLM"
    start_time: int = 1_735_689_600        # 2025-01-01 00:00 UTC

    # Platform policy, in stroops (7 decimals)
    min_loan: str = "10"
    max_loan: str = "100000"
    platform_fee_bps: int = 200

    # The loan
    principal: str = "1000"
    interest_rate_bps: int = 1_000
    duration_days: int = 90

    lender_funds: str = "5000"


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv
PARTIES = ("alice", "bob", "carol", "dave")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def show_balances(assets: AssetLedger):
    for wallet in PARTIES + (CUSTODY_WALLET,):
        print(f"    {wallet:<8} {format_amount(assets.get_balance(wallet, CONFIG.asset)):>20} {CONFIG.asset}")


# ============================================================================
# SETUP
# ============================================================================

def step_01_asset_ledger():
    step_header(1, "The Asset Ledger",
        "Funds move only through atomic transfer batches.")

    assets = AssetLedger("tutorial", verbose=True)
    assets.register_asset(CONFIG.asset)
    assets.register_wallet(CUSTODY_WALLET)
    for wallet in PARTIES:
        assets.register_wallet(wallet)
    for wallet in PARTIES:
        assets.issue(wallet, CONFIG.asset, parse_amount(CONFIG.lender_funds))

    # A blocked-wallet rule lets step 8 show a failed payout
    blocked = set()
    assets.add_transfer_rule(blocked_wallets_rule(blocked))

    print()
    show_balances(assets)
    return assets, blocked


def step_02_platform(assets: AssetLedger):
    step_header(2, "Platform Configuration",
        "The platform is configured once: asset, loan limits, fee, payout policy.")

    auth = AuthContext()
    clock = LedgerClock(CONFIG.start_time)
    engine = LoanLifecycleEngine(MemoryStore(), assets, auth, clock, verbose=True)
    engine.initialize(
        CONFIG.asset,
        parse_amount(CONFIG.min_loan),
        parse_amount(CONFIG.max_loan),
        CONFIG.platform_fee_bps,
        DistributionPolicy.BEST_EFFORT,
    )

    try:
        engine.initialize(CONFIG.asset, 1, 2)
    except LendingError as e:
        print(f"\n    Second initialize refused: {type(e).__name__}")
    return engine, auth, clock


def step_03_request(engine: LoanLifecycleEngine, auth: AuthContext) -> int:
    step_header(3, "A Loan Request",
        "Only the borrower can request; terms are validated before anything is stored.")

    try:
        engine.request_loan("alice", parse_amount(CONFIG.principal), 1_000, 90, "education")
    except LendingError as e:
        print(f"    Unsigned request refused: {e}")

    with auth.signed_by("alice"):
        try:
            engine.request_loan("alice", parse_amount(CONFIG.principal), 9_000, 90, "education")
        except LendingError as e:
            print(f"    Usurious rate refused: {e}")
        loan_id = engine.request_loan(
            "alice", parse_amount(CONFIG.principal),
            CONFIG.interest_rate_bps, CONFIG.duration_days, "education",
        )
    print(f"\n    Loan #{loan_id}: {engine.get_loan(loan_id)}")
    return loan_id


# ============================================================================
# FUNDING
# ============================================================================

def step_04_partial(engine: LoanLifecycleEngine, auth: AuthContext, loan_id: int):
    step_header(4, "Partial Funding",
        "Lenders fund a loan in pieces; funds wait in custody.")

    with auth.signed_by("bob"):
        engine.contribute_to_loan("bob", loan_id, parse_amount("600"))
    print(f"\n    Remaining: {format_amount(engine.get_remaining_amount(loan_id))}")
    show_balances(engine.transfers)


def step_05_clamp(engine: LoanLifecycleEngine, auth: AuthContext, clock: LedgerClock, loan_id: int):
    step_header(5, "Clamping and Disbursement",
        "An oversized contribution is clamped; completing funding pays the borrower.")

    clock.advance_days(2)
    with auth.signed_by("carol"):
        charged = engine.contribute_to_loan("carol", loan_id, parse_amount("600"))
    print(f"\n    carol offered 600, was charged {format_amount(charged)}")
    loan = engine.get_loan(loan_id)
    print(f"    funded_at={loan.funded_at} due_at={loan.due_at}")
    show_balances(engine.transfers)


def step_06_no_double_funding(engine: LoanLifecycleEngine, auth: AuthContext, loan_id: int):
    step_header(6, "Funding Is Final",
        "A funded loan accepts no more contributions, so it is disbursed exactly once.")

    with auth.signed_by("dave"):
        try:
            engine.contribute_to_loan("dave", loan_id, parse_amount("10"))
        except LendingError as e:
            print(f"    {type(e).__name__}: {e}")


# ============================================================================
# REPAYMENT
# ============================================================================

def step_07_quote(engine: LoanLifecycleEngine, loan_id: int):
    step_header(7, "The Repayment Quote",
        "Principal plus flat interest, split by contribution, floored per lender.")

    quote = engine.quote_repayment(loan_id)
    print(f"    total     {format_amount(quote.total)}")
    for lender, share in quote.shares.items():
        print(f"    {lender:<9} {format_amount(share)}")
    print(f"    remainder {format_amount(quote.remainder)} (stays in custody)")


def step_08_repay(engine, auth, clock, blocked, loan_id: int):
    step_header(8, "Best-Effort Repayment",
        "A payout that fails is booked as unpaid and can be claimed later.")

    clock.advance_days(CONFIG.duration_days)
    blocked.add("carol")
    with auth.signed_by("alice"):
        engine.repay_loan("alice", loan_id)
    print(f"\n    Unpaid shares: {engine.get_unpaid_shares(loan_id)}")

    blocked.discard("carol")
    with auth.signed_by("carol"):
        claimed = engine.claim_unpaid_share("carol", loan_id)
    print(f"    carol claimed {format_amount(claimed)}")
    show_balances(engine.transfers)


# ============================================================================
# REPORTING
# ============================================================================

def step_09_reporting(engine: LoanLifecycleEngine):
    step_header(9, "Reporting",
        "Listings and statistics are read-only views over the loan registry.")

    loans = engine.list_loans()
    stats = summarize_loans(loans)
    print(f"    loans: {stats.total_loans}, repaid: {stats.repaid_loans}, "
          f"avg rate: {stats.average_interest_rate:.0f} bps")
    print(f"    repaid loans: {[i for i, _ in filter_loans(loans, status=LoanStatus.REPAID)]}")
    print(f"    rate bands: {interest_rate_distribution(loans)}")

    contributions = {loan_id: engine.get_loan_contributions(loan_id) for loan_id, _ in loans}
    for party in ("alice", "bob", "carol"):
        summary = summarize_party(loans, contributions, party)
        print(f"    {party:<6} borrowed {format_amount(summary.total_borrowed)}, "
              f"lent {format_amount(summary.total_lent)}")

    check = engine.transfers.verify_double_entry({CONFIG.asset: 0})
    print(f"\n    Conservation holds: {check['valid']}")


def main():
    print("=" * 70)
    print("       MICROLEND - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("Running in QUICK mode (no pauses)" if QUICK_MODE else
          "Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    assets, blocked = step_01_asset_ledger()
    wait_for_enter()
    engine, auth, clock = step_02_platform(assets)
    wait_for_enter()
    loan_id = step_03_request(engine, auth)
    wait_for_enter()
    step_04_partial(engine, auth, loan_id)
    wait_for_enter()
    step_05_clamp(engine, auth, clock, loan_id)
    wait_for_enter()
    step_06_no_double_funding(engine, auth, loan_id)
    wait_for_enter()
    step_07_quote(engine, loan_id)
    wait_for_enter()
    step_08_repay(engine, auth, clock, blocked, loan_id)
    wait_for_enter()
    step_09_reporting(engine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See microlend/loans.py for the funds-accounting formulas
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
