"""
asset_ledger.py - In-Memory Value Transfer Service

AssetLedger is a small double-entry balance book implementing the
ValueTransfer protocol. It is the reference collaborator the lending engine
moves funds through.

Key responsibilities:
    - Executes transfer batches atomically (all transfers succeed or none do)
    - Maintains wallet balances per asset, with no overdrafts
    - Applies pluggable transfer rules (e.g. blocked or frozen wallets)
    - Always validates and always logs executed batches
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple, Any

from .core import (
    Transfer, TransferBatch, ExecuteResult, build_batch,
)


# Reserved wallet for issuance and redemption. Exempt from balance validation.
SYSTEM_WALLET = "system"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AssetLedgerError(Exception):
    """Base exception for asset ledger errors."""
    pass


class InsufficientFunds(AssetLedgerError):
    """Raised when a batch would take a wallet balance below zero."""
    pass


class TransferRuleViolation(AssetLedgerError):
    """Raised by a transfer rule to veto a transfer."""
    pass


class WalletNotRegistered(AssetLedgerError):
    """Raised when operating on a wallet that was never registered."""
    pass


class AssetNotRegistered(AssetLedgerError):
    """Raised when operating on an asset that was never registered."""
    pass


# Transfer rules see the ledger read-only and raise TransferRuleViolation to veto.
TransferRule = Callable[['AssetLedger', Transfer], None]


@dataclass(frozen=True, slots=True)
class ExecutedBatch:
    """
    Immutable record of an applied batch.

    Attributes:
        transfers: Transfers that were applied, in order.
        reference: Reference carried by the TransferBatch.
        timestamp: Timestamp carried by the TransferBatch.
        exec_id: Unique execution identifier (ledger + sequence).
        sequence_number: Monotonic sequence within the ledger.
    """
    transfers: Tuple[Transfer, ...]
    reference: str
    timestamp: int
    exec_id: str
    sequence_number: int


def blocked_wallets_rule(blocked: Set[str]) -> TransferRule:
    """
    Build a transfer rule rejecting any transfer to or from a blocked wallet.

    The set is captured by reference, so wallets can be blocked and unblocked
    after the rule is installed.
    """
    def rule(view: AssetLedger, transfer: Transfer) -> None:
        if transfer.source in blocked:
            raise TransferRuleViolation(f"wallet {transfer.source} is blocked")
        if transfer.dest in blocked:
            raise TransferRuleViolation(f"wallet {transfer.dest} is blocked")
    return rule


class AssetLedger:
    """
    Balance book with atomic batch execution.

    Example:
        ledger = AssetLedger("main")
        ledger.register_asset("XLM")
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.issue("alice", "XLM", 1_000)

        batch = build_batch([Transfer(100, "XLM", "alice", "bob", "payment")], "payment")
        result = ledger.execute(batch)
    """

    def __init__(
        self,
        name: str,
        verbose: bool = False,
        test_mode: bool = False,
    ):
        """
        Create an asset ledger.

        Args:
            name: Ledger identifier
            verbose: Print every applied or rejected batch (default: False)
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.verbose = verbose
        self._test_mode = test_mode
        self.assets: Set[str] = set()
        self.registered_wallets: Set[str] = set()
        self.balances: Dict[str, Dict[str, int]] = {}
        self.transfer_rules: List[TransferRule] = []
        self.transfer_log: List[ExecutedBatch] = []
        self.last_rejection: Optional[str] = None
        self._next_sequence: int = 0

        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # READ-ONLY ACCESS
    # ========================================================================

    def get_balance(self, wallet_id: str, asset: str) -> int:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            AssetNotRegistered: If asset is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return self.balances[wallet_id].get(asset, 0)

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def total_supply(self, asset: str) -> int:
        """
        Sum of an asset's balances across all wallets, including the system wallet.

        Transfers redistribute but never create or destroy value, so this is
        zero for every asset issued through the system wallet.
        """
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        return sum(self.balances[w].get(asset, 0) for w in sorted(self.registered_wallets))

    def circulating_supply(self, asset: str) -> int:
        """Sum of an asset's balances held outside the system wallet."""
        return self.total_supply(asset) - self.balances[SYSTEM_WALLET].get(asset, 0)

    def verify_double_entry(self, expected_supplies: Dict[str, int] = None) -> Dict[str, Any]:
        """
        Verify that conservation holds for all assets.

        Args:
            expected_supplies: Optional mapping of asset -> expected total supply.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every supply matches
            - 'supplies': Dict[str, int] - Current total supply per asset
            - 'discrepancies': List[Dict] - unit, expected, actual, difference
        """
        supplies = {asset: self.total_supply(asset) for asset in sorted(self.assets)}
        discrepancies = []
        expected_supplies = expected_supplies or {}
        for asset, expected in expected_supplies.items():
            actual = supplies.get(asset, 0)
            if actual != expected:
                discrepancies.append({
                    'asset': asset,
                    'expected': expected,
                    'actual': actual,
                    'difference': actual - expected,
                })
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_asset(self, asset: str) -> None:
        """
        Raises:
            ValueError: If asset is already registered or empty
        """
        if not asset or not asset.strip():
            raise ValueError("asset cannot be empty")
        if asset in self.assets:
            raise ValueError(f"Asset {asset} already registered")
        self.assets.add(asset)
        if self.verbose:
            print(f"Registered asset: {asset}")

    def add_transfer_rule(self, rule: TransferRule) -> None:
        self.transfer_rules.append(rule)

    def issue(self, wallet_id: str, asset: str, amount: int) -> ExecuteResult:
        """Issue new units of an asset to a wallet from the system wallet."""
        batch = build_batch(
            [Transfer(amount, asset, SYSTEM_WALLET, wallet_id, f"issue_{wallet_id}")],
            reference=f"issue:{asset}:{wallet_id}",
        )
        return self.execute(batch)

    def set_balance(self, wallet_id: str, asset: str, amount: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This bypasses double-entry accounting and is only available
        in test mode. Use issue() or execute() otherwise.

        Raises:
            AssetLedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise AssetLedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or execute() to modify balances. "
                "Set test_mode=True when creating AssetLedger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if asset not in self.assets:
            raise AssetNotRegistered(f"Asset {asset} not registered")
        self.balances[wallet_id][asset] = amount

    # ========================================================================
    # BATCH EXECUTION (Mutating)
    # ========================================================================

    def execute(self, batch: TransferBatch) -> ExecuteResult:
        """
        Execute a TransferBatch atomically.

        Every batch is fully validated against:
        - Asset and wallet registration
        - Transfer rules
        - Balances (no wallet except the system wallet may go below zero)

        Returns:
            ExecuteResult.APPLIED if successful (empty batches included)
            ExecuteResult.REJECTED if validation failed; last_rejection holds the reason
        """
        self.last_rejection = None
        if batch.is_empty():
            return ExecuteResult.APPLIED

        try:
            self._validate_batch(batch)
        except AssetLedgerError as e:
            self.last_rejection = str(e)
            if self.verbose:
                print(f"✗ REJECTED [{batch.reference}]: {e}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        record = ExecutedBatch(
            transfers=batch.transfers,
            reference=batch.reference,
            timestamp=batch.timestamp,
            exec_id=f"exec:{self.name}:{sequence:012d}",
            sequence_number=sequence,
        )

        for transfer in batch.transfers:
            self.balances[transfer.source][transfer.asset] -= transfer.amount
            self.balances[transfer.dest][transfer.asset] += transfer.amount

        self.transfer_log.append(record)

        if self.verbose:
            print(f"✓ APPLIED [{batch.reference}] {record.exec_id}")
            for transfer in batch.transfers:
                print(f"    {transfer.amount} {transfer.asset}: {transfer.source} → {transfer.dest}")
        return ExecuteResult.APPLIED

    def _validate_batch(self, batch: TransferBatch) -> None:
        """
        Raise the first validation failure of the batch, or return None.

        Balances are checked on the net effect of the whole batch, so a batch
        may credit a wallet and spend the credit in a later transfer.
        """
        for transfer in batch.transfers:
            if transfer.asset not in self.assets:
                raise AssetNotRegistered(f"asset not registered: {transfer.asset}")
            if transfer.source not in self.registered_wallets:
                raise WalletNotRegistered(f"wallet not registered: {transfer.source}")
            if transfer.dest not in self.registered_wallets:
                raise WalletNotRegistered(f"wallet not registered: {transfer.dest}")
            for rule in self.transfer_rules:
                rule(self, transfer)

        net: Dict[Tuple[str, str], int] = defaultdict(int)
        for transfer in batch.transfers:
            net[(transfer.source, transfer.asset)] -= transfer.amount
            net[(transfer.dest, transfer.asset)] += transfer.amount

        for (wallet, asset), delta in sorted(net.items()):
            # System wallet is exempt (used for issuance/redemption)
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet].get(asset, 0) + delta
            if proposed < 0:
                raise InsufficientFunds(
                    f"{wallet} {asset}: balance {self.balances[wallet].get(asset, 0)} "
                    f"cannot cover {-delta}"
                )

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> AssetLedger:
        """
        Create a deep copy of this ledger.

        Transfer rules are shared by reference; balances, registrations and the
        transfer log are independent.
        """
        cloned = AssetLedger.__new__(AssetLedger)
        cloned.name = self.name
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned.assets = set(self.assets)
        cloned.registered_wallets = set(self.registered_wallets)
        cloned.balances = {
            wallet: defaultdict(int, bals) for wallet, bals in self.balances.items()
        }
        cloned.transfer_rules = list(self.transfer_rules)
        cloned.transfer_log = list(self.transfer_log)
        cloned.last_rejection = self.last_rejection
        cloned._next_sequence = self._next_sequence
        return cloned
