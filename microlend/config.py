"""
config.py - Platform Configuration

PlatformConfig is the set-once configuration of a lending platform:
asset identifier, loan size limits, platform fee and distribution policy.

It lives in the instance scope of the ledger store next to the loan counter.
save_config() refuses to overwrite an existing configuration.
"""

from __future__ import annotations
from dataclasses import dataclass
from .core import (
    LedgerStore, DataKey, DistributionPolicy,
    ConfigError, NotInitialized, AlreadyInitialized,
    MAX_PLATFORM_FEE_BPS, I128_MAX,
)


@dataclass(frozen=True, slots=True)
class PlatformConfig:
    """
    Immutable platform configuration.

    Attributes:
        asset: Identifier of the single asset loans are denominated in.
        min_loan_amount: Smallest principal a borrower may request (inclusive).
        max_loan_amount: Largest principal a borrower may request (inclusive).
        platform_fee_bps: Fee withheld from the principal at disbursement.
        distribution_policy: How repayment shares are paid out.
    """
    asset: str
    min_loan_amount: int
    max_loan_amount: int
    platform_fee_bps: int = 0
    distribution_policy: DistributionPolicy = DistributionPolicy.ATOMIC

    def __post_init__(self):
        if not self.asset or not self.asset.strip():
            raise ConfigError("asset cannot be empty")
        for name in ('min_loan_amount', 'max_loan_amount', 'platform_fee_bps'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be int, got {type(value).__name__}")
        if self.min_loan_amount <= 0:
            raise ConfigError(f"min_loan_amount must be positive, got {self.min_loan_amount}")
        if self.max_loan_amount < self.min_loan_amount:
            raise ConfigError(
                f"max_loan_amount {self.max_loan_amount} < min_loan_amount {self.min_loan_amount}"
            )
        if self.max_loan_amount > I128_MAX:
            raise ConfigError("max_loan_amount exceeds the i128 range")
        if not 0 <= self.platform_fee_bps <= MAX_PLATFORM_FEE_BPS:
            raise ConfigError(
                f"platform_fee_bps must be in [0, {MAX_PLATFORM_FEE_BPS}], got {self.platform_fee_bps}"
            )
        if not isinstance(self.distribution_policy, DistributionPolicy):
            # Accept the persisted string form
            try:
                policy = DistributionPolicy(self.distribution_policy)
            except ValueError:
                raise ConfigError(f"unknown distribution policy: {self.distribution_policy!r}")
            object.__setattr__(self, 'distribution_policy', policy)


def is_initialized(store: LedgerStore) -> bool:
    return store.has(DataKey.ASSET_KEY)


def save_config(store: LedgerStore, config: PlatformConfig) -> None:
    """
    Persist the configuration and reset the loan counter to zero.

    Raises:
        AlreadyInitialized: If the store already holds a configuration.
    """
    if is_initialized(store):
        raise AlreadyInitialized("platform is already initialized")
    store.set(DataKey.ASSET_KEY, config.asset)
    store.set(DataKey.MIN_LOAN_AMOUNT_KEY, config.min_loan_amount)
    store.set(DataKey.MAX_LOAN_AMOUNT_KEY, config.max_loan_amount)
    store.set(DataKey.PLATFORM_FEE_KEY, config.platform_fee_bps)
    store.set(DataKey.DISTRIBUTION_POLICY_KEY, config.distribution_policy.value)
    store.set(DataKey.LOAN_COUNTER_KEY, 0)


def load_config(store: LedgerStore) -> PlatformConfig:
    """
    Read the configuration back from the instance scope.

    Raises:
        NotInitialized: If save_config() was never called on this store.
    """
    if not is_initialized(store):
        raise NotInitialized("platform is not initialized")
    return PlatformConfig(
        asset=store.get(DataKey.ASSET_KEY),
        min_loan_amount=store.get(DataKey.MIN_LOAN_AMOUNT_KEY),
        max_loan_amount=store.get(DataKey.MAX_LOAN_AMOUNT_KEY),
        platform_fee_bps=store.get(DataKey.PLATFORM_FEE_KEY, 0),
        distribution_policy=DistributionPolicy(
            store.get(DataKey.DISTRIBUTION_POLICY_KEY, DistributionPolicy.ATOMIC.value)
        ),
    )

