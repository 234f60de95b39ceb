"""
store.py - In-Memory Ledger Store

MemoryStore implements the LedgerStore protocol with two scopes:
    - INSTANCE: platform configuration and the loan counter
    - PERSISTENT: loan records, contribution maps, unpaid shares

Values are deep-copied on the way in and on the way out, so a caller can
never mutate stored state by holding on to a returned dict.

Thread Safety:
    Not thread-safe. Operations are expected to be serialized by the host.
"""

from __future__ import annotations
from typing import Dict, Any, List
import copy

from .core import DataKey, Scope


class MemoryStore:
    """
    Dict-backed LedgerStore.

    Example:
        store = MemoryStore()
        store.set(DataKey.loan(1), {'borrower': 'alice', ...})
        state = store.get(DataKey.loan(1))
    """

    def __init__(self):
        self._scopes: Dict[Scope, Dict[str, Any]] = {scope: {} for scope in Scope}

    # ========================================================================
    # LedgerStore PROTOCOL IMPLEMENTATION
    # ========================================================================

    def get(self, key: DataKey, default: Any = None) -> Any:
        entries = self._scopes[key.scope]
        if key.storage_key not in entries:
            return default
        return copy.deepcopy(entries[key.storage_key])

    def set(self, key: DataKey, value: Any) -> None:
        self._scopes[key.scope][key.storage_key] = copy.deepcopy(value)

    def has(self, key: DataKey) -> bool:
        return key.storage_key in self._scopes[key.scope]

    def delete(self, key: DataKey) -> None:
        self._scopes[key.scope].pop(key.storage_key, None)

    # ========================================================================
    # INSPECTION
    # ========================================================================

    def keys(self, scope: Scope) -> List[str]:
        """List stored keys of a scope, sorted for deterministic output."""
        return sorted(self._scopes[scope].keys())

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Deep copy of every entry, keyed by scope name then storage key."""
        return {
            scope.value: copy.deepcopy(self._scopes[scope]) for scope in Scope
        }

    def clone(self) -> MemoryStore:
        """
        Create a fully independent copy of this store.

        Modifications to the clone do not affect the original, and vice versa.
        """
        cloned = MemoryStore.__new__(MemoryStore)
        cloned._scopes = {scope: copy.deepcopy(entries) for scope, entries in self._scopes.items()}
        return cloned

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._scopes.values())
