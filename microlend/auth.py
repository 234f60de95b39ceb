"""
auth.py - In-Memory Authorization Check

AuthContext implements the Authorizer protocol. It records which parties
signed the current invocation and rejects require_auth() for anyone else.

Example:
    auth = AuthContext()
    with auth.signed_by("alice"):
        engine.request_loan("alice", 1_000, 1_000, 90, "education")

    auth.mock_all_auths()        # tests: every party is considered authorized
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, List, Set

from .core import AuthorizationError


class AuthContext:
    """
    Tracks the signers of the current invocation.

    Attributes:
        signers: Parties that authorized the current invocation.
        authorized_calls: Every party require_auth() accepted, in call order.
    """

    def __init__(self, mock_all: bool = False):
        self.signers: Set[str] = set()
        self.authorized_calls: List[str] = []
        self._mock_all = mock_all

    def mock_all_auths(self) -> None:
        """Treat every party as authorized."""
        self._mock_all = True

    def require_auth(self, party: str) -> None:
        """
        Raises:
            AuthorizationError: If party is not a signer of the current invocation.
        """
        if not self._mock_all and party not in self.signers:
            raise AuthorizationError(f"{party} did not authorize this invocation")
        self.authorized_calls.append(party)

    @contextmanager
    def signed_by(self, *parties: str) -> Iterator[AuthContext]:
        """Add signers for the duration of the block."""
        added = {p for p in parties if p not in self.signers}
        self.signers |= added
        try:
            yield self
        finally:
            self.signers -= added
