"""
test_auth_clock.py - Unit tests for AuthContext and the time sources
"""

import pytest

from microlend import (
    AuthContext, AuthorizationError, Authorizer, Clock,
    LedgerClock, SystemClock, SECONDS_PER_DAY,
)


class TestAuthContext:

    def test_unsigned_party_rejected(self):
        auth = AuthContext()
        with pytest.raises(AuthorizationError, match="alice"):
            auth.require_auth("alice")

    def test_signed_party_accepted(self):
        auth = AuthContext()
        with auth.signed_by("alice"):
            auth.require_auth("alice")
        assert auth.authorized_calls == ["alice"]

    def test_signature_scoped_to_block(self):
        auth = AuthContext()
        with auth.signed_by("alice"):
            pass
        with pytest.raises(AuthorizationError):
            auth.require_auth("alice")

    def test_nested_signers_restored(self):
        auth = AuthContext()
        with auth.signed_by("alice"):
            with auth.signed_by("alice", "bob"):
                auth.require_auth("bob")
            auth.require_auth("alice")
            with pytest.raises(AuthorizationError):
                auth.require_auth("bob")

    def test_mock_all_auths(self):
        auth = AuthContext()
        auth.mock_all_auths()
        auth.require_auth("anyone")
        assert AuthContext(mock_all=True).require_auth("x") is None

    def test_satisfies_protocol(self):
        assert isinstance(AuthContext(), Authorizer)


class TestLedgerClock:

    def test_starts_at_initial_time(self):
        assert LedgerClock(100).now() == 100

    @pytest.mark.parametrize("initial_time", [0, -1])
    def test_non_positive_initial_time_raises(self, initial_time):
        with pytest.raises(ValueError, match="positive"):
            LedgerClock(initial_time)

    def test_advance(self):
        clock = LedgerClock(100)
        assert clock.advance(50) == 150
        assert clock.advance_days(2) == 150 + 2 * SECONDS_PER_DAY

    def test_advance_time_forward_only(self):
        clock = LedgerClock(100)
        clock.advance_time(100)
        with pytest.raises(ValueError, match="backwards"):
            clock.advance_time(99)
        assert clock.now() == 100

    def test_clocks_satisfy_protocol(self):
        assert isinstance(LedgerClock(1), Clock)
        assert isinstance(SystemClock(), Clock)

    def test_system_clock_returns_int_seconds(self):
        now = SystemClock().now()
        assert isinstance(now, int)
        assert now > 1_600_000_000
