"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ its transfers, record update and event are all applied
        O fails ⟹ token balances, records and the event log are unchanged

This includes transfers made by a relayed processor before the engine
rejected the outcome.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lockup import (
    LockupError, WhitelistWithdrawLimit, RelayError, InsufficientWithdrawalBalance,
)

from tests.harness import LockupHarness, ADMIN, BENEFICIARY
from tests.fake_processors import DrainProcessor, FailAfterTransferProcessor


def capture(h: LockupHarness):
    return (
        dict(h.tokens.balances),
        len(h.tokens.transfer_log),
        dict(h.engine.records),
        list(h.engine.event_log),
    )


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        amount=st.integers(min_value=0, max_value=1500),
        limit=st.integers(min_value=0, max_value=1500),
    )
    @settings(max_examples=50)
    def test_delegate_out_all_or_nothing(self, amount, limit):
        """
        PROPERTY: A stake either moves exactly amount and records it, or
        leaves every balance where it was.
        """
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        h.pool_vault("vesting_1")
        before = capture(h)

        try:
            record = h.stake("vesting_1", amount, limit=limit)
        except LockupError:
            assert amount > limit or amount > 1000
            assert capture(h) == before
        else:
            assert amount <= limit and amount <= 1000
            assert record.delegated_out == amount
            assert h.tokens.get_balance("pool_vault_vesting_1") == amount
            assert len(h.engine.event_log) == len(before[3]) + 1

    @given(
        now=st.integers(min_value=-50, max_value=150),
        amount=st.integers(min_value=0, max_value=1500),
    )
    @settings(max_examples=50)
    def test_withdraw_all_or_nothing(self, now, amount):
        """
        PROPERTY: A withdrawal either pays exactly amount or changes nothing.
        """
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        before = capture(h)

        try:
            h.withdraw("vesting_1", now=now, amount=amount)
        except InsufficientWithdrawalBalance:
            assert capture(h) == before
        else:
            assert h.vault_balance() == 1000 - amount
            assert h.record().outstanding == 1000 - amount


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_limit_breach_undoes_processor_transfer(self):
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        h.relay.register_program("drain", DrainProcessor(700), authorities={"drain_authority"})
        h.tokens.register_account("drain_vault", owner="drain_authority")
        h.registry.add(ADMIN, "drain")
        before = capture(h)

        with pytest.raises(WhitelistWithdrawLimit):
            h.engine.delegate_out(
                "vesting_1", h.registry, BENEFICIARY, "drain", "drain_vault",
                "drain_authority", b"", 500,
            )
        assert capture(h) == before
        assert h.tokens.get_balance("drain_vault") == 0

    def test_crash_undoes_processor_transfer(self):
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        h.relay.register_program("crash", FailAfterTransferProcessor(100))
        h.tokens.register_account("crash_vault", owner="crash_authority")
        h.registry.add(ADMIN, "crash")
        before = capture(h)

        with pytest.raises(RelayError):
            h.engine.delegate_out(
                "vesting_1", h.registry, BENEFICIARY, "crash", "crash_vault",
                "crash_authority", b"", 1000,
            )
        assert capture(h) == before

    def test_failed_operation_does_not_consume_sequence(self):
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        with pytest.raises(WhitelistWithdrawLimit):
            h.stake("vesting_1", 200, limit=100)
        h.stake("vesting_1", 200)
        assert [e.sequence_number for e in h.engine.event_log] == [0, 1]
        assert [t.sequence_number for t in h.tokens.transfer_log] == [0, 1]
