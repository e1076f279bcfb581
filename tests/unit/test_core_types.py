"""
test_core_types.py - Unit tests for core data structures

Tests:
- VestingRecord: validation, immutability, derived amounts, transitions
- RelayInstruction: writable and signer views
- LockupEvent: changed_fields
- Exception hierarchy
"""

import dataclasses

import pytest

from lockup import (
    VestingRecord, AccountMeta, RelayInstruction, LockupEvent, EventType,
    LockupError, TransferError, InsufficientFunds, RelayError, Unauthorized,
)


def make_record(**overrides) -> VestingRecord:
    fields = dict(
        record_id="vesting_1",
        beneficiary="alice",
        grantor="grantor",
        vault="vault_1",
        start_ts=0,
        end_ts=100,
        period_count=4,
        start_balance=1000,
        outstanding=1000,
        delegated_out=0,
        nonce=255,
    )
    fields.update(overrides)
    return VestingRecord(**fields)


class TestVestingRecordValidation:
    """Construction enforces the custody invariant."""

    def test_valid_record(self):
        record = make_record(outstanding=800, delegated_out=300)
        assert record.withdrawn == 200
        assert record.vault_balance == 500

    @pytest.mark.parametrize("overrides", [
        {'record_id': ""},
        {'beneficiary': ""},
        {'vault': ""},
        {'end_ts': 0},
        {'end_ts': -1},
        {'period_count': 0},
        {'start_balance': 0},
        {'outstanding': 1001},
        {'outstanding': -1},
        {'delegated_out': -1},
        {'outstanding': 100, 'delegated_out': 101},
        {'start_balance': 1000.0},
        {'period_count': True},
        {'nonce': "255"},
    ])
    def test_invalid_record(self, overrides):
        with pytest.raises(ValueError):
            make_record(**overrides)

    def test_nonce_range_belongs_to_the_deriver(self):
        assert make_record(nonce=1000).nonce == 1000

    def test_frozen(self):
        record = make_record()
        with pytest.raises(dataclasses.FrozenInstanceError):
            record.outstanding = 0


class TestVestingRecordTransitions:
    """with_* helpers return new records and never mutate."""

    def test_with_withdrawal(self):
        record = make_record()
        after = record.with_withdrawal(250)
        assert after.outstanding == 750
        assert record.outstanding == 1000

    def test_with_delegated_out_and_back(self):
        record = make_record().with_delegated_out(400)
        assert record.delegated_out == 400
        assert record.vault_balance == 600
        assert record.with_delegated_back(150).delegated_out == 250

    def test_transition_cannot_break_invariant(self):
        with pytest.raises(ValueError):
            make_record(outstanding=100).with_delegated_out(101)
        with pytest.raises(ValueError):
            make_record().with_delegated_back(1)

    def test_to_dict_round_trips(self):
        record = make_record(outstanding=900, delegated_out=100)
        assert VestingRecord(**record.to_dict()) == record


class TestRelayInstruction:

    def test_views(self):
        instruction = RelayInstruction(
            program_id="pool",
            accounts=(
                AccountMeta("record"),
                AccountMeta("vault", is_writable=True),
                AccountMeta("authority", is_signer=True),
                AccountMeta("pool_vault", is_writable=True),
            ),
            data=b"x",
        )
        assert instruction.writable_accounts() == ("vault", "pool_vault")
        assert instruction.signer_accounts() == ("authority",)


class TestLockupEvent:

    def test_changed_fields(self):
        old = make_record()
        new = old.with_withdrawal(250)
        event = LockupEvent(0, EventType.WITHDRAW, "vesting_1", 250, 25, old, new)
        assert event.changed_fields() == {'outstanding': (1000, 750)}
        assert event.metadata == {}

    def test_create_event_has_all_fields_changed(self):
        new = make_record()
        event = LockupEvent(0, EventType.CREATE, "vesting_1", 1000, 0, None, new)
        assert set(event.changed_fields()) == set(new.to_dict())


class TestExceptionHierarchy:

    def test_all_errors_are_lockup_errors(self):
        for exc in (TransferError, InsufficientFunds, RelayError, Unauthorized):
            assert issubclass(exc, LockupError)
        assert issubclass(InsufficientFunds, TransferError)
