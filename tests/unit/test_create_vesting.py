"""
test_create_vesting.py - Unit tests for CustodyEngine.create()

Tests:
- Successful creation: record fields, vault funding, event log
- Validation in order: duplicate, timestamp, period, amount, vault checks
- Failed creation leaves no record and moves no funds
"""

import pytest

from lockup import (
    EventType, RecordAlreadyExists, InvalidTimestamp, InvalidPeriod,
    InvalidDepositAmount, InvalidProgramAddress, InvalidVaultOwner,
    InvalidVaultAmount, InsufficientFunds, InvalidTransferAuthority,
)

from tests.harness import GRANTOR, GRANTOR_TOKEN, BENEFICIARY


def create(h, record_id="vesting_1", end_ts=100, period_count=4, deposit=1000,
           now=0, nonce=255, vault=None, depositor_authority=GRANTOR):
    """Call engine.create() directly, against a vault opened for nonce 255."""
    return h.engine.create(
        record_id, BENEFICIARY, end_ts, period_count, deposit, now, nonce,
        vault or f"vault_{record_id}", GRANTOR_TOKEN, depositor_authority,
    )


@pytest.fixture
def ready(harness):
    """Harness with a funded grantor and an empty vault for vesting_1."""
    harness.tokens.mint_to(GRANTOR_TOKEN, 5000)
    harness.open_vault("vesting_1")
    return harness


class TestCreateSuccess:

    def test_record_fields(self, ready):
        record = create(ready, now=10, end_ts=110)
        assert record.record_id == "vesting_1"
        assert record.beneficiary == BENEFICIARY
        assert record.grantor == GRANTOR
        assert record.vault == "vault_vesting_1"
        assert record.start_ts == 10
        assert record.end_ts == 110
        assert record.period_count == 4
        assert record.start_balance == record.outstanding == 1000
        assert record.delegated_out == 0
        assert record.nonce == 255
        assert ready.engine.get_record("vesting_1") == record

    def test_deposit_moves_into_vault(self, ready):
        create(ready)
        assert ready.tokens.get_balance("vault_vesting_1") == 1000
        assert ready.tokens.get_balance(GRANTOR_TOKEN) == 4000
        assert ready.engine.verify_custody("vesting_1")['valid']

    def test_event_logged(self, ready):
        create(ready)
        (event,) = ready.engine.event_log
        assert event.event_type == EventType.CREATE
        assert event.amount == 1000
        assert event.old_record is None
        assert event.sequence_number == 0
        assert event.metadata == {'depositor': GRANTOR_TOKEN}

    def test_one_period_per_second_is_allowed(self, ready):
        record = create(ready, end_ts=100, period_count=100)
        assert record.period_count == 100

    def test_list_records(self, ready):
        create(ready)
        ready.tokens.mint_to(GRANTOR_TOKEN, 1)
        ready.open_vault("a_vesting")
        create(ready, record_id="a_vesting", deposit=1)
        assert ready.engine.list_records() == ["a_vesting", "vesting_1"]


class TestCreateValidation:
    """Each rule in the order the engine checks them."""

    def test_duplicate_record(self, ready):
        create(ready)
        ready.open_vault("other")
        with pytest.raises(RecordAlreadyExists):
            create(ready, vault="vault_other")

    @pytest.mark.parametrize("end_ts", [0, -10])
    def test_end_not_after_now(self, ready, end_ts):
        with pytest.raises(InvalidTimestamp):
            create(ready, end_ts=end_ts, now=0)

    @pytest.mark.parametrize("period_count", [0, -1, 101])
    def test_invalid_period_count(self, ready, period_count):
        with pytest.raises(InvalidPeriod):
            create(ready, end_ts=100, period_count=period_count)

    def test_timestamp_checked_before_period(self, ready):
        with pytest.raises(InvalidTimestamp):
            create(ready, end_ts=0, period_count=0)

    @pytest.mark.parametrize("deposit", [0, -1])
    def test_invalid_deposit(self, ready, deposit):
        with pytest.raises(InvalidDepositAmount):
            create(ready, deposit=deposit)

    def test_invalid_nonce(self, ready):
        with pytest.raises(InvalidProgramAddress):
            create(ready, nonce=256)

    def test_vault_owned_by_other_nonce(self, ready):
        with pytest.raises(InvalidVaultOwner):
            create(ready, nonce=254)

    def test_vault_owned_by_someone_else(self, ready):
        ready.tokens.register_account("stolen_vault", owner=GRANTOR)
        with pytest.raises(InvalidVaultOwner):
            create(ready, vault="stolen_vault")

    def test_unregistered_vault(self, ready):
        with pytest.raises(InvalidVaultOwner):
            create(ready, vault="never_opened")
        assert ready.engine.records == {}

    def test_vault_not_empty(self, ready):
        ready.tokens.mint_to("vault_vesting_1", 1)
        with pytest.raises(InvalidVaultAmount):
            create(ready)

    def test_depositor_short_of_funds(self, ready):
        with pytest.raises(InsufficientFunds):
            create(ready, deposit=5001)

    def test_wrong_depositor_authority(self, ready):
        with pytest.raises(InvalidTransferAuthority):
            create(ready, depositor_authority="mallory")


class TestCreateFailureLeavesNoTrace:

    def test_no_record_no_event_no_transfer(self, ready):
        with pytest.raises(InsufficientFunds):
            create(ready, deposit=5001)
        assert ready.engine.records == {}
        assert ready.engine.event_log == []
        assert ready.tokens.get_balance(GRANTOR_TOKEN) == 5000
        assert ready.tokens.get_balance("vault_vesting_1") == 0

    def test_can_retry_after_failure(self, ready):
        with pytest.raises(InvalidDepositAmount):
            create(ready, deposit=0)
        record = create(ready)
        assert record.outstanding == 1000
        assert ready.engine.event_log[0].sequence_number == 0
