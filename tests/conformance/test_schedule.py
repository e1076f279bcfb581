"""
Schedule Conformance Tests

INVARIANT: Eligibility depends only on the record and the clock.

    ∀ record R, t1 <= t2:
        eligible(R, t1) <= eligible(R, t2)
        eligible(R, t) == 0 for t < start_ts + period_duration
        eligible(R, t) == outstanding for t >= end_ts
        quote(R, t) is repeatable and changes no state
"""

import json

from hypothesis import given, settings
from hypothesis import strategies as st

from lockup import VestingRecord, eligible, period_duration

from tests.harness import LockupHarness


@st.composite
def records(draw):
    """Generate a valid record with some withdrawals and delegation."""
    start_ts = draw(st.integers(min_value=0, max_value=10**6))
    duration = draw(st.integers(min_value=1, max_value=10**5))
    period_count = draw(st.integers(min_value=1, max_value=min(duration, 365)))
    start_balance = draw(st.integers(min_value=1, max_value=10**15))
    outstanding = draw(st.integers(min_value=0, max_value=start_balance))
    delegated_out = draw(st.integers(min_value=0, max_value=outstanding))
    return VestingRecord(
        record_id="vesting_1",
        beneficiary="alice",
        grantor="grantor",
        vault="vault_1",
        start_ts=start_ts,
        end_ts=start_ts + duration,
        period_count=period_count,
        start_balance=start_balance,
        outstanding=outstanding,
        delegated_out=delegated_out,
        nonce=255,
    )


class TestScheduleProperties:

    @given(records(), st.integers(min_value=-10**5, max_value=2 * 10**6), st.integers(min_value=0, max_value=10**6))
    @settings(max_examples=50)
    def test_eligible_is_monotone(self, record, t1, step):
        """
        PROPERTY: Waiting never reduces the eligible amount.
        """
        assert eligible(record, t1) <= eligible(record, t1 + step)

    @given(records())
    @settings(max_examples=50)
    def test_boundaries(self, record):
        """
        PROPERTY: Nothing before the first cliff, everything outstanding at end_ts.
        """
        first_cliff = record.start_ts + period_duration(record)
        assert eligible(record, first_cliff - 1) == 0
        assert eligible(record, record.end_ts) == record.outstanding
        assert eligible(record, record.end_ts + 10**9) == record.outstanding

    @given(st.integers(min_value=-100, max_value=200))
    @settings(max_examples=50)
    def test_quote_is_pure(self, now):
        """
        PROPERTY: Quoting twice gives the same answer and leaves no trace.
        """
        h = LockupHarness()
        h.create_vesting("vesting_1", deposit=1000)
        before = (h.record(), len(h.engine.event_log), dict(h.tokens.balances))
        first = h.engine.quote("vesting_1", now)
        second = h.engine.quote("vesting_1", now)
        assert first == second
        assert int(json.loads(first)['result']) == eligible(h.record(), now)
        assert (h.record(), len(h.engine.event_log), dict(h.tokens.balances)) == before
