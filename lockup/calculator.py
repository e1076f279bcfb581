"""
calculator.py - Vesting Schedule Arithmetic

Pure functions answering "how much of this lockup may leave custody now?".

=== SCHEDULE MODEL ===

The interval [start_ts, end_ts) is cut into period_count equal periods of

    period_duration = (end_ts - start_ts) // period_count

seconds. Nothing vests inside a period; at each period boundary another
start_balance / period_count becomes available (cliff semantics):

    elapsed = clamp((now - start_ts) // period_duration, 0, period_count)
    vested  = start_balance * elapsed // period_count

At or after end_ts everything is vested. The eligible amount is what has
vested minus what was already withdrawn:

    eligible = max(0, vested - (start_balance - outstanding))

All arithmetic is integer and rounds down. None of these functions read
delegated_out; whether the vault can actually pay is the engine's concern.

Example:
    start_ts=0, end_ts=100, period_count=4, start_balance=1000
    now=25 -> 250, now=99 -> 750, now=100 -> 1000
"""

from __future__ import annotations
from typing import Optional

from .core import VestingRecord


def period_duration(record: VestingRecord) -> int:
    """Length of one vesting period in seconds (integer division)."""
    return (record.end_ts - record.start_ts) // record.period_count


def elapsed_periods(record: VestingRecord, now: int) -> int:
    """
    Number of whole periods elapsed at now, clamped to [0, period_count].

    A record whose period_duration rounds down to zero vests in a single
    step at end_ts.
    """
    if now >= record.end_ts:
        return record.period_count
    duration = period_duration(record)
    if duration <= 0 or now <= record.start_ts:
        return 0
    return min((now - record.start_ts) // duration, record.period_count)


def vested_amount(record: VestingRecord, now: int) -> int:
    """Total amount vested at now, ignoring withdrawals."""
    if now >= record.end_ts:
        return record.start_balance
    return record.start_balance * elapsed_periods(record, now) // record.period_count


def available_for_withdrawal(record: VestingRecord, now: int) -> int:
    """
    Amount the beneficiary may withdraw at now.

    Args:
        record: Vesting record
        now: Current unix timestamp

    Returns:
        Vested amount minus cumulative withdrawals, never negative.
    """
    return max(0, vested_amount(record, now) - record.withdrawn)


# The distilled name used by callers that speak of "eligible" amounts.
eligible = available_for_withdrawal


def next_vesting_ts(record: VestingRecord, now: int) -> Optional[int]:
    """
    Timestamp of the next cliff after now, or None once fully vested.

    When period_duration does not divide the schedule evenly the last cliff
    lands before end_ts.
    """
    elapsed = elapsed_periods(record, now)
    if elapsed >= record.period_count:
        return None
    duration = period_duration(record)
    if duration <= 0:
        return record.end_ts
    return record.start_ts + (elapsed + 1) * duration
