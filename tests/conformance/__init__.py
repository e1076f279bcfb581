"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lockup engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. custody.py - Vault balance and record counters always agree
2. atomicity.py - All-or-nothing operation semantics
3. schedule.py - Eligible amounts are monotone and quotes are pure

These tests use hypothesis for property-based testing.
"""
