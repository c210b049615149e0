"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan book.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Escrow equals contract balance, supply never changes
2. atomicity.py - A failed operation leaves no trace
3. idempotency.py - Duplicate execution handling
4. determinism.py - Same operations, same book
5. canonicalization.py - Content-addressable identity
6. state_machine.py - Forward-only states, one accepted offer per listing

These tests use hypothesis for property-based testing, driven by
tests/scenario_driver.py.
"""
