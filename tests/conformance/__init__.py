"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending pool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. debt_conservation.py - total debt equals the sum of account debts
2. atomicity.py - All-or-nothing entry points
3. idempotency.py - Same-block accrual adds nothing
4. determinism.py - Reproducible behavior
5. reentrancy.py - Transfers only ever observe committed bookkeeping
6. temporal.py - Block height and borrow index ordering

These tests use hypothesis for property-based testing.
"""
