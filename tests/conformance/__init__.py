"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_funding.py - funded amount bounded by the request, contributions sum
   to the funded amount, funding timestamps set exactly once
2. test_distribution.py - proportional floor shares, remainder retained
3. test_atomicity.py - failed operations leave no trace
4. test_conservation.py - the asset is never created or destroyed
5. test_determinism.py - identical inputs give identical state; dense ids

These tests use hypothesis for property-based testing.
"""
