"""
Test Suite for Owner Statements

Test coverage for vendor expense import and statement reconciliation.

Test Structure:
- fixtures/: Shared test data, fake AI clients and datastore helpers
- unit/: Unit tests mirroring src/ package structure
- integration/: End-to-end import and CLI workflow tests

Test Categories:
- Core utilities (currency, money, dates, models, config)
- Storage (repository, cache stores, import jobs)
- Vendor import (extraction, matching, preview, duplicates, reconciliation)

Test Data:
All properties, vendors and amounts are synthetic.
"""
