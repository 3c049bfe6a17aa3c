"""
Test Fixtures and Utilities

Shared test data, utilities, and fixtures for vendor import testing.

This module provides:
- Spreadsheet builders for upload bytes
- Fake AI clients and matchers with recorded calls
- Datastore helpers for seeding month statements and checking totals

All test data is synthetic and does not contain real financial information.
"""
