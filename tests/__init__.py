"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/fakes.py - In-memory HTTP session, fetcher and sleep doubles
- tests/conftest.py - Shared pytest fixtures (settings, temp paths)
- tests/test_*.py - One module per component, plus scheduler end-to-end runs

No test touches the network or sleeps for real beyond a few milliseconds.
"""
