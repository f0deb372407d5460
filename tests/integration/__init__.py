"""
Integration tests for the fulfillment library.

These tests require a PostgreSQL instance provisioned through testcontainers
and are skipped automatically if Docker or testcontainers is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
