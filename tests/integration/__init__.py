"""
Integration tests for the storefront library.

These tests require a PostgreSQL instance provisioned by testcontainers and
are skipped automatically when testcontainers or Docker is not available.

Run integration tests:
    pytest tests/integration/ -v -m postgres

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
