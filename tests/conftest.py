"""
Pytest configuration and fixtures for customer-etl tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

import pytest
from testcontainers.postgres import PostgresContainer

from customer_etl.core.config import PipelineConfig
from customer_etl.core.models import Batch, RevenueTier, TransformedRecord

# Fixed run timestamp so derived fields are reproducible
RUN_AT = datetime(2025, 10, 19, 6, 0, tzinfo=timezone.utc)
RUN_DATE = RUN_AT.date()

POSTGRES_USER = "test_etl"
POSTGRES_PASSWORD = "test_password"
POSTGRES_DB = "test_customers"


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that exercise several components together"
    )
    config.addinivalue_line(
        "markers", "postgres: Tests that require a PostgreSQL container (Docker)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# RECORD FIXTURES
# =======================

def raw_customer(customer_id: int | str = 1, **overrides) -> dict[str, str]:
    """A valid raw customer row; keyword arguments replace fields."""
    row = {
        "customer_id": str(customer_id),
        "name": f"Customer {customer_id}",
        "email": f"customer{customer_id}@example.com",
        "region": "EMEA",
        "segment": "SMB",
        "status": "active",
        "signup_date": (RUN_DATE - timedelta(days=365)).isoformat(),
        "annual_revenue": "100000",
    }
    row.update({key: str(value) for key, value in overrides.items()})
    return row


def transformed_record(customer_id: int = 1, **overrides) -> TransformedRecord:
    """An accepted customer record with fixed derived fields."""
    values = {
        "customer_id": customer_id,
        "name": f"Customer {customer_id}",
        "email": f"customer{customer_id}@example.com",
        "region": "EMEA",
        "segment": "SMB",
        "status": "active",
        "signup_date": RUN_DATE - timedelta(days=365),
        "annual_revenue": Decimal("100000"),
        "revenue_tier": RevenueTier.MID,
        "customer_lifetime_value": Decimal("200000.00"),
        "days_since_signup": 365,
        "data_quality_score": 100,
        "processed_at": RUN_AT,
    }
    values.update(overrides)
    return TransformedRecord(**values)


def make_batch(sequence_number: int, *customer_ids: int) -> Batch:
    """A sealed batch of transformed records for the given ids."""
    ids = customer_ids or (sequence_number,)
    return Batch(
        sequence_number=sequence_number,
        records=tuple(transformed_record(customer_id) for customer_id in ids),
    )


@pytest.fixture
def run_at() -> datetime:
    return RUN_AT


@pytest.fixture
def run_date() -> date:
    return RUN_DATE


@pytest.fixture
def fixed_clock():
    """Clock that always returns the fixed run timestamp"""
    return lambda: RUN_AT


@pytest.fixture
def make_raw():
    """Factory for valid raw customer rows"""
    return raw_customer


@pytest.fixture
def fast_config() -> PipelineConfig:
    """Config with tiny batches and millisecond backoff"""
    return PipelineConfig(
        batch_size=2,
        retry_attempts=3,
        backoff_base_ms=1,
        backoff_max_ms=5,
        concurrency=2,
        queue_depth=2,
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips dependent tests when Docker is not available.

    Yields:
        PostgresContainer instance
    """
    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        dbname=POSTGRES_DB,
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def db_pool(postgres_container):
    """
    Open connection pool against the test container with a fresh schema

    Yields:
        DatabaseConnectionPool with customer tables created and empty
    """
    from customer_etl.warehouse import DatabaseConnectionPool, SchemaManager

    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database=POSTGRES_DB,
        user=POSTGRES_USER,
        password=POSTGRES_PASSWORD,
        max_size=4,
        timeout=10.0,
    )
    pool.open()
    schema = SchemaManager(pool)
    schema.drop_schema()
    schema.ensure_schema()
    try:
        yield pool
    finally:
        pool.close()


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove ETL_* and DB_* variables so tests see only what they set"""
    for key in list(os.environ):
        if key.startswith("ETL_") or key.startswith("DB_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch
