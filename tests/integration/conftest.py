import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from intake.config.settings import Settings
from intake.database.connection import apply_schema, close_pool, get_connection, init_pool


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "invoices_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            apply_schema(conn)
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def id_prefix() -> str:
    return f"it-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def integration_cleanup(
    integration_pool: None, id_prefix: str
) -> Generator[str, None, None]:
    """Yield a unique id prefix and delete every row created under it."""
    yield id_prefix
    pattern = f"{id_prefix}%"
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM invoices WHERE invoice_id LIKE %s", (pattern,))
            cur.execute("DELETE FROM issuers WHERE issuer_id LIKE %s", (pattern,))
            cur.execute("DELETE FROM invoice_sessions WHERE session_id LIKE %s", (pattern,))
        conn.commit()
