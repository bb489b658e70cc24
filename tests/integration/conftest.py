"""Integration test configuration.

These tests require a PostgreSQL database with the ChatSDK schema and are
skipped by default. Set CHATSDK_TEST_DSN to a libpq connection string
(e.g. ``host=localhost dbname=chatsdk_test user=chatsdk password=...``)
to enable them.
"""

import os
from pathlib import Path

import pytest

skip_no_db = pytest.mark.skipif(
    not os.environ.get("CHATSDK_TEST_DSN"),
    reason="Integration tests require CHATSDK_TEST_DSN env var",
)

_HERE = Path(__file__).parent


def pytest_collection_modifyitems(config, items):
    for item in items:
        if _HERE in Path(str(item.fspath)).parents:
            item.add_marker(skip_no_db)


@pytest.fixture()
def test_dsn() -> str:
    return os.environ["CHATSDK_TEST_DSN"]
