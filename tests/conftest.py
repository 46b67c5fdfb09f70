"""Pytest configuration and fixtures."""

import os
import random
import uuid

import pytest
import pytest_asyncio

SEED_WIDTHS = (4, 16)


@pytest.fixture
def sqlite_url(tmp_path):
    """URL of a throwaway SQLite file."""
    return f"sqlite:///{tmp_path / 'overfetch.db'}"


@pytest_asyncio.fixture
async def sqlite_engine(sqlite_url):
    """Async engine on an empty SQLite database."""
    from overfetch import create_engine

    engine = create_engine(sqlite_url)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_engine():
    """Async engine on PostgreSQL.

    Set DATABASE_URL environment variable to use a real PostgreSQL database.
    Otherwise, this fixture is skipped.
    """
    from overfetch import create_engine

    url = os.environ.get("DATABASE_URL")
    if not url or not url.startswith(("postgres://", "postgresql")):
        pytest.skip("DATABASE_URL not set")

    engine = create_engine(url)
    yield engine
    await engine.dispose()


@pytest.fixture
def row_factory():
    from overfetch import RowFactory

    return RowFactory(random.Random(1234))


@pytest.fixture
def run_id():
    return uuid.uuid4()


@pytest_asyncio.fixture
async def seeded(sqlite_engine, row_factory, run_id):
    """Tables 4 and 16 with a few bulk rows and this test's run row.

    Yields the engine and the email seeded per width for ``run_id``.
    """
    from overfetch import Seeder

    seeder = Seeder(sqlite_engine, widths=SEED_WIDTHS, row_factory=row_factory)
    await seeder.create_schema()
    await seeder.seed_bulk(25)
    emails = await seeder.seed_run_row(run_id)
    yield sqlite_engine, emails
