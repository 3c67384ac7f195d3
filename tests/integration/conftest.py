"""
Shared fixtures for integration tests.

Requires PostgreSQL reachable at DATABASE_URL;
tests are skipped when it is not.
"""

from collections.abc import AsyncGenerator

import pytest
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from onboarding.adapters.repository.postgres import PostgresUnitOfWork, run_migrations
from onboarding.config.settings import get_settings
from onboarding.domain.verification import VerificationService
from tests.fakes import RecordingEmailSender


@pytest.fixture
async def pool() -> AsyncGenerator[AsyncConnectionPool, None]:
    """Create connection pool, apply migrations and empty every table."""
    settings = get_settings()
    pool = AsyncConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=False)
    try:
        await pool.open(wait=True, timeout=3)
    except PoolTimeout:
        await pool.close()
        pytest.skip("PostgreSQL is not reachable")

    await run_migrations(pool)
    async with pool.connection() as conn:
        await conn.execute(
            "TRUNCATE verification_tokens, project_team_members, project_users, "
            "team_members, users, projects, clients RESTART IDENTITY"
        )
    yield pool
    await pool.close()


@pytest.fixture
def uow(pool: AsyncConnectionPool) -> PostgresUnitOfWork:
    return PostgresUnitOfWork(pool)


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def verification(uow: PostgresUnitOfWork, sender: RecordingEmailSender) -> VerificationService:
    return VerificationService(unit_of_work=uow, email_sender=sender)
