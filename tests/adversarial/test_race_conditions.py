"""
Adversarial tests for race condition prevention.

Verifies that concurrent operations on the same email are handled atomically,
preventing callers from exploiting races to:
- Commit the same staged signup twice
- Hold more than one active code per episode
- Overrun the resend budget

Row locks (SELECT ... FOR UPDATE), advisory locks and conditional updates
in PostgreSQL are what make these hold; nothing is locked in process.
"""

import asyncio

import pytest
from psycopg_pool import AsyncConnectionPool

from onboarding.domain.ports import VerifyResult
from onboarding.domain.verification import VerificationService
from tests.factories import make_staged_account
from tests.fakes import RecordingEmailSender

pytestmark = [pytest.mark.integration, pytest.mark.adversarial]


async def scalar(pool: AsyncConnectionPool, sql: str) -> int:
    async with pool.connection() as conn:
        cursor = await conn.execute(sql)
        row = await cursor.fetchone()
    return row[0]


class TestRaceConditions:
    async def test_concurrent_verify_commits_exactly_once(
        self, verification: VerificationService, sender: RecordingEmailSender, pool: AsyncConnectionPool
    ) -> None:
        """
        Simulate a double-clicked verify link and a code submission racing.

        Exactly one request commits; the others see the token verified.
        """
        issued = await verification.issue_code(
            "owner@acme.com", staged=make_staged_account().to_payload()
        )
        code = sender.last_code

        results = await asyncio.gather(
            *(verification.verify_code("owner@acme.com", issued.session_id, code) for _ in range(8))
        )

        assert results.count(VerifyResult.VERIFIED) == 1
        assert results.count(VerifyResult.ALREADY_VERIFIED) == 7
        assert await scalar(pool, "SELECT COUNT(*) FROM clients") == 1
        assert await scalar(pool, "SELECT COUNT(*) FROM projects") == 1

    async def test_concurrent_issue_leaves_one_active_token(
        self, verification: VerificationService, pool: AsyncConnectionPool
    ) -> None:
        await asyncio.gather(*(verification.issue_code("owner@acme.com") for _ in range(6)))

        active = await scalar(
            pool,
            "SELECT COUNT(*) FROM verification_tokens "
            "WHERE email = 'owner@acme.com' AND NOT verified AND NOT superseded",
        )
        assert active == 1

    async def test_concurrent_resends_respect_budget(
        self, verification: VerificationService, pool: AsyncConnectionPool
    ) -> None:
        """Five racing resends: two reissue, the rest hit the limit."""
        await verification.issue_code("owner@acme.com")

        outcomes = await asyncio.gather(*(verification.resend("owner@acme.com") for _ in range(5)))

        issued = [o for o in outcomes if o.issued is not None]
        exhausted = [o for o in outcomes if o.exhausted]
        assert len(issued) >= 2
        assert len(exhausted) >= 1
        max_attempts = await scalar(pool, "SELECT COALESCE(MAX(attempts), 0) FROM verification_tokens")
        assert max_attempts <= 2
