"""
PostgreSQL repository adapter - Implements the TokenStore, AccountStore and
UnitOfWork protocols.

This module provides the PostgreSQL implementation of the domain's
persistence ports using psycopg3 (async) with raw SQL.

Concurrency Design:
-------------------
Every domain operation runs inside one transaction opened by
PostgresUnitOfWork. Invariants are held by the database, never by
in-process locks:

1. **pg_advisory_xact_lock(hashtext(email))**: serializes issuance and
   resend for one email across all server instances.

2. **SELECT ... FOR UPDATE**: the active token of an episode is row-locked
   while a code is checked, so concurrent duplicate submissions queue up
   and the second one sees the token already verified.

3. **UPDATE ... WHERE NOT verified**: the verified flag flips exactly once.

4. **Partial unique index** on (email, session_id) for active tokens, and
   UNIQUE constraints + ON CONFLICT upserts for accounts, projects and
   memberships.

Role-partition SQL is chosen from static per-partition statements; no
identifier is ever interpolated from input.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from onboarding.domain.exceptions import DatastoreUnavailable
from onboarding.domain.models import (
    Account,
    AccountPartition,
    CodeFlow,
    Role,
    StagedClient,
    StagedMember,
    StagedProject,
    VerificationToken,
)

logger = logging.getLogger(__name__)

_TOKEN_COLUMNS = """
    id, email, code, session_id, flow, role, attempts, failures, verified,
    superseded, pending_secret, staged_payload, created_at, expires_at
"""

_FIND_ACCOUNT_SQL = {
    AccountPartition.CLIENT: """
        SELECT id, company_email AS email, password_hash, verified
        FROM clients WHERE company_email = %s
    """,
    AccountPartition.STAFF_USER: """
        SELECT id, email, password_hash, verified
        FROM users WHERE email = %s
    """,
    AccountPartition.TEAM_MEMBER: """
        SELECT id, email, password_hash, verified
        FROM team_members WHERE email = %s
    """,
}

_SET_PASSWORD_SQL = {
    AccountPartition.CLIENT: """
        UPDATE clients SET password_hash = %s, verified = TRUE,
            verified_at = COALESCE(verified_at, NOW()) WHERE company_email = %s
    """,
    AccountPartition.STAFF_USER: """
        UPDATE users SET password_hash = %s, verified = TRUE,
            verified_at = COALESCE(verified_at, NOW()) WHERE email = %s
    """,
    AccountPartition.TEAM_MEMBER: """
        UPDATE team_members SET password_hash = %s, verified = TRUE,
            verified_at = COALESCE(verified_at, NOW()) WHERE email = %s
    """,
}

_MARK_VERIFIED_SQL = (
    "UPDATE clients SET verified = TRUE, verified_at = COALESCE(verified_at, NOW()) "
    "WHERE company_email = %s AND NOT verified",
    "UPDATE users SET verified = TRUE, verified_at = COALESCE(verified_at, NOW()) "
    "WHERE email = %s AND NOT verified",
    "UPDATE team_members SET verified = TRUE, verified_at = COALESCE(verified_at, NOW()) "
    "WHERE email = %s AND NOT verified",
)

_MARK_UNVERIFIED_SQL = (
    "UPDATE clients SET verified = FALSE WHERE company_email = %s AND verified",
    "UPDATE users SET verified = FALSE WHERE email = %s AND verified",
    "UPDATE team_members SET verified = FALSE WHERE email = %s AND verified",
)


def _token_from_row(row: dict[str, Any]) -> VerificationToken:
    return VerificationToken(
        id=row["id"],
        email=row["email"],
        code=row["code"],
        session_id=row["session_id"],
        flow=CodeFlow(row["flow"]),
        role=Role(row["role"]) if row["role"] else None,
        attempts=row["attempts"],
        failures=row["failures"],
        verified=row["verified"],
        superseded=row["superseded"],
        pending_secret=row["pending_secret"],
        staged_payload=row["staged_payload"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


class PostgresTokenStore:
    """
    Implements TokenStore protocol via psycopg3.

    Bound to a connection whose transaction is managed by PostgresUnitOfWork.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def lock_email(self, email: str) -> None:
        await self._conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (email,))

    async def insert(self, token: VerificationToken) -> int:
        sql = """
            INSERT INTO verification_tokens
                (email, code, session_id, flow, role, attempts, failures,
                 pending_secret, staged_payload, created_at, expires_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
        """
        cursor = await self._conn.execute(
            sql,
            (
                token.email,
                token.code,
                token.session_id,
                token.flow.value,
                token.role.value if token.role else None,
                token.attempts,
                token.failures,
                token.pending_secret,
                Jsonb(token.staged_payload) if token.staged_payload is not None else None,
                token.created_at,
                token.expires_at,
            ),
        )
        row = await cursor.fetchone()
        return row[0]

    async def latest_for_email(self, email: str) -> VerificationToken | None:
        sql = f"""
            SELECT {_TOKEN_COLUMNS} FROM verification_tokens
            WHERE email = %s
            ORDER BY created_at DESC, id DESC
            LIMIT 1
        """
        return await self._fetch_one(sql, (email,))

    async def lock_active(self, email: str, session_id: str) -> VerificationToken | None:
        sql = f"""
            SELECT {_TOKEN_COLUMNS} FROM verification_tokens
            WHERE email = %s AND session_id = %s AND NOT verified AND NOT superseded
            FOR UPDATE
        """
        return await self._fetch_one(sql, (email, session_id))

    async def lock_active_for_flow(self, email: str, flow: CodeFlow) -> VerificationToken | None:
        sql = f"""
            SELECT {_TOKEN_COLUMNS} FROM verification_tokens
            WHERE email = %s AND flow = %s AND NOT verified AND NOT superseded
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            FOR UPDATE
        """
        return await self._fetch_one(sql, (email, flow.value))

    async def find_verified(self, email: str, session_id: str) -> list[VerificationToken]:
        sql = f"""
            SELECT {_TOKEN_COLUMNS} FROM verification_tokens
            WHERE email = %s AND session_id = %s AND verified
            ORDER BY verified_at DESC, id DESC
        """
        async with self._conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, (email, session_id))
            return [_token_from_row(row) for row in await cursor.fetchall()]

    async def mark_verified(self, token_id: int) -> bool:
        cursor = await self._conn.execute(
            "UPDATE verification_tokens SET verified = TRUE, verified_at = NOW() "
            "WHERE id = %s AND NOT verified",
            (token_id,),
        )
        return cursor.rowcount == 1

    async def record_failure(self, token_id: int) -> int:
        cursor = await self._conn.execute(
            "UPDATE verification_tokens SET failures = failures + 1 WHERE id = %s RETURNING failures",
            (token_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def supersede(self, token_id: int) -> None:
        await self._conn.execute(
            "UPDATE verification_tokens SET superseded = TRUE WHERE id = %s", (token_id,)
        )

    async def supersede_session(self, email: str, session_id: str) -> int:
        cursor = await self._conn.execute(
            "UPDATE verification_tokens SET superseded = TRUE "
            "WHERE email = %s AND session_id = %s AND NOT verified AND NOT superseded",
            (email, session_id),
        )
        return cursor.rowcount

    async def supersede_flow(self, email: str, flow: CodeFlow) -> int:
        cursor = await self._conn.execute(
            "UPDATE verification_tokens SET superseded = TRUE "
            "WHERE email = %s AND flow = %s AND NOT verified AND NOT superseded",
            (email, flow.value),
        )
        return cursor.rowcount

    async def delete_for_email(self, email: str, flow: CodeFlow | None = None) -> int:
        if flow is None:
            cursor = await self._conn.execute(
                "DELETE FROM verification_tokens WHERE email = %s", (email,)
            )
        else:
            cursor = await self._conn.execute(
                "DELETE FROM verification_tokens WHERE email = %s AND flow = %s",
                (email, flow.value),
            )
        return cursor.rowcount

    async def _fetch_one(self, sql: str, params: tuple) -> VerificationToken | None:
        async with self._conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(sql, params)
            row = await cursor.fetchone()
        return _token_from_row(row) if row else None


class PostgresAccountStore:
    """
    Implements AccountStore protocol via psycopg3.

    All inserts are idempotent: ON CONFLICT upserts for accounts and
    projects, ON CONFLICT DO NOTHING for memberships.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def find_account(self, partition: AccountPartition, email: str) -> Account | None:
        async with self._conn.cursor(row_factory=dict_row) as cursor:
            await cursor.execute(_FIND_ACCOUNT_SQL[partition], (email,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return Account(
            partition=partition,
            id=row["id"],
            email=row["email"],
            password_hash=row["password_hash"],
            verified=row["verified"],
        )

    async def set_password(
        self, partition: AccountPartition, email: str, password_hash: str
    ) -> bool:
        cursor = await self._conn.execute(_SET_PASSWORD_SQL[partition], (password_hash, email))
        return cursor.rowcount == 1

    async def upsert_client(self, client: StagedClient) -> int:
        sql = """
            INSERT INTO clients
                (company_name, company_email, representative_name, title,
                 phone_number, password_hash, verified, verified_at)
            VALUES (%s, %s, %s, %s, %s, %s, TRUE, NOW())
            ON CONFLICT (company_email) DO UPDATE
            SET company_name = COALESCE(EXCLUDED.company_name, clients.company_name),
                representative_name = COALESCE(EXCLUDED.representative_name, clients.representative_name),
                title = COALESCE(EXCLUDED.title, clients.title),
                phone_number = COALESCE(EXCLUDED.phone_number, clients.phone_number),
                password_hash = COALESCE(EXCLUDED.password_hash, clients.password_hash),
                verified = TRUE,
                verified_at = COALESCE(clients.verified_at, NOW())
            RETURNING id
        """
        return await self._returning_id(
            sql,
            (
                client.company_name,
                client.company_email,
                client.representative_name,
                client.title,
                client.phone_number,
                client.password_hash,
            ),
        )

    async def ensure_project(self, project: StagedProject, client_id: int) -> int:
        # The no-op update lets RETURNING hand back the existing id
        sql = """
            INSERT INTO projects (name, location, contract_reference, client_id)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (name, client_id) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
        """
        return await self._returning_id(
            sql, (project.name, project.location, project.contract_reference, client_id)
        )

    async def upsert_staff_user(self, member: StagedMember, role: Role) -> int:
        sql = """
            INSERT INTO users (name, company, email, phone, role)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (email) DO UPDATE
            SET name = COALESCE(EXCLUDED.name, users.name),
                company = COALESCE(EXCLUDED.company, users.company),
                phone = COALESCE(EXCLUDED.phone, users.phone)
            RETURNING id
        """
        return await self._returning_id(
            sql, (member.name, member.company, member.email, member.phone, role.value)
        )

    async def add_project_user(self, user_id: int, project_id: int, role: Role) -> None:
        await self._conn.execute(
            "INSERT INTO project_users (user_id, project_id, role) VALUES (%s, %s, %s) "
            "ON CONFLICT (user_id, project_id) DO NOTHING",
            (user_id, project_id, role.value),
        )

    async def upsert_team_member(self, member: StagedMember) -> int:
        sql = """
            INSERT INTO team_members (name, position, task, email, phone)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (email) DO UPDATE
            SET name = COALESCE(EXCLUDED.name, team_members.name),
                position = COALESCE(EXCLUDED.position, team_members.position),
                task = COALESCE(EXCLUDED.task, team_members.task),
                phone = COALESCE(EXCLUDED.phone, team_members.phone)
            RETURNING id
        """
        return await self._returning_id(
            sql, (member.name, member.position, member.task, member.email, member.phone)
        )

    async def add_project_team_member(self, team_member_id: int, project_id: int) -> None:
        await self._conn.execute(
            "INSERT INTO project_team_members (team_member_id, project_id) VALUES (%s, %s) "
            "ON CONFLICT (team_member_id, project_id) DO NOTHING",
            (team_member_id, project_id),
        )

    async def mark_verified(self, email: str) -> int:
        return await self._update_each(_MARK_VERIFIED_SQL, email)

    async def mark_unverified(self, email: str) -> int:
        return await self._update_each(_MARK_UNVERIFIED_SQL, email)

    async def _update_each(self, statements: tuple[str, ...], email: str) -> int:
        changed = 0
        for sql in statements:
            cursor = await self._conn.execute(sql, (email,))
            changed += cursor.rowcount
        return changed

    async def delete_unverified_signup(self, email: str) -> int:
        staged_users = await self._ids(
            """
            SELECT pu.user_id FROM project_users pu
            JOIN projects p ON p.id = pu.project_id
            JOIN clients c ON c.id = p.client_id
            WHERE c.company_email = %s AND c.verified_at IS NULL
            """,
            (email,),
        )
        staged_team = await self._ids(
            """
            SELECT ptm.team_member_id FROM project_team_members ptm
            JOIN projects p ON p.id = ptm.project_id
            JOIN clients c ON c.id = p.client_id
            WHERE c.company_email = %s AND c.verified_at IS NULL
            """,
            (email,),
        )

        # Memberships go with their projects (ON DELETE CASCADE)
        await self._conn.execute(
            "DELETE FROM projects WHERE client_id IN "
            "(SELECT id FROM clients WHERE company_email = %s AND verified_at IS NULL)",
            (email,),
        )
        if staged_users:
            await self._conn.execute(
                """
                DELETE FROM users u
                WHERE u.id = ANY(%s) AND u.verified_at IS NULL
                  AND NOT EXISTS (SELECT 1 FROM project_users pu WHERE pu.user_id = u.id)
                """,
                (staged_users,),
            )
        if staged_team:
            await self._conn.execute(
                """
                DELETE FROM team_members t
                WHERE t.id = ANY(%s) AND t.verified_at IS NULL
                  AND NOT EXISTS (
                      SELECT 1 FROM project_team_members ptm WHERE ptm.team_member_id = t.id
                  )
                """,
                (staged_team,),
            )
        cursor = await self._conn.execute(
            "DELETE FROM clients WHERE company_email = %s AND verified_at IS NULL", (email,)
        )
        return cursor.rowcount

    async def _returning_id(self, sql: str, params: tuple) -> int:
        cursor = await self._conn.execute(sql, params)
        row = await cursor.fetchone()
        return row[0]

    async def _ids(self, sql: str, params: tuple) -> list[int]:
        cursor = await self._conn.execute(sql, params)
        return [row[0] for row in await cursor.fetchall()]


class PostgresTransaction:
    """Token and account stores sharing one connection and transaction."""

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self.tokens = PostgresTokenStore(conn)
        self.accounts = PostgresAccountStore(conn)


class PostgresUnitOfWork:
    """
    Implements UnitOfWork protocol over an AsyncConnectionPool.

    Driver and pool errors are re-raised as DatastoreUnavailable so the
    domain never sees psycopg types.
    """

    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[PostgresTransaction]:
        try:
            async with self._pool.connection() as conn, conn.transaction():
                yield PostgresTransaction(conn)
        except psycopg.Error as e:
            logger.error("Database transaction failed: %s", e.__class__.__name__, exc_info=True)
            raise DatastoreUnavailable("Database operation failed") from e


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


async def run_migrations(pool: AsyncConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> int:
    """
    Apply every ``*.sql`` file in ``migrations_dir`` in filename order.

    Each file runs in its own transaction and must be idempotent, since
    the whole set is replayed on every startup.

    Returns:
        Number of files applied

    Raises:
        DatastoreUnavailable: If a file fails; later files are not run
    """
    if not migrations_dir.is_dir():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return 0

    sql_files = sorted(migrations_dir.glob("*.sql"))
    logger.info("Applying %d migration(s) from %s", len(sql_files), migrations_dir)

    for sql_file in sql_files:
        try:
            async with pool.connection() as conn, conn.transaction():
                await conn.execute(sql_file.read_text())
        except psycopg.Error as e:
            logger.error("Migration %s failed: %s", sql_file.name, e.__class__.__name__, exc_info=True)
            raise DatastoreUnavailable(f"Migration failed: {sql_file.name}") from e
        logger.info("Applied migration %s", sql_file.name)

    return len(sql_files)
