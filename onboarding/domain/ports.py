"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from contextlib import AbstractAsyncContextManager
from enum import Enum
from typing import Protocol

from .models import (
    Account,
    AccountPartition,
    CodeFlow,
    Role,
    StagedClient,
    StagedMember,
    StagedProject,
    VerificationToken,
)


class VerifyResult(Enum):
    """
    Result of a verification attempt.

    Only VERIFIED and ALREADY_VERIFIED count as success for callers;
    every other value is an expected negative, not a fault.
    """

    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    LOCKED = "locked"
    NOT_FOUND = "not_found"

    @property
    def ok(self) -> bool:
        return self in (VerifyResult.VERIFIED, VerifyResult.ALREADY_VERIFIED)


class LoginResult(Enum):
    SUCCESS = "success"
    FIRST_LOGIN = "first_login"
    NOT_FOUND = "not_found"
    UNVERIFIED = "unverified"
    INCORRECT_PASSWORD = "incorrect_password"
    PASSWORD_ALREADY_SET = "password_already_set"


class TokenStore(Protocol):
    """Port interface for verification token persistence."""

    async def lock_email(self, email: str) -> None:
        """Serialize token issuance for one email until the transaction ends."""
        ...

    async def insert(self, token: VerificationToken) -> int:
        """Insert a new token row and return its id."""
        ...

    async def latest_for_email(self, email: str) -> VerificationToken | None:
        """Most recently created token for the email, any state."""
        ...

    async def lock_active(self, email: str, session_id: str) -> VerificationToken | None:
        """
        Fetch and row-lock the active (unverified, not superseded) token for
        an episode. Expired tokens are still returned; callers check expiry.
        """
        ...

    async def lock_active_for_flow(self, email: str, flow: CodeFlow) -> VerificationToken | None:
        """Fetch and row-lock the newest active token of a flow for the email."""
        ...

    async def find_verified(self, email: str, session_id: str) -> list[VerificationToken]:
        """Verified tokens of an episode, newest first."""
        ...

    async def mark_verified(self, token_id: int) -> bool:
        """
        Flip verified false -> true.

        Returns:
            True if this call changed the row, False if it was already verified
        """
        ...

    async def record_failure(self, token_id: int) -> int:
        """Increment the wrong-code counter and return the new value."""
        ...

    async def supersede(self, token_id: int) -> None:
        ...

    async def supersede_session(self, email: str, session_id: str) -> int:
        ...

    async def supersede_flow(self, email: str, flow: CodeFlow) -> int:
        ...

    async def delete_for_email(self, email: str, flow: CodeFlow | None = None) -> int:
        """Delete token rows for the email, optionally only those of one flow."""
        ...


class AccountStore(Protocol):
    """Port interface for account, project and membership persistence."""

    async def find_account(self, partition: AccountPartition, email: str) -> Account | None:
        ...

    async def set_password(
        self, partition: AccountPartition, email: str, password_hash: str
    ) -> bool:
        """Store a password hash and mark the account verified."""
        ...

    async def upsert_client(self, client: StagedClient) -> int:
        """Insert or update a client by email, marking it verified."""
        ...

    async def ensure_project(self, project: StagedProject, client_id: int) -> int:
        """Return the id of the (name, client) project, creating it if needed."""
        ...

    async def upsert_staff_user(self, member: StagedMember, role: Role) -> int:
        ...

    async def add_project_user(self, user_id: int, project_id: int, role: Role) -> None:
        ...

    async def upsert_team_member(self, member: StagedMember) -> int:
        ...

    async def add_project_team_member(self, team_member_id: int, project_id: int) -> None:
        ...

    async def mark_verified(self, email: str) -> int:
        """Flip verified back to true in every partition holding the email."""
        ...

    async def mark_unverified(self, email: str) -> int:
        """
        Flip verified to false in every partition holding the email.

        The first-verification timestamp is kept.
        """
        ...

    async def delete_unverified_signup(self, email: str) -> int:
        """
        Remove a client that never completed verification and everything
        staged under it: memberships, projects, orphaned never-verified
        members, then the client. De-verified accounts are kept.

        Returns:
            Number of client rows deleted (0 or 1)
        """
        ...


class Transaction(Protocol):
    """Stores bound to one datastore transaction."""

    tokens: TokenStore
    accounts: AccountStore


class UnitOfWork(Protocol):
    """
    Opens a datastore transaction.

    Leaving the context normally commits; an exception rolls back.
    """

    def __call__(self) -> AbstractAsyncContextManager[Transaction]:
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    async def send_verification_code(
        self, email: str, code: str, *, flow: CodeFlow, session_id: str
    ) -> None:
        """
        Deliver a verification code.

        Raises:
            EmailDeliveryFailed: If the provider did not accept the message
        """
        ...
