"""
Domain models - Roles, tokens, accounts and staged signup data.

Plain dataclasses and enums. Staged signup graphs round-trip through a
JSON-compatible dict so the token store can keep them until verification.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .exceptions import UnknownRole


class CodeFlow(str, Enum):
    """What a verification code unlocks once confirmed."""

    SIGNUP = "signup"
    FIRST_LOGIN = "first_login"
    PASSWORD_RESET = "password_reset"


class AccountPartition(str, Enum):
    """
    Account tables. Each partition owns a fixed set of SQL statements in the
    repository adapter; nothing is built from request input.
    """

    CLIENT = "client"
    STAFF_USER = "staff_user"
    TEAM_MEMBER = "team_member"


class Role(str, Enum):
    """Login roles accepted by the HTTP surface."""

    CLIENT = "client"
    CONTRACTOR = "contractor"
    CONSULTANT = "consultant"
    CONTRACTOR_PM = "contractor_pm"
    CONSULTANT_PM = "consultant_pm"
    TEAM_MEMBER = "team_member"

    @property
    def partition(self) -> AccountPartition:
        return _ROLE_PARTITIONS[self]


_ROLE_PARTITIONS = {
    Role.CLIENT: AccountPartition.CLIENT,
    Role.CONTRACTOR: AccountPartition.STAFF_USER,
    Role.CONSULTANT: AccountPartition.STAFF_USER,
    Role.CONTRACTOR_PM: AccountPartition.TEAM_MEMBER,
    Role.CONSULTANT_PM: AccountPartition.TEAM_MEMBER,
    Role.TEAM_MEMBER: AccountPartition.TEAM_MEMBER,
}


def resolve_role(value: str) -> Role:
    """
    Map a role string onto the closed Role enum.

    Raises:
        UnknownRole: If the value is not a known role
    """
    try:
        return Role(value.strip().lower())
    except (ValueError, AttributeError):
        raise UnknownRole(value) from None


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


@dataclass
class VerificationToken:
    """One issued code. Rows are insert-only; resends supersede, never rewrite."""

    email: str
    code: str
    session_id: str
    flow: CodeFlow
    created_at: datetime
    expires_at: datetime
    role: Role | None = None
    attempts: int = 0
    failures: int = 0
    verified: bool = False
    superseded: bool = False
    pending_secret: str | None = None
    staged_payload: dict[str, Any] | None = None
    id: int | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def reissue(self, code: str, now: datetime, ttl: timedelta) -> "VerificationToken":
        """Next token of the same episode: same session and staged data, one more attempt."""
        return replace(
            self,
            id=None,
            code=code,
            created_at=now,
            expires_at=now + ttl,
            attempts=self.attempts + 1,
            failures=0,
            verified=False,
            superseded=False,
        )


@dataclass
class Account:
    """Login-relevant view of a row in any account partition."""

    partition: AccountPartition
    id: int
    email: str
    password_hash: str | None
    verified: bool


@dataclass
class StagedClient:
    company_email: str
    company_name: str | None = None
    representative_name: str | None = None
    title: str | None = None
    phone_number: str | None = None
    password_hash: str | None = None


@dataclass
class StagedProject:
    name: str
    location: str | None = None
    contract_reference: str | None = None


@dataclass
class StagedMember:
    """Contractor, consultant or team member attached to the staged project."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    position: str | None = None
    task: str | None = None


@dataclass
class StagedAccount:
    """Signup graph held back until the client proves control of its email."""

    client: StagedClient
    project: StagedProject | None = None
    contractor: StagedMember | None = None
    consultant: StagedMember | None = None
    team_members: list[StagedMember] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "StagedAccount":
        project = payload.get("project")
        contractor = payload.get("contractor")
        consultant = payload.get("consultant")
        return cls(
            client=StagedClient(**payload["client"]),
            project=StagedProject(**project) if project else None,
            contractor=StagedMember(**contractor) if contractor else None,
            consultant=StagedMember(**consultant) if consultant else None,
            team_members=[StagedMember(**m) for m in payload.get("team_members") or []],
        )


@dataclass(frozen=True)
class IssuedCode:
    """What the caller learns about a freshly issued code (never the code itself)."""

    email: str
    session_id: str
    expires_in_seconds: int


@dataclass(frozen=True)
class ResendOutcome:
    issued: IssuedCode | None = None
    exhausted: bool = False
