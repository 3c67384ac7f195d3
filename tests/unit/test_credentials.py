"""
Unit tests for CredentialService.

Tests verify:
- Login outcomes for every account state
- Role validation
- First-login password setup through a verification code
- Single-use password reset codes
"""

from unittest.mock import AsyncMock

import pytest

from onboarding.domain.bounces import BounceHandler
from onboarding.domain.commit import commit_staged_account
from onboarding.domain.credentials import CredentialService, ResetResult
from onboarding.domain.exceptions import UnknownRole
from onboarding.domain.models import CodeFlow, IssuedCode, StagedAccount, StagedClient
from onboarding.domain.ports import LoginResult, VerifyResult
from onboarding.domain.security import hash_password
from onboarding.domain.verification import VerificationService
from tests.conftest import TEST_BCRYPT_COST
from tests.factories import make_staged_account
from tests.fakes import InMemoryUnitOfWork, RecordingEmailSender

PASSWORD = "correct-horse"


async def seed_client(uow: InMemoryUnitOfWork, email: str = "owner@acme.com", password_hash: str | None = None) -> None:
    if password_hash is None:
        password_hash = await hash_password(PASSWORD, TEST_BCRYPT_COST)
    async with uow() as tx:
        await commit_staged_account(
            tx.accounts,
            StagedAccount(client=StagedClient(company_email=email, password_hash=password_hash)),
        )


class TestLogin:
    """Tests for login."""

    async def test_success(self, credentials: CredentialService, uow: InMemoryUnitOfWork) -> None:
        await seed_client(uow)

        assert await credentials.login("client", "Owner@Acme.com", PASSWORD) is LoginResult.SUCCESS

    async def test_unknown_email(self, credentials: CredentialService) -> None:
        assert await credentials.login("client", "ghost@acme.com", PASSWORD) is LoginResult.NOT_FOUND

    async def test_incorrect_password(self, credentials: CredentialService, uow: InMemoryUnitOfWork) -> None:
        await seed_client(uow)

        result = await credentials.login("client", "owner@acme.com", "wrong-password")

        assert result is LoginResult.INCORRECT_PASSWORD

    async def test_unverified_account(self, credentials: CredentialService, uow: InMemoryUnitOfWork) -> None:
        """A correct password on a de-verified account is reported as unverified."""
        await seed_client(uow)
        async with uow() as tx:
            await tx.accounts.mark_unverified("owner@acme.com")

        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.UNVERIFIED

    async def test_resend_verification_restores_login_after_bounce(
        self,
        credentials: CredentialService,
        verification: VerificationService,
        bounces: BounceHandler,
        uow: InMemoryUnitOfWork,
        sender: RecordingEmailSender,
    ) -> None:
        await seed_client(uow)
        await bounces.handle([{"event": "bounce", "email": "owner@acme.com"}])
        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.UNVERIFIED

        outcome = await verification.resend("owner@acme.com")
        await verification.verify_code("owner@acme.com", outcome.issued.session_id, sender.last_code)

        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.SUCCESS

    async def test_account_without_password_is_first_login(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork
    ) -> None:
        async with uow() as tx:
            await commit_staged_account(tx.accounts, make_staged_account())

        result = await credentials.login("contractor", "contractor@build.com", "anything")

        assert result is LoginResult.FIRST_LOGIN

    async def test_non_bcrypt_hash_never_matches(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork
    ) -> None:
        """A stored value that is not a bcrypt hash is treated as a mismatch."""
        await seed_client(uow, password_hash=PASSWORD)

        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.INCORRECT_PASSWORD

    async def test_role_selects_partition(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork
    ) -> None:
        """A client email is unknown when logging in as a team member."""
        await seed_client(uow)

        assert await credentials.login("team_member", "owner@acme.com", PASSWORD) is LoginResult.NOT_FOUND

    @pytest.mark.parametrize("role", ["admin", "", "client; DROP TABLE clients"])
    async def test_unknown_role_is_rejected(self, credentials: CredentialService, role: str) -> None:
        with pytest.raises(UnknownRole):
            await credentials.login(role, "owner@acme.com", PASSWORD)


class TestFirstLogin:
    """Tests for send_first_login_code."""

    async def test_first_login_sets_password_after_verification(
        self,
        credentials: CredentialService,
        verification: VerificationService,
        uow: InMemoryUnitOfWork,
        sender: RecordingEmailSender,
    ) -> None:
        """The password is stored only once the emailed code is confirmed."""
        async with uow() as tx:
            await commit_staged_account(tx.accounts, make_staged_account())

        issued = await credentials.send_first_login_code("contractor", "contractor@build.com", PASSWORD)

        assert isinstance(issued, IssuedCode)
        assert sender.sent[-1]["flow"] is CodeFlow.FIRST_LOGIN
        assert uow.state.users["contractor@build.com"]["password_hash"] is None

        result = await verification.verify_code("contractor@build.com", issued.session_id, sender.last_code)

        assert result is VerifyResult.VERIFIED
        assert await credentials.login("contractor", "contractor@build.com", PASSWORD) is LoginResult.SUCCESS

    async def test_unknown_account(self, credentials: CredentialService, sender: RecordingEmailSender) -> None:
        result = await credentials.send_first_login_code("client", "ghost@acme.com", PASSWORD)

        assert result is LoginResult.NOT_FOUND
        assert sender.sent == []

    async def test_password_already_set(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork, sender: RecordingEmailSender
    ) -> None:
        await seed_client(uow)

        result = await credentials.send_first_login_code("client", "owner@acme.com", "new-password")

        assert result is LoginResult.PASSWORD_ALREADY_SET
        assert sender.sent == []


class TestPasswordReset:
    """Tests for request_password_reset and reset_password."""

    async def test_reset_replaces_password(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork, sender: RecordingEmailSender
    ) -> None:
        await seed_client(uow)
        issued = await credentials.request_password_reset("client", "owner@acme.com")

        result = await credentials.reset_password("owner@acme.com", sender.last_code, "brand-new-pass")

        assert issued is not None
        assert result is ResetResult.SUCCESS
        assert await credentials.login("client", "owner@acme.com", "brand-new-pass") is LoginResult.SUCCESS
        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.INCORRECT_PASSWORD

    async def test_reset_code_is_single_use(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork, sender: RecordingEmailSender
    ) -> None:
        await seed_client(uow)
        await credentials.request_password_reset("client", "owner@acme.com")
        code = sender.last_code

        first = await credentials.reset_password("owner@acme.com", code, "brand-new-pass")
        second = await credentials.reset_password("owner@acme.com", code, "another-pass")

        assert first is ResetResult.SUCCESS
        assert second is ResetResult.NOT_FOUND
        assert await credentials.login("client", "owner@acme.com", "brand-new-pass") is LoginResult.SUCCESS

    async def test_wrong_reset_code_keeps_password(
        self, credentials: CredentialService, uow: InMemoryUnitOfWork, sender: RecordingEmailSender
    ) -> None:
        await seed_client(uow)
        await credentials.request_password_reset("client", "owner@acme.com")
        wrong = "000000" if sender.last_code != "000000" else "111111"

        result = await credentials.reset_password("owner@acme.com", wrong, "brand-new-pass")

        assert result is ResetResult.INVALID_CODE
        assert await credentials.login("client", "owner@acme.com", PASSWORD) is LoginResult.SUCCESS

    async def test_wrong_reset_code_skips_hashing(
        self,
        credentials: CredentialService,
        uow: InMemoryUnitOfWork,
        sender: RecordingEmailSender,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """bcrypt only runs for a reset code that was accepted."""
        await seed_client(uow)
        await credentials.request_password_reset("client", "owner@acme.com")
        wrong = "000000" if sender.last_code != "000000" else "111111"
        hasher = AsyncMock(return_value="$2b$04$stub")
        monkeypatch.setattr("onboarding.domain.credentials.hash_password", hasher)

        rejected = await credentials.reset_password("owner@acme.com", wrong, "brand-new-pass")
        hasher.assert_not_awaited()
        accepted = await credentials.reset_password("owner@acme.com", sender.last_code, "brand-new-pass")

        assert rejected is ResetResult.INVALID_CODE
        assert accepted is ResetResult.SUCCESS
        hasher.assert_awaited_once_with("brand-new-pass", TEST_BCRYPT_COST)

    async def test_unknown_account_sends_nothing(
        self, credentials: CredentialService, sender: RecordingEmailSender
    ) -> None:
        assert await credentials.request_password_reset("client", "ghost@acme.com") is None
        assert sender.sent == []

    async def test_reset_without_request(self, credentials: CredentialService) -> None:
        result = await credentials.reset_password("owner@acme.com", "123456", "brand-new-pass")

        assert result is ResetResult.NOT_FOUND
