"""
Credential verifier - role-aware login, first-login setup and password reset.

Roles map onto a closed set of account partitions; the repository owns one
fixed query per partition. Passwords are only ever compared through bcrypt.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from .models import CodeFlow, IssuedCode, normalize_email, resolve_role
from .ports import LoginResult, UnitOfWork, VerifyResult
from .security import check_password, hash_password
from .verification import VerificationService

logger = logging.getLogger(__name__)


class ResetResult(Enum):
    SUCCESS = "success"
    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    LOCKED = "locked"
    NOT_FOUND = "not_found"


_RESET_RESULTS = {
    VerifyResult.INVALID_CODE: ResetResult.INVALID_CODE,
    VerifyResult.EXPIRED: ResetResult.EXPIRED,
    VerifyResult.LOCKED: ResetResult.LOCKED,
    VerifyResult.NOT_FOUND: ResetResult.NOT_FOUND,
}


@dataclass
class CredentialService:
    """Domain service for login checks and password management."""

    unit_of_work: UnitOfWork
    verification: VerificationService
    bcrypt_cost: int = 10

    async def login(self, role: str, email: str, password: str) -> LoginResult:
        """
        Check credentials for a role.

        Raises:
            UnknownRole: If the role does not map to an account partition
        """
        partition = resolve_role(role).partition
        normalized_email = normalize_email(email)

        async with self.unit_of_work() as tx:
            account = await tx.accounts.find_account(partition, normalized_email)

        if account is None:
            return LoginResult.NOT_FOUND
        if not account.password_hash:
            return LoginResult.FIRST_LOGIN
        if not await check_password(password, account.password_hash):
            return LoginResult.INCORRECT_PASSWORD
        if not account.verified:
            return LoginResult.UNVERIFIED
        return LoginResult.SUCCESS

    async def send_first_login_code(
        self, role: str, email: str, password: str
    ) -> IssuedCode | LoginResult:
        """
        Start first-login verification for an account without a password.

        The password is hashed and parked on the token; it is written to the
        account only when the code is confirmed.

        Returns:
            IssuedCode on success, otherwise NOT_FOUND or PASSWORD_ALREADY_SET
        """
        parsed_role = resolve_role(role)
        normalized_email = normalize_email(email)

        async with self.unit_of_work() as tx:
            account = await tx.accounts.find_account(parsed_role.partition, normalized_email)

        if account is None:
            return LoginResult.NOT_FOUND
        if account.password_hash:
            return LoginResult.PASSWORD_ALREADY_SET

        return await self.verification.issue_code(
            normalized_email,
            CodeFlow.FIRST_LOGIN,
            role=parsed_role,
            pending_secret=await hash_password(password, self.bcrypt_cost),
        )

    async def request_password_reset(self, role: str, email: str) -> IssuedCode | None:
        """
        Send a reset code if the account exists.

        Returns:
            IssuedCode, or None when no account matched (no email is sent)
        """
        parsed_role = resolve_role(role)
        normalized_email = normalize_email(email)

        async with self.unit_of_work() as tx:
            account = await tx.accounts.find_account(parsed_role.partition, normalized_email)

        if account is None:
            logger.info("Password reset requested for unknown %s account", parsed_role.value)
            return None

        return await self.verification.issue_code(
            normalized_email, CodeFlow.PASSWORD_RESET, role=parsed_role
        )

    async def reset_password(self, email: str, code: str, new_password: str) -> ResetResult:
        """
        Replace a password using a reset code.

        The code is single-use: every reset token for the email is deleted
        in the same transaction that stores the new hash. The password is
        only hashed once the code has been accepted.
        """
        normalized_email = normalize_email(email)

        async with self.unit_of_work() as tx:
            result, token = await self.verification.consume_reset_code(tx, normalized_email, code)
            if token is None or token.role is None:
                return _RESET_RESULTS.get(result, ResetResult.NOT_FOUND)

            password_hash = await hash_password(new_password, self.bcrypt_cost)
            updated = await tx.accounts.set_password(token.role.partition, normalized_email, password_hash)
            await tx.tokens.delete_for_email(normalized_email, CodeFlow.PASSWORD_RESET)
            if not updated:
                return ResetResult.NOT_FOUND

        logger.info("Password reset for %s account", token.role.value)
        return ResetResult.SUCCESS
