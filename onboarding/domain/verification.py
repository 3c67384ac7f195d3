"""
Verification engine - code issuance, validation and resend policy.

Token lifecycle
===============

    issued ──(correct code, before expiry)──> verified
       │
       ├──(wrong code x max_failed_attempts)──> superseded (locked)
       ├──(resend / new issuance of same flow)──> superseded
       └──(expires_at passes)──> expired (left in place)

An episode is identified by (email, session_id). Resends keep the session
and staged data, bump ``attempts`` and supersede the previous row. Once
``attempts`` reaches ``max_resends`` the next resend discards the email's
tokens (with their staged data) and any client that never completed
verification, forcing the caller to start over.

All invariants are enforced through the datastore: row locks, conditional
updates and per-email advisory locks inside a single transaction. Nothing
is cached in process.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from .commit import commit_staged_account
from .models import (
    CodeFlow,
    IssuedCode,
    ResendOutcome,
    Role,
    StagedAccount,
    VerificationToken,
    normalize_email,
)
from .ports import EmailSender, Transaction, UnitOfWork, VerifyResult
from .security import codes_match, generate_code, generate_session_id

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class VerificationService:
    """
    Domain service for verification codes.

    Issues codes, validates submissions and drives the resend policy.
    Successful signup and first-login codes are completed in the same
    transaction that marks them verified.
    """

    unit_of_work: UnitOfWork
    email_sender: EmailSender
    code_length: int = 6
    code_ttl_seconds: int = 180
    max_resends: int = 2
    max_failed_attempts: int = 3
    clock: Callable[[], datetime] = field(default=utc_now)

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.code_ttl_seconds)

    async def issue_code(
        self,
        email: str,
        flow: CodeFlow = CodeFlow.SIGNUP,
        *,
        role: Role | None = None,
        staged: dict[str, Any] | None = None,
        pending_secret: str | None = None,
    ) -> IssuedCode:
        """
        Start a new verification episode and deliver its code.

        Earlier active tokens of the same flow for this email are superseded.

        Raises:
            EmailDeliveryFailed: If the code could not be sent
        """
        normalized_email = normalize_email(email)
        now = self.clock()
        token = VerificationToken(
            email=normalized_email,
            code=generate_code(self.code_length),
            session_id=generate_session_id(),
            flow=flow,
            role=role,
            created_at=now,
            expires_at=now + self.ttl,
            pending_secret=pending_secret,
            staged_payload=staged,
        )

        async with self.unit_of_work() as tx:
            await tx.tokens.lock_email(normalized_email)
            await tx.tokens.supersede_flow(normalized_email, flow)
            token.id = await tx.tokens.insert(token)

        logger.info("Issued %s code for %s (session %s)", flow.value, normalized_email, token.session_id)
        return await self._deliver(token)

    async def verify_code(self, email: str, session_id: str, code: str) -> VerifyResult:
        """
        Validate a submitted code for an episode.

        A correct code flips the token to verified with a conditional update
        and completes its flow in the same transaction. A repeated submission
        of an already-consumed code reports ALREADY_VERIFIED and commits
        nothing.
        """
        normalized_email = normalize_email(email)

        async with self.unit_of_work() as tx:
            token = await tx.tokens.lock_active(normalized_email, session_id)

            if token is None:
                for previous in await tx.tokens.find_verified(normalized_email, session_id):
                    if codes_match(previous.code, code):
                        return VerifyResult.ALREADY_VERIFIED
                return VerifyResult.NOT_FOUND

            result = await self._check_code(tx, token, code)
            if result is not VerifyResult.VERIFIED:
                return result

            if not await tx.tokens.mark_verified(token.id):
                return VerifyResult.ALREADY_VERIFIED

            await self._complete(tx, token)

        logger.info("Verified %s code for %s", token.flow.value, normalized_email)
        return VerifyResult.VERIFIED

    async def consume_reset_code(
        self, tx: Transaction, email: str, code: str
    ) -> tuple[VerifyResult, VerificationToken | None]:
        """
        Check a password-reset code inside the caller's transaction.

        Reset codes carry no session id; the newest active reset token for
        the email is authoritative.
        """
        token = await tx.tokens.lock_active_for_flow(email, CodeFlow.PASSWORD_RESET)
        if token is None:
            return VerifyResult.NOT_FOUND, None

        result = await self._check_code(tx, token, code)
        return result, token if result is VerifyResult.VERIFIED else None

    async def resend(self, email: str) -> ResendOutcome:
        """
        Issue the next code of the email's current episode.

        Returns:
            ResendOutcome with the session id, or exhausted=True once the
            resend budget is spent (tokens and staged data are discarded)

        Raises:
            EmailDeliveryFailed: If the code could not be sent
        """
        normalized_email = normalize_email(email)
        now = self.clock()

        async with self.unit_of_work() as tx:
            await tx.tokens.lock_email(normalized_email)
            latest = await tx.tokens.latest_for_email(normalized_email)

            if latest is None or latest.verified:
                token = VerificationToken(
                    email=normalized_email,
                    code=generate_code(self.code_length),
                    session_id=generate_session_id(),
                    flow=CodeFlow.SIGNUP,
                    created_at=now,
                    expires_at=now + self.ttl,
                    attempts=1,
                )
            elif latest.attempts >= self.max_resends:
                # Accounts that were ever verified survive, even after a bounce
                removed = await tx.accounts.delete_unverified_signup(normalized_email)
                await tx.tokens.delete_for_email(normalized_email)
                logger.warning(
                    "Resend limit reached for %s; removed %d never-verified client(s)",
                    normalized_email,
                    removed,
                )
                return ResendOutcome(exhausted=True)
            else:
                await tx.tokens.supersede_session(normalized_email, latest.session_id)
                token = latest.reissue(generate_code(self.code_length), now, self.ttl)

            token.id = await tx.tokens.insert(token)

        logger.info(
            "Resent %s code for %s (attempt %d)", token.flow.value, normalized_email, token.attempts
        )
        return ResendOutcome(issued=await self._deliver(token))

    async def _check_code(
        self, tx: Transaction, token: VerificationToken, code: str
    ) -> VerifyResult:
        # Compare before any state-based return
        code_valid = codes_match(token.code, code)

        if token.is_expired(self.clock()):
            return VerifyResult.EXPIRED

        if code_valid:
            return VerifyResult.VERIFIED

        failures = await tx.tokens.record_failure(token.id)
        if failures >= self.max_failed_attempts:
            await tx.tokens.supersede(token.id)
            logger.warning("Locked %s token for %s after %d failures", token.flow.value, token.email, failures)
            return VerifyResult.LOCKED
        return VerifyResult.INVALID_CODE

    async def _complete(self, tx: Transaction, token: VerificationToken) -> None:
        if token.flow is CodeFlow.SIGNUP:
            if token.staged_payload:
                await commit_staged_account(tx.accounts, StagedAccount.from_payload(token.staged_payload))
            else:
                # Re-confirms an existing address, e.g. after a bounce
                restored = await tx.accounts.mark_verified(token.email)
                if restored:
                    logger.info("Re-verified %d account(s) for %s", restored, token.email)
        elif token.flow is CodeFlow.FIRST_LOGIN and token.role and token.pending_secret:
            await tx.accounts.set_password(token.role.partition, token.email, token.pending_secret)

    async def _deliver(self, token: VerificationToken) -> IssuedCode:
        await self.email_sender.send_verification_code(
            token.email, token.code, flow=token.flow, session_id=token.session_id
        )
        return IssuedCode(
            email=token.email,
            session_id=token.session_id,
            expires_in_seconds=self.code_ttl_seconds,
        )
