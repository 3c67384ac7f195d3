"""
Account commit protocol - stage a signup, then commit it once verified.

Signup data is staged on the verification token and committed by the
verification engine when the code is confirmed. ``finalize`` covers
clients that keep the staged graph on their side and submit it again
after verifying; it is idempotent under retries.
"""

import logging
from dataclasses import dataclass, replace

from .commit import commit_staged_account
from .exceptions import ValidationError
from .models import CodeFlow, IssuedCode, StagedAccount, StagedMember, normalize_email
from .ports import UnitOfWork
from .security import hash_password
from .verification import VerificationService

logger = logging.getLogger(__name__)


@dataclass
class AccountCommitService:
    """Domain service owning the stage-then-commit signup protocol."""

    unit_of_work: UnitOfWork
    verification: VerificationService
    bcrypt_cost: int = 10

    async def stage_signup(self, staged: StagedAccount, password: str | None = None) -> IssuedCode:
        """
        Stage a signup graph and send the client a verification code.

        Args:
            staged: Client, project and members to commit after verification
            password: Optional client password (hashed before staging)

        Returns:
            Session details for the verification episode
        """
        staged = self._normalized(staged)
        if password:
            staged.client.password_hash = await hash_password(password, self.bcrypt_cost)

        return await self.verification.issue_code(
            staged.client.company_email,
            CodeFlow.SIGNUP,
            staged=staged.to_payload(),
        )

    async def finalize(
        self, email: str, session_id: str, staged: StagedAccount, password: str | None = None
    ) -> int | None:
        """
        Commit a client-held signup graph for a verified episode.

        Returns:
            Client id, or None if the episode has no verified signup code

        Raises:
            ValidationError: If the graph belongs to a different email
        """
        normalized_email = normalize_email(email)
        staged = self._normalized(staged)
        if staged.client.company_email != normalized_email:
            raise ValidationError("client.company_email does not match the verified email")
        if password:
            staged.client.password_hash = await hash_password(password, self.bcrypt_cost)

        async with self.unit_of_work() as tx:
            verified = [
                token
                for token in await tx.tokens.find_verified(normalized_email, session_id)
                if token.flow is CodeFlow.SIGNUP
            ]
            if not verified:
                logger.warning("Finalize refused for %s: episode not verified", normalized_email)
                return None
            return await commit_staged_account(tx.accounts, staged)

    @staticmethod
    def _normalized(staged: StagedAccount) -> StagedAccount:
        def member(m: StagedMember | None) -> StagedMember | None:
            if m is None or not m.email:
                return m
            return replace(m, email=normalize_email(m.email))

        return StagedAccount(
            client=replace(staged.client, company_email=normalize_email(staged.client.company_email)),
            project=staged.project,
            contractor=member(staged.contractor),
            consultant=member(staged.consultant),
            team_members=[member(m) for m in staged.team_members],
        )
