"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging verification codes for local development.
"""

import logging

from onboarding.domain.models import CodeFlow

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For development only - the code is written to the log.
    """

    async def send_verification_code(
        self, email: str, code: str, *, flow: CodeFlow, session_id: str
    ) -> None:
        """
        Log verification code to console (simulates email delivery).

        Args:
            email: Recipient email address (normalized by domain layer)
            code: Numeric verification code
            flow: What the code unlocks
            session_id: Verification episode the code belongs to
        """
        logger.info(
            "[VERIFICATION] Flow: %s Email: %s Session: %s Code: %s",
            flow.value,
            email,
            session_id,
            code,
        )
