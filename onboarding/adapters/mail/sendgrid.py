"""
SendGrid email sender adapter - Implements EmailSender protocol.

Posts plain-text messages to the SendGrid v3 mail/send endpoint. Unlike
fire-and-forget notifications, a verification code the provider did not
accept is a failed request, so errors are raised as EmailDeliveryFailed.
"""

import logging
from urllib.parse import quote, urlencode

import httpx

from onboarding.domain.exceptions import EmailDeliveryFailed
from onboarding.domain.models import CodeFlow

logger = logging.getLogger(__name__)

_SUBJECTS = {
    CodeFlow.SIGNUP: "Verify your account",
    CodeFlow.FIRST_LOGIN: "Confirm your email to set your password",
    CodeFlow.PASSWORD_RESET: "Your password reset code",
}


class SendGridEmailSender:
    """
    Implements EmailSender protocol via the SendGrid HTTP API.

    The httpx client is owned by the application lifespan and shared
    across requests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str,
        sender: str,
        verify_url: str,
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        ttl_seconds: int = 180,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._sender = sender
        self._verify_url = verify_url
        self._api_url = api_url
        self._ttl_seconds = ttl_seconds

    async def send_verification_code(
        self, email: str, code: str, *, flow: CodeFlow, session_id: str
    ) -> None:
        payload = {
            "personalizations": [{"to": [{"email": email}]}],
            "from": {"email": self._sender},
            "subject": _SUBJECTS[flow],
            "content": [{"type": "text/plain", "value": self._body(email, code, flow, session_id)}],
        }

        try:
            resp = await self._client.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json=payload,
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("SendGrid rejected %s message for %s", flow.value, email, exc_info=True)
            raise EmailDeliveryFailed("Failed to send verification email") from e

        logger.info("Sent %s code to %s", flow.value, email)

    def _body(self, email: str, code: str, flow: CodeFlow, session_id: str) -> str:
        minutes = max(1, self._ttl_seconds // 60)
        lines = [f"Your verification code is {code}."]
        if flow is CodeFlow.SIGNUP:
            params = urlencode(
                {"email": email, "session_id": session_id, "code": code}, quote_via=quote
            )
            lines.append(f"Or confirm your account here: {self._verify_url}?{params}")
        lines.append(
            f"The code expires in {minutes} minute(s). "
            "If you didn't request this, you can safely ignore this email."
        )
        return "\n\n".join(lines)
