"""Mail adapters - Verification code delivery."""

from .console import ConsoleEmailSender
from .sendgrid import SendGridEmailSender

__all__ = ["ConsoleEmailSender", "SendGridEmailSender"]
