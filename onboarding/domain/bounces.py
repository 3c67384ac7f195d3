"""
Bounce handler - de-verify accounts whose mail permanently failed.

Each event is processed in its own transaction; a malformed entry or a
datastore error on one event never blocks the rest of the batch.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .exceptions import DownstreamFailure
from .models import normalize_email
from .ports import UnitOfWork

logger = logging.getLogger(__name__)

HARD_FAILURE_EVENTS = frozenset({"bounce", "bounced", "dropped", "blocked"})


@dataclass(frozen=True)
class BounceReport:
    received: int = 0
    deverified: int = 0
    skipped: int = 0


@dataclass
class BounceHandler:
    """Consumes delivery-event batches from the mail provider."""

    unit_of_work: UnitOfWork

    async def handle(self, events: Iterable[Any] | None) -> BounceReport:
        received = deverified = skipped = 0

        for event in events or ():
            received += 1
            email = _hard_failure_email(event)
            if email is None:
                skipped += 1
                continue

            try:
                async with self.unit_of_work() as tx:
                    changed = await tx.accounts.mark_unverified(email)
            except DownstreamFailure:
                logger.error("Failed to de-verify %s", email, exc_info=True)
                skipped += 1
                continue

            if changed:
                deverified += 1
            logger.info("Delivery failure for %s; de-verified %d account(s)", email, changed)

        return BounceReport(received=received, deverified=deverified, skipped=skipped)


def _hard_failure_email(event: Any) -> str | None:
    if not isinstance(event, dict):
        logger.warning("Skipping malformed delivery event: %r", event)
        return None

    event_type = event.get("event")
    email = event.get("email")
    if not isinstance(event_type, str) or event_type.lower() not in HARD_FAILURE_EVENTS:
        return None
    if not isinstance(email, str) or "@" not in email:
        logger.warning("Skipping %s event without a valid email", event_type)
        return None
    return normalize_email(email)
