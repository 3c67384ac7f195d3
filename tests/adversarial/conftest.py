"""
Shared fixtures for adversarial tests.

Reuses the PostgreSQL fixtures of the integration suite: row locks and
advisory locks are only meaningful against the real datastore.
"""

from tests.integration.conftest import pool, sender, uow, verification  # noqa: F401
