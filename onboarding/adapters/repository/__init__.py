"""Repository adapters - Database implementations."""

from .postgres import (
    PostgresAccountStore,
    PostgresTokenStore,
    PostgresUnitOfWork,
    run_migrations,
)

__all__ = ["PostgresAccountStore", "PostgresTokenStore", "PostgresUnitOfWork", "run_migrations"]
