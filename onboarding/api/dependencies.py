"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting domain services
and infrastructure adapters into routes. Long-lived resources (connection
pool, mail sender) are created in the app lifespan and read from app.state.
"""

from fastapi import Depends, Request
from psycopg_pool import AsyncConnectionPool

from onboarding.adapters.repository.postgres import PostgresUnitOfWork
from onboarding.config.settings import Settings, get_settings
from onboarding.domain.accounts import AccountCommitService
from onboarding.domain.bounces import BounceHandler
from onboarding.domain.credentials import CredentialService
from onboarding.domain.ports import EmailSender
from onboarding.domain.verification import VerificationService


def get_pool(request: Request) -> AsyncConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_unit_of_work(request: Request) -> PostgresUnitOfWork:
    """Create a unit of work bound to the app's connection pool."""
    return PostgresUnitOfWork(get_pool(request))


def get_email_sender(request: Request) -> EmailSender:
    """Get the mail sender built at startup."""
    return request.app.state.email_sender


def get_verification_service(
    request: Request, settings: Settings = Depends(get_settings)
) -> VerificationService:
    """
    Create verification service with injected dependencies.

    Wires together the unit of work, the mail sender and the code policy.
    """
    return VerificationService(
        unit_of_work=get_unit_of_work(request),
        email_sender=get_email_sender(request),
        code_length=settings.code_length,
        code_ttl_seconds=settings.code_ttl_seconds,
        max_resends=settings.max_resends,
        max_failed_attempts=settings.max_failed_attempts,
    )


def get_account_service(
    request: Request,
    verification: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
) -> AccountCommitService:
    return AccountCommitService(
        unit_of_work=get_unit_of_work(request),
        verification=verification,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_credential_service(
    request: Request,
    verification: VerificationService = Depends(get_verification_service),
    settings: Settings = Depends(get_settings),
) -> CredentialService:
    return CredentialService(
        unit_of_work=get_unit_of_work(request),
        verification=verification,
        bcrypt_cost=settings.bcrypt_cost,
    )


def get_bounce_handler(request: Request) -> BounceHandler:
    return BounceHandler(unit_of_work=get_unit_of_work(request))
