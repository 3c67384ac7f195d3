"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory unit of work, clock and recording mail sender
- Domain services wired to them
"""

import pytest

from onboarding.domain.accounts import AccountCommitService
from onboarding.domain.bounces import BounceHandler
from onboarding.domain.credentials import CredentialService
from onboarding.domain.verification import VerificationService
from tests.fakes import FakeClock, InMemoryUnitOfWork, RecordingEmailSender

# bcrypt minimum cost keeps the suite fast
TEST_BCRYPT_COST = 4


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def uow() -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork()


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def verification(
    uow: InMemoryUnitOfWork, sender: RecordingEmailSender, clock: FakeClock
) -> VerificationService:
    return VerificationService(
        unit_of_work=uow,
        email_sender=sender,
        code_length=6,
        code_ttl_seconds=180,
        max_resends=2,
        max_failed_attempts=3,
        clock=clock,
    )


@pytest.fixture
def accounts(uow: InMemoryUnitOfWork, verification: VerificationService) -> AccountCommitService:
    return AccountCommitService(
        unit_of_work=uow, verification=verification, bcrypt_cost=TEST_BCRYPT_COST
    )


@pytest.fixture
def credentials(uow: InMemoryUnitOfWork, verification: VerificationService) -> CredentialService:
    return CredentialService(
        unit_of_work=uow, verification=verification, bcrypt_cost=TEST_BCRYPT_COST
    )


@pytest.fixture
def bounces(uow: InMemoryUnitOfWork) -> BounceHandler:
    return BounceHandler(unit_of_work=uow)
