"""
Domain layer - Pure business logic with zero framework imports.

This package contains the verification state machine, the signup commit
protocol, credential checks and bounce handling. It defines its own port
interfaces for infrastructure abstraction; adapters implement them.
"""

from .accounts import AccountCommitService
from .bounces import BounceHandler, BounceReport
from .credentials import CredentialService, ResetResult
from .exceptions import (
    DatastoreUnavailable,
    DownstreamFailure,
    EmailDeliveryFailed,
    OnboardingError,
    UnknownRole,
    ValidationError,
)
from .models import (
    AccountPartition,
    CodeFlow,
    IssuedCode,
    ResendOutcome,
    Role,
    StagedAccount,
    VerificationToken,
)
from .ports import AccountStore, EmailSender, LoginResult, TokenStore, UnitOfWork, VerifyResult
from .verification import VerificationService

__all__ = [
    "AccountCommitService",
    "AccountPartition",
    "AccountStore",
    "BounceHandler",
    "BounceReport",
    "CodeFlow",
    "CredentialService",
    "DatastoreUnavailable",
    "DownstreamFailure",
    "EmailDeliveryFailed",
    "EmailSender",
    "IssuedCode",
    "LoginResult",
    "OnboardingError",
    "ResendOutcome",
    "ResetResult",
    "Role",
    "StagedAccount",
    "TokenStore",
    "UnitOfWork",
    "UnknownRole",
    "ValidationError",
    "VerificationService",
    "VerificationToken",
    "VerifyResult",
]
