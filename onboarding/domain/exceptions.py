"""
Domain exceptions - Semantic error types for onboarding.

Business negatives (wrong code, unknown account, bad password) are result
enums, not exceptions. The types below are reserved for caller mistakes and
infrastructure faults.
"""


class OnboardingError(Exception):
    """Base class for onboarding domain errors."""

    pass


class ValidationError(OnboardingError):
    """Request data violates a domain rule the schema layer cannot check."""

    pass


class UnknownRole(ValidationError):
    """Role string does not map to an account partition."""

    def __init__(self, role: str) -> None:
        super().__init__(f"Invalid role: {role!r}")
        self.role = role


class DownstreamFailure(OnboardingError):
    """A collaborator (datastore, mail provider) failed."""

    pass


class EmailDeliveryFailed(DownstreamFailure):
    """The mail provider rejected or did not accept a message."""

    pass


class DatastoreUnavailable(DownstreamFailure):
    """The datastore could not complete an operation."""

    pass
