"""Account onboarding and email-verification backend."""

__version__ = "0.1.0"
