"""
Secrets and password hashing shared by the domain services.

Codes and session ids come from the secrets module. bcrypt work runs in a
worker thread so it never blocks the event loop.
"""

import asyncio
import secrets

import bcrypt


def generate_code(length: int = 6) -> str:
    """
    Generate a cryptographically secure numeric verification code.

    Returns string to preserve leading zeros.
    """
    return "".join(secrets.choice("0123456789") for _ in range(length))


def generate_session_id() -> str:
    """Opaque identifier binding resends to one verification episode."""
    return secrets.token_urlsafe(16)


def codes_match(expected: str, submitted: str) -> bool:
    """Constant-time code comparison."""
    return secrets.compare_digest(expected.encode(), submitted.encode())


async def hash_password(password: str, cost: int = 10) -> str:
    """Hash password using bcrypt with the configured cost factor."""
    return await asyncio.to_thread(_hashpw, password, cost)


async def check_password(password: str, password_hash: str) -> bool:
    """Constant-time password verification against a bcrypt hash."""
    return await asyncio.to_thread(_checkpw, password, password_hash)


def _hashpw(password: str, cost: int) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=cost)).decode()


def _checkpw(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Stored value is not a bcrypt hash (legacy plaintext rows)
        return False
