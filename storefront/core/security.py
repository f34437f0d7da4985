"""
Security utilities for Storefront

Session secret generation and validation.
"""

import logging
import secrets
import string
from typing import Optional

from storefront.core.config import Settings, settings

logger = logging.getLogger(__name__)

INSECURE_DEFAULTS = (
    "your-secret-key-here-change-in-production",
    "change-me",
    "secret",
    "password",
    "123456",
    "admin",
    "keyboard cat",
    "change-this-to-a-long-random-string-of-at-least-32-chars",
)


def generate_secure_secret_key(length: int = 64) -> str:
    """
    Generate a cryptographically secure secret key.

    Args:
        length: Length of the secret key (default: 64 characters)

    Returns:
        A secure random string suitable for signing session cookies
    """
    # Use a mix of letters, digits, and safe symbols for maximum entropy
    alphabet = string.ascii_letters + string.digits + "-_"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def validate_secret_key(secret_key: str) -> None:
    """
    Validate that a secret key meets security requirements.

    Args:
        secret_key: The secret key to validate

    Raises:
        ValueError: If the secret key doesn't meet requirements
    """
    if not secret_key:
        raise ValueError("SESSION_SECRET cannot be empty")

    if len(secret_key) < 32:
        raise ValueError("SESSION_SECRET must be at least 32 characters long")

    if secret_key.lower() in [default.lower() for default in INSECURE_DEFAULTS]:
        raise ValueError("SESSION_SECRET appears to be an insecure default value")

    # Check for sufficient entropy (at least 8 different characters)
    if len(set(secret_key.lower())) < 8:
        raise ValueError("SESSION_SECRET has insufficient entropy (too repetitive)")

    logger.debug("SESSION_SECRET validation passed")


def resolve_session_secret(config: Optional[Settings] = None) -> str:
    """
    Return the secret used to sign session cookies.

    A configured secret is validated. Without one, development mode gets an
    in-memory secret (sessions do not survive a restart) and any other
    environment refuses to start.

    Raises:
        ValueError: If the secret is missing outside development or invalid
    """
    config = config or settings
    if config.SESSION_SECRET:
        validate_secret_key(config.SESSION_SECRET)
        return config.SESSION_SECRET

    if config.DEV_MODE:
        logger.warning(
            "SESSION_SECRET not set, using a generated key; sessions will not survive a restart"
        )
        return generate_secure_secret_key()

    raise ValueError("SESSION_SECRET must be set outside development mode")
