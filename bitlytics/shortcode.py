"""Short-code generation and validation.

Random codes come from nanoid over its URL-safe alphabet; uniqueness is the
caller's job and is enforced by ``allocate_unique_code`` against the store.

Functions:
    generate_short_code():  Random URL-safe code.
    is_valid_custom_code():  Format check for caller-supplied codes.
    is_reserved_code():  Case-insensitive check against system route names.
    allocate_unique_code():  Bounded generate-and-check loop.
"""

import logging
import re
from collections.abc import Awaitable, Callable

from nanoid import generate

from bitlytics.errors import GenerationExhausted

__all__ = [
    "ALPHABET",
    "DEFAULT_CODE_LENGTH",
    "DEFAULT_MAX_ATTEMPTS",
    "RESERVED_CODES",
    "allocate_unique_code",
    "generate_short_code",
    "is_reserved_code",
    "is_valid_custom_code",
]

logger = logging.getLogger("bitlytics.shortcode")

ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
DEFAULT_CODE_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 10

CUSTOM_CODE_PATTERN = re.compile(r"^[A-Za-z0-9-]{3,20}$")

RESERVED_CODES = frozenset(
    {
        "api",
        "admin",
        "auth",
        "dashboard",
        "analytics",
        "login",
        "register",
        "logout",
        "profile",
        "settings",
        "help",
        "about",
        "contact",
        "terms",
        "privacy",
        # top-level routes served by this app
        "health",
        "metrics",
        "docs",
        "redoc",
    }
)


def generate_short_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def is_valid_custom_code(code: str) -> bool:
    return bool(CUSTOM_CODE_PATTERN.fullmatch(code))


def is_reserved_code(code: str) -> bool:
    return code.lower() in RESERVED_CODES


async def allocate_unique_code(
    exists: Callable[[str], Awaitable[bool]],
    *,
    length: int = DEFAULT_CODE_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    generator: Callable[[int], str] | None = None,
) -> str:
    """Generate codes until ``exists`` reports a free one.

    Args:
        exists: Async predicate answering whether a code is already stored.
        length: Length of generated codes.
        max_attempts: Candidates tried before giving up.
        generator: Code source; defaults to ``generate_short_code``.

    Raises:
        GenerationExhausted: Every candidate collided.
    """
    assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
    generator = generator or generate_short_code
    for attempt in range(1, max_attempts + 1):
        candidate = generator(length)
        if not await exists(candidate):
            return candidate
        logger.debug(f"Short code collision on attempt {attempt}: {candidate}")
    logger.warning(f"Short code generation exhausted after {max_attempts} attempts")
    raise GenerationExhausted(max_attempts)
