"""
utils/id_utils.py

Purpose: Identifier generation

- Order IDs and referral codes over A-Z0-9
- Bounded uniqueness retries with a time-derived fallback
"""

import secrets
import time
from typing import Awaitable, Callable

from app.core.logging import get_logger

logger = get_logger(__name__)

ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
DEFAULT_ID_LENGTH = 8


def generate_id(length: int = DEFAULT_ID_LENGTH) -> str:
    """
    Returns a random identifier of `length` characters from ID_ALPHABET.
    """
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def fallback_code() -> str:
    """
    Random 6-character prefix plus a time-derived suffix.
    Used when the uniqueness checks were exhausted.
    """
    return f"{generate_id(6)}{time.time_ns() % 10000}"


async def generate_unique_code(
    is_taken: Callable[[str], Awaitable[bool]],
    length: int = DEFAULT_ID_LENGTH,
    max_attempts: int = 10,
) -> str:
    """
    Generates a code that `is_taken` reports as free.

    A failing check is logged and the candidate skipped. After
    `max_attempts` candidates the time-derived fallback is returned
    without a further check.

    Args:
        is_taken: Async predicate asking the store about a candidate
        length: Code length
        max_attempts: Candidates to try before falling back

    Returns:
        The generated code
    """
    for attempt in range(1, max_attempts + 1):
        candidate = generate_id(length)
        try:
            if not await is_taken(candidate):
                return candidate
            logger.debug(f"Code collision on attempt {attempt}: {candidate}")
        except Exception as e:
            logger.warning(f"Uniqueness check failed on attempt {attempt}: {str(e)}")

    code = fallback_code()
    logger.warning(f"Unique code attempts exhausted, using fallback {code}")
    return code
