"""Failure classification for the generation retry policy.

This is the only place that knows the remote API's error message format.
"""

from enum import Enum

_RATE_LIMIT_PATTERNS: tuple[str, ...] = ("429", "Too many requests")
_PERMISSION_PATTERNS: tuple[str, ...] = (
    "Requested entity was not found",
    "403",
    "API key not valid",
)


class ErrorKind(str, Enum):
    """How the executor reacts to a failed attempt."""

    RATE_LIMITED = "rate_limited"
    PERMISSION_DENIED = "permission_denied"
    OTHER = "other"


def error_message(error: BaseException | str | object) -> str:
    """Extract the message text of whatever the generation call raised."""
    if isinstance(error, str):
        return error
    message = str(error)
    return message or type(error).__name__


def classify_error(error: BaseException | str) -> ErrorKind:
    """Classify a failure by substring match on its message.

    Classification rules (case-sensitive, first match wins):
        - "429", "Too many requests" → RATE_LIMITED
        - "Requested entity was not found", "403", "API key not valid" → PERMISSION_DENIED
        - anything else → OTHER
    """
    message = error_message(error)

    if any(pattern in message for pattern in _RATE_LIMIT_PATTERNS):
        return ErrorKind.RATE_LIMITED

    if any(pattern in message for pattern in _PERMISSION_PATTERNS):
        return ErrorKind.PERMISSION_DENIED

    return ErrorKind.OTHER
