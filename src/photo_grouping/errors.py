"""Error taxonomy for grouping runs and the retry classification rule."""

from __future__ import annotations

import socket
from collections.abc import Sequence
from typing import Final

RETRYABLE_KEYWORDS: Final[tuple[str, ...]] = (
    "timeout",
    "network",
    "connection",
    "reset",
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo",
    "temporary failure in name resolution",
    "connection refused",
    "socket timeout",
    "fetch",
    "download",
    "buffer",
    "memory",
)


class GroupingError(Exception):
    """Base class for every error raised by a grouping run."""

    retryable: bool = False


class ValidationError(GroupingError, ValueError):
    """Options or inputs are invalid; the run fails before any work starts."""


class DependencyUnavailableError(GroupingError):
    """One or more required vision/image capabilities are missing."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing: list[str] = list(missing)
        super().__init__(
            "Photo grouping service unavailable due to missing dependencies: " + ", ".join(self.missing)
        )


class TransientError(GroupingError):
    """Network, memory or timeout flavoured failure that may succeed on retry."""

    retryable = True


class UnknownError(GroupingError):
    """Any other failure; never retried."""


class GroupingCancelledError(GroupingError):
    """The caller cancelled the run through its cancellation token."""


def _message_is_retryable(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in RETRYABLE_KEYWORDS)


def is_retryable(exc: BaseException | None) -> bool:
    """Return True when ``exc`` should trigger another grouping attempt."""

    if exc is None:
        return False
    if isinstance(exc, GroupingError):
        return exc.retryable
    if isinstance(exc, (MemoryError, TimeoutError, ConnectionError, socket.gaierror)):
        return True
    return _message_is_retryable(str(exc))


def classify_error(exc: BaseException) -> GroupingError:
    """Map an arbitrary exception onto the grouping error taxonomy.

    Taxonomy members are returned unchanged. Other exceptions are wrapped in a
    :class:`TransientError` when they match the retry rule and in an
    :class:`UnknownError` otherwise; the original is kept as ``__cause__``.
    """

    if isinstance(exc, GroupingError):
        return exc

    message = str(exc) or type(exc).__name__
    wrapped: GroupingError = TransientError(message) if is_retryable(exc) else UnknownError(message)
    wrapped.__cause__ = exc
    return wrapped


__all__ = [
    "RETRYABLE_KEYWORDS",
    "GroupingError",
    "ValidationError",
    "DependencyUnavailableError",
    "TransientError",
    "UnknownError",
    "GroupingCancelledError",
    "is_retryable",
    "classify_error",
]
