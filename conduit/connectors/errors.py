"""
Connector errors and error classification.

Every failure that crosses the framework boundary is a ConnectorError
carrying exactly one ErrorCategory and a retry decision.

Retry Policy:
    - auth, data, config: never retried
    - rate_limit, network: retried with backoff up to max_attempts
    - unknown: not retried

Classification is heuristic: upstream transports mostly return unstructured
messages, so raw exceptions are matched against a prioritized table of
substrings. Adapters that already know the category should raise
ConnectorError directly; those pass through unchanged.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .types import ErrorCategory

_RETRYABLE_BY_DEFAULT = frozenset({ErrorCategory.RATE_LIMIT, ErrorCategory.NETWORK})

_STATUS_CODE_RE = re.compile(r"\b([45]\d{2})\b")


# =============================================================================
# Exceptions
# =============================================================================


class ConnectorError(Exception):
    """Classified connector failure."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory | str,
        provider_id: str,
        *,
        retryable: bool | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = ErrorCategory(category)
        self.provider_id = provider_id
        self.retryable = (
            self.category in _RETRYABLE_BY_DEFAULT if retryable is None else retryable
        )
        self.status_code = status_code
        self.details = details or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [f"[{self.provider_id}] {self.message}"]
        if self.status_code:
            parts.append(f"(status={self.status_code})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"ConnectorError({self.message!r}, category={self.category.value}, "
            f"provider={self.provider_id!r}, retryable={self.retryable})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "provider_id": self.provider_id,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "details": self.details,
        }


# =============================================================================
# Classification
# =============================================================================


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """One row of the classification table."""

    predicate: Callable[[str], bool]
    category: ErrorCategory
    retryable: bool


def _contains_any(*needles: str) -> Callable[[str], bool]:
    def predicate(text: str) -> bool:
        return any(needle in text for needle in needles)

    return predicate


# Evaluated in order; first match wins.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        _contains_any("401", "403", "unauthorized", "forbidden", "token expired"),
        ErrorCategory.AUTH,
        retryable=False,
    ),
    ClassificationRule(
        _contains_any("429", "rate limit", "too many requests"),
        ErrorCategory.RATE_LIMIT,
        retryable=True,
    ),
    ClassificationRule(
        _contains_any(
            "econnrefused",
            "connection refused",
            "connectionrefused",
            "connectionreset",
            "connectionerror",
            "connecterror",
            "econnreset",
            "enotfound",
            "dns",
            "timeout",
            "timed out",
            "502",
            "503",
            "504",
        ),
        ErrorCategory.NETWORK,
        retryable=True,
    ),
    ClassificationRule(
        _contains_any("400", "422", "validation", "invalid"),
        ErrorCategory.DATA,
        retryable=False,
    ),
)


def _error_text(error: object) -> tuple[str, str]:
    """Return (message, haystack) for an arbitrary failure value."""
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        # Exception type names help for message-less errors like TimeoutError()
        return message, f"{type(error).__name__}: {message}".lower()
    message = str(error)
    return message, message.lower()


def classify_error(error: object, provider_id: str) -> ConnectorError:
    """
    Map an arbitrary failure into the closed error taxonomy.

    Idempotent: a ConnectorError is returned unchanged.

    Args:
        error: Exception (or any value) raised by an adapter or operation
        provider_id: Provider the failure is attributed to

    Returns:
        Classified ConnectorError with the original error as its cause
    """
    if isinstance(error, ConnectorError):
        return error

    message, haystack = _error_text(error)
    cause = error if isinstance(error, BaseException) else None

    match = _STATUS_CODE_RE.search(message)
    status_code = int(match.group(1)) if match else None

    for rule in CLASSIFICATION_RULES:
        if rule.predicate(haystack):
            return ConnectorError(
                message,
                rule.category,
                provider_id,
                retryable=rule.retryable,
                status_code=status_code,
                cause=cause,
            )

    return ConnectorError(
        message,
        ErrorCategory.UNKNOWN,
        provider_id,
        retryable=False,
        status_code=status_code,
        cause=cause,
    )


__all__ = [
    "CLASSIFICATION_RULES",
    "ClassificationRule",
    "ConnectorError",
    "classify_error",
]
