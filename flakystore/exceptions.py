"""
Typed exceptions for flakystore.

Provides structured error handling with:
- FlakyStoreError: Base exception for all flakystore errors
- FlakyStoreConfigError: Configuration and validation errors
- ObjectStoreError: Errors raised by an object store
- ThrottledError: Injected transient "request throttled" failures

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

RETRYABLE_STATUS_CODES = frozenset({500, 503})


class FlakyStoreError(Exception):
    """Base exception for all flakystore errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class FlakyStoreConfigError(FlakyStoreError, ValueError):
    """Configuration or argument error.

    Raised eagerly, at configuration time, when:
    - A probability is outside [0, 1]
    - A failure limit or delay window is negative
    - An environment variable cannot be parsed

    Examples:
        FlakyStoreConfigError("Probability out of range 0 to 1: 1.5")
    """

    pass


class ObjectStoreError(FlakyStoreError):
    """Error reported by an object store.

    Attributes:
        status_code: HTTP-style status code
        bucket: Bucket the request addressed, if known
        key: Object key the request addressed, if known
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if status_code:
            details["status_code"] = status_code
        if bucket:
            details["bucket"] = bucket
        if key:
            details["key"] = key

        self.status_code = status_code
        self.bucket = bucket
        self.key = key

        super().__init__(message, code=code, details=details)

    @property
    def is_retryable(self) -> bool:
        """True if the request may succeed when repeated."""
        return self.status_code in RETRYABLE_STATUS_CODES

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ThrottledError(ObjectStoreError):
    """Simulated transient failure: the store throttled the request.

    Attributes:
        failure_count: Number of injected failures so far, this one included
    """

    def __init__(
        self,
        message: str,
        *,
        failure_count: int,
        status_code: int = 503,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["failure_count"] = failure_count
        self.failure_count = failure_count
        super().__init__(
            message,
            status_code=status_code,
            code=code or "Throttled",
            details=details,
        )

    @property
    def is_retryable(self) -> bool:
        return True


__all__ = [
    "FlakyStoreError",
    "FlakyStoreConfigError",
    "ObjectStoreError",
    "ThrottledError",
]
