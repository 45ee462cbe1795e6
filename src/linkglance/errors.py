from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    TIMEOUT_FAILURE = "TIMEOUT_FAILURE"
    PARSE_FAILURE = "PARSE_FAILURE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"


class LinkGlanceError(Exception):
    """Raised for all expected failure conditions.

    Extraction engines raise it with NETWORK_FAILURE, TIMEOUT_FAILURE or
    PARSE_FAILURE; the coordinator passes those through untouched to every
    waiter on the same URL. STORAGE_UNAVAILABLE is only ever logged.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }


def error_code_for(exc: BaseException) -> ErrorCode:
    """Classify an arbitrary exception for the controller's Failed state."""
    if isinstance(exc, LinkGlanceError):
        return exc.code
    if isinstance(exc, TimeoutError):
        return ErrorCode.TIMEOUT_FAILURE
    return ErrorCode.EXTRACTION_FAILED
