"""Shared error vocabulary for every fetcher.

Fetchers raise :class:`FetchError` internally and convert it (or any other
exception) into a classified result envelope at their public boundary.
Nothing in this module is ever allowed to reach an HTTP client as a raw
exception.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorType(StrEnum):
    # Transcript-specific
    TRANSCRIPT_NOT_FOUND = "TranscriptNotFound"
    TRANSCRIPTS_DISABLED = "TranscriptsDisabled"
    VIDEO_NOT_FOUND = "VideoNotFound"
    PRIVATE_VIDEO = "PrivateVideo"
    AGE_RESTRICTED = "AgeRestricted"
    RATE_LIMITED = "RateLimited"
    # Cross-cutting
    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    SERVER_ERROR = "ServerError"
    BLOCKED = "Blocked"
    NOT_FOUND = "NotFound"
    INVALID_URL = "InvalidUrl"
    UNKNOWN = "Unknown"


# Substrings of a transcript failure message that mark it as permanent.
# Anything else (including unclassified failures) falls through to the
# next backend.
PERMANENT_TRANSCRIPT_MARKERS: tuple[str, ...] = (
    "not found",
    "private",
    "unavailable",
    "disabled",
    "no captions",
    "no transcript",
    "age-restricted",
)

# Evaluated top to bottom; first match wins.
_CONTENT_RULES: tuple[tuple[tuple[str, ...], ErrorType], ...] = (
    (("timeout", "timed_out", "timed out"), ErrorType.TIMEOUT),
    (("net::", "network"), ErrorType.NETWORK_ERROR),
    (("blocked", "403"), ErrorType.BLOCKED),
    (("404", "not found"), ErrorType.NOT_FOUND),
    (("500", "502", "503"), ErrorType.SERVER_ERROR),
)

_TRANSCRIPT_RULES: tuple[tuple[tuple[str, ...], ErrorType], ...] = (
    (("transcript is disabled", "subtitles are disabled"), ErrorType.TRANSCRIPTS_DISABLED),
    (("no transcript", "no captions"), ErrorType.TRANSCRIPT_NOT_FOUND),
    (("video unavailable", "not found", "no longer available"), ErrorType.VIDEO_NOT_FOUND),
    (("private",), ErrorType.PRIVATE_VIDEO),
    (("age-restricted", "confirm your age", "age restricted", "sign in"), ErrorType.AGE_RESTRICTED),
    (("too many requests", "rate limit", "429"), ErrorType.RATE_LIMITED),
    (("timeout", "timed out"), ErrorType.TIMEOUT),
    (("network", "econnrefused"), ErrorType.NETWORK_ERROR),
)

_STATUS_CODES: dict[ErrorType, int] = {
    ErrorType.INVALID_URL: 400,
    ErrorType.NOT_FOUND: 404,
    ErrorType.BLOCKED: 403,
    ErrorType.TIMEOUT: 504,
}


def _match(message: str, rules: tuple[tuple[tuple[str, ...], ErrorType], ...]) -> ErrorType:
    lowered = message.lower()
    for needles, error_type in rules:
        if any(needle in lowered for needle in needles):
            return error_type
    return ErrorType.UNKNOWN


def classify_error(message: str) -> ErrorType:
    """Classify a browser or network failure message."""
    return _match(message, _CONTENT_RULES)


def classify_transcript_error(message: str) -> ErrorType:
    """Classify a transcript backend failure message."""
    return _match(message, _TRANSCRIPT_RULES)


def is_retryable_transcript_failure(message: str | None) -> bool:
    """Return True if a failed transcript backend should hand over to the next one."""
    if not message:
        return True
    lowered = message.lower()
    return not any(marker in lowered for marker in PERMANENT_TRANSCRIPT_MARKERS)


def status_code_for(error_type: ErrorType | str | None) -> int:
    """Map an error type to the HTTP status code the API layer responds with."""
    if error_type is None:
        return 500
    try:
        return _STATUS_CODES.get(ErrorType(error_type), 500)
    except ValueError:
        return 500


class FetchError(Exception):
    """Raised inside fetchers for expected failure conditions.

    Caught at the fetcher boundary and serialised into the result envelope.
    """

    def __init__(self, error_type: ErrorType, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message


class BrowserPoolTimeout(FetchError):
    """No browser session became available within the acquire timeout."""

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(
            ErrorType.TIMEOUT,
            f"Timeout waiting for browser context ({timeout_ms:.0f}ms)",
        )
        self.timeout_ms = timeout_ms


def error_from_exception(exc: BaseException) -> tuple[ErrorType, str]:
    """Return ``(error_type, message)`` for any exception caught at a fetcher boundary."""
    if isinstance(exc, FetchError):
        return exc.error_type, exc.message
    message = str(exc) or type(exc).__name__
    return classify_error(message), message
