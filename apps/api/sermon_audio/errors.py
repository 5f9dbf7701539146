"""Application exception types."""

from __future__ import annotations

from collections.abc import Sequence

from sermon_audio.schemas.error import ErrorResponse


class SermonAudioError(Exception):
    """Structured error that maps directly to an HTTP error payload."""

    status_code = 500
    code = "INTERNAL_ERROR"
    headers: dict[str, str] | None = None

    def __init__(
        self,
        message: str,
        *,
        details: dict | None = None,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.payload = ErrorResponse(code=self.code, message=message, details=details)
        super().__init__(message)


class ConfigurationError(SermonAudioError):
    """A setting is missing or invalid, or a configured resource is unusable."""

    status_code = 500
    code = "CONFIGURATION_ERROR"


class TransportError(SermonAudioError):
    """An HTTP request could not be sent or no response was received."""

    status_code = 502
    code = "TRANSPORT_ERROR"


class ApiError(SermonAudioError):
    """A remote API answered with a bad status or an unexpected body shape."""

    status_code = 502
    code = "UPSTREAM_API_ERROR"


class ConflictError(SermonAudioError):
    """A submission lost the race against an existing active job."""

    status_code = 409
    code = "JOB_CONFLICT"


class ValidationError(SermonAudioError):
    """The record's source reference or submission input is missing or invalid."""

    status_code = 422
    code = "VALIDATION_ERROR"


class StoreError(SermonAudioError):
    """The tracking store or object storage reported a failure."""

    status_code = 502
    code = "STORE_ERROR"


class InvalidStateError(SermonAudioError):
    """An operation was attempted against a job slot in the wrong state."""

    status_code = 409
    code = "INVALID_STATE"


class MalformedDataError(SermonAudioError):
    """Stored or remote data (tracking row, transcript document) is malformed."""

    status_code = 502
    code = "MALFORMED_DATA"


class NotFoundError(SermonAudioError):
    status_code = 404
    code = "RESOURCE_NOT_FOUND"


class BadRequestError(SermonAudioError):
    status_code = 400
    code = "BAD_REQUEST"


class AuthenticationError(SermonAudioError):
    status_code = 401
    code = "UNAUTHORIZED"
    headers = {"WWW-Authenticate": "Bearer"}


class AggregateError(SermonAudioError):
    """Several failures surfaced together, in the order they occurred."""

    status_code = 500
    code = "AGGREGATE_ERROR"

    def __init__(self, message: str, errors: Sequence[BaseException]) -> None:
        self.errors = tuple(errors)
        super().__init__(
            message,
            details={"errors": [f"{type(error).__name__}: {error}" for error in self.errors]},
        )


class SegmentationError(RuntimeError):
    """Internal transcript segmentation failure; never treated as expected."""


EXPECTED_ERRORS: tuple[type[SermonAudioError], ...] = (
    ConfigurationError,
    TransportError,
    ApiError,
    ConflictError,
    ValidationError,
    StoreError,
    InvalidStateError,
    MalformedDataError,
)


def is_expected_error(exc: BaseException) -> bool:
    """Tell whether a failure may be logged and skipped by batch callers."""
    if isinstance(exc, AggregateError):
        return bool(exc.errors) and all(is_expected_error(error) for error in exc.errors)
    return isinstance(exc, EXPECTED_ERRORS)


__all__ = [
    "AggregateError",
    "ApiError",
    "AuthenticationError",
    "BadRequestError",
    "ConfigurationError",
    "ConflictError",
    "EXPECTED_ERRORS",
    "InvalidStateError",
    "MalformedDataError",
    "NotFoundError",
    "SegmentationError",
    "SermonAudioError",
    "StoreError",
    "TransportError",
    "ValidationError",
    "is_expected_error",
]
