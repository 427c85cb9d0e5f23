from __future__ import annotations


class SurveyEngineError(RuntimeError):
    """Base class for every failure raised by the survey engine."""

    status_code = 500


class ValidationError(SurveyEngineError):
    """Raised when a write is missing required fields or carries a malformed value."""

    status_code = 400


class NotFoundError(SurveyEngineError):
    """Raised when a survey or question does not exist (or is not active)."""

    status_code = 404


class SessionNotFoundError(SurveyEngineError):
    """Raised when completing a session that was never started."""

    status_code = 404


class AlreadyCompletedError(SurveyEngineError):
    """Raised when completing a session that is already completed."""

    status_code = 409


class StorageUnavailableError(SurveyEngineError):
    """Raised when the backing store cannot be reached or is locked."""

    status_code = 503


__all__ = [
    "SurveyEngineError",
    "ValidationError",
    "NotFoundError",
    "SessionNotFoundError",
    "AlreadyCompletedError",
    "StorageUnavailableError",
]
