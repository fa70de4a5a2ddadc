"""
Error taxonomy shared by the orchestration layer and the HTTP boundary.
"""

from __future__ import annotations


class StoriesError(Exception):
    """Base error. ``status_code`` is the HTTP status the boundary reports."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StoriesError):
    status_code = 404

    def __init__(self, resource: str, resource_id: str | None = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(message)


class ConflictError(StoriesError):
    status_code = 409


class BadInputError(StoriesError):
    status_code = 400


class QuotaExceededError(BadInputError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"slide limit reached (maximum {limit} slides)")


class InternalError(StoriesError):
    """Unexpected store/blob failure on the primary write path."""

    status_code = 500

    def __init__(self, message: str, cause: BaseException | None = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause


class OperationCancelledError(StoriesError):
    status_code = 504

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"operation cancelled before {step}")
