# app/core/exceptions.py
"""
Error taxonomy raised by the recurring scheduling engine.

The HTTP layer maps these onto status codes; the engine itself never
swallows them.
"""


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling engine."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(SchedulingError):
    """Raised when a series or a targeted occurrence does not exist."""


class BadRequestError(SchedulingError):
    """Raised when a request cannot be applied as given."""


class ValidationError(BadRequestError):
    """Raised when recurrence parameters are malformed or contradictory."""

    def __init__(self, message: str, details: list | None = None):
        self.details = details or []
        super().__init__(message)


class ConflictError(SchedulingError):
    """Raised when a series was modified concurrently or a slot is taken."""

    def __init__(self, message: str, current_version: int | None = None):
        self.current_version = current_version
        super().__init__(message)
