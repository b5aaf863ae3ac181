"""
Domain exceptions raised by the scheduling services.

Services never raise transport-level errors. Each exception carries the
status code an API layer should answer with, so callers can translate
without matching on messages.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures surfaced to the caller."""

    status_code: int = 500

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class ValidationError(SchedulingError):
    """Malformed input: inverted time range, missing time pair, past date."""

    status_code = 400


class ConflictError(SchedulingError):
    """Write overlaps an existing active window, exception or appointment."""

    status_code = 409


class NotFoundError(SchedulingError):
    """Referenced id, doctor or day has no matching row."""

    status_code = 404
