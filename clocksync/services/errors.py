"""
Domain errors raised by the time clock sync services.
Routes let these propagate; main.py maps them to HTTP responses.
"""
from typing import Any


class SyncError(Exception):
    status_code = 400
    detail = "An error occurred"

    def __init__(self, detail: str = None):
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class NotFound(SyncError):
    status_code = 404
    detail = "Not found"


class Unauthorized(SyncError):
    status_code = 403
    detail = "Not authorized"


class InvalidRequest(SyncError):
    status_code = 400
    detail = "Input is wrong format"


class TransientStoreError(SyncError):
    """Storage failed; the caller may retry with the same cursor."""
    status_code = 503
    detail = "Storage temporarily unavailable"


class MalformedPayload(ValueError):
    """A stored change payload does not decode into its kind's shape."""

    def __init__(self, kind: str, data: Any, reason: str):
        super().__init__(f"malformed {kind} payload: {reason}")
        self.kind = kind
        self.data = data
        self.reason = reason
