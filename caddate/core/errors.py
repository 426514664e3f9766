"""
Error taxonomy shared by the store, the realtime hub and the client loop.

Routes translate these into HTTP status codes; the socket layer turns them
into `request_error` events or connection refusals.
"""

from __future__ import annotations


class CaddateError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"message": self.message}


class ValidationError(CaddateError):
    status_code = 400

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason

    def to_detail(self) -> dict:
        return {"message": self.message, "field": self.field, "reason": self.reason}


class NotFoundError(CaddateError):
    status_code = 404


class AuthError(CaddateError):
    status_code = 401


class ThrottledError(CaddateError):
    status_code = 429


class InternalError(CaddateError):
    status_code = 500


class TransientIOError(CaddateError):
    """Network, socket or GPS hiccup. The next tracking tick retries."""

    status_code = 503
