# services/errors.py
"""
Error taxonomy shared by the reservation engine and the registry endpoints.

Every business-rule violation is raised as one of these and turned into a
JSON response by the handler registered in ``create_app``:

    { "error": "<message>", "details": <optional> }, <status_code>
"""
from __future__ import annotations

from typing import Any


class ApiError(Exception):
    status_code = 400
    message = "Bad Request"

    def __init__(self, message: str | None = None, details: Any = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.details = details

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            out["details"] = self.details
        return out


class ValidationFailed(ApiError):
    message = "Validation failed"


class NotFound(ApiError):
    status_code = 404
    message = "Not Found"


class Conflict(ApiError):
    status_code = 409
    message = "Conflict"


class SeatTaken(Conflict):
    message = "Seat already booked."


class CapacityExceeded(Conflict):
    message = "Bus capacity exceeded."


class SaleClosed(ApiError):
    message = "Tickets cannot be created after the sale end time has passed."


class InvalidOtp(ApiError):
    message = "Invalid OTP"


class AlreadyConfirmed(ApiError):
    message = "Ticket is already confirmed and cannot be changed."


class Expired(ApiError):
    message = "Ticket is expired and cannot be updated."
