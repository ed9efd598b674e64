"""Errors raised by booking operations.

Every error carries the HTTP status and machine code the API responds with.
``PaymentGatewayError`` is recorded on the booking and never reaches a caller.
"""

from __future__ import annotations


class BookingError(Exception):
    status_code = 400
    default_code = "BookingError"

    def __init__(self, message: str = "", *, code: str | None = None, **context) -> None:
        super().__init__(message or self.default_code)
        self.message = message or self.default_code
        self.code = code or self.default_code
        self.context = context

    def as_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class BookingValidationError(BookingError):
    default_code = "ValidationError"


class NotFoundError(BookingError):
    status_code = 404
    default_code = "NotFound"


class AuthorizationError(BookingError):
    status_code = 403
    default_code = "Forbidden"


class CapacityExceededError(BookingError):
    default_code = "BatchFull"


class StateConflictError(BookingError):
    default_code = "StateConflict"


class SecurityMismatchError(BookingError):
    default_code = "PaymentAmountMismatch"

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["security_flag"] = True
        return data


class ConcurrencyConflictError(BookingError):
    status_code = 409
    default_code = "ConcurrencyConflict"


class PaymentGatewayError(BookingError):
    status_code = 502
    default_code = "PaymentGatewayError"
