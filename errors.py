"""
API error taxonomy

Services raise these; main.py turns them into JSON responses of the form
{"detail": message} with the matching status code.
"""

from typing import Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Not authorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(ApiError):
    status_code = 400
    default_message = "Invalid input"


class Conflict(ApiError):
    # Duplicate reviews are reported as a plain bad request
    status_code = 400
    default_message = "Already exists"


class InvalidState(ApiError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class PaymentGatewayError(ApiError):
    status_code = 500
    default_message = "Failed to create payment intent"


class InternalError(ApiError):
    status_code = 500
