# coursepay/errors.py
"""
Error taxonomy shared by every service.

Each error knows the HTTP status it maps to; the FastAPI handler in
``coursepay.main`` renders it as ``{"detail": ...}``, the same body shape
``HTTPException`` produces.
"""


class CoursePayError(Exception):
    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(CoursePayError):
    status_code = 400
    default_detail = "Invalid request"


class NotFoundError(CoursePayError):
    status_code = 404
    default_detail = "Not found"


class ConflictError(CoursePayError):
    status_code = 409
    default_detail = "Conflict"


class SignatureError(CoursePayError):
    status_code = 400
    default_detail = "Invalid webhook signature"


class GatewayError(CoursePayError):
    status_code = 502
    default_detail = "Payment gateway error"


class InternalError(CoursePayError):
    status_code = 500
