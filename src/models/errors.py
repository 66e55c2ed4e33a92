"""
Error taxonomy for the deduction service.

Every error carries the HTTP status it maps to so the Flask error handlers
can turn it into the JSON envelope without inspecting messages.
"""
from typing import Optional


class DeductionServiceError(Exception):
    """Base class for all expected service errors"""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(DeductionServiceError):
    """Malformed, missing or contradictory input"""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DeductionServiceError):
    """Referenced id does not exist"""
    status_code = 404
    code = "NOT_FOUND"


class UpstreamError(DeductionServiceError):
    """Object store (or other collaborator) failure"""
    status_code = 500
    code = "UPSTREAM_ERROR"


class InternalError(DeductionServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"
