"""Error types raised by the API and rendered as ``{"error": message}``."""


class ApiError(Exception):
    status_code = 500
    message = 'Internal server error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class ValidationError(ApiError):
    status_code = 400
    message = 'Invalid request'


class Unauthorized(ApiError):
    status_code = 401
    message = 'Access token required'


class Forbidden(ApiError):
    status_code = 403
    message = 'Invalid or expired token'


class NotFound(ApiError):
    status_code = 404
    message = 'Not found'


class Conflict(ApiError):
    status_code = 409
    message = 'Conflict'


class StoreError(ApiError):
    """Store failure; the driver message is logged, never returned."""
    status_code = 500
    message = 'Database error'


class CodeGenerationExhausted(ApiError):
    status_code = 500
    message = 'Failed to generate a unique code'
