"""Error handling utilities."""

from typing import Any, Optional

from pydantic import ValidationError


class GatewayError(Exception):
    """Base exception for the estate gateway backend."""
    status_code = 500
    error_type = "ServerError"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidInputError(GatewayError):
    """One or more request fields are malformed or out of range."""
    status_code = 400
    error_type = "InvalidInput"

    def __init__(self, message: str = "Invalid input", errors: Optional[list[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(GatewayError):
    """Referenced appointment, property or agent does not exist."""
    status_code = 404
    error_type = "NotFound"


class ConflictError(GatewayError):
    """Scheduling collision with another active appointment."""
    status_code = 409
    error_type = "Conflict"


class UnauthorizedError(GatewayError):
    """Missing, invalid or expired credential."""
    status_code = 401
    error_type = "Unauthorized"


class ForbiddenError(GatewayError):
    """Valid credential without the required role or account status."""
    status_code = 403
    error_type = "Forbidden"


class ConfigurationError(GatewayError):
    """Required configuration is missing."""
    pass


class SupabaseError(GatewayError):
    """Supabase operation error."""
    pass


def format_validation_errors(exc: ValidationError) -> list[dict]:
    """Flatten a pydantic ValidationError into per-field messages."""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "__root__"]
        errors.append({
            "field": ".".join(location) or None,
            "message": error.get("msg", "Invalid value"),
        })
    return errors


def error_response(exc: GatewayError, details: Optional[dict[str, Any]] = None) -> dict:
    """Build the JSON body returned for a failed request."""
    body: dict[str, Any] = {
        "success": False,
        "message": exc.message,
        "error": {
            "type": exc.error_type,
            "message": exc.message,
        },
    }
    if isinstance(exc, InvalidInputError) and exc.errors:
        body["errors"] = exc.errors
    if details:
        body["error"].update(details)
    return body
