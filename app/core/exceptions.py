"""
Error taxonomy shared by services and routes.

Services raise these; app.main renders them as JSON with the matching HTTP status.
"""

from typing import Any


class AppError(Exception):
    """Base error with a message, a machine-readable code and optional details."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(AppError):
    """Input validation failed. details['errors'] lists {field, message}."""

    status_code = 400

    @classmethod
    def from_fields(cls, errors: list[dict[str, str]]) -> "ValidationError":
        return cls("Invalid input", details={"errors": errors})


class AuthenticationError(AppError):
    """Missing, malformed, invalid or expired credentials."""

    status_code = 401


class AuthorizationError(AppError):
    """Authenticated, but not allowed to act on the resource."""

    status_code = 403


class NotFoundError(AppError):
    """Resource not found."""

    status_code = 404


class ConflictError(AppError):
    """Request conflicts with current state (duplicate account, illegal transition)."""

    status_code = 409


class RateLimitError(AppError):
    """Too many requests from one client in the current window."""

    status_code = 429


class DependencyError(AppError):
    """Datastore or object storage call failed."""

    status_code = 500

    def __init__(
        self,
        message: str,
        service: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
        self.service = service

    def to_dict(self) -> dict[str, Any]:
        # Never leak dependency error text to clients.
        return {"error": self.code, "message": "Internal server error", "details": {}}
