"""Application exception types."""

from app.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


def not_found() -> ApiError:
    """No-leak 404 shared by every resource lookup."""
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


def forbidden(message: str = "Editor role required") -> ApiError:
    return ApiError(status_code=403, code="FORBIDDEN", message=message)


__all__ = ["ApiError", "forbidden", "not_found"]
