# storefront/domain/errors.py
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    AUTHORIZATION = "authorization"
    EXTERNAL_SERVICE = "external_service"
    CONFIGURATION = "configuration"


class AppError(Exception):
    """
    Base error of the checkout core.
    The boundary layer matches on `kind`, never on the subclass.
    """

    kind: ErrorKind = ErrorKind.DATABASE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"kind": self.kind.value, "message": self.message}}


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.errors:
            data["error"]["errors"] = self.errors
        return data


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    kind = ErrorKind.CONFLICT


class DatabaseError(AppError):
    kind = ErrorKind.DATABASE

    def __init__(self, message: str = "Database error occurred"):
        super().__init__(message)


class AuthorizationError(AppError):
    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class ExternalServiceError(AppError):
    kind = ErrorKind.EXTERNAL_SERVICE

    def __init__(self, service: str, message: str | None = None):
        super().__init__(message or f"External service error: {service}")
        self.service = service


class ConfigurationError(AppError):
    kind = ErrorKind.CONFIGURATION


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.DATABASE: 500,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.EXTERNAL_SERVICE: 502,
    ErrorKind.CONFIGURATION: 500,
}


def http_status_for(error: AppError) -> int:
    return HTTP_STATUS[error.kind]
