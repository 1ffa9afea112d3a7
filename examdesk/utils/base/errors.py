from fastapi import HTTPException


class ServiceError(Exception):
    """Base class for structured outcomes returned to the caller."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)

    def to_http(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"error": self.error_code, "message": self.message},
        )


class NotFoundError(ServiceError):
    """Referenced course, user or exam does not exist."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="NOT_FOUND", status_code=404)


class ValidationFailedError(ServiceError):
    """Malformed or constraint-violating input. Raised before any write."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="VALIDATION_FAILED", status_code=400)


class PreconditionFailedError(ServiceError):
    """Well-formed request against an exam in the wrong state or at the wrong time."""

    def __init__(self, message: str, reason: str):
        super().__init__(message=message, error_code=reason, status_code=409)


class ConflictError(ServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="CONFLICT", status_code=409)
