from examdesk.utils.base.enums import BaseEnum, ProfileImageSource, UserProvider, UserRole
from examdesk.utils.base.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ServiceError,
    ValidationFailedError,
)

__all__ = [
    "BaseEnum",
    "UserRole",
    "UserProvider",
    "ProfileImageSource",
    "ServiceError",
    "NotFoundError",
    "ValidationFailedError",
    "PreconditionFailedError",
    "ConflictError",
]
