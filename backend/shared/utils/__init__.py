"""
Utilities module: Exceptions, schemas.
"""

from shared.utils.exceptions import (
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
)
from shared.utils.schemas import ErrorResponse, NotificationInput

__all__ = [
    # exceptions
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
    # schemas
    "ErrorResponse",
    "NotificationInput",
]
