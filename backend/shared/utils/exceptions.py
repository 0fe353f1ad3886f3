"""
Centralized HTTP exceptions for consistent error handling.
Standardized HTTP status codes and error messages.

Usage:
    from shared.utils.exceptions import NotFoundError, ConflictError

    raise NotFoundError("Payment", payment_id)
    raise ConflictError("Payment 12 cannot be captured from state 'void'")
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Payment", 123)
        raise NotFoundError("Order", "R207199925")
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class PaymentNotFoundError(NotFoundError):
    """Payment not found."""

    def __init__(self, payment_id: int | None = None, **log_context: Any):
        super().__init__("Payment", payment_id, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization error (403).

    Usage:
        raise ForbiddenError("Redirect signature does not match")
    """

    def __init__(self, detail: str = "Access denied", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Credit amount must be positive", amount_cents=-1)
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Payment is already void")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidTransitionError(ConflictError):
    """Invalid payment state transition."""

    def __init__(self, entity: str, from_state: str, action: str, **log_context: Any):
        detail = f"Cannot {action} {entity} in state '{from_state}'"
        super().__init__(detail, entity=entity, from_state=from_state, action=action, **log_context)


# =============================================================================
# 5xx Errors
# =============================================================================


class ExternalServiceError(AppException):
    """External service error (502 or 503)."""

    def __init__(
        self,
        service: str,
        is_unavailable: bool = False,
        retry_after: int | None = None,
        message: str | None = None,
        **log_context: Any,
    ):
        if is_unavailable:
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            detail = f"{service} temporarily unavailable"
        else:
            status_code = status.HTTP_502_BAD_GATEWAY
            detail = f"{service} request failed"
        if message:
            detail = f"{detail}: {message}"

        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        super().__init__(
            status_code=status_code,
            detail=detail,
            log_level="error",
            headers=headers,
            service=service,
            **log_context,
        )


class ResourceBusyError(AppException):
    """
    Another request holds the resource (503, retryable).

    Usage:
        raise ResourceBusyError("Order R207199925", retry_after=2)
    """

    def __init__(self, resource: str, retry_after: int = 1, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{resource} is being modified by another request, retry later",
            log_level="warning",
            headers={"Retry-After": str(retry_after)},
            resource=resource,
            **log_context,
        )
