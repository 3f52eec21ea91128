"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

from typing import Any, Dict, Optional
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import uuid
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        # Create the problem details object
        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        # Add extensions
        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code, when one was attached."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for requests that are well-formed but break a business rule."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri="https://example.com/problems/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Exception for authorization and ownership errors."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_permissions: Optional[list] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if required_permissions:
            extensions["required_permissions"] = required_permissions

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri="https://example.com/problems/access-forbidden",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri="https://example.com/problems/resource-conflict",
            instance=instance,
            extensions=extensions,
        )


class ServiceUnavailableError(ProblemDetailsException):
    """Exception for transient failures of an upstream dependency."""

    def __init__(
        self,
        detail: str = "An upstream service is temporarily unavailable",
        retry_after: Optional[int] = None,
        instance: Optional[str] = None,
    ):
        headers = {}
        extensions: Dict[str, Any] = {"retryable": True}
        if retry_after:
            headers["Retry-After"] = str(retry_after)
            extensions["retry_after_seconds"] = retry_after

        super().__init__(
            status_code=503,
            title="Service Unavailable",
            detail=detail,
            type_uri="https://example.com/problems/service-unavailable",
            instance=instance,
            extensions=extensions,
            headers=headers,
        )


class InternalServerError(ProblemDetailsException):
    """Exception for internal server errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not error_id:
            error_id = str(uuid.uuid4())

        extensions = {
            "error_id": error_id,
            "timestamp": _timestamp(),
        }

        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri="https://example.com/problems/internal-server-error",
            instance=instance,
            extensions=extensions,
        )


# Business logic exceptions

class BookingRuleError(ValidationError):
    """A booking request that the booking rules refuse (tour started, duplicate booking, ...)."""

    def __init__(self, detail: str, code: str, **context: Any):
        super().__init__(detail=detail)
        self.problem_details.update({"code": code, "retryable": False, **context})


class BookingLockedError(ValidationError):
    """Exception when a COMPLETED booking would be modified."""

    def __init__(self, booking_id: str, requested_status: str):
        super().__init__(
            detail=f"Booking {booking_id} is completed and cannot be changed to {requested_status}"
        )
        self.problem_details.update({
            "code": "BOOKING_COMPLETED",
            "retryable": False,
            "booking_id": booking_id,
            "requested_status": requested_status,
        })


class InsufficientCapacityError(ConflictError):
    """Exception when a tour does not have enough free slots for a reservation."""

    def __init__(self, tour_id: str, requested: int, remaining: int):
        super().__init__(
            detail=f"Not enough available slots on tour {tour_id}. "
                   f"Requested: {requested}, remaining: {remaining}",
            conflicting_resource={
                "tour_id": tour_id,
                "requested_slots": requested,
                "remaining_slots": remaining,
            }
        )
        self.tour_id = tour_id
        self.requested = requested
        self.remaining = remaining
        self.problem_details.update({
            "code": "INSUFFICIENT_CAPACITY",
            "retryable": False,
            "remaining": remaining,
        })


class BookingStateConflictError(ConflictError):
    """Exception when a booking is already in the state a request asks for."""

    def __init__(
        self,
        booking_id: str,
        status: str,
        detail: Optional[str] = None,
        code: str = "ALREADY_IN_STATE",
    ):
        super().__init__(
            detail=detail or f"Booking {booking_id} is already {status.lower()}"
        )
        self.problem_details.update({
            "code": code,
            "retryable": False,
            "booking_id": booking_id,
            "status": status,
        })


class InvalidTransitionError(ConflictError):
    """Exception when a booking status change is not allowed from its current status."""

    def __init__(self, source: Optional[str], target: str, trigger: str):
        super().__init__(
            detail=f"Cannot move booking from {source or 'NEW'} to {target} ({trigger.lower()})"
        )
        self.problem_details.update({
            "code": "INVALID_TRANSITION",
            "retryable": False,
            "from_status": source,
            "to_status": target,
            "trigger": trigger,
        })


class PaymentGatewayUnavailableError(ServiceUnavailableError):
    """The payment gateway could not be reached; the payment outcome is unknown."""

    def __init__(self, detail: str = "The payment gateway is temporarily unavailable"):
        super().__init__(detail=detail, retry_after=5)
        self.problem_details["code"] = "PAYMENT_GATEWAY_UNAVAILABLE"


class SlotLedgerCorruptionError(InternalServerError):
    """Releasing slots would push a tour's reserved counter below zero."""

    def __init__(self, tour_id: str, release_count: int, reserved_slots: int):
        super().__init__(
            detail=f"Slot ledger underflow on tour {tour_id}: "
                   f"releasing {release_count} with only {reserved_slots} reserved"
        )
        self.problem_details.update({
            "code": "SLOT_LEDGER_UNDERFLOW",
            "tour_id": tour_id,
        })


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Render request body validation failures as Problem Details with violations.

    Args:
        request: FastAPI request object
        exc: Validation error raised by FastAPI

    Returns:
        JSONResponse: Problem Details formatted response
    """
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=422,
        content={
            "type": "https://example.com/problems/request-validation",
            "title": "Request Validation Failed",
            "status": 422,
            "detail": "The request body or parameters are invalid",
            "instance": str(request.url),
            "violations": violations,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        exc_info=exc,
        extra={"error_id": error_id, "path": request.url.path}
    )

    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": _timestamp(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
    )
