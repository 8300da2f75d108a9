"""Onboarding error taxonomy and the FastAPI handlers that render it.

Every error raised by the wizard core is recoverable at the session level;
handlers turn them into the standard error envelope instead of a crash.
Only InvariantViolationError is logged loudly since it signals a latent bug.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class OnboardingException(Exception):
    """Base exception for onboarding wizard errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: Union[dict, None] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class IllegalTransitionError(OnboardingException):
    """A navigation request that the completion gate refuses."""

    def __init__(self, message: str = "Complete the previous steps first", target_step: int | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="ILLEGAL_TRANSITION",
            details={"target_step": target_step} if target_step is not None else None,
        )
        self.target_step = target_step


class InvariantViolationError(OnboardingException):
    """Step / sub-step pointers fell outside the plan catalog.

    Not recoverable by the state machine itself: the caller must
    re-initialize the session by selecting a plan again.
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="INVARIANT_VIOLATION",
        )


class ValidationPendingError(OnboardingException):
    """An async uniqueness check is in flight or resolved negative."""

    def __init__(self, fields: dict[str, str]):
        names = ", ".join(sorted(fields))
        super().__init__(
            message=f"Waiting on validation for: {names}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="VALIDATION_PENDING",
            details={"fields": fields},
        )
        self.fields = fields


class MissingRequiredFieldError(OnboardingException):
    """Final payload assembly found a required field absent."""

    def __init__(self, entity: str, field: str):
        super().__init__(
            message=f"Missing required field '{field}' for {entity}",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="MISSING_REQUIRED_FIELD",
            details={"entity": entity, "field": field},
        )
        self.entity = entity
        self.field = field


class PersistenceCorruptionError(OnboardingException):
    """A stored progress record could not be parsed or fails the catalog."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="PERSISTENCE_CORRUPTION",
        )


class PlanNotSelectedError(OnboardingException):
    def __init__(self):
        super().__init__(
            message="Select a plan before continuing",
            status_code=status.HTTP_409_CONFLICT,
            error_code="PLAN_NOT_SELECTED",
        )


class UnknownSubStepError(OnboardingException):
    """The entity / sub-step pair does not exist in the active plan."""

    def __init__(self, entity: str, sub_step: str):
        super().__init__(
            message=f"No sub-step '{sub_step}' for {entity} in this plan",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="UNKNOWN_SUB_STEP",
            details={"entity": entity, "sub_step": sub_step},
        )


class ScheduleConstraintError(OnboardingException):
    """Working hours fall outside the parent entity's hours."""

    def __init__(self, errors: list[str]):
        super().__init__(
            message="Working hours must fit inside the parent entity's hours",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="SCHEDULE_CONSTRAINT",
            details={"errors": errors},
        )
        self.errors = errors


class NoParentEntityError(OnboardingException):
    def __init__(self, entity: str):
        super().__init__(
            message=f"{entity} has no parent entity to inherit from in this plan",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="NO_PARENT_ENTITY",
            details={"entity": entity},
        )


class CompletionFailedError(OnboardingException):
    """The account backend refused or failed the completion call."""

    def __init__(self, message: str = "Failed to complete onboarding"):
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="COMPLETION_FAILED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def onboarding_exception_handler(
    request: Request,
    exc: OnboardingException,
) -> JSONResponse:
    """Handle wizard exceptions."""
    log = logger.error if isinstance(exc, InvariantViolationError) else logger.warning
    log(
        f"Onboarding exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Don't expose internal details
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(OnboardingException, onboarding_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
