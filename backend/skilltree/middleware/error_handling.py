"""
Error Handling Middleware

Provides consistent, informative error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses for unexpected errors
- Exception classes that map the progression engine's failure classes
  (precondition, not found / not owned, already terminal, collaborator
  unavailable) onto HTTP status codes

Usage:
    from skilltree.middleware.error_handling import PreconditionError, setup_error_handling

    # Add middleware to app
    setup_error_handling(app, debug=settings.DEBUG)

    # Raise from a service
    raise PreconditionError("No hearts left", details={"hearts": 0})

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions → structured JSON response
    - StaleDataError: Lost optimistic-lock race → ConflictError response
    - Exception: Catch-all for unexpected errors → sanitized response
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm.exc import StaleDataError
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "precondition_failed")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None  # Additional context
    timestamp: datetime


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for the caller

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: int = None,
        error_code: str = None,
        details: dict = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class PreconditionError(ServiceError):
    """
    Precondition error.

    Raised before any state is mutated: locked skill, no hearts left,
    quest not yet completed, hearts already full.
    """

    status_code = 400
    error_code = "precondition_failed"


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Also raised for resources owned by another learner so their existence
    is not disclosed.
    """

    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """
    Conflict error.

    Raised for operations against something already in a terminal state
    (completing a completed session, re-claiming a claimed quest) and for
    lost optimistic-concurrency races. Nothing is mutated.
    """

    status_code = 409
    error_code = "conflict"


class ValidationError(ServiceError):
    """
    Data validation error.

    Raised when input data fails validation beyond schema checks.
    """

    status_code = 422
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """
    Authentication error.

    Raised when no learner identity accompanies the request.
    """

    status_code = 401
    error_code = "unauthorized"


class CollaboratorUnavailableError(ServiceError):
    """
    External collaborator failure.

    Raised by the grading client when the model call fails. Lesson answer
    handling catches it and falls back to a conservative default, so it is
    never surfaced from that path.
    """

    status_code = 502
    error_code = "collaborator_unavailable"


# =============================================================================
# Error Handling Middleware
# =============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details of unexpected errors outside debug mode
    """

    def __init__(self, app, debug: bool = False):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            debug: Whether to include stack traces in responses
        """
        super().__init__(app)
        self.debug = debug

    def _service_error_response(self, request: Request, e: ServiceError, error_id: str) -> JSONResponse:
        # Expected per-request failures are logged below ERROR
        log = logger.error if e.status_code >= 500 else logger.info
        log(
            f"[{error_id}] {e.error_code}: {e.message}",
            extra={
                "error_id": error_id,
                "error_code": e.error_code,
                "path": request.url.path,
                "method": request.method,
                "details": e.details,
            },
        )

        return JSONResponse(
            status_code=e.status_code,
            content={
                "error": e.error_code,
                "message": e.message,
                "error_id": error_id,
                "details": e.details,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            response = await call_next(request)
            return response

        except HTTPException:
            # Let FastAPI handle HTTP exceptions
            raise

        except ServiceError as e:
            return self._service_error_response(request, e, error_id)

        except StaleDataError as e:
            # A versioned row changed under this request; nothing was committed
            logger.warning(f"[{error_id}] Lost update on {request.url.path}: {e}")
            conflict = ConflictError("Resource changed concurrently, please retry")
            return self._service_error_response(request, conflict, error_id)

        except Exception as e:
            # Log full traceback for unexpected errors
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            # Return sanitized response
            content = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "error_id": error_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            # Include details in debug mode
            if self.debug:
                content["details"] = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }

            return JSONResponse(status_code=500, content=content)


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Args:
        app: FastAPI application instance
        debug: Whether to include stack traces in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")
