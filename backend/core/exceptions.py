"""
API error types and the handlers that render them.

Every error response has the same body: ``detail``, ``error_code`` and
``path``. Domain errors raised by a service module reach the client through
a status table keyed by their ``error_code``, so routes only convert errors
they want to reshape.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict, Mapping, Optional, Type
import logging

logger = logging.getLogger(__name__)


def error_response(
    request: Request,
    status_code: int,
    detail: Any,
    error_code: Optional[str],
    headers: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "error_code": error_code,
            "path": str(request.url.path),
        },
        headers=headers,
    )


class APIError(HTTPException):
    """HTTPException carrying a machine-readable error code"""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        detail: Any,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status_code or self.status_code_default,
            detail=detail,
            headers=headers,
        )
        self.error_code = error_code


class ValidationError(APIError):
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = "Validation failed", error_code: str = "VALIDATION_ERROR"):
        super().__init__(detail, error_code)


class AuthenticationError(APIError):
    """Caller identity is missing or unusable"""

    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: Any = "Authentication failed", error_code: str = "AUTH_FAILED"):
        super().__init__(detail, error_code)


class ConflictError(APIError):
    """The request cannot be applied in the resource's current state"""

    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, detail: Any = "Resource conflict", error_code: str = "CONFLICT"):
        super().__init__(detail, error_code)


async def handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning(f"ValueError at {request.url.path}: {str(exc)}")
    return error_response(
        request, status.HTTP_400_BAD_REQUEST, str(exc), "VALIDATION_ERROR"
    )


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    return error_response(
        request, exc.status_code, exc.detail, exc.error_code, exc.headers
    )


def domain_error_handler(status_by_code: Mapping[str, int]):
    """
    Build a handler for a service module's base exception.

    The exception must expose ``error_code`` and ``to_dict()``. Codes missing
    from the table answer 500 and are logged with their traceback.
    """
    async def handle_domain_error(request: Request, exc: Exception) -> JSONResponse:
        error_code = getattr(exc, "error_code", None)
        status_code = status_by_code.get(error_code)
        if status_code is None:
            logger.error(
                f"Unmapped {exc.__class__.__name__} at {request.url.path}: {exc}",
                exc_info=exc,
            )
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        else:
            logger.warning(f"{exc.__class__.__name__} at {request.url.path}: {exc}")
        return error_response(request, status_code, exc.to_dict(), error_code)

    return handle_domain_error


def register_exception_handlers(
    app,
    domain_errors: Optional[Mapping[Type[Exception], Mapping[str, int]]] = None,
):
    """Register the generic handlers plus one per domain exception base"""
    app.add_exception_handler(ValueError, handle_value_error)
    app.add_exception_handler(APIError, handle_api_error)
    for exc_class, status_by_code in (domain_errors or {}).items():
        app.add_exception_handler(exc_class, domain_error_handler(status_by_code))
