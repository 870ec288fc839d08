"""Application-level exceptions and FastAPI exception handlers."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class AppException(Exception):
    """Base application exception.

    ``stage`` is filled in by the pipeline runner when the error aborts a
    pipeline, so the response can name the step that failed.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        self.stage: str | None = None
        super().__init__(message)

class NotFoundError(AppException):
    def __init__(self, entity: str, entity_id: Any = None):
        msg = f"{entity} not found" if entity_id is None else f"{entity} '{entity_id}' not found"
        super().__init__(msg, status_code=404, code="NOT_FOUND")

class ConflictError(AppException):
    def __init__(self, message: str):
        super().__init__(message, status_code=409, code="CONFLICT")

class UnauthenticatedError(AppException):
    def __init__(self, message: str = "You are not logged in"):
        super().__init__(
            message, status_code=403, code="UNAUTHENTICATED", details={"loggedIn": False}
        )

class ForbiddenError(AppException):
    def __init__(self, message: str = "You may not change this event"):
        super().__init__(message, status_code=403, code="FORBIDDEN")

class ValidationError(AppException):
    """Local, pre-external failure. ``errors`` is a list of {field, message} pairs."""

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None):
        self.errors = errors or []
        super().__init__(
            message, status_code=422, code="VALIDATION_ERROR", details={"errors": self.errors}
        )

class IdentityError(AppException):
    """Raised when the campus OAuth2 authority rejects or fails a token request."""

    def __init__(self, message: str):
        super().__init__(message, status_code=502, code="IDENTITY_ERROR")

class UpstreamError(AppException):
    """Any non-success from an external system, tagged with the system's name."""

    def __init__(
        self,
        system: str,
        message: str,
        details: dict[str, Any] | None = None,
        code: str = "UPSTREAM_ERROR",
        upstream_status: int | None = None,
    ):
        self.system = system
        self.upstream_status = upstream_status
        super().__init__(message, status_code=502, code=code, details=details)

class OrphanedApprovalPackageError(UpstreamError):
    """The approval package was created but the record store write failed."""

    def __init__(self, package_id: int, message: str):
        self.package_id = package_id
        super().__init__(
            "record-store",
            f"Approval package {package_id} was created but the event record was not "
            f"stored: {message}",
            details={"packageId": package_id},
            code="ORPHANED_APPROVAL_PACKAGE",
        )

# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_body(code: str, message: str, **extra: Any) -> dict:
    error = {"code": code, "message": message}
    error.update({k: v for k, v in extra.items() if v})
    return {"error": error}

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                exc.code,
                exc.message,
                stage=exc.stage,
                system=getattr(exc, "system", None),
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=_error_body("VALIDATION_ERROR", "Invalid request", details={"errors": errors}),
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=_error_body("NOT_FOUND", "Resource not found"),
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "INTERNAL_ERROR",
                "An unexpected error occurred",
                details={"type": type(exc).__name__, "path": request.url.path},
            ),
        )
