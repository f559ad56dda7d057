"""Map tenantguard exceptions to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenantguard.core.exceptions import (
    AccessDenied,
    InvalidTenantState,
    PrivilegeRenameConflict,
    RoleNotFound,
    StateConflictError,
    TenantGuardError,
    TenantNotFound,
    TenantRemovalError,
    TokenRejected,
    ValidationError,
)

# Checked in order; the first matching class wins.
STATUS_CODES: list[tuple[type[TenantGuardError], int]] = [
    (AccessDenied, 403),
    (RoleNotFound, 404),
    (TenantNotFound, 404),
    (PrivilegeRenameConflict, 409),
    (InvalidTenantState, 409),
    (TenantRemovalError, 409),
    (StateConflictError, 409),
    (ValidationError, 422),
    (TokenRejected, 400),
]


def status_code_for(exc: TenantGuardError) -> int:
    """HTTP status for a tenantguard exception."""
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def error_body(exc: TenantGuardError) -> dict[str, object]:
    """JSON body describing a tenantguard exception."""
    body: dict[str, object] = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, AccessDenied):
        body["reason"] = exc.reason
    elif isinstance(exc, TokenRejected):
        body["outcome"] = exc.outcome.value
        body["detail"] = exc.outcome.message
    elif isinstance(exc, TenantRemovalError):
        body["step"] = exc.step.value
        body["completed_steps"] = [s.value for s in exc.completed_steps]
    return body


async def tenantguard_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a tenantguard exception as JSON."""
    if not isinstance(exc, TenantGuardError):
        raise exc
    return JSONResponse(status_code=status_code_for(exc), content=error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the tenantguard exception handler on an application."""
    app.add_exception_handler(TenantGuardError, tenantguard_exception_handler)
