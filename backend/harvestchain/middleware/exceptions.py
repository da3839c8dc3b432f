"""Domain exceptions and the handlers that turn them into error responses.

Every surfaced error carries a stable ``error_code`` and a human-readable
message.  Internal details (tracebacks, connection strings, credentials)
are logged, never returned.

Ledger-mirror and proof-storage failures are deliberately absent here: they
are recovered locally by the services and never become a response.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class HarvestChainException(Exception):
    """Base exception for HarvestChain application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class DomainValidationError(HarvestChainException):
    """Malformed or missing required input."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
        )


class AuthorizationError(HarvestChainException):
    """The acting principal is not permitted to perform the operation."""

    def __init__(self, message: str = "Not authorized"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="AUTHORIZATION_ERROR",
        )


class ResourceNotFoundError(HarvestChainException):
    """Referenced entity does not exist."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class InvalidStateError(HarvestChainException):
    """Operation not valid for the entity's current state."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_STATE",
        )


class InsufficientQuantityError(HarvestChainException):
    """Requested quantity exceeds what the listing has available."""

    def __init__(self, message: str, error_code: str = "INSUFFICIENT_QUANTITY"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
        )


class InsufficientStockError(InsufficientQuantityError):
    """Stock was consumed before an order could be completed."""

    def __init__(self, message: str = "Insufficient stock available to complete this order"):
        super().__init__(message=message, error_code="INSUFFICIENT_STOCK")


class FatalCompletionError(HarvestChainException):
    """A local completion step failed after the ledger step ran."""

    def __init__(self, order_id: str, step: str, ledger_tx_ref: str | None = None):
        self.order_id = order_id
        self.step = step
        self.ledger_tx_ref = ledger_tx_ref
        super().__init__(
            message=f"Order {order_id} could not be completed (failed at: {step})",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="FATAL_COMPLETION",
            details={
                "order_id": order_id,
                "step": step,
                "ledger_tx_ref": ledger_tx_ref,
            },
        )


# ── Handlers ─────────────────────────────────────────────────


def error_response(exc: HarvestChainException, headers: dict | None = None) -> JSONResponse:
    """Render ``{"error": {"code", "message", "details?"}}`` for a domain error."""
    body = {"code": exc.error_code, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": body}, headers=headers)


def _log(request: Request, exc: HarvestChainException, **kwargs) -> None:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "%s %s -> %s %s: %s",
        request.method, request.url.path, exc.status_code, exc.error_code, exc.message,
        extra={"path": request.url.path, "method": request.method, "error_code": exc.error_code},
        **kwargs,
    )


async def harvestchain_exception_handler(request: Request, exc: HarvestChainException) -> JSONResponse:
    _log(request, exc)
    return error_response(exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing, auth and upload errors raised as HTTPException."""
    wrapped = HarvestChainException(str(exc.detail), exc.status_code, f"HTTP_{exc.status_code}")
    if exc.status_code >= 500:
        _log(request, wrapped)
    return error_response(wrapped, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    wrapped = HarvestChainException(
        "Validation error",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        details={"errors": errors},
    )
    _log(request, wrapped)
    return error_response(wrapped)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a 500 with no internals in the body."""
    wrapped = HarvestChainException("An unexpected error occurred. Please try again later.")
    _log(request, wrapped, exc_info=exc)
    return error_response(wrapped)


def register_exception_handlers(app):
    app.add_exception_handler(HarvestChainException, harvestchain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
