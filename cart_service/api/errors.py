# cart_service/api/errors.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from cart_service.domain.errors import (
    CartServiceError,
    CartValidationError,
    ConcurrencyConflict,
    ExternalServiceError,
    NotFound,
)
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)

# kolejnosc ma znaczenie: pierwsze dopasowanie isinstance wygrywa
_STATUS_BY_ERROR = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
    (CartValidationError, status.HTTP_400_BAD_REQUEST),
)


def status_for(exc: CartServiceError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CartServiceError)
    async def cart_service_error_handler(request: Request, exc: CartServiceError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.message, "code": exc.code},
        )
