"""
Exception handlers.
Every error leaves the API as {"success": false, "error": "<message>"} with a category status.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.infrastructure.observability.logging import get_logger
from app.services.calls.call_tracker import CallInputError, CallNotFoundError
from app.services.calls.retell_client import CallServiceError
from app.services.scheduling.booking import BookingError

logger = get_logger(__name__)


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        # Drop the "body"/"query" prefix from the location
        location = ".".join(str(item) for item in error.get("loc", ())[1:])
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning("Request validation failed", path=request.url.path, error=message)
        return error_response(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(BookingError)
    async def booking_exception_handler(request: Request, exc: BookingError):
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "Booking request failed",
            path=request.url.path,
            error_code=exc.error_code,
            slot_key=exc.slot_key,
            error=exc.message,
        )
        return error_response(exc.status_code, exc.message, code=exc.error_code)

    @app.exception_handler(CallInputError)
    async def call_input_exception_handler(request: Request, exc: CallInputError):
        return error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(CallNotFoundError)
    async def call_not_found_exception_handler(request: Request, exc: CallNotFoundError):
        return error_response(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(CallServiceError)
    async def call_service_exception_handler(request: Request, exc: CallServiceError):
        logger.error("Call service failure", path=request.url.path, error=str(exc))
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
