"""
Error taxonomy for the scan workflow and the exception handlers that
expose it over HTTP.
"""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class ScanError(Exception):
    """Base class for every user-visible workflow error."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ScanError):
    """A precondition was not met, e.g. too few captured angles."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidTransitionError(ScanError):
    """The operation is not allowed in the scan's current stage."""
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current scan stage"


class NotFoundError(ScanError):
    """Raised when a scan or photo does not exist."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class DecodeError(ScanError):
    """A bulk image import could not be decoded."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Error processing images from gallery"


class EngineError(ScanError):
    """The identification engine failed or returned malformed data."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "AI processing failed"


class PersistenceError(ScanError):
    """A session, match or catalog write/read failed."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Persistence service error"


class ImagePersistenceError(PersistenceError):
    """A single photo could not be uploaded or recorded."""
    default_message = "Image cloud sync error"


class CatalogParseError(ScanError):
    """The uploaded catalog file could not be parsed."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Error parsing file. Ensure it's a valid .xlsx, .xls or .csv"


# Exception handlers

async def scan_error_handler(request: Request, exc: ScanError) -> JSONResponse:
    """Handler for workflow errors."""
    logger.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message}
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for request validation errors."""
    errors = []
    for error in exc.errors():
        location = " -> ".join([str(loc) for loc in error.get("loc", [])])
        message = error.get("msg", "Validation error")
        errors.append(f"{location}: {message}")

    error_message = "Validation error" if len(errors) == 0 else errors[0]
    logger.warning(f"Validation Error: {', '.join(errors)}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": error_message,
            "errors": errors
        }
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.opt(exception=exc).error(f"Unhandled Exception: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": "Internal server error"
        }
    )
