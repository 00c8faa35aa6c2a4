"""
Exception handlers rendering rejections as structured JSON.

Body shape: {"error": {"category", "reason", "message", ...extra}}.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from campusfest.core.errors import AdmissionError, IntegrityViolation, RejectionReason
from campusfest.core.logging import get_logger

logger = get_logger(__name__)

_GENERIC_FAILURE = IntegrityViolation(
    RejectionReason.INTERNAL_ERROR, "The operation could not be completed."
).to_dict()


async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    """Expected rejections; integrity violations are logged at error severity."""
    if isinstance(exc, IntegrityViolation):
        logger.error("integrity_violation", reason=exc.reason.value, detail=exc.message)
    else:
        logger.info("request_rejected", category=exc.category.value, reason=exc.reason.value)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """A storage constraint fired outside a service unit of work."""
    logger.error("integrity_violation", error=str(exc.orig))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": _GENERIC_FAILURE},
    )


EXCEPTION_HANDLERS = {
    AdmissionError: admission_error_handler,
    IntegrityError: integrity_error_handler,
}


def register_exception_handlers(app):
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
