import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from visa_interview.core.exceptions import FinalizationRaceViolation, InterviewError
from visa_interview.system.exceptions.base_exception import BaseHTTPException

logger = logging.getLogger(__name__)


async def common_exception_handler(request: Request, exc: BaseHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "path": str(request.url)}
    )


async def interview_exception_handler(request: Request, exc: InterviewError) -> JSONResponse:
    """Domain errors that escaped endpoint mapping."""
    if isinstance(exc, FinalizationRaceViolation):
        logger.error(f"Finalization race on {request.url.path}: {exc}")
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        logger.warning(f"{exc.__class__.__name__} on {request.url.path}: {exc}")
        status_code = status.HTTP_400_BAD_REQUEST
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": exc.__class__.__name__, "path": str(request.url)}
    )
