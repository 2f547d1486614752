"""Error hierarchy and the API handlers that render it.

API errors carry their own HTTP status and error code. Asset-level errors
(``PermanentAssetError`` and subclasses) never reach the API: batch jobs
catch them per asset and record them on the execution.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .logging import get_logger


logger = get_logger("errors")


class AppException(Exception):
    """Base error rendered as ``{"error", "message", "status", "details"}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
        }
        if self.details:
            body["details"] = self.details
        return body


# -- API ----------------------------------------------------------------------


class NotFoundError(AppException):
    """Unknown job, alert or investment."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class BadRequestError(AppException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"
    message = "Bad request"


class JobError(AppException):
    """A job crashed outside its own per-asset error handling."""

    error_code = "JOB_ERROR"
    message = "Job execution failed"


# -- Upstreams ------------------------------------------------------------------


class ExternalServiceError(AppException):
    """Brapi or the AI gateway is unavailable or answered with an error."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service temporarily unavailable"


class ScoreExtractionError(AppException):
    """The model answered without a score in range."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "SCORE_EXTRACTION_FAILED"
    message = "No score in AI response"


# -- Assets ---------------------------------------------------------------------


class PermanentAssetError(AppException):
    """An asset can never be scored with the data currently available.

    Jobs mark such assets with the unavailable sentinel instead of
    leaving them eligible for the next run.
    """

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "ASSET_UNAVAILABLE"
    message = "Asset has no usable data"


class PriceHistoryNotFoundError(PermanentAssetError):
    error_code = "NO_HISTORICAL_DATA"
    message = "No historical data"


class InsufficientDataError(PermanentAssetError):
    error_code = "INSUFFICIENT_DATA"
    message = "Insufficient data"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"X-Request-ID": _request_id(request)},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": _request_id(request),
                "path": request.url.path,
                "method": request.method,
            },
        )
        # Internal details stay in the log
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": "Could not complete request",
                "status": 500,
            },
            headers={"X-Request-ID": _request_id(request)},
        )
