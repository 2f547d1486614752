"""Core infrastructure: settings, logging, exceptions."""

from .config import get_settings, settings
from .exceptions import (
    AppException,
    BadRequestError,
    ExternalServiceError,
    InsufficientDataError,
    JobError,
    NotFoundError,
    PermanentAssetError,
    PriceHistoryNotFoundError,
    ScoreExtractionError,
)
from .logging import get_logger, setup_logging


__all__ = [
    "settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    "AppException",
    "BadRequestError",
    "ExternalServiceError",
    "InsufficientDataError",
    "JobError",
    "NotFoundError",
    "PermanentAssetError",
    "PriceHistoryNotFoundError",
    "ScoreExtractionError",
]
