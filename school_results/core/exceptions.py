# school_results/core/exceptions.py
"""Custom exceptions for the results service and their HTTP handlers."""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ResultsServiceError(Exception):
    """Base exception for the results service"""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ResultsServiceError):
    """Malformed or out-of-range input"""
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ConflictError(ResultsServiceError):
    """Uniqueness violation"""
    status_code = 409


class NotFoundError(ResultsServiceError):
    """Resource absent, or outside the caller's school"""
    status_code = 404

    def __init__(self, resource: str = "Resource", id: Optional[str] = None):
        message = f"{resource} not found"
        if id:
            message += f" with id: {id}"
        super().__init__(message)


class ForbiddenError(ResultsServiceError):
    """Resource is in the caller's school but role or ownership denies it"""
    status_code = 403

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class AuthenticationError(ResultsServiceError):
    status_code = 401

    def __init__(self, message: str = "Invalid authentication credentials"):
        super().__init__(message)


class StorageError(ResultsServiceError):
    """Transaction or connection failure in the relational store"""
    status_code = 500


async def results_exception_handler(request: Request, exc: ResultsServiceError):
    """Handle custom service exceptions"""
    if exc.status_code >= 500:
        logger.error(f"Service error: {exc.message} - Path: {request.url.path}")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message} - Path: {request.url.path}")

    content = {"error": exc.message, "type": exc.__class__.__name__}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": "InternalError"}
    )


def add_exception_handlers(app: FastAPI):
    app.add_exception_handler(ResultsServiceError, results_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
