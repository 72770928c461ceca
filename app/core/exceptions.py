"""
Domain errors and global exception handlers.

The handlers prevent stack-trace leakage to clients; the domain errors
are raised by the services in ``app/services``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class AttendanceError(Exception):
    """Base class for errors raised by the attendance core."""


class StorageUnavailable(AttendanceError):
    """The backing store could not complete a read or write.

    Transient from the caller's point of view: nothing is retried inside
    the core, the caller decides whether to try again.
    """


class UserNotFound(AttendanceError):
    """No user is registered for the given card id."""

    def __init__(self, card_id: str) -> None:
        super().__init__(f"No user registered for card {card_id!r}")
        self.card_id = card_id


class PartialBatchFailure(AttendanceError):
    """A batch operation finished with some items failed."""

    def __init__(self, success: int, failed: int, skipped: int = 0) -> None:
        super().__init__(
            f"Batch finished with failures (success={success}, "
            f"failed={failed}, skipped={skipped})"
        )
        self.success = success
        self.failed = failed
        self.skipped = skipped


class CacheInconsistent(AttendanceError):
    """A cache entry cannot be trusted. Never surfaced to end users."""


class UnparseableTimestamp(AttendanceError, ValueError):
    """A raw timestamp is outside the accepted representations."""

    def __init__(self, raw: object) -> None:
        super().__init__(f"Unparseable timestamp: {raw!r}")
        self.raw = raw


# ── HTTP handlers ───────────────────────────────────────────────────
async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
    )


async def _storage_unavailable_handler(_request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error("Storage unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable, try again", "success": False},
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StorageUnavailable, _storage_unavailable_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
