"""Error taxonomy and exception handling utilities."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("stockbot.errors")


class StockbotError(Exception):
    """Base class for errors raised by the inventory core."""


class StoreError(StockbotError):
    """A persistence call failed; retried at the store boundary."""


class RecordNotFound(StoreError):
    """The addressed record does not exist. Never retried."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"{table} record {record_id} not found")
        self.table = table
        self.record_id = record_id


class LotNotFound(StockbotError):
    """A batch record referenced by id or composite key has vanished."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"lot {reference} not found")
        self.reference = reference


class ExtractionError(StockbotError):
    """A message produced no valid inventory updates."""

    def __init__(self, total_clauses: int) -> None:
        super().__init__(f"no valid updates in {total_clauses} clause(s)")
        self.total_clauses = total_clauses


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
