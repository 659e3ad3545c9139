"""Logging setup and request correlation ids."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request

logger = logging.getLogger("stockbot.request")

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")


class CorrelationIdFilter(logging.Filter):
    """Attach the active correlation id to every record as ``rid``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.rid = correlation_id.get()
        return True


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def configure_logging(level_name: str) -> int:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s [rid=%(rid)s] %(message)s")
    rid_filter = CorrelationIdFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(rid_filter)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return level


async def request_id_middleware(request: Request, call_next: Callable):
    request_id = request.headers.get("x-request-id", new_correlation_id())
    request.state.request_id = request_id
    token = correlation_id.set(request_id)

    logger.info("%s %s", request.method, request.url.path)

    try:
        response = await call_next(request)
    finally:
        correlation_id.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response
