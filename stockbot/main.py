"""FastAPI application entry point for the Stockbot inventory service."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI

from stockbot.api.inventory import create_inventory_router
from stockbot.api.messages import create_messages_router
from stockbot.core.config import Settings, get_settings
from stockbot.core.errors import unhandled_exception_handler
from stockbot.core.logging import configure_logging, request_id_middleware
from stockbot.core.metrics import MetricsCollector
from stockbot.dialog.gate import ConfidenceGate
from stockbot.dialog.store import confirmation_store, correction_store
from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.reconciler import InventoryReconciler
from stockbot.inventory.selection import SelectionResolver
from stockbot.parsing.catalog import get_catalog
from stockbot.parsing.corrector import TranscriptCorrector
from stockbot.parsing.extractor import UpdateExtractor
from stockbot.parsing.segmenter import UtteranceSegmenter
from stockbot.service.cleanup import OpenRouterCleaner, PassthroughCleaner, TextCleaner
from stockbot.service.handler import MessageHandler
from stockbot.service.preferences import PreferenceStore
from stockbot.storage import BATCH_TABLE, INVENTORY_TABLE, PREFERENCES_TABLE, RetryingTableStore, SQLiteTableStore
from stockbot.storage.airtable import AirtableTableStore
from stockbot.storage.base import TableStore

logger = logging.getLogger("stockbot.app")


def build_store(settings: Settings) -> TableStore:
    """Create the configured backend wrapped with timeouts and retries."""

    if settings.storage_backend == "airtable":
        inner: TableStore = AirtableTableStore(
            settings.airtable_base_id or "",
            settings.airtable_token or "",
            {
                INVENTORY_TABLE: settings.airtable_inventory_table,
                BATCH_TABLE: settings.airtable_batch_table,
                PREFERENCES_TABLE: settings.airtable_preferences_table,
            },
            timeout=settings.store_timeout_seconds,
        )
    else:
        inner = SQLiteTableStore(settings.sqlite_path)
    return RetryingTableStore(
        inner,
        max_attempts=settings.store_max_attempts,
        backoff_base_ms=settings.store_backoff_base_ms,
        timeout_seconds=settings.store_timeout_seconds,
    )


def build_cleaner(settings: Settings) -> TextCleaner:
    if not settings.cleanup_enabled:
        return PassthroughCleaner()
    return OpenRouterCleaner(
        settings.openrouter_api_key or "",
        model=settings.openrouter_model,
        referer=settings.openrouter_referer,
        title=settings.openrouter_title,
        timeout=settings.cleanup_timeout_seconds,
    )


def create_app(settings: Settings | None = None, *, store: TableStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    store = store or build_store(settings)
    metrics = MetricsCollector()
    catalog = get_catalog(settings.catalog_path)

    ledger = BatchLedger(store, settle_seconds=settings.self_heal_settle_ms / 1000, metrics=metrics)
    reconciler = InventoryReconciler(
        store,
        ledger,
        sale_lot_policy=settings.sale_lot_policy,
        remaining_is_absolute=settings.remaining_is_absolute,
        default_unit=settings.default_unit,
    )
    handler = MessageHandler(
        corrector=TranscriptCorrector(
            catalog.corrections,
            build_cleaner(settings),
            max_chars=settings.cleanup_max_chars,
        ),
        gate=ConfidenceGate(
            settings.confidence_threshold,
            confirmation_required=settings.confirmation_required,
        ),
        segmenter=UtteranceSegmenter(catalog.delimiters),
        extractor=UpdateExtractor(
            catalog,
            default_unit=settings.default_unit,
            require_action_keyword=settings.require_action_keyword,
        ),
        reconciler=reconciler,
        resolver=SelectionResolver(catalog, ledger),
        confirmations=confirmation_store(settings.sqlite_path, settings.pending_confirmation_ttl_seconds),
        corrections=correction_store(settings.sqlite_path, settings.correction_ttl_seconds),
        preferences=PreferenceStore(store),
        metrics=metrics,
        examples=catalog.examples,
    )

    app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")
    app.state.settings = settings
    app.state.store = store
    app.state.ledger = ledger
    app.state.reconciler = reconciler
    app.state.handler = handler
    app.state.metrics = metrics

    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(create_messages_router(handler))
    app.include_router(
        create_inventory_router(reconciler, ledger, low_stock_threshold=settings.low_stock_threshold)
    )

    @app.on_event("startup")
    async def startup() -> None:
        level = configure_logging(settings.log_level)
        logger.info(
            "Logging configured at %s level for %s environment (store=%s, sale policy=%s)",
            logging.getLevelName(level),
            settings.environment,
            settings.storage_backend,
            settings.sale_lot_policy,
        )

    @app.on_event("shutdown")
    async def shutdown() -> None:
        inner = getattr(store, "inner", store)
        if isinstance(inner, AirtableTableStore):
            await inner.aclose()

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Return basic service status for monitoring."""

        return {"status": "ok"}

    @app.get("/ready", tags=["health"])
    async def readiness_probe() -> dict[str, Any]:
        """Readiness endpoint that verifies the tabular store answers queries."""

        store_ok = False
        store_error: str | None = None
        try:
            store_ok = await store.ping()
        except Exception as exc:  # noqa: BLE001
            store_error = str(exc)

        components: dict[str, dict[str, Any]] = {
            "store": {
                "backend": settings.storage_backend,
                "ok": store_ok,
                **({"error": store_error} if store_error else {}),
            },
            "catalog": {"ok": bool(catalog.product_aliases), "languages": catalog.languages},
        }
        return {
            "status": "ok" if store_ok else "fail",
            "environment": settings.environment,
            "components": components,
        }

    @app.get("/metrics", tags=["metrics"])
    async def metrics_endpoint() -> dict:
        snapshot = metrics.snapshot()
        return {
            "total_messages": snapshot.total_messages,
            "outcomes": snapshot.outcomes,
            "clauses_total": snapshot.clauses_total,
            "clauses_valid": snapshot.clauses_valid,
            "updates_applied": snapshot.updates_applied,
            "updates_failed": snapshot.updates_failed,
            "self_heals": snapshot.self_heals,
        }

    return app


app = create_app()
