"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = Field(default="Stockbot", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    storage_backend: Literal["sqlite", "airtable"] = Field(
        default="sqlite",
        description="Tabular store used for inventory, batches and preferences.",
    )
    sqlite_path: Path = Field(
        default=Path("../db/inventory.db"),
        description="SQLite file backing the tabular store and dialog state.",
    )
    airtable_token: str | None = Field(default=None, description="Airtable personal access token.")
    airtable_base_id: str | None = Field(default=None, description="Airtable base identifier.")
    airtable_inventory_table: str = Field(default="Inventory")
    airtable_batch_table: str = Field(default="InventoryBatches")
    airtable_preferences_table: str = Field(default="UserPreferences")

    store_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout at the persistence boundary.",
    )
    store_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per store call before the failure is surfaced.",
    )
    store_backoff_base_ms: int = Field(
        default=200,
        ge=0,
        description="First retry delay; doubled on every further attempt.",
    )

    confirmation_required: bool = Field(
        default=True,
        description="Ask the operator to confirm low-confidence transcripts.",
    )
    confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Transcripts scored below this value need confirmation.",
    )
    pending_confirmation_ttl_seconds: int = Field(default=300, ge=1)
    correction_ttl_seconds: int = Field(default=300, ge=1)

    self_heal_settle_ms: int = Field(
        default=500,
        ge=0,
        description="Delay between recreating a vanished lot and re-reading it.",
    )
    sale_lot_policy: Literal["fifo", "ask", "none"] = Field(
        default="fifo",
        description=(
            "How sales are attributed to purchase lots. With 'ask', a lot choice"
            " that expires or is replaced by another dialog is drawn FIFO."
        ),
    )
    require_action_keyword: bool = Field(
        default=False,
        description="Reject clauses without an action keyword instead of treating them as sales.",
    )
    remaining_is_absolute: bool = Field(
        default=False,
        description="Treat 'remaining' clauses as the new stock level instead of a delta.",
    )
    default_unit: str = Field(default="pieces")
    low_stock_threshold: float = Field(default=5, ge=0)
    catalog_path: Path | None = Field(
        default=None,
        description="Optional override for the bundled language catalog JSON.",
    )

    openrouter_api_key: str | None = Field(
        default=None,
        description="Optional OpenRouter API key for transcript cleanup.",
    )
    openrouter_model: str = Field(
        default="minimax/minimax-m2:free",
        description="OpenRouter model identifier.",
    )
    openrouter_referer: str | None = Field(
        default=None,
        description="Referer header required by OpenRouter (your app URL).",
    )
    openrouter_title: str | None = Field(
        default="Stockbot",
        description="Title header sent to OpenRouter.",
    )
    cleanup_timeout_seconds: float = Field(default=15.0, gt=0)
    cleanup_max_chars: int = Field(
        default=500,
        ge=16,
        description="Transcripts are truncated to this length before cleanup.",
    )

    @property
    def cleanup_enabled(self) -> bool:
        return bool(self.openrouter_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
