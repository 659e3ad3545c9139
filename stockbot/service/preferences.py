"""Last language seen per shop."""

from __future__ import annotations

import logging
from datetime import datetime

from stockbot.storage.base import PREFERENCES_TABLE, TableStore

logger = logging.getLogger("stockbot.preferences")


class PreferenceStore:
    def __init__(self, store: TableStore) -> None:
        self.store = store

    async def get_language(self, shop_id: str) -> str | None:
        record = await self.store.find_one(PREFERENCES_TABLE, {"shop_id": shop_id})
        if record is None:
            return None
        return record.fields.get("language")

    async def save_language(self, shop_id: str, language: str) -> None:
        fields = {
            "shop_id": shop_id,
            "language": language,
            "last_updated": datetime.now().isoformat(timespec="seconds"),
        }
        record = await self.store.find_one(PREFERENCES_TABLE, {"shop_id": shop_id})
        if record is None:
            await self.store.create(PREFERENCES_TABLE, fields)
        elif record.fields.get("language") != language:
            await self.store.patch(PREFERENCES_TABLE, record.id, fields)
        else:
            return
        logger.info("Language for %s set to %s", shop_id, language)
