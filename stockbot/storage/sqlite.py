"""SQLite-backed tabular store keeping each record's fields as JSON."""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

from stockbot.core.db import init_schema, sqlite_connection
from stockbot.core.errors import RecordNotFound, StoreError
from stockbot.storage.base import Record, TableStore


class SQLiteTableStore(TableStore):
    """Local store with the same capabilities as the hosted table backend.

    Filtering happens in Python over the rows of one table, which is fine for
    a single shop's inventory and keeps the semantics identical to remote
    backends that only support equality formulas.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        if self._schema_ready:
            return
        init_schema(
            self.db_path,
            """
                CREATE TABLE IF NOT EXISTS records (
                    id TEXT PRIMARY KEY,
                    table_name TEXT NOT NULL,
                    fields TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_records_table
                    ON records (table_name, created_at);
            """,
        )
        self._schema_ready = True

    def _run(self, fn, *args):
        self._ensure_schema()
        try:
            with sqlite_connection(self.db_path) as conn:
                return fn(conn, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite failure: {exc}") from exc

    async def find(self, table: str, filters: Mapping[str, Any] | None = None) -> Sequence[Record]:
        def _find(conn: sqlite3.Connection) -> list[Record]:
            rows = conn.execute(
                "SELECT id, fields FROM records WHERE table_name = ? ORDER BY created_at, rowid",
                (table,),
            ).fetchall()
            records = [Record(id=row["id"], fields=json.loads(row["fields"])) for row in rows]
            if not filters:
                return records
            return [r for r in records if all(r.fields.get(k) == v for k, v in filters.items())]

        return self._run(_find)

    async def get(self, table: str, record_id: str) -> Record | None:
        def _get(conn: sqlite3.Connection) -> Record | None:
            row = conn.execute(
                "SELECT id, fields FROM records WHERE table_name = ? AND id = ?",
                (table, record_id),
            ).fetchone()
            if row is None:
                return None
            return Record(id=row["id"], fields=json.loads(row["fields"]))

        return self._run(_get)

    async def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        record = Record(id=f"rec{uuid.uuid4().hex[:14]}", fields=dict(fields))

        def _create(conn: sqlite3.Connection) -> Record:
            conn.execute(
                "INSERT INTO records (id, table_name, fields, created_at) VALUES (?, ?, ?, ?)",
                (record.id, table, _dumps(record.fields), datetime.now(timezone.utc).isoformat()),
            )
            return record

        return self._run(_create)

    async def patch(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        def _patch(conn: sqlite3.Connection) -> Record:
            row = conn.execute(
                "SELECT fields FROM records WHERE table_name = ? AND id = ?",
                (table, record_id),
            ).fetchone()
            if row is None:
                raise RecordNotFound(table, record_id)
            merged = json.loads(row["fields"])
            merged.update(fields)
            conn.execute(
                "UPDATE records SET fields = ? WHERE table_name = ? AND id = ?",
                (_dumps(merged), table, record_id),
            )
            return Record(id=record_id, fields=merged)

        return self._run(_patch)

    async def delete(self, table: str, record_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> None:
            cursor = conn.execute(
                "DELETE FROM records WHERE table_name = ? AND id = ?",
                (table, record_id),
            )
            if cursor.rowcount == 0:
                raise RecordNotFound(table, record_id)

        self._run(_delete)


def _dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
