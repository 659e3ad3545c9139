"""Per-actor dialog state stores with lazy expiry and compare-and-delete."""

from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Generic, Iterator, TypeVar

from stockbot.core.db import init_schema, sqlite_connection
from stockbot.dialog.models import CorrectionState, PendingConfirmation, utcnow


S = TypeVar("S", PendingConfirmation, CorrectionState)


class ActorStateStore(ABC, Generic[S]):
    """One state entry per actor; a newer ``put`` replaces the older one."""

    @abstractmethod
    def put(self, state: S) -> None:
        """Store ``state``, overwriting any entry for the same actor."""

    @abstractmethod
    def peek(self, actor_id: str) -> S | None:
        """Return the live entry for ``actor_id``; expired entries read as absent."""

    @abstractmethod
    def take(self, actor_id: str, created_at: datetime) -> bool:
        """Delete the entry only if it is still the one created at ``created_at``."""

    @abstractmethod
    def take_expired(self, actor_id: str) -> S | None:
        """Consume and return the entry for ``actor_id`` if it has expired."""

    def pop(self, actor_id: str) -> S | None:
        """Read and consume the live entry in one step."""

        state = self.peek(actor_id)
        if state is None or not self.take(actor_id, state.created_at):
            return None
        return state


class SQLiteActorStateStore(ActorStateStore[S]):
    """SQLite-backed store shared by the confirmation and correction dialogs."""

    def __init__(
        self,
        db_path: Path,
        *,
        kind: str,
        factory: Callable[[str, dict, datetime], S],
        ttl_seconds: float,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db_path = Path(db_path)
        self.kind = kind
        self.factory = factory
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock
        self._schema_ready = False

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if not self._schema_ready:
            self._ensure_schema()
        with sqlite_connection(self.db_path) as conn:
            yield conn

    def _ensure_schema(self) -> None:
        init_schema(
            self.db_path,
            """
                CREATE TABLE IF NOT EXISTS actor_state (
                    actor_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    body TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (actor_id, kind)
                );
            """,
        )
        self._schema_ready = True

    def put(self, state: S) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO actor_state (actor_id, kind, body, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(actor_id, kind) DO UPDATE SET
                    body = excluded.body,
                    created_at = excluded.created_at
                """,
                (
                    state.actor_id,
                    self.kind,
                    json.dumps(state.to_body(), ensure_ascii=False),
                    state.created_at.isoformat(),
                ),
            )

    def _read(self, actor_id: str) -> S | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT body, created_at FROM actor_state WHERE actor_id = ? AND kind = ?",
                (actor_id, self.kind),
            ).fetchone()
        if row is None:
            return None
        return self.factory(actor_id, json.loads(row["body"]), datetime.fromisoformat(row["created_at"]))

    def _expired(self, state: S) -> bool:
        return self.clock() - state.created_at > self.ttl

    def peek(self, actor_id: str) -> S | None:
        state = self._read(actor_id)
        if state is None:
            return None
        if self._expired(state):
            self.take(actor_id, state.created_at)
            return None
        return state

    def take_expired(self, actor_id: str) -> S | None:
        state = self._read(actor_id)
        if state is None or not self._expired(state):
            return None
        return state if self.take(actor_id, state.created_at) else None

    def take(self, actor_id: str, created_at: datetime) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM actor_state WHERE actor_id = ? AND kind = ? AND created_at = ?",
                (actor_id, self.kind, created_at.isoformat()),
            )
            return cursor.rowcount > 0


def confirmation_store(db_path: Path, ttl_seconds: float, **kwargs) -> SQLiteActorStateStore[PendingConfirmation]:
    return SQLiteActorStateStore(
        db_path,
        kind="confirmation",
        factory=PendingConfirmation.from_body,
        ttl_seconds=ttl_seconds,
        **kwargs,
    )


def correction_store(db_path: Path, ttl_seconds: float, **kwargs) -> SQLiteActorStateStore[CorrectionState]:
    return SQLiteActorStateStore(
        db_path,
        kind="correction",
        factory=CorrectionState.from_body,
        ttl_seconds=ttl_seconds,
        **kwargs,
    )
