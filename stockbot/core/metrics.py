"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict


@dataclass
class MetricSnapshot:
    total_messages: int
    outcomes: Dict[str, int]
    clauses_total: int
    clauses_valid: int
    updates_applied: int
    updates_failed: int
    self_heals: int


class MetricsCollector:
    """Thread-safe counter storage for basic service metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_messages = 0
        self._outcomes: Counter[str] = Counter()
        self._clauses_total = 0
        self._clauses_valid = 0
        self._updates_applied = 0
        self._updates_failed = 0
        self._self_heals = 0

    def record_message(self, outcome: str) -> None:
        with self._lock:
            self._total_messages += 1
            self._outcomes[outcome] += 1

    def record_clauses(self, total: int, valid: int) -> None:
        with self._lock:
            self._clauses_total += total
            self._clauses_valid += valid

    def record_updates(self, applied: int, failed: int) -> None:
        with self._lock:
            self._updates_applied += applied
            self._updates_failed += failed

    def record_self_heal(self) -> None:
        with self._lock:
            self._self_heals += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_messages=self._total_messages,
                outcomes=dict(self._outcomes),
                clauses_total=self._clauses_total,
                clauses_valid=self._clauses_valid,
                updates_applied=self._updates_applied,
                updates_failed=self._updates_failed,
                self_heals=self._self_heals,
            )
