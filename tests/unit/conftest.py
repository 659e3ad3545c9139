"""Pytest unit test fixtures."""

from datetime import date

import pytest

from stockbot.core.metrics import MetricsCollector
from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.reconciler import InventoryReconciler
from stockbot.parsing.catalog import get_catalog
from stockbot.storage.sqlite import SQLiteTableStore

TODAY = date(2026, 3, 10)


@pytest.fixture()
def catalog():
    return get_catalog()


@pytest.fixture()
def table_store(tmp_path):
    return SQLiteTableStore(tmp_path / "inventory.db")


@pytest.fixture()
def metrics():
    return MetricsCollector()


@pytest.fixture()
def ledger(table_store, metrics):
    return BatchLedger(table_store, settle_seconds=0, metrics=metrics, today=lambda: TODAY)


@pytest.fixture()
def reconciler(table_store, ledger):
    return InventoryReconciler(table_store, ledger)
