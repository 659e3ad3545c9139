import logging

from stockbot.core.logging import CorrelationIdFilter, correlation_id
from stockbot.core.metrics import MetricsCollector


def test_filter_stamps_active_correlation_id():
    record = logging.LogRecord("stockbot.test", logging.INFO, __file__, 1, "hello", None, None)
    token = correlation_id.set("rid-42")
    try:
        assert CorrelationIdFilter().filter(record) is True
    finally:
        correlation_id.reset(token)

    assert record.rid == "rid-42"


def test_metrics_snapshot_counts():
    metrics = MetricsCollector()
    metrics.record_message("updates_applied")
    metrics.record_message("no_valid_updates")
    metrics.record_message("updates_applied")
    metrics.record_clauses(3, 2)
    metrics.record_updates(2, 0)

    snapshot = metrics.snapshot()

    assert snapshot.total_messages == 3
    assert snapshot.outcomes == {"updates_applied": 2, "no_valid_updates": 1}
    assert (snapshot.clauses_total, snapshot.clauses_valid) == (3, 2)
    assert (snapshot.updates_applied, snapshot.updates_failed) == (2, 0)
