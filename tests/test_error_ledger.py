"""Tests for ErrorLedger history bounds and statistics."""

import pytest

from error_recovery.error_ledger import ErrorLedger
from error_recovery.models import ErrorCategory


class TestHistory:

    def test_history_is_capped_fifo(self, make_record):
        ledger = ErrorLedger(history_limit=5)
        records = [make_record(f"connection refused #{i}") for i in range(6)]
        for record in records:
            ledger.record(record)

        history = ledger.history("client-a")
        assert len(history) == 5
        assert history == tuple(records[1:])
        # Counters still see every error
        assert ledger.errors_by_client["client-a"] == 6

    def test_history_keeps_classification_order_per_client(self, make_record):
        ledger = ErrorLedger()
        first = make_record("timeout", client_id="a")
        other = make_record("timeout", client_id="b")
        second = make_record("invalid input", client_id="a")
        for record in (first, other, second):
            ledger.record(record)

        assert ledger.history("a") == (first, second)
        assert ledger.latest("a") is second
        assert ledger.latest("missing") is None

    def test_snapshots_are_read_only(self, make_record):
        ledger = ErrorLedger()
        ledger.record(make_record())

        snapshot = ledger.all_history()
        assert isinstance(snapshot["client-a"], tuple)
        with pytest.raises(TypeError):
            snapshot["client-b"] = ()

        ledger.record(make_record())
        assert len(snapshot["client-a"]) == 1
        assert ledger.history("unknown") == ()


class TestClear:

    def test_clear_one_client(self, make_record):
        ledger = ErrorLedger()
        ledger.record(make_record(client_id="a"))
        ledger.record(make_record(client_id="b"))

        ledger.clear("a")
        assert ledger.history("a") == ()
        assert len(ledger.history("b")) == 1

    def test_clear_all_is_idempotent_and_keeps_counters(self, make_record):
        ledger = ErrorLedger()
        for message in ("token expired", "connection refused", "boom"):
            ledger.record(make_record(message))
        before = ledger.statistics()

        ledger.clear()
        ledger.clear()

        assert ledger.all_history() == {}
        assert ledger.statistics() == before


class TestStatistics:

    def test_totals_match_category_and_client_sums(self, make_record):
        ledger = ErrorLedger(history_limit=2)
        messages = ["token expired", "connection refused", "deadline", "invalid", "boom", "batch"]
        for index, message in enumerate(messages * 3):
            ledger.record(make_record(message, client_id=f"client-{index % 4}"))

        stats = ledger.statistics()
        assert stats["total_errors"] == 18
        assert sum(stats["errors_by_category"].values()) == stats["total_errors"]
        assert sum(stats["errors_by_client"].values()) == stats["total_errors"]
        assert stats["errors_by_category"]["authentication"] == 3
        assert ledger.errors_by_category[ErrorCategory.UNKNOWN] == 3

    def test_reset(self, make_record):
        ledger = ErrorLedger()
        ledger.record(make_record())
        ledger.reset()
        assert ledger.statistics() == {"total_errors": 0, "errors_by_category": {}, "errors_by_client": {}}
