"""Tests for the exchange history store."""

from __future__ import annotations

import pytest

from shellpane.storage.history import HistoryError, HistoryEvent, HistoryStore
from shellpane.storage.models import AttributedPayload, Exchange, StructuredPayload, StyledRun


def _exchange(command: str, status: int | None = None) -> Exchange:
    return Exchange(prompt="work % ", command=command, exit_status=status)


class TestAppend:
    def test_order_preserved(self, history):
        for command in ("ls", "pwd", "make test"):
            history.append(_exchange(command))
        assert [e.command for e in history.exchanges] == ["ls", "pwd", "make test"]
        assert len(history) == 3

    def test_duplicate_id_rejected(self, history):
        exchange = history.append(_exchange("ls"))
        with pytest.raises(HistoryError):
            history.append(exchange)

    def test_get_unknown(self, history):
        with pytest.raises(HistoryError):
            history.get("missing")


class TestLifecycle:
    def test_provisional_update_then_complete(self, history):
        exchange = history.append(_exchange("echo hi"))
        assert exchange.running

        history.update_payload(exchange.id, AttributedPayload((StyledRun("h"),)))
        assert exchange.payload == AttributedPayload((StyledRun("h"),))

        history.complete(exchange.id, AttributedPayload((StyledRun("hi"),)), 0, 12)
        assert not exchange.running
        assert exchange.exit_status == 0
        assert exchange.duration_ms == 12
        assert exchange.payload.runs[0].text == "hi"

    def test_complete_without_payload_keeps_current(self, history):
        exchange = history.append(_exchange("tool"))
        history.update_payload(exchange.id, AttributedPayload((StyledRun("partial"),)))
        history.complete(exchange.id, None, 0)
        assert exchange.payload == AttributedPayload((StyledRun("partial"),))

    def test_completed_exchange_cannot_change(self, history):
        exchange = history.append(_exchange("ls"))
        history.complete(exchange.id, StructuredPayload("done"), 0)
        with pytest.raises(HistoryError):
            history.complete(exchange.id, StructuredPayload("again"), 1)
        with pytest.raises(HistoryError):
            history.update_payload(exchange.id, AttributedPayload())
        assert exchange.exit_status == 0

    def test_exit_status_zero_is_complete(self, history):
        exchange = history.append(_exchange("true"))
        history.complete(exchange.id, None, 0)
        assert exchange.exit_status == 0
        assert not exchange.running


class TestFilter:
    def test_matching_append_is_included(self, history):
        history.filter_text = "GREP"
        history.append(_exchange("grep -r todo ."))
        history.append(_exchange("ls"))
        assert [e.command for e in history.filtered] == ["grep -r todo ."]

    def test_changing_filter_does_not_mutate_store(self, history):
        history.append(_exchange("grep -r todo ."))
        history.filter_text = "grep"
        assert len(history.filtered) == 1

        history.filter_text = "make"
        assert history.filtered == []
        assert len(history.exchanges) == 1

    def test_empty_filter_shows_everything(self, history):
        history.append(_exchange("a"))
        history.append(_exchange("b"))
        history.filter_text = ""
        assert len(history.filtered) == 2


class TestListeners:
    def test_events_delivered(self, history):
        events: list[tuple[HistoryEvent, str | None]] = []
        history.subscribe(lambda event, exchange: events.append((event, exchange and exchange.command)))

        exchange = history.append(_exchange("ls"))
        history.update_payload(exchange.id, AttributedPayload())
        history.complete(exchange.id, None, 0)
        history.filter_text = "x"

        assert events == [
            (HistoryEvent.APPENDED, "ls"),
            (HistoryEvent.UPDATED, "ls"),
            (HistoryEvent.COMPLETED, "ls"),
            (HistoryEvent.FILTERED, None),
        ]

    def test_unsubscribe(self, history):
        events = []
        unsubscribe = history.subscribe(lambda event, exchange: events.append(event))
        unsubscribe()
        history.append(_exchange("ls"))
        assert events == []

    def test_failing_listener_does_not_break_store(self, history):
        def broken(event, exchange):
            raise RuntimeError("boom")

        history.subscribe(broken)
        history.append(_exchange("ls"))
        assert len(history) == 1

    def test_independent_stores(self):
        out, err = HistoryStore("stdout"), HistoryStore("stderr")
        out.append(_exchange("ls"))
        assert len(err) == 0
