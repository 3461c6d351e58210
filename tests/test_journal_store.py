from __future__ import annotations

import json
from datetime import UTC, date, datetime

import pytest

from conftest import NY, at

from futures_trading.journal.store import JournalStore


def test_append_writes_one_line_per_event(tmp_path) -> None:
    store = JournalStore(tmp_path, "MGC", NY)
    store.append("signal", {"taken": False, "direction": "LONG"}, at=at(4, 10))
    store.append("status", {"status": "recovered"}, at=at(4, 10, 1))

    path = tmp_path / "MGC_2024-03-04.jsonl"
    assert path == store.path_for_day(date(2024, 3, 4))
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["event_type"] == "signal"
    assert first["instrument"] == "MGC"
    assert first["payload"]["direction"] == "LONG"


def test_files_are_split_by_venue_day(tmp_path) -> None:
    store = JournalStore(tmp_path, "MES", NY)
    # 03:00 UTC on the 5th is still the evening of the 4th in New York.
    store.append("bar", {"close": 5_000.0}, at=datetime(2024, 3, 5, 3, 0, tzinfo=UTC))
    store.append("bar", {"close": 5_001.0}, at=datetime(2024, 3, 5, 15, 0, tzinfo=UTC))

    assert [r.payload["close"] for r in store.load_day(date(2024, 3, 4))] == [5_000.0]
    assert [r.payload["close"] for r in store.load_day(date(2024, 3, 5))] == [5_001.0]
    assert store.load_day(date(2024, 3, 6)) == []


def test_load_day_preserves_write_order(tmp_path) -> None:
    store = JournalStore(tmp_path, "MGC", NY)
    for order_id in (7, 8, 9):
        store.append("order", {"order_id": order_id}, at=at(4, 10))
    records = store.load_day(date(2024, 3, 4))
    assert [r.payload["order_id"] for r in records] == [7, 8, 9]
    assert records[0].timestamp == at(4, 10)


def test_rejects_unknown_event_type(tmp_path) -> None:
    store = JournalStore(tmp_path, "MGC", NY)
    with pytest.raises(ValueError, match="unsupported_event_type"):
        store.append("heartbeat", {}, at=at(4, 10))
