from __future__ import annotations

from datetime import date
from typing import Any

from conftest import NY, at

from futures_trading.journal.store import JournalRecord, JournalStore
from futures_trading.position.recovery import recover_from_journal, replay_events
from futures_trading.types import BracketOrderIds, Direction


def _event(minute: int, event_type: str, payload: dict[str, Any]) -> JournalRecord:
    return JournalRecord(
        timestamp=at(4, 10, minute),
        event_type=event_type,  # type: ignore[arg-type]
        instrument="MGC",
        payload=payload,
    )


def _signal(minute: int) -> JournalRecord:
    return _event(
        minute,
        "signal",
        {
            "taken": True,
            "direction": "LONG",
            "entry_price": 2_000.0,
            "stop_price": 1_990.0,
            "target_price": 2_020.0,
            "contracts": 1,
            "setup_type": "PULLBACK",
        },
    )


def _bracket(minute: int, entry_id: int) -> list[JournalRecord]:
    return [
        _event(minute, "order", {"order_id": entry_id, "role": "entry"}),
        _event(minute, "order", {"order_id": entry_id + 1, "role": "stop"}),
        _event(minute, "order", {"order_id": entry_id + 2, "role": "target"}),
    ]


def test_empty_log_recovers_nothing() -> None:
    state = replay_events([])
    assert state.open_position is None
    assert state.today_stats.trades == 0


def test_fold_restores_open_position_and_day_stats() -> None:
    events = [
        _signal(0),
        *_bracket(0, 100),
        _event(1, "fill", {"order_id": 100, "fill_price": 2_000.0}),
        _event(5, "exit", {"pnl": -100.0, "exit_reason": "stop"}),
        _signal(10),
        *_bracket(10, 200),
        _event(11, "fill", {"order_id": 200, "fill_price": 2_000.5}),
        _event(12, "stop_update", {"old_stop": 1_990.0, "new_stop": 2_000.5}),
    ]
    state = replay_events(events)

    stats = state.today_stats
    assert (stats.trades, stats.wins, stats.losses) == (1, 0, 1)
    assert stats.pnl == -100.0
    assert stats.exits == ((at(4, 10, 5), -100.0),)

    position = state.open_position
    assert position is not None
    assert position.direction is Direction.LONG
    assert position.entry_confirmed
    assert position.entry_price == 2_000.5
    assert position.stop_price == 2_000.5
    assert position.order_ids == BracketOrderIds(entry=200, stop=201, target=202)
    assert position.entry_time == at(4, 10, 10)


def test_signal_without_orders_is_not_restored() -> None:
    state = replay_events([_signal(0)])
    assert state.open_position is None


def test_rejected_signal_is_ignored() -> None:
    rejected = _event(0, "signal", {"taken": False, "direction": "LONG"})
    state = replay_events([rejected, _event(1, "order", {"order_id": 5, "role": "entry"})])
    assert state.open_position is None


def test_unfilled_entry_is_restored_pending() -> None:
    state = replay_events([_signal(0), *_bracket(0, 300)])
    assert state.open_position is not None
    assert not state.open_position.entry_confirmed


def test_exit_not_counting_toward_risk_is_kept_out_of_exits() -> None:
    events = [
        _signal(0),
        *_bracket(0, 100),
        _event(5, "exit", {"pnl": 0.0, "counts_toward_risk": False}),
    ]
    state = replay_events(events)
    assert state.today_stats.trades == 1
    assert state.today_stats.exits == ()
    assert state.open_position is None


def test_recover_from_journal_reads_the_day_file(tmp_path) -> None:
    store = JournalStore(tmp_path, "MGC", NY)
    for record in [_signal(0), *_bracket(0, 100)]:
        store.append(record.event_type, record.payload, at=record.timestamp)
    store.append("fill", {"order_id": 100, "fill_price": 1_999.5}, at=at(4, 10, 1))

    state = recover_from_journal(store, date(2024, 3, 4))
    assert state.open_position is not None
    assert state.open_position.entry_confirmed
    assert state.open_position.entry_price == 1_999.5
