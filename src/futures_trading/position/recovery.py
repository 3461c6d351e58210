"""Crash recovery by folding the day's event log.

``replay_events`` is pure; ``recover_from_journal`` only adds the file read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from futures_trading.journal.store import JournalRecord, JournalStore
from futures_trading.types import BracketOrderIds, Direction


@dataclass(frozen=True, slots=True)
class DayStats:
    """Closed-trade statistics recovered for one day."""

    trades: int = 0
    wins: int = 0
    losses: int = 0
    pnl: float = 0.0
    exits: tuple[tuple[datetime, float], ...] = ()


@dataclass(frozen=True, slots=True)
class RecoveredPosition:
    """Position that was still in flight when the log ended."""

    direction: Direction
    entry_price: float
    stop_price: float
    target_price: float
    contracts: int
    setup_type: str
    entry_time: datetime
    order_ids: BracketOrderIds
    entry_confirmed: bool


@dataclass(frozen=True, slots=True)
class RecoveredState:
    today_stats: DayStats
    open_position: RecoveredPosition | None


@dataclass(slots=True)
class _Pending:
    direction: Direction
    entry_price: float
    stop_price: float
    target_price: float
    contracts: int
    setup_type: str
    entry_time: datetime
    entry_id: int | None = None
    stop_id: int | None = None
    target_id: int | None = None
    confirmed: bool = False


@dataclass(slots=True)
class _Fold:
    trades: int = 0
    wins: int = 0
    losses: int = 0
    pnl: float = 0.0
    exits: list[tuple[datetime, float]] = field(default_factory=list)
    pending: _Pending | None = None


def replay_events(events: Iterable[JournalRecord]) -> RecoveredState:
    """Rebuild today's stats and any in-flight position from ordered events."""
    state = _Fold()
    for event in events:
        _apply(state, event)

    pending = state.pending
    open_position: RecoveredPosition | None = None
    if pending is not None and pending.entry_id is not None:
        open_position = RecoveredPosition(
            direction=pending.direction,
            entry_price=pending.entry_price,
            stop_price=pending.stop_price,
            target_price=pending.target_price,
            contracts=pending.contracts,
            setup_type=pending.setup_type,
            entry_time=pending.entry_time,
            order_ids=BracketOrderIds(
                entry=pending.entry_id,
                stop=pending.stop_id if pending.stop_id is not None else pending.entry_id + 1,
                target=pending.target_id if pending.target_id is not None else pending.entry_id + 2,
            ),
            entry_confirmed=pending.confirmed,
        )

    return RecoveredState(
        today_stats=DayStats(
            trades=state.trades,
            wins=state.wins,
            losses=state.losses,
            pnl=state.pnl,
            exits=tuple(state.exits),
        ),
        open_position=open_position,
    )


def recover_from_journal(journal: JournalStore, day: date) -> RecoveredState:
    return replay_events(journal.load_day(day))


def _apply(state: _Fold, event: JournalRecord) -> None:
    payload = event.payload
    if event.event_type == "signal":
        if not payload.get("taken", False):
            return
        state.pending = _Pending(
            direction=Direction(payload["direction"]),
            entry_price=float(payload["entry_price"]),
            stop_price=float(payload["stop_price"]),
            target_price=float(payload["target_price"]),
            contracts=int(payload.get("contracts", 1)),
            setup_type=str(payload.get("setup_type", "")),
            entry_time=event.timestamp,
        )
    elif event.event_type == "order":
        if state.pending is None:
            return
        _assign_order(state.pending, payload)
    elif event.event_type == "fill":
        pending = state.pending
        if pending is not None and pending.entry_id is not None:
            if int(payload["order_id"]) == pending.entry_id:
                pending.entry_price = float(payload["fill_price"])
                pending.confirmed = True
    elif event.event_type == "stop_update":
        if state.pending is not None:
            state.pending.stop_price = float(payload["new_stop"])
    elif event.event_type == "exit":
        pnl = float(payload["pnl"])
        state.trades += 1
        if pnl > 0:
            state.wins += 1
        elif pnl < 0:
            state.losses += 1
        state.pnl += pnl
        if payload.get("counts_toward_risk", True):
            state.exits.append((event.timestamp, pnl))
        state.pending = None


def _assign_order(pending: _Pending, payload: dict[str, Any]) -> None:
    order_id = int(payload["order_id"])
    role = payload.get("role")
    if role == "entry":
        pending.entry_id = order_id
        pending.confirmed = False
    elif role == "stop":
        pending.stop_id = order_id
    elif role == "target":
        pending.target_id = order_id
