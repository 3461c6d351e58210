from __future__ import annotations

from typing import Sequence

import pytest

from conftest import at, long_setup

from futures_trading.config import Settings
from futures_trading.position.manager import (
    LifecycleState,
    PositionManager,
    PositionStateError,
    UnreconciledPositionError,
)
from futures_trading.types import (
    PULLBACK,
    TREND_RIDE,
    Bar,
    BracketOrderIds,
    Direction,
    ExitAction,
    ExitReason,
    Position,
    TradeDecision,
)

APPROVED = TradeDecision(approved=True, contracts=1, risk_per_contract=100.0)


def _bar(minute: int, high: float, low: float, *, atr: float = 5.0) -> Bar:
    close = (high + low) / 2
    return Bar(timestamp=at(4, 11, minute), open=close, high=high, low=low, close=close, atr=atr)


def _manager(**kwargs: object) -> PositionManager:
    settings = Settings(journal_dir="data/journal")
    return PositionManager(settings, "MGC", **kwargs)  # type: ignore[arg-type]


class _ScriptedExits:
    def __init__(self, action: ExitAction, price: float | None) -> None:
        self._action = action
        self._price = price

    def check_entry(self, bars: Sequence[Bar], regime: str, confidence: float) -> None:
        return None

    def manage_exit(
        self,
        bars: Sequence[Bar],
        position: Position,
    ) -> tuple[ExitAction, float | None]:
        return self._action, self._price


def test_breakeven_then_stop_at_entry() -> None:
    manager = _manager()
    manager.open_filled(long_setup(target=2_040.0), APPROVED, at(4, 10), 0)

    first = manager.manage_exit([_bar(0, high=2_006.0, low=2_001.0)])
    assert first.action is ExitAction.BREAKEVEN
    assert first.stop_moved
    assert manager.snapshot().stop_price == 2_000.0  # type: ignore[union-attr]

    second = manager.manage_exit([_bar(1, high=2_003.0, low=2_000.5)])
    assert second.action is ExitAction.HOLD
    assert manager.snapshot().stop_price == 2_000.0  # type: ignore[union-attr]

    third = manager.manage_exit([_bar(2, high=2_002.0, low=1_999.0)])
    assert third.action is ExitAction.STOP
    assert third.price == 2_000.0

    trade = manager.close(third.price, ExitReason.STOP, at(4, 11, 2))
    assert trade.pnl == 0.0
    assert manager.is_flat
    assert manager.trade_count == 1


def test_trend_ride_trail_only_tightens() -> None:
    manager = _manager()
    manager.open_filled(
        long_setup(target=2_100.0, setup_type=TREND_RIDE),
        APPROVED,
        at(4, 10),
        0,
    )
    bars = [
        _bar(0, high=2_010.0, low=2_005.0, atr=4.0),
        _bar(1, high=2_008.0, low=2_006.0, atr=4.0),
        _bar(2, high=2_020.0, low=2_015.0, atr=4.0),
    ]
    stops = []
    for idx in range(len(bars)):
        signal = manager.manage_exit(bars[: idx + 1])
        assert not signal.is_terminal
        stops.append(manager.snapshot().stop_price)  # type: ignore[union-attr]

    assert stops == [2_004.0, 2_004.0, 2_014.0]
    assert manager.snapshot().trailing_extreme_price == 2_020.0  # type: ignore[union-attr]

    exit_signal = manager.manage_exit(bars + [_bar(3, high=2_016.0, low=2_013.0, atr=4.0)])
    assert exit_signal.action is ExitAction.STOP
    assert exit_signal.price is not None
    trade = manager.close(exit_signal.price, ExitReason.STOP, at(4, 11, 3))
    assert trade.pnl == pytest.approx(140.0)


def test_target_hit() -> None:
    manager = _manager()
    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    signal = manager.manage_exit([_bar(0, high=2_021.0, low=2_001.0, atr=50.0)])
    assert signal.action is ExitAction.TARGET
    assert signal.price == 2_020.0


def test_strategy_hook_takes_precedence() -> None:
    manager = _manager(strategy=_ScriptedExits(ExitAction.TARGET, 2_015.0))
    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    signal = manager.manage_exit([_bar(0, high=2_003.0, low=2_001.0)])
    assert signal.action is ExitAction.TARGET
    assert signal.price == 2_015.0


def test_strategy_hook_cannot_loosen_stop() -> None:
    manager = _manager(strategy=_ScriptedExits(ExitAction.TRAIL, 1_980.0))
    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    manager.manage_exit([_bar(0, high=2_003.0, low=2_001.0)])
    assert manager.snapshot().stop_price == 1_990.0  # type: ignore[union-attr]


def test_pending_entry_confirm_and_cancel() -> None:
    manager = _manager()
    ids = BracketOrderIds(entry=10, stop=11, target=12)
    manager.open_pending(long_setup(), APPROVED, at(4, 10), 0, ids)
    assert manager.state is LifecycleState.PENDING_ENTRY
    with pytest.raises(PositionStateError):
        manager.manage_exit([_bar(0, high=2_003.0, low=2_001.0)])

    manager.confirm_entry(2_000.5, at(4, 10, 1))
    assert manager.state is LifecycleState.OPEN
    assert manager.snapshot().entry_price == 2_000.5  # type: ignore[union-attr]

    other = _manager()
    other.open_pending(long_setup(), APPROVED, at(4, 10), 0, ids)
    other.cancel_entry(at(4, 10, 5))
    assert other.is_flat
    assert other.trade_count == 0


def test_second_open_is_rejected() -> None:
    manager = _manager()
    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    with pytest.raises(PositionStateError):
        manager.open_filled(long_setup(), APPROVED, at(4, 10, 1), 1)


def test_reconcile_confirmed_position_missing_at_venue() -> None:
    manager = _manager()
    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    outcome = manager.reconcile(0, 1_995.0, at(4, 10, 30))
    assert outcome.correction == "synthetic_close"
    assert outcome.trade is not None
    assert outcome.trade.exit_reason is ExitReason.RECONCILE
    assert outcome.trade.pnl == pytest.approx(-50.0)
    assert outcome.counts_toward_risk
    assert manager.is_flat


def test_reconcile_unfilled_entry_missing_at_venue() -> None:
    manager = _manager()
    ids = BracketOrderIds(entry=10, stop=11, target=12)
    manager.open_pending(long_setup(), APPROVED, at(4, 10), 0, ids)
    outcome = manager.reconcile(0, 1_995.0, at(4, 10, 30))
    assert outcome.correction == "phantom_entry_cleared"
    assert outcome.trade is not None
    assert outcome.trade.exit_reason is ExitReason.RECONCILE_NO_FILL
    assert outcome.trade.pnl == 0.0
    assert outcome.orders_to_cancel == (10, 11, 12)
    assert not outcome.counts_toward_risk
    assert manager.is_flat


def test_reconcile_adopts_venue_fill_and_quantity() -> None:
    manager = _manager()
    ids = BracketOrderIds(entry=10, stop=11, target=12)
    manager.open_pending(long_setup(), APPROVED, at(4, 10), 0, ids)
    outcome = manager.reconcile(2, 2_001.0, at(4, 10, 30))
    assert outcome.correction == "adopted_unreported_fill,adopted_venue_quantity"
    assert manager.state is LifecycleState.OPEN
    assert manager.snapshot().contracts == 2  # type: ignore[union-attr]

    assert manager.reconcile(2, 2_001.0, at(4, 10, 31)).in_sync


def test_reconcile_surfaces_unknown_venue_position() -> None:
    manager = _manager()
    assert manager.reconcile(0, None, at(4, 10)).in_sync
    with pytest.raises(UnreconciledPositionError):
        manager.reconcile(1, 2_000.0, at(4, 10))

    manager.open_filled(long_setup(), APPROVED, at(4, 10), 0)
    with pytest.raises(UnreconciledPositionError):
        manager.reconcile(-1, 2_000.0, at(4, 10, 1))


def test_position_open_profit_and_r_multiple() -> None:
    short = Position(
        instrument="MGC",
        direction=Direction.SHORT,
        entry_price=2_000.0,
        stop_price=2_010.0,
        target_price=1_980.0,
        contracts=2,
        risk_per_contract=100.0,
        entry_time=at(4, 10),
        entry_bar_index=0,
        setup_type=PULLBACK,
    )
    assert short.unrealized_pnl(1_990.0, 10.0) == 200.0
    assert short.unrealized_pnl(2_005.0, 10.0) == -100.0
    assert short.r_multiple(1_985.0) == pytest.approx(1.5)
    assert short.r_multiple(2_010.0) == pytest.approx(-1.0)

    short.stop_price = short.entry_price
    assert short.r_multiple(1_990.0) == 0.0
