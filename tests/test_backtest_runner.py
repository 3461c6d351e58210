from __future__ import annotations

import json
from datetime import timedelta
from typing import Sequence

import pandas as pd
import pytest

from conftest import at

from futures_trading.backtest.data import bars_from_frame, normalize_bars
from futures_trading.backtest.runner import run_backtest, write_backtest_artifacts
from futures_trading.backtest.types import BacktestConfig
from futures_trading.config import Settings
from futures_trading.strategy.base import EntryOnlySignalGenerator
from futures_trading.types import Bar, Direction, ExitReason, TradeSetup


class _EnterOnBars(EntryOnlySignalGenerator):
    """Goes long at the close of the listed bar indexes."""

    def __init__(self, indexes: set[int], *, stop: float = 10.0, target: float = 20.0) -> None:
        self._indexes = indexes
        self._stop = stop
        self._target = target

    def check_entry(
        self,
        bars: Sequence[Bar],
        regime: str,
        confidence: float,
    ) -> TradeSetup | None:
        if len(bars) - 1 not in self._indexes:
            return None
        close = bars[-1].close
        return TradeSetup(
            instrument="MGC",
            direction=Direction.LONG,
            entry_price=close,
            stop_price=close - self._stop,
            target_price=close + self._target,
            confidence=confidence,
        )


def _bars(prices: Sequence[tuple[float, float, float]]) -> list[Bar]:
    """Hourly bars from 10:00 on 2024-03-04, five per day, outside blackouts."""
    bars = []
    for idx, (high, low, close) in enumerate(prices):
        day, slot = divmod(idx, 5)
        ts = at(4, 10) + timedelta(days=day, hours=slot)
        bars.append(Bar(timestamp=ts, open=close, high=high, low=low, close=close))
    return bars


def _settings() -> Settings:
    return Settings(journal_dir="data/journal")


def test_open_position_is_closed_at_end_of_data() -> None:
    bars = _bars([(2_001, 1_999, 2_000), (2_002, 1_998, 2_000), (2_003, 1_999, 2_001)])
    result = run_backtest(settings=_settings(), bars=bars, strategy=_EnterOnBars({0}))

    assert result.total_trades == 1
    trade = result.trades[0]
    assert trade.exit_reason is ExitReason.TIME_EXIT
    assert trade.exit_price == 2_001.0
    assert trade.pnl == pytest.approx(10.0)
    assert result.equity_curve == [25_000.0, 25_010.0]
    assert result.trades_approved == 1


def test_stop_then_target() -> None:
    bars = _bars(
        [
            (2_001, 1_999, 2_000),
            (2_001, 1_989, 1_995),
            (2_000, 1_994, 1_995),
            (2_016, 1_996, 2_015),
        ]
    )
    result = run_backtest(settings=_settings(), bars=bars, strategy=_EnterOnBars({0, 2}))

    assert [t.exit_reason for t in result.trades] == [ExitReason.STOP, ExitReason.TARGET]
    assert [t.pnl for t in result.trades] == pytest.approx([-100.0, 200.0])
    assert result.equity_curve == pytest.approx([25_000.0, 24_900.0, 25_100.0])
    assert result.max_drawdown == pytest.approx(100.0)
    assert result.max_consecutive_losses == 1


def test_replay_is_deterministic() -> None:
    prices = [(2_003 + i % 3, 1_995 - i % 2, 2_000 + (i % 5) - 2) for i in range(30)]
    strategy = _EnterOnBars(set(range(0, 30, 3)))
    first = run_backtest(settings=_settings(), bars=_bars(prices), strategy=strategy)
    second = run_backtest(settings=_settings(), bars=_bars(prices), strategy=strategy)
    assert first.trades == second.trades
    assert first.equity_curve == second.equity_curve
    assert first.rejection_reasons == second.rejection_reasons


def test_rejections_are_counted_by_reason() -> None:
    bars = _bars([(2_001, 1_999, 2_000)] * 4)
    result = run_backtest(
        settings=_settings(),
        bars=bars,
        strategy=_EnterOnBars({0, 1, 2, 3}, target=5.0),
    )
    assert result.total_trades == 0
    assert result.trades_rejected == 4
    assert result.rejection_reasons == {"Risk/Reward ratio too low: 0.50 (minimum 0.80)": 4}
    assert result.equity_curve == [25_000.0]


def test_rejection_keys_are_truncated() -> None:
    bars = _bars([(2_001, 1_999, 2_000)] * 2)
    result = run_backtest(
        settings=_settings(),
        bars=bars,
        strategy=_EnterOnBars({0, 1}, target=5.0),
        config=BacktestConfig(reason_key_length=10),
    )
    assert result.rejection_reasons == {"Risk/Rewar": 2}


def test_write_artifacts(tmp_path) -> None:
    bars = _bars([(2_001, 1_999, 2_000), (2_003, 1_999, 2_001)])
    result = run_backtest(settings=_settings(), bars=bars, strategy=_EnterOnBars({0}))
    write_backtest_artifacts(tmp_path / "out", result, robustness={"note": "ok"})

    trades = pd.read_csv(tmp_path / "out" / "trades.csv")
    assert list(trades["exit_reason"]) == ["time-exit"]
    equity = pd.read_csv(tmp_path / "out" / "equity_curve.csv")
    assert list(equity["equity"]) == [25_000.0, 25_010.0]
    metrics = json.loads((tmp_path / "out" / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["instrument"] == "MGC"
    assert metrics["metrics"]["trade_count"] == 1
    assert (tmp_path / "out" / "robustness.json").exists()


def test_normalize_bars_validates_and_sorts() -> None:
    frame = pd.DataFrame(
        {
            "timestamp": ["2024-03-04 11:00", "2024-03-04 10:00"],
            "open": [2_001, 2_000],
            "high": [2_002, 2_001],
            "low": [2_000, 1_999],
            "close": [2_001, 2_000],
            "atr": [4.0, None],
        }
    )
    bars = bars_from_frame(normalize_bars(frame))
    assert [bar.close for bar in bars] == [2_000.0, 2_001.0]
    assert bars[0].atr is None
    assert bars[1].atr == 4.0

    with pytest.raises(ValueError, match="missing_bar_columns"):
        normalize_bars(frame.drop(columns=["close"]))
    bad = frame.copy()
    bad.loc[0, "high"] = 1_000
    with pytest.raises(ValueError, match="bar_high_below_low"):
        normalize_bars(bad)


def test_normalize_bars_parses_to_utc_and_drops_duplicate_stamps() -> None:
    frame = pd.DataFrame(
        {
            "timestamp": ["2024-03-04 10:00", "2024-03-04 11:00", "2024-03-04 10:00"],
            "open": [2_000, 2_001, 2_000],
            "high": [2_001, 2_002, 2_003],
            "low": [1_999, 2_000, 1_999],
            "close": [2_000, 2_001, 2_002],
        }
    )
    bars = bars_from_frame(normalize_bars(frame))
    assert [bar.timestamp for bar in bars] == [at(4, 10), at(4, 11)]
    assert bars[0].timestamp.utcoffset() == timedelta(0)
    assert bars[0].close == 2_002.0

    zulu = frame.assign(
        timestamp=["2024-03-04T15:00:00Z", "2024-03-04T16:00:00Z", "2024-03-04T17:00:00Z"]
    )
    bars = bars_from_frame(normalize_bars(zulu))
    assert [bar.timestamp for bar in bars] == [at(4, 10), at(4, 11), at(4, 12)]
