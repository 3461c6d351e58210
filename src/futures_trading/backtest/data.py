"""Historical bar loading helpers for backtests."""

from __future__ import annotations

from datetime import tzinfo
from pathlib import Path

import pandas as pd  # type: ignore[import-untyped]

from futures_trading.types import Bar
from futures_trading.utils.timeutil import DEFAULT_VENUE_TZ

_REQUIRED_COLUMNS = ["timestamp", "open", "high", "low", "close"]
_OPTIONAL_COLUMNS = ["volume", "atr"]


def load_bars_csv(path: Path, *, tz: tzinfo = DEFAULT_VENUE_TZ) -> list[Bar]:
    """Load bars from CSV; an ``atr`` column is attached when present."""
    return bars_from_frame(normalize_bars(pd.read_csv(path), tz=tz))


def _timestamps_to_utc(values: pd.Series, tz: tzinfo) -> pd.Series:
    try:
        parsed = pd.to_datetime(values)
    except ValueError:
        # Mixed UTC offsets only parse onto a common clock.
        return pd.to_datetime(values, utc=True)
    if parsed.dt.tz is None:
        # Offset-less stamps are venue wall-clock times.
        parsed = parsed.dt.tz_localize(tz, ambiguous="NaT", nonexistent="NaT")
    return parsed.dt.tz_convert("UTC")


def normalize_bars(df: pd.DataFrame, *, tz: tzinfo = DEFAULT_VENUE_TZ) -> pd.DataFrame:
    """Validate/normalize a dataframe to the expected bar shape.

    Timestamps come back in UTC. Rows sharing a timestamp keep the last one.
    """
    missing = [col for col in _REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ValueError(f"missing_bar_columns: {','.join(missing)}")

    columns = _REQUIRED_COLUMNS + [col for col in _OPTIONAL_COLUMNS if col in df.columns]
    normalized = df[columns].copy()
    normalized["timestamp"] = _timestamps_to_utc(normalized["timestamp"], tz)
    price_cols = ["open", "high", "low", "close"]
    for col in price_cols + [c for c in _OPTIONAL_COLUMNS if c in normalized.columns]:
        normalized[col] = pd.to_numeric(normalized[col], errors="coerce")

    normalized = normalized.dropna(subset=price_cols + ["timestamp"])
    normalized = normalized.sort_values("timestamp", kind="stable")
    normalized = normalized.drop_duplicates(subset="timestamp", keep="last")
    normalized = normalized.reset_index(drop=True)
    if normalized.empty:
        raise ValueError("normalized_bars_empty")
    if bool((normalized["high"] < normalized["low"]).any()):
        raise ValueError("bar_high_below_low")
    return normalized


def bars_from_frame(df: pd.DataFrame) -> list[Bar]:
    has_volume = "volume" in df.columns
    has_atr = "atr" in df.columns
    bars: list[Bar] = []
    for row in df.itertuples(index=False):
        atr = float(row.atr) if has_atr and pd.notna(row.atr) else None
        bars.append(
            Bar(
                timestamp=row.timestamp.to_pydatetime(),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume) if has_volume and pd.notna(row.volume) else 0.0,
                atr=atr,
            )
        )
    return bars
