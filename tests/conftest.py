from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from futures_trading.config import Settings
from futures_trading.types import Direction, TradeSetup

NY = ZoneInfo("America/New_York")


def at(day: int, hour: int, minute: int = 0, *, month: int = 3) -> datetime:
    """Venue-local timestamp in March 2024 (the 4th is a Monday)."""
    return datetime(2024, month, day, hour, minute, tzinfo=NY)


def long_setup(
    *,
    entry: float = 2_000.0,
    stop: float = 1_990.0,
    target: float = 2_020.0,
    instrument: str = "MGC",
    setup_type: str = "PULLBACK",
) -> TradeSetup:
    return TradeSetup(
        instrument=instrument,
        direction=Direction.LONG,
        entry_price=entry,
        stop_price=stop,
        target_price=target,
        confidence=85.0,
        setup_type=setup_type,
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(journal_dir=tmp_path / "journal")
