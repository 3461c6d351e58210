"""Signal generator capability interface."""

from __future__ import annotations

from typing import Protocol, Sequence

from futures_trading.types import Bar, ExitAction, Position, TradeSetup


class SignalGenerator(Protocol):
    """Entry and exit hooks supplied per instrument at construction."""

    def check_entry(
        self,
        bars: Sequence[Bar],
        regime: str,
        confidence: float,
    ) -> TradeSetup | None:
        """Return a candidate setup from bars up to now, or None."""

    def manage_exit(
        self,
        bars: Sequence[Bar],
        position: Position,
    ) -> tuple[ExitAction, float | None]:
        """Return an exit action and its price for the latest bar."""


class EntryOnlySignalGenerator:
    """Base for generators that leave exits to the position manager."""

    def check_entry(
        self,
        bars: Sequence[Bar],
        regime: str,
        confidence: float,
    ) -> TradeSetup | None:
        raise NotImplementedError

    def manage_exit(
        self,
        bars: Sequence[Bar],
        position: Position,
    ) -> tuple[ExitAction, float | None]:
        return ExitAction.HOLD, None
