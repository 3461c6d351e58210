"""Execution venue interface consumed by the live worker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol, Sequence

from futures_trading.types import Bar, BracketOrderIds, Direction


class VenueError(Exception):
    """Base error raised by venue adapters."""


class VenueUnavailableError(VenueError):
    """Disconnected, timed out or rate limited; the request may be retried."""


class OrderStatus(str, Enum):
    SUBMITTED = "Submitted"
    FILLED = "Filled"
    CANCELLED = "Cancelled"
    INACTIVE = "Inactive"


@dataclass(frozen=True, slots=True)
class OrderStatusEvent:
    order_id: int
    status: OrderStatus
    filled_quantity: int = 0
    avg_fill_price: float | None = None


@dataclass(frozen=True, slots=True)
class PositionEvent:
    symbol: str
    quantity: int


VenueEvent = OrderStatusEvent | PositionEvent
VenueCallback = Callable[[VenueEvent], None]


class ExecutionVenue(Protocol):
    """Broker connection. Quantities are signed: long > 0, short < 0.

    Callbacks registered with ``subscribe`` may be invoked from any thread.
    """

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def fetch_bars(self, symbol: str, since: datetime | None) -> Sequence[Bar]:
        """Closed bars strictly after ``since``, oldest first."""

    async def place_bracket_order(
        self,
        symbol: str,
        direction: Direction,
        quantity: int,
        entry_price: float,
        stop_price: float,
        target_price: float,
    ) -> BracketOrderIds:
        """Limit entry with attached stop and target; ids are parent, parent+1, parent+2."""

    async def modify_stop_order(
        self,
        order_id: int,
        symbol: str,
        direction: Direction,
        quantity: int,
        stop_price: float,
    ) -> None: ...

    async def place_market_order(self, symbol: str, direction: Direction, quantity: int) -> int: ...

    async def cancel_order(self, order_id: int) -> None: ...

    async def cancel_all_orders(self, symbol: str) -> None: ...

    async def fetch_position(self, symbol: str) -> int: ...

    def subscribe(self, callback: VenueCallback) -> None: ...
