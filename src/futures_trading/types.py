"""Shared domain types for the futures trading control plane."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

TREND_RIDE = "TREND_RIDE"
PULLBACK = "PULLBACK"


class Direction(str, Enum):
    """Trade direction."""

    LONG = "LONG"
    SHORT = "SHORT"
    NONE = "NONE"

    @property
    def sign(self) -> int:
        if self is Direction.LONG:
            return 1
        if self is Direction.SHORT:
            return -1
        return 0

    @property
    def opposite(self) -> Direction:
        if self is Direction.LONG:
            return Direction.SHORT
        if self is Direction.SHORT:
            return Direction.LONG
        return Direction.NONE


class AccountMode(str, Enum):
    """Prop-firm account phase; selects the threshold table."""

    CHALLENGE = "challenge"
    FUNDED_PRE_PAYOUT = "funded_pre_payout"
    FUNDED_POST_PAYOUT = "funded_post_payout"


class ExitAction(str, Enum):
    """Action returned by exit management for one bar."""

    HOLD = "HOLD"
    STOP = "STOP"
    TARGET = "TARGET"
    BREAKEVEN = "BREAKEVEN"
    TRAIL = "TRAIL"
    TIME_EXIT = "TIME_EXIT"


class ExitReason(str, Enum):
    """Why a position was closed."""

    STOP = "stop"
    TARGET = "target"
    TIME_EXIT = "time-exit"
    RECONCILE = "reconcile"
    RECONCILE_NO_FILL = "reconcile-no-fill"
    FLATTEN = "flatten"


class InactivitySeverity(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    BREACH = "BREACH"


def realized_pnl(
    direction: Direction,
    entry_price: float,
    exit_price: float,
    multiplier: float,
    contracts: int,
) -> float:
    """Currency P&L of a round trip; the one formula used by backtest and live."""
    return (exit_price - entry_price) * direction.sign * multiplier * contracts


@dataclass(frozen=True, slots=True)
class Bar:
    """One OHLCV bar with pre-computed indicator values attached."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    atr: float | None = None


@dataclass(frozen=True, slots=True)
class TradeSetup:
    """Candidate trade produced by a signal generator."""

    instrument: str
    direction: Direction
    entry_price: float
    stop_price: float
    target_price: float
    confidence: float = 0.0
    setup_type: str = PULLBACK
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def risk_per_unit(self) -> float:
        return abs(self.entry_price - self.stop_price)

    @property
    def reward_per_unit(self) -> float:
        return abs(self.target_price - self.entry_price)

    @property
    def reward_risk_ratio(self) -> float:
        if self.risk_per_unit <= 0:
            return 0.0
        return self.reward_per_unit / self.risk_per_unit

    def is_valid(self) -> bool:
        """Stop on the loss side, target on the profit side, positive risk."""
        if self.direction is Direction.NONE:
            return False
        if self.entry_price <= 0 or self.stop_price <= 0 or self.target_price <= 0:
            return False
        if self.risk_per_unit <= 0:
            return False
        if self.direction is Direction.LONG:
            return self.stop_price < self.entry_price < self.target_price
        return self.stop_price > self.entry_price > self.target_price


@dataclass(frozen=True, slots=True)
class BracketOrderIds:
    """Venue order ids of a linked entry/stop/target group."""

    entry: int
    stop: int
    target: int

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.entry, self.stop, self.target)


@dataclass(slots=True)
class Position:
    """The single open position of one instrument."""

    instrument: str
    direction: Direction
    entry_price: float
    stop_price: float
    target_price: float
    contracts: int
    risk_per_contract: float
    entry_time: datetime
    entry_bar_index: int
    setup_type: str
    trailing_extreme_price: float | None = None
    entry_confirmed: bool = False
    order_ids: BracketOrderIds | None = None

    @property
    def is_trend_ride(self) -> bool:
        return self.setup_type == TREND_RIDE

    def is_stop_hit(self, price: float) -> bool:
        if self.direction is Direction.LONG:
            return price <= self.stop_price
        return price >= self.stop_price

    def is_target_hit(self, price: float) -> bool:
        if self.direction is Direction.LONG:
            return price >= self.target_price
        return price <= self.target_price

    def unrealized_pnl(self, price: float, multiplier: float) -> float:
        return realized_pnl(self.direction, self.entry_price, price, multiplier, self.contracts)

    def r_multiple(self, price: float) -> float:
        risk = abs(self.entry_price - self.stop_price)
        if risk <= 0:
            return 0.0
        return (price - self.entry_price) * self.direction.sign / risk


@dataclass(frozen=True, slots=True)
class TradeRecord:
    """Closed round trip."""

    trade_number: int
    instrument: str
    direction: Direction
    setup_type: str
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    contracts: int
    pnl: float
    exit_reason: ExitReason

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.pnl < 0


@dataclass(frozen=True, slots=True)
class DecisionDetails:
    """Observability snapshot attached to every decision."""

    account_mode: AccountMode
    current_balance: float
    remaining_buffer: float
    buffer_used_pct: float
    remaining_daily_buffer: float = 0.0
    max_contracts_by_risk: int = 0
    max_contracts_by_margin: int = 0
    max_contracts_by_rules: int = 0


@dataclass(frozen=True, slots=True)
class TradeDecision:
    """Risk gate verdict for one setup."""

    approved: bool
    contracts: int = 0
    risk_per_contract: float = 0.0
    total_risk: float = 0.0
    total_reward: float = 0.0
    risk_reward_ratio: float = 0.0
    reasons: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    blocked_by: tuple[str, ...] = ()
    details: DecisionDetails | None = None

    @property
    def summary_reason(self) -> str:
        if self.blocked_by:
            return "; ".join(self.blocked_by)
        if self.reasons:
            return self.reasons[0]
        return "Unknown"


@dataclass(frozen=True, slots=True)
class CircuitBreakerStatus:
    name: str
    is_active: bool
    reason: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CooldownStatus:
    is_active: bool
    consecutive_stops: int
    cooldown_until: datetime | None
    minutes_remaining: int


@dataclass(frozen=True, slots=True)
class InactivityStatus:
    days_since_last_trade: int
    max_idle_days: int
    days_remaining: int
    severity: InactivitySeverity
    last_trade_date: date | None
    max_idle_days_observed: int


@dataclass(frozen=True, slots=True)
class BreakerCheckResult:
    """Composite verdict of all circuit breakers."""

    can_trade: bool
    blocked_by: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MasterCircuitBreakerStatus:
    cooldown: CooldownStatus
    daily_loss: CircuitBreakerStatus
    consistency: CircuitBreakerStatus
    market_hours: CircuitBreakerStatus
    inactivity: InactivityStatus


@dataclass(frozen=True, slots=True)
class BudgetStatus:
    account_mode: AccountMode
    starting_balance: float
    current_balance: float
    max_total_loss: float
    remaining_buffer: float
    buffer_used_pct: float
    risk_multiplier: float


@dataclass(frozen=True, slots=True)
class GateStatus:
    """Read-only view of the decision gate for dashboards."""

    budget: BudgetStatus
    breakers: MasterCircuitBreakerStatus
    can_trade_now: bool
    blocked_by: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
