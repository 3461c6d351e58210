"""Independent circuit breakers and their composition.

Every breaker answers ``can_trade(now)`` and produces a read-only status
snapshot. Recording methods must be called exactly once per realized trade.
Dates are venue-local calendar dates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from futures_trading.config import Settings
from futures_trading.types import (
    AccountMode,
    BreakerCheckResult,
    CircuitBreakerStatus,
    CooldownStatus,
    InactivitySeverity,
    InactivityStatus,
    MasterCircuitBreakerStatus,
)
from futures_trading.utils.logging import get_logger, log_risk_event
from futures_trading.utils.timeutil import to_venue_time, venue_date

_logger = get_logger("futures_trading.risk.breakers")


class DailyLossBreaker:
    """Blocks trading once today's realized loss reaches the daily limit."""

    name = "Daily Loss Limit"

    def __init__(self, settings: Settings) -> None:
        self._max_daily_loss = settings.max_daily_loss
        self._tz = settings.venue_tz
        self._today_loss = 0.0
        self._last_reset: date | None = None

    @property
    def max_daily_loss(self) -> float:
        return self._max_daily_loss

    def _roll(self, now: datetime) -> None:
        today = venue_date(now, self._tz)
        if self._last_reset is None:
            self._last_reset = today
        elif today > self._last_reset:
            self._today_loss = 0.0
            self._last_reset = today

    def today_loss(self, now: datetime) -> float:
        self._roll(now)
        return self._today_loss

    def remaining_daily_buffer(self, now: datetime) -> float:
        return max(0.0, self._max_daily_loss - self.today_loss(now))

    def can_trade(self, now: datetime) -> bool:
        return self.today_loss(now) < self._max_daily_loss

    def would_breach(self, potential_loss: float, now: datetime) -> bool:
        """Dry run: would an extra loss of this size reach the limit."""
        return self.today_loss(now) + potential_loss >= self._max_daily_loss

    def record_loss(self, amount: float, now: datetime) -> None:
        if amount <= 0:
            return
        self._roll(now)
        self._today_loss += amount
        if self._today_loss >= self._max_daily_loss:
            log_risk_event(
                _logger,
                event_type="daily_loss_limit",
                action="block_trading",
                today_loss=round(self._today_loss, 2),
                limit=self._max_daily_loss,
            )

    def status(self, now: datetime) -> CircuitBreakerStatus:
        loss = self.today_loss(now)
        active = loss >= self._max_daily_loss
        return CircuitBreakerStatus(
            name=self.name,
            is_active=active,
            reason=(
                f"Daily loss limit reached: ${loss:.2f} / ${self._max_daily_loss:.2f}"
                if active
                else ""
            ),
            details={
                "today_loss": loss,
                "max_daily_loss": self._max_daily_loss,
                "remaining": max(0.0, self._max_daily_loss - loss),
            },
        )


class ConsistencyBreaker:
    """Caps the share of total profit a single day may contribute.

    Only enforced in challenge mode and only once total profit reaches the
    minimum floor. The forward check includes the hypothetical profit in both
    numerator and denominator; the backward check does not.
    """

    name = "Consistency Rule"

    def __init__(self, settings: Settings) -> None:
        self._enabled = settings.account_mode is AccountMode.CHALLENGE
        self._limit_pct = settings.consistency_limit_pct
        self._warning_pct = settings.consistency_warning_pct
        self._min_total = settings.consistency_min_total_profit
        self._tz = settings.venue_tz
        self._daily_profits: dict[date, float] = {}
        self._total_profit = 0.0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def total_profit(self) -> float:
        return self._total_profit

    def day_profit(self, now: datetime) -> float:
        return self._daily_profits.get(venue_date(now, self._tz), 0.0)

    def would_violate(self, potential_profit: float, now: datetime) -> bool:
        if not self._enabled or potential_profit <= 0:
            return False
        if self._total_profit < self._min_total:
            return False
        new_day = self.day_profit(now) + potential_profit
        new_total = self._total_profit + potential_profit
        if new_total <= 0:
            return False
        return new_day / new_total * 100.0 >= self._limit_pct

    def can_take_more_profit(self, now: datetime) -> bool:
        if not self._enabled:
            return True
        if self._total_profit < self._min_total or self._total_profit <= 0:
            return True
        return self.day_profit(now) / self._total_profit * 100.0 < self._limit_pct

    def can_trade(self, now: datetime) -> bool:
        return self.can_take_more_profit(now)

    def record_trade(self, profit: float, now: datetime) -> None:
        day = venue_date(now, self._tz)
        self._daily_profits[day] = self._daily_profits.get(day, 0.0) + profit
        self._total_profit += profit
        if not self._enabled or self._total_profit < self._min_total or self._total_profit <= 0:
            return
        day_pct = self._daily_profits[day] / self._total_profit * 100.0
        if day_pct >= self._limit_pct:
            log_risk_event(
                _logger,
                event_type="consistency_limit",
                action="block_profit_taking",
                day=day.isoformat(),
                day_pct=round(day_pct, 1),
            )
        elif day_pct >= self._warning_pct:
            _logger.warning(
                "consistency_approaching_limit",
                day=day.isoformat(),
                day_pct=round(day_pct, 1),
            )

    def largest_day_percentage(self) -> float:
        if self._total_profit <= 0 or not self._daily_profits:
            return 0.0
        return max(self._daily_profits.values()) / self._total_profit * 100.0

    def status(self, now: datetime) -> CircuitBreakerStatus:
        active = not self.can_take_more_profit(now)
        today = self.day_profit(now)
        return CircuitBreakerStatus(
            name=self.name,
            is_active=active,
            reason=f"{self._limit_pct:.0f}% consistency limit reached for today" if active else "",
            details={
                "enabled": self._enabled,
                "today_profit": today,
                "total_profit": self._total_profit,
                "largest_day_pct": self.largest_day_percentage(),
            },
        )


@dataclass(frozen=True, slots=True)
class BlackoutWindow:
    """Venue-local ``[start, end)`` window."""

    name: str
    start: time
    end: time
    reason: str

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end


DEFAULT_BLACKOUTS: tuple[BlackoutWindow, ...] = (
    BlackoutWindow(
        "US Market Open",
        time(9, 20),
        time(9, 50),
        "Extreme volatility during US market open",
    ),
    BlackoutWindow(
        "US Market Close",
        time(15, 45),
        time(16, 5),
        "Increased volatility during market close",
    ),
)


class MarketHoursBreaker:
    """Blocks entries inside fixed volatility windows."""

    name = "Market Hours"

    def __init__(
        self,
        settings: Settings,
        windows: tuple[BlackoutWindow, ...] = DEFAULT_BLACKOUTS,
    ) -> None:
        self._tz = settings.venue_tz
        self._windows = windows

    def active_window(self, now: datetime) -> BlackoutWindow | None:
        moment = to_venue_time(now, self._tz).time().replace(tzinfo=None)
        for window in self._windows:
            if window.contains(moment):
                return window
        return None

    def can_trade(self, now: datetime) -> bool:
        return self.active_window(now) is None

    def status(self, now: datetime) -> CircuitBreakerStatus:
        window = self.active_window(now)
        if window is None:
            return CircuitBreakerStatus(name=self.name, is_active=False)
        return CircuitBreakerStatus(
            name=self.name,
            is_active=True,
            reason=f"{window.name}: {window.reason}",
            details={
                "window": window.name,
                "start": window.start.isoformat(),
                "end": window.end.isoformat(),
            },
        )


class InactivityMonitor:
    """Tracks idle days against the program's maximum."""

    def __init__(self, settings: Settings) -> None:
        self._max_idle_days = settings.max_idle_days(settings.account_mode)
        self._tz = settings.venue_tz
        self._last_trade_date: date | None = None
        self._max_observed = 0

    def days_since_last_trade(self, now: datetime) -> int:
        if self._last_trade_date is None:
            return 0
        return (venue_date(now, self._tz) - self._last_trade_date).days

    def days_remaining(self, now: datetime) -> int:
        return self._max_idle_days - self.days_since_last_trade(now)

    def is_in_danger(self, now: datetime) -> bool:
        return self.days_since_last_trade(now) >= self._max_idle_days - 1

    def is_breach(self, now: datetime) -> bool:
        return self.days_since_last_trade(now) >= self._max_idle_days

    def severity(self, now: datetime) -> InactivitySeverity:
        remaining = self.days_remaining(now)
        if remaining <= 0:
            return InactivitySeverity.BREACH
        if remaining <= 2:
            return InactivitySeverity.CRITICAL
        if remaining <= 5:
            return InactivitySeverity.WARNING
        return InactivitySeverity.OK

    def record_trade(self, now: datetime) -> None:
        idle = self.days_since_last_trade(now)
        self._max_observed = max(self._max_observed, idle)
        self._last_trade_date = venue_date(now, self._tz)

    def status(self, now: datetime) -> InactivityStatus:
        return InactivityStatus(
            days_since_last_trade=self.days_since_last_trade(now),
            max_idle_days=self._max_idle_days,
            days_remaining=self.days_remaining(now),
            severity=self.severity(now),
            last_trade_date=self._last_trade_date,
            max_idle_days_observed=self._max_observed,
        )


class StrategyCooldown:
    """Pauses trading after consecutive stop-losses."""

    name = "Strategy Cooldown"

    def __init__(self, settings: Settings) -> None:
        self._threshold = settings.cooldown_consecutive_losses
        self._duration = timedelta(hours=settings.cooldown_hours)
        self._consecutive_stops = 0
        self._cooldown_until: datetime | None = None

    @property
    def consecutive_stops(self) -> int:
        return self._consecutive_stops

    @property
    def cooldown_until(self) -> datetime | None:
        return self._cooldown_until

    def record_loss(self, now: datetime) -> None:
        self._consecutive_stops += 1
        if self._consecutive_stops >= self._threshold:
            self._cooldown_until = now + self._duration
            log_risk_event(
                _logger,
                event_type="strategy_cooldown",
                action="pause_trading",
                consecutive_stops=self._consecutive_stops,
                cooldown_until=self._cooldown_until.isoformat(),
            )

    def record_win(self) -> None:
        self._consecutive_stops = 0

    def is_active(self, now: datetime) -> bool:
        return self._cooldown_until is not None and now < self._cooldown_until

    def can_trade(self, now: datetime) -> bool:
        return not self.is_active(now)

    def minutes_remaining(self, now: datetime) -> int:
        until = self._cooldown_until
        if until is None or now >= until:
            return 0
        return int((until - now).total_seconds() // 60)

    def status(self, now: datetime) -> CooldownStatus:
        return CooldownStatus(
            is_active=self.is_active(now),
            consecutive_stops=self._consecutive_stops,
            cooldown_until=self._cooldown_until,
            minutes_remaining=self.minutes_remaining(now),
        )


class MasterCircuitBreaker:
    """Logical AND over all breakers, reporting every blocker at once."""

    def __init__(self, settings: Settings) -> None:
        self.cooldown = StrategyCooldown(settings)
        self.daily_loss = DailyLossBreaker(settings)
        self.consistency = ConsistencyBreaker(settings)
        self.market_hours = MarketHoursBreaker(settings)
        self.inactivity = InactivityMonitor(settings)
        self._cooldown_losses = settings.cooldown_consecutive_losses

    def can_trade(self, now: datetime) -> BreakerCheckResult:
        blocked: list[str] = []
        warnings: list[str] = []

        if not self.cooldown.can_trade(now):
            blocked.append(
                f"Strategy cooldown active ({self._cooldown_losses} consecutive stops). "
                f"Resume in {self.cooldown.minutes_remaining(now)} minutes."
            )
        if not self.daily_loss.can_trade(now):
            blocked.append(self.daily_loss.status(now).reason)
        market = self.market_hours.status(now)
        if market.is_active:
            blocked.append(market.reason)
        if not self.consistency.can_trade(now):
            blocked.append(self.consistency.status(now).reason)

        if self.inactivity.is_in_danger(now):
            inactivity = self.inactivity.status(now)
            warnings.append(
                f"Inactivity {inactivity.severity.value}: "
                f"{inactivity.days_since_last_trade} idle days (max {inactivity.max_idle_days})"
            )

        return BreakerCheckResult(
            can_trade=not blocked,
            blocked_by=tuple(blocked),
            warnings=tuple(warnings),
        )

    def record_stop_loss(self, loss: float, now: datetime) -> None:
        self.cooldown.record_loss(now)
        self.daily_loss.record_loss(loss, now)
        self.consistency.record_trade(-loss, now)
        self.inactivity.record_trade(now)

    def record_win(self, profit: float, now: datetime) -> None:
        self.cooldown.record_win()
        self.consistency.record_trade(profit, now)
        self.inactivity.record_trade(now)

    def record_breakeven(self, now: datetime) -> None:
        self.cooldown.record_win()
        self.inactivity.record_trade(now)

    def record_trade_result(self, pnl: float, now: datetime) -> None:
        if pnl > 0:
            self.record_win(pnl, now)
        elif pnl == 0:
            self.record_breakeven(now)
        else:
            self.record_stop_loss(abs(pnl), now)

    def status(self, now: datetime) -> MasterCircuitBreakerStatus:
        return MasterCircuitBreakerStatus(
            cooldown=self.cooldown.status(now),
            daily_loss=self.daily_loss.status(now),
            consistency=self.consistency.status(now),
            market_hours=self.market_hours.status(now),
            inactivity=self.inactivity.status(now),
        )
