"""Breakeven and trailing-stop exit management."""

from __future__ import annotations

from dataclasses import dataclass

from futures_trading.types import Bar, Direction, ExitAction, Position

_TERMINAL_ACTIONS = (ExitAction.STOP, ExitAction.TARGET, ExitAction.TIME_EXIT)


@dataclass(frozen=True, slots=True)
class ExitRules:
    """ATR multiples driving stop adjustments."""

    breakeven_atr: float = 1.0
    trail_atr: float = 1.5


@dataclass(frozen=True, slots=True)
class ExitSignal:
    """Outcome of one bar of exit management."""

    action: ExitAction
    price: float | None = None
    stop_price: float | None = None
    previous_stop: float | None = None
    trailing_extreme_price: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.action in _TERMINAL_ACTIONS and self.price is not None

    @property
    def stop_moved(self) -> bool:
        return (
            self.stop_price is not None
            and self.previous_stop is not None
            and self.stop_price != self.previous_stop
        )


def improves_stop(direction: Direction, current: float, candidate: float) -> bool:
    """True when the candidate stop locks in more for the trade."""
    if direction is Direction.LONG:
        return candidate > current
    return candidate < current


def evaluate_exit(bar: Bar, position: Position, rules: ExitRules) -> ExitSignal:
    """Adjust the stop for this bar, then test stop and target.

    Does not mutate the position. The stop is checked before the target, and
    against the stop as adjusted on this same bar.
    """
    direction = position.direction
    sign = direction.sign
    stop = position.stop_price
    extreme = position.trailing_extreme_price
    action = ExitAction.HOLD
    atr = bar.atr if bar.atr is not None and bar.atr > 0 else None

    favorable = bar.high if direction is Direction.LONG else bar.low
    adverse = bar.low if direction is Direction.LONG else bar.high

    if atr is not None:
        trigger = position.entry_price + sign * rules.breakeven_atr * atr
        reached = favorable >= trigger if direction is Direction.LONG else favorable <= trigger
        if reached and improves_stop(direction, stop, position.entry_price):
            stop = position.entry_price
            action = ExitAction.BREAKEVEN

        if position.is_trend_ride:
            base = position.entry_price if extreme is None else extreme
            extreme = max(base, favorable) if direction is Direction.LONG else min(base, favorable)
            trail = extreme - sign * rules.trail_atr * atr
            if improves_stop(direction, stop, trail):
                stop = trail
                action = ExitAction.TRAIL

    hit_stop = adverse <= stop if direction is Direction.LONG else adverse >= stop
    if hit_stop:
        return ExitSignal(
            action=ExitAction.STOP,
            price=stop,
            stop_price=stop,
            previous_stop=position.stop_price,
            trailing_extreme_price=extreme,
        )
    if position.is_target_hit(favorable):
        return ExitSignal(
            action=ExitAction.TARGET,
            price=position.target_price,
            stop_price=stop,
            previous_stop=position.stop_price,
            trailing_extreme_price=extreme,
        )
    return ExitSignal(
        action=action,
        price=stop if action is not ExitAction.HOLD else None,
        stop_price=stop,
        previous_stop=position.stop_price,
        trailing_extreme_price=extreme,
    )
