"""Position lifecycle state machine for one instrument."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Sequence

from futures_trading.config import Settings
from futures_trading.position.exits import ExitRules, ExitSignal, evaluate_exit, improves_stop
from futures_trading.position.recovery import RecoveredPosition
from futures_trading.strategy.base import SignalGenerator
from futures_trading.types import (
    Bar,
    BracketOrderIds,
    Direction,
    ExitAction,
    ExitReason,
    Position,
    TradeDecision,
    TradeRecord,
    TradeSetup,
    realized_pnl,
)
from futures_trading.utils.logging import get_logger, log_reconciliation


class PositionStateError(Exception):
    """Operation not allowed in the current lifecycle state."""


class UnreconciledPositionError(PositionStateError):
    """The venue holds a position this manager does not own."""


class LifecycleState(str, Enum):
    FLAT = "FLAT"
    PENDING_ENTRY = "PENDING_ENTRY"
    OPEN = "OPEN"


@dataclass(frozen=True, slots=True)
class ReconcileOutcome:
    """Local correction applied after comparing with the venue."""

    correction: str | None = None
    trade: TradeRecord | None = None
    orders_to_cancel: tuple[int, ...] = ()

    @property
    def in_sync(self) -> bool:
        return self.correction is None

    @property
    def counts_toward_risk(self) -> bool:
        return self.trade is not None and self.trade.exit_reason is ExitReason.RECONCILE


class PositionManager:
    """Owns the single position of one instrument.

    FLAT -> PENDING_ENTRY -> OPEN -> FLAT. Backtests open straight into OPEN.
    """

    def __init__(
        self,
        settings: Settings,
        instrument: str,
        *,
        strategy: SignalGenerator | None = None,
    ) -> None:
        self._instrument = instrument
        self._spec = settings.contract_spec(instrument)
        self._rules = ExitRules(
            breakeven_atr=settings.breakeven_atr,
            trail_atr=settings.trend_ride_trail_atr,
        )
        self._strategy = strategy
        self._position: Position | None = None
        self._trade_count = 0
        self._logger = get_logger("futures_trading.position.manager").bind(instrument=instrument)

    @property
    def instrument(self) -> str:
        return self._instrument

    @property
    def multiplier(self) -> float:
        return self._spec.multiplier

    @property
    def trade_count(self) -> int:
        return self._trade_count

    @property
    def state(self) -> LifecycleState:
        if self._position is None:
            return LifecycleState.FLAT
        if self._position.entry_confirmed:
            return LifecycleState.OPEN
        return LifecycleState.PENDING_ENTRY

    @property
    def is_flat(self) -> bool:
        return self._position is None

    def snapshot(self) -> Position | None:
        """Copy of the current position for read-only consumers."""
        return replace(self._position) if self._position is not None else None

    def open_filled(
        self,
        setup: TradeSetup,
        decision: TradeDecision,
        now: datetime,
        bar_index: int,
    ) -> Position:
        """Open with the entry assumed filled at the setup's entry price."""
        return self._open(setup, decision, now, bar_index, order_ids=None, confirmed=True)

    def open_pending(
        self,
        setup: TradeSetup,
        decision: TradeDecision,
        now: datetime,
        bar_index: int,
        order_ids: BracketOrderIds,
    ) -> Position:
        return self._open(setup, decision, now, bar_index, order_ids=order_ids, confirmed=False)

    def _open(
        self,
        setup: TradeSetup,
        decision: TradeDecision,
        now: datetime,
        bar_index: int,
        *,
        order_ids: BracketOrderIds | None,
        confirmed: bool,
    ) -> Position:
        if self._position is not None:
            raise PositionStateError(f"position_already_open: {self._instrument}")
        if not decision.approved or decision.contracts <= 0:
            raise PositionStateError("decision_not_approved")
        if setup.instrument != self._instrument:
            raise PositionStateError(f"instrument_mismatch: {setup.instrument}")

        self._position = Position(
            instrument=self._instrument,
            direction=setup.direction,
            entry_price=setup.entry_price,
            stop_price=setup.stop_price,
            target_price=setup.target_price,
            contracts=decision.contracts,
            risk_per_contract=setup.risk_per_unit * self._spec.multiplier,
            entry_time=now,
            entry_bar_index=bar_index,
            setup_type=setup.setup_type,
            entry_confirmed=confirmed,
            order_ids=order_ids,
        )
        self._logger.info(
            "position_opened",
            state=self.state.value,
            direction=setup.direction.value,
            contracts=decision.contracts,
            entry=setup.entry_price,
            stop=setup.stop_price,
            target=setup.target_price,
        )
        return replace(self._position)

    def confirm_entry(self, fill_price: float, now: datetime) -> None:
        """Entry fill reported by the venue; the fill price replaces the planned one."""
        position = self._require(LifecycleState.PENDING_ENTRY)
        position.entry_price = fill_price
        position.entry_confirmed = True
        self._logger.info("entry_confirmed", fill_price=fill_price, at=now.isoformat())

    def cancel_entry(self, now: datetime) -> None:
        """Entry order died before filling; nothing was traded."""
        self._require(LifecycleState.PENDING_ENTRY)
        self._position = None
        self._logger.info("entry_cancelled", at=now.isoformat())

    def manage_exit(self, bars: Sequence[Bar]) -> ExitSignal:
        """Run exit management for the latest bar while OPEN.

        The strategy hook is consulted first; terminal actions from it win.
        Stop changes are applied to the owned position and never move
        against the trade.
        """
        position = self._require(LifecycleState.OPEN)
        if not bars:
            return ExitSignal(action=ExitAction.HOLD, stop_price=position.stop_price)

        previous_stop = position.stop_price
        if self._strategy is not None:
            action, price = self._strategy.manage_exit(bars, replace(position))
            hinted = ExitSignal(
                action=action,
                price=price,
                stop_price=position.stop_price,
                previous_stop=previous_stop,
            )
            if hinted.is_terminal:
                return hinted
            if action in (ExitAction.BREAKEVEN, ExitAction.TRAIL) and price is not None:
                if improves_stop(position.direction, position.stop_price, price):
                    position.stop_price = price

        signal = evaluate_exit(bars[-1], position, self._rules)
        if signal.stop_price is not None and improves_stop(
            position.direction, position.stop_price, signal.stop_price
        ):
            position.stop_price = signal.stop_price
        position.trailing_extreme_price = signal.trailing_extreme_price

        if position.stop_price != previous_stop:
            self._logger.info("stop_moved", old_stop=previous_stop, new_stop=position.stop_price)
        return replace(signal, stop_price=position.stop_price, previous_stop=previous_stop)

    def close(self, exit_price: float, reason: ExitReason, now: datetime) -> TradeRecord:
        """Close the position and return the trade record."""
        if self._position is None:
            raise PositionStateError(f"no_position_to_close: {self._instrument}")
        position = self._position
        pnl = realized_pnl(
            position.direction,
            position.entry_price,
            exit_price,
            self._spec.multiplier,
            position.contracts,
        )
        return self._record_close(position, exit_price, pnl, reason, now)

    def reconcile(
        self,
        venue_quantity: int,
        last_price: float | None,
        now: datetime,
    ) -> ReconcileOutcome:
        """Resolve local belief against the venue's signed position quantity."""
        position = self._position
        if position is None:
            if venue_quantity != 0:
                log_reconciliation(
                    self._logger,
                    instrument=self._instrument,
                    correction="unreconciled_venue_position",
                    local_state=LifecycleState.FLAT.value,
                    venue_quantity=venue_quantity,
                )
                raise UnreconciledPositionError(
                    f"venue_position_while_flat: {self._instrument} qty={venue_quantity}"
                )
            return ReconcileOutcome()

        local_state = self.state.value
        if venue_quantity == 0:
            if position.entry_confirmed:
                price = last_price if last_price is not None else position.entry_price
                trade = self.close(price, ExitReason.RECONCILE, now)
                log_reconciliation(
                    self._logger,
                    instrument=self._instrument,
                    correction="synthetic_close",
                    local_state=local_state,
                    venue_quantity=venue_quantity,
                    exit_price=price,
                    pnl=trade.pnl,
                )
                return ReconcileOutcome(correction="synthetic_close", trade=trade)

            to_cancel = position.order_ids.as_tuple() if position.order_ids else ()
            trade = self._record_close(
                position, position.entry_price, 0.0, ExitReason.RECONCILE_NO_FILL, now
            )
            log_reconciliation(
                self._logger,
                instrument=self._instrument,
                correction="phantom_entry_cleared",
                local_state=local_state,
                venue_quantity=venue_quantity,
                cancelled_orders=list(to_cancel),
            )
            return ReconcileOutcome(
                correction="phantom_entry_cleared",
                trade=trade,
                orders_to_cancel=to_cancel,
            )

        venue_direction = Direction.LONG if venue_quantity > 0 else Direction.SHORT
        if venue_direction is not position.direction:
            log_reconciliation(
                self._logger,
                instrument=self._instrument,
                correction="direction_mismatch",
                local_state=local_state,
                venue_quantity=venue_quantity,
                local_direction=position.direction.value,
            )
            raise UnreconciledPositionError(
                f"venue_direction_mismatch: {self._instrument} qty={venue_quantity} "
                f"local={position.direction.value}"
            )

        corrections: list[str] = []
        if not position.entry_confirmed:
            position.entry_confirmed = True
            corrections.append("adopted_unreported_fill")
        if abs(venue_quantity) != position.contracts:
            position.contracts = abs(venue_quantity)
            corrections.append("adopted_venue_quantity")
        if not corrections:
            return ReconcileOutcome()

        correction = ",".join(corrections)
        log_reconciliation(
            self._logger,
            instrument=self._instrument,
            correction=correction,
            local_state=local_state,
            venue_quantity=venue_quantity,
        )
        return ReconcileOutcome(correction=correction)

    def restore(self, recovered: RecoveredPosition) -> None:
        """Rebuild the owned position after a restart."""
        if self._position is not None:
            raise PositionStateError(f"position_already_open: {self._instrument}")
        self._position = Position(
            instrument=self._instrument,
            direction=recovered.direction,
            entry_price=recovered.entry_price,
            stop_price=recovered.stop_price,
            target_price=recovered.target_price,
            contracts=recovered.contracts,
            risk_per_contract=abs(recovered.entry_price - recovered.stop_price)
            * self._spec.multiplier,
            entry_time=recovered.entry_time,
            entry_bar_index=-1,
            setup_type=recovered.setup_type,
            entry_confirmed=recovered.entry_confirmed,
            order_ids=recovered.order_ids,
        )
        self._logger.warning(
            "position_restored",
            state=self.state.value,
            direction=recovered.direction.value,
            entry=recovered.entry_price,
            stop=recovered.stop_price,
        )

    def set_trade_count(self, trade_count: int) -> None:
        self._trade_count = trade_count

    def _record_close(
        self,
        position: Position,
        exit_price: float,
        pnl: float,
        reason: ExitReason,
        now: datetime,
    ) -> TradeRecord:
        self._trade_count += 1
        trade = TradeRecord(
            trade_number=self._trade_count,
            instrument=self._instrument,
            direction=position.direction,
            setup_type=position.setup_type,
            entry_time=position.entry_time,
            exit_time=now,
            entry_price=position.entry_price,
            exit_price=exit_price,
            contracts=position.contracts,
            pnl=pnl,
            exit_reason=reason,
        )
        self._position = None
        self._logger.info(
            "position_closed",
            reason=reason.value,
            exit_price=exit_price,
            pnl=round(pnl, 2),
        )
        return trade

    def _require(self, state: LifecycleState) -> Position:
        if self.state is not state or self._position is None:
            raise PositionStateError(
                f"expected_{state.value.lower()}_got_{self.state.value.lower()}: {self._instrument}"
            )
        return self._position
