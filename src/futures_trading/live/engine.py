"""Per-instrument live worker.

Each instrument is owned by one ``InstrumentWorker``. Bar polls, reconcile
ticks and venue callbacks are all funnelled through a single queue, so the
position, risk gate and journal of an instrument are only ever touched by
that worker's task.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from futures_trading.config import Settings
from futures_trading.journal.store import JournalStore
from futures_trading.live.venue import (
    ExecutionVenue,
    OrderStatus,
    OrderStatusEvent,
    PositionEvent,
    VenueEvent,
    VenueUnavailableError,
)
from futures_trading.position.manager import (
    LifecycleState,
    PositionManager,
    UnreconciledPositionError,
)
from futures_trading.position.recovery import recover_from_journal
from futures_trading.risk.gate import RiskGate
from futures_trading.strategy.base import SignalGenerator
from futures_trading.types import Bar, ExitAction, ExitReason, Position, TradeRecord
from futures_trading.utils.logging import get_logger, log_order_execution
from futures_trading.utils.timeutil import venue_date

T = TypeVar("T")

Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class BarPoll:
    pass


@dataclass(frozen=True, slots=True)
class ReconcileTick:
    pass


@dataclass(frozen=True, slots=True)
class Shutdown:
    pass


WorkerEvent = BarPoll | ReconcileTick | Shutdown | OrderStatusEvent | PositionEvent

_DEAD_ORDER_STATUSES = (OrderStatus.CANCELLED, OrderStatus.INACTIVE)


@dataclass(frozen=True, slots=True)
class WorkerStatus:
    """Read-only snapshot for dashboards."""

    instrument: str
    state: LifecycleState
    position: Position | None
    bars: int
    trades_today: int
    venue_available: bool
    last_error: str | None


class InstrumentWorker:
    """Actor that trades one instrument against an execution venue."""

    def __init__(
        self,
        settings: Settings,
        instrument: str,
        venue: ExecutionVenue,
        strategy: SignalGenerator,
        gate: RiskGate,
        journal: JournalStore,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._instrument = instrument
        self._venue = venue
        self._strategy = strategy
        self._gate = gate
        self._journal = journal
        self._tz = settings.venue_tz
        self._clock: Clock = clock or (lambda: datetime.now(self._tz))
        self._manager = PositionManager(settings, instrument, strategy=strategy)
        self._queue: asyncio.Queue[WorkerEvent] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._bars: list[Bar] = []
        self._flatten_order_id: int | None = None
        self._flatten_reason = ExitReason.FLATTEN
        self._venue_available = True
        self._last_error: str | None = None
        self._logger = get_logger("futures_trading.live.engine").bind(instrument=instrument)

    @property
    def instrument(self) -> str:
        return self._instrument

    @property
    def manager(self) -> PositionManager:
        return self._manager

    @property
    def bars(self) -> Sequence[Bar]:
        return tuple(self._bars)

    def status(self) -> WorkerStatus:
        return WorkerStatus(
            instrument=self._instrument,
            state=self._manager.state,
            position=self._manager.snapshot(),
            bars=len(self._bars),
            trades_today=self._manager.trade_count,
            venue_available=self._venue_available,
            last_error=self._last_error,
        )

    # ==================== Event intake ====================

    def on_venue_event(self, event: VenueEvent) -> None:
        """Venue callback; safe to call from any thread."""
        if self._loop is None:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def request_shutdown(self) -> None:
        if self._loop is None:
            self._queue.put_nowait(Shutdown())
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, Shutdown())

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Start, process events until shutdown, then flatten and disconnect."""
        await self.start()
        tasks = [
            asyncio.create_task(self._tick_every(self._settings.poll_interval_sec, BarPoll)),
            asyncio.create_task(
                self._tick_every(self._settings.reconcile_interval_sec, ReconcileTick)
            ),
        ]
        if stop_event is not None:
            tasks.append(asyncio.create_task(self._shutdown_when_set(stop_event)))

        try:
            while True:
                event = await self._queue.get()
                if isinstance(event, Shutdown):
                    break
                await self.handle(event)
        except asyncio.CancelledError:
            self._logger.warning("worker_cancelled")
            raise
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.shutdown()

    async def start(self) -> None:
        """Connect, recover today's state from the journal and warm up bars."""
        self._loop = asyncio.get_running_loop()
        self._venue.subscribe(self.on_venue_event)
        while True:
            try:
                await self._call("connect", self._venue.connect)
                break
            except VenueUnavailableError as exc:
                self._venue_available = False
                self._logger.warning(
                    "connect_failed",
                    error=str(exc),
                    retry_in_sec=self._settings.warmup_retry_sec,
                )
                await asyncio.sleep(self._settings.warmup_retry_sec)
        await self.recover()
        await self.warm_up()

    async def handle(self, event: WorkerEvent) -> None:
        """Process one queued event. Venue outages degrade to retry-later."""
        try:
            if isinstance(event, BarPoll):
                await self._on_bar_poll()
            elif isinstance(event, ReconcileTick):
                await self.reconcile()
            elif isinstance(event, OrderStatusEvent):
                await self._on_order_status(event)
            elif isinstance(event, PositionEvent):
                if event.symbol.upper() == self._instrument.upper():
                    await self._reconcile_quantity(event.quantity, self._clock())
        except VenueUnavailableError as exc:
            self._venue_available = False
            self._last_error = str(exc)
            self._logger.warning(
                "venue_unavailable_retry_later",
                event_kind=type(event).__name__,
                error=str(exc),
            )
            self._journal.append(
                "status",
                {
                    "status": "venue_unavailable",
                    "event_kind": type(event).__name__,
                    "error": str(exc),
                },
                at=self._clock(),
            )

    # ==================== Startup ====================

    async def recover(self) -> None:
        """Fold today's journal, re-prime the gate and reconcile at once."""
        now = self._clock()
        recovered = recover_from_journal(self._journal, venue_date(now, self._tz))
        stats = recovered.today_stats
        for exit_time, pnl in stats.exits:
            self._gate.record_trade_result(pnl, exit_time)
        self._manager.set_trade_count(stats.trades)
        if recovered.open_position is not None:
            self._manager.restore(recovered.open_position)

        self._logger.info(
            "state_recovered",
            trades=stats.trades,
            wins=stats.wins,
            losses=stats.losses,
            pnl=round(stats.pnl, 2),
            state=self._manager.state.value,
        )
        self._journal.append(
            "status",
            {
                "status": "recovered",
                "trades": stats.trades,
                "pnl": stats.pnl,
                "state": self._manager.state.value,
            },
            at=now,
        )
        try:
            await self.reconcile()
        except VenueUnavailableError as exc:
            self._logger.warning("startup_reconcile_deferred", error=str(exc))

    async def warm_up(self) -> None:
        """Block until enough history is available for the signal generator."""
        needed = self._settings.min_warmup_bars
        while True:
            try:
                bars = await self._call(
                    "fetch_bars", self._venue.fetch_bars, self._instrument, None
                )
                self._merge_bars(bars)
            except VenueUnavailableError as exc:
                self._logger.warning("warmup_fetch_failed", error=str(exc))
            if len(self._bars) >= needed:
                self._logger.info("warmup_complete", bars=len(self._bars))
                return
            self._logger.warning(
                "warmup_insufficient_bars",
                bars=len(self._bars),
                needed=needed,
                retry_in_sec=self._settings.warmup_retry_sec,
            )
            await asyncio.sleep(self._settings.warmup_retry_sec)

    # ==================== Bars ====================

    async def _on_bar_poll(self) -> None:
        since = self._bars[-1].timestamp if self._bars else None
        fresh = await self._call("fetch_bars", self._venue.fetch_bars, self._instrument, since)
        if not self._merge_bars(fresh):
            return

        now = self._clock()
        latest = self._bars[-1]
        self._journal.append(
            "bar",
            {
                "bar_time": latest.timestamp.isoformat(),
                "close": latest.close,
                "atr": latest.atr,
            },
            at=now,
        )

        state = self._manager.state
        if state is LifecycleState.OPEN:
            await self._manage_open_position(now)
        elif state is LifecycleState.FLAT:
            await self._look_for_entry(now)

    def _merge_bars(self, bars: Sequence[Bar]) -> int:
        added = 0
        for bar in bars:
            if self._bars and bar.timestamp <= self._bars[-1].timestamp:
                continue
            self._bars.append(bar)
            added += 1
        overflow = len(self._bars) - self._settings.max_bars_kept
        if overflow > 0:
            del self._bars[:overflow]
        return added

    async def _look_for_entry(self, now: datetime) -> None:
        setup = self._strategy.check_entry(
            self._bars,
            self._settings.signal_regime,
            self._settings.signal_confidence,
        )
        if setup is None or not setup.is_valid():
            return

        decision = self._gate.evaluate(setup, now, self._gate.budget.current_balance)
        self._journal.append(
            "signal",
            {
                "taken": decision.approved,
                "direction": setup.direction.value,
                "entry_price": setup.entry_price,
                "stop_price": setup.stop_price,
                "target_price": setup.target_price,
                "contracts": decision.contracts,
                "setup_type": setup.setup_type,
                "confidence": setup.confidence,
                "reasons": list(decision.reasons),
                "blocked_by": list(decision.blocked_by),
            },
            at=now,
        )
        if not decision.approved:
            return

        order_ids = await self._call(
            "place_bracket_order",
            self._venue.place_bracket_order,
            self._instrument,
            setup.direction,
            decision.contracts,
            setup.entry_price,
            setup.stop_price,
            setup.target_price,
        )
        self._manager.open_pending(setup, decision, now, len(self._bars) - 1, order_ids)
        for role, order_id in (
            ("entry", order_ids.entry),
            ("stop", order_ids.stop),
            ("target", order_ids.target),
        ):
            self._journal.append("order", {"order_id": order_id, "role": role}, at=now)
        log_order_execution(
            self._logger,
            instrument=self._instrument,
            action=setup.direction.value,
            quantity=decision.contracts,
            order_type="BRACKET",
            price=setup.entry_price,
            order_id=order_ids.entry,
            stop=setup.stop_price,
            target=setup.target_price,
        )

    async def _manage_open_position(self, now: datetime) -> None:
        signal = self._manager.manage_exit(self._bars)
        position = self._manager.snapshot()
        if position is None:
            return

        if signal.stop_moved and position.order_ids is not None:
            await self._call(
                "modify_stop_order",
                self._venue.modify_stop_order,
                position.order_ids.stop,
                self._instrument,
                position.direction,
                position.contracts,
                position.stop_price,
            )
            self._journal.append(
                "stop_update",
                {
                    "action": signal.action.value,
                    "old_stop": signal.previous_stop,
                    "new_stop": position.stop_price,
                },
                at=now,
            )

        if signal.is_terminal:
            if signal.action is ExitAction.TIME_EXIT:
                await self._flatten(now, ExitReason.TIME_EXIT)
            else:
                # Bracket legs are working at the venue; the fill callback closes.
                self._logger.info(
                    "exit_level_touched",
                    action=signal.action.value,
                    price=signal.price,
                )

    # ==================== Orders ====================

    async def _flatten(self, now: datetime, reason: ExitReason) -> None:
        position = self._manager.snapshot()
        if position is None or self._flatten_order_id is not None:
            return
        order_id = await self._call(
            "place_market_order",
            self._venue.place_market_order,
            self._instrument,
            position.direction.opposite,
            position.contracts,
        )
        self._flatten_order_id = order_id
        self._flatten_reason = reason
        self._journal.append(
            "order",
            {"order_id": order_id, "role": "flatten", "reason": reason.value},
            at=now,
        )
        log_order_execution(
            self._logger,
            instrument=self._instrument,
            action=position.direction.opposite.value,
            quantity=position.contracts,
            order_type="MARKET",
            order_id=order_id,
            reason=reason.value,
        )

    async def _on_order_status(self, event: OrderStatusEvent) -> None:
        now = self._clock()
        position = self._manager.snapshot()

        if self._flatten_order_id is not None and event.order_id == self._flatten_order_id:
            if event.status is not OrderStatus.FILLED:
                if event.status in _DEAD_ORDER_STATUSES:
                    self._flatten_order_id = None
                return
            self._flatten_order_id = None
            if position is not None:
                price = event.avg_fill_price
                if price is None:
                    price = self._bars[-1].close if self._bars else position.entry_price
                self._journal.append(
                    "fill",
                    {"order_id": event.order_id, "fill_price": price, "role": "flatten"},
                    at=now,
                )
                trade = self._manager.close(price, self._flatten_reason, now)
                self._record_exit(trade)
                await self._cancel_bracket_legs(position, keep=None)
            return

        if position is None or position.order_ids is None:
            self._logger.debug("order_event_ignored", order_id=event.order_id)
            return

        ids = position.order_ids
        if event.order_id == ids.entry:
            if self._manager.state is not LifecycleState.PENDING_ENTRY:
                return
            if event.status is OrderStatus.FILLED:
                price = (
                    event.avg_fill_price
                    if event.avg_fill_price is not None
                    else position.entry_price
                )
                self._manager.confirm_entry(price, now)
                self._journal.append(
                    "fill",
                    {"order_id": event.order_id, "fill_price": price, "role": "entry"},
                    at=now,
                )
                log_order_execution(
                    self._logger,
                    instrument=self._instrument,
                    action=position.direction.value,
                    quantity=event.filled_quantity or position.contracts,
                    order_type="LIMIT",
                    price=price,
                    order_id=event.order_id,
                    status="filled",
                )
            elif event.status in _DEAD_ORDER_STATUSES:
                self._manager.cancel_entry(now)
                self._journal.append(
                    "status",
                    {"status": "entry_cancelled", "order_id": event.order_id},
                    at=now,
                )
                await self._cancel_bracket_legs(position, keep=None)
            return

        if event.order_id in (ids.stop, ids.target) and event.status is OrderStatus.FILLED:
            is_stop = event.order_id == ids.stop
            reason = ExitReason.STOP if is_stop else ExitReason.TARGET
            price = event.avg_fill_price
            if price is None:
                price = position.stop_price if is_stop else position.target_price
            self._journal.append(
                "fill",
                {"order_id": event.order_id, "fill_price": price, "role": reason.value},
                at=now,
            )
            trade = self._manager.close(price, reason, now)
            self._record_exit(trade)
            await self._cancel_bracket_legs(position, keep=event.order_id)

    async def _cancel_bracket_legs(self, position: Position, *, keep: int | None) -> None:
        if position.order_ids is None:
            return
        for order_id in (position.order_ids.stop, position.order_ids.target):
            if order_id != keep:
                await self._call("cancel_order", self._venue.cancel_order, order_id)

    def _record_exit(self, trade: TradeRecord, *, counts_toward_risk: bool = True) -> None:
        self._journal.append(
            "exit",
            {
                "trade_number": trade.trade_number,
                "direction": trade.direction.value,
                "setup_type": trade.setup_type,
                "entry_price": trade.entry_price,
                "exit_price": trade.exit_price,
                "contracts": trade.contracts,
                "pnl": trade.pnl,
                "exit_reason": trade.exit_reason.value,
                "counts_toward_risk": counts_toward_risk,
            },
            at=trade.exit_time,
        )
        if counts_toward_risk:
            self._gate.record_trade_result(trade.pnl, trade.exit_time)
        self._logger.info(
            "trade_closed",
            trade_number=trade.trade_number,
            reason=trade.exit_reason.value,
            pnl=round(trade.pnl, 2),
            balance=round(self._gate.budget.current_balance, 2),
        )

    # ==================== Reconciliation ====================

    async def reconcile(self) -> None:
        """Compare local belief with the venue position; the venue wins."""
        quantity = await self._call("fetch_position", self._venue.fetch_position, self._instrument)
        await self._reconcile_quantity(quantity, self._clock())

    async def _reconcile_quantity(self, quantity: int, now: datetime) -> None:
        last_price = self._bars[-1].close if self._bars else None
        try:
            outcome = self._manager.reconcile(quantity, last_price, now)
        except UnreconciledPositionError as exc:
            self._last_error = str(exc)
            self._journal.append(
                "error",
                {"error": "unreconciled_position", "detail": str(exc), "venue_quantity": quantity},
                at=now,
            )
            return

        self._venue_available = True
        if outcome.in_sync:
            return

        self._journal.append(
            "status",
            {"status": "reconciled", "correction": outcome.correction, "venue_quantity": quantity},
            at=now,
        )
        position = self._manager.snapshot()
        if position is not None and position.order_ids is not None:
            if outcome.correction and "adopted_unreported_fill" in outcome.correction:
                self._journal.append(
                    "fill",
                    {
                        "order_id": position.order_ids.entry,
                        "fill_price": position.entry_price,
                        "role": "entry",
                    },
                    at=now,
                )
        if outcome.trade is not None:
            self._record_exit(outcome.trade, counts_toward_risk=outcome.counts_toward_risk)
        for order_id in outcome.orders_to_cancel:
            await self._call("cancel_order", self._venue.cancel_order, order_id)

    # ==================== Shutdown ====================

    async def shutdown(self) -> None:
        """Flatten, cancel working orders, wait briefly for the fill, disconnect."""
        now = self._clock()
        try:
            if self._manager.state is LifecycleState.OPEN:
                await self._flatten(now, ExitReason.FLATTEN)
            await self._call("cancel_all_orders", self._venue.cancel_all_orders, self._instrument)
            if self._flatten_order_id is not None:
                await self._await_flatten_fill()
        except VenueUnavailableError as exc:
            self._logger.error("shutdown_flatten_failed", error=str(exc))
            self._journal.append(
                "error",
                {"error": "shutdown_flatten_failed", "detail": str(exc)},
                at=now,
            )
        finally:
            try:
                await self._call("disconnect", self._venue.disconnect)
            except VenueUnavailableError as exc:
                self._logger.warning("disconnect_failed", error=str(exc))
            self._logger.info("worker_stopped", state=self._manager.state.value)

    async def _await_flatten_fill(self) -> None:
        try:
            async with asyncio.timeout(self._settings.shutdown_grace_sec):
                while self._flatten_order_id is not None:
                    event = await self._queue.get()
                    if isinstance(event, (OrderStatusEvent, PositionEvent)):
                        await self.handle(event)
        except TimeoutError:
            self._logger.warning(
                "flatten_fill_not_confirmed",
                order_id=self._flatten_order_id,
                grace_sec=self._settings.shutdown_grace_sec,
            )

    # ==================== Plumbing ====================

    async def _call(
        self,
        operation: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        """Bounded, retried venue request."""
        result: Any = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(VenueUnavailableError),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.venue_retry_min_wait_sec,
                max=self._settings.venue_retry_max_wait_sec,
            ),
            stop=stop_after_attempt(self._settings.venue_retry_attempts),
            reraise=True,
        ):
            with attempt:
                try:
                    result = await asyncio.wait_for(
                        func(*args),
                        timeout=self._settings.venue_timeout_sec,
                    )
                except asyncio.TimeoutError as exc:
                    raise VenueUnavailableError(f"venue_timeout: {operation}") from exc
        self._venue_available = True
        return result

    async def _tick_every(self, interval: float, make_event: Callable[[], WorkerEvent]) -> None:
        while True:
            await asyncio.sleep(interval)
            self._queue.put_nowait(make_event())

    async def _shutdown_when_set(self, stop_event: asyncio.Event) -> None:
        await stop_event.wait()
        self._queue.put_nowait(Shutdown())


async def run_instruments(
    workers: Sequence[InstrumentWorker],
    stop_event: asyncio.Event,
) -> None:
    """Run one worker task per instrument until ``stop_event`` is set."""
    await asyncio.gather(*(worker.run(stop_event) for worker in workers))
