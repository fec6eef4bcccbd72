"""Pullback entry manager — turns armed breakouts into open positions.

Each direction holds at most one pending breakout and at most one entry
order.  A pending breakout waits for price to retrace to its pullback level:

- **Simple entry** (entry orders disabled): fill immediately at the
  pullback price.
- **Entry order**: place a limit order at the touching candle's rounded
  close; it may fill from the second candle after placement and, with
  chasing on, reprices only toward a better entry (long lower, short
  higher) by at least one tick.

Touches and fills outside the entry window cancel the breakout for the day.
With a minimum stop distance configured, a fill whose entry sits closer to
the stop than that minimum is refused and ends the day (``rejection``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from breakoutsim.backtest.results import EntryOrderDetails, Position
from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.risk.orders import ChasePolicy, LimitOrder, OrderKind, OrderSide
from breakoutsim.risk.rounding import apply_rounding
from breakoutsim.risk.sl_tp import stop_distance_pct
from breakoutsim.strategy.models import BreakoutEvent, Candle, Direction, StopLossRejection
from breakoutsim.strategy.session_filter import format_timestamp, is_entry_time_allowed

logger = logging.getLogger("breakoutsim")


@dataclass
class _Slot:
    event: Optional[BreakoutEvent] = None
    order: Optional[LimitOrder] = None


class PullbackEntryManager:
    """Per-direction pending breakouts and entry orders for one day."""

    def __init__(self, config: StrategyConfig) -> None:
        self._config = config
        self._slots = {Direction.LONG: _Slot(), Direction.SHORT: _Slot()}
        self.unfilled_orders: list[tuple[BreakoutEvent, LimitOrder]] = []
        self.discarded: list[BreakoutEvent] = []
        self.rejection: Optional[StopLossRejection] = None

    # ── State ────────────────────────────────────────────────────────────

    def is_free(self, direction: Direction) -> bool:
        """True when *direction* has no pending breakout or entry order."""
        return self._slots[direction].event is None

    def arm(self, event: BreakoutEvent) -> None:
        """Start waiting for the pullback of *event*."""
        slot = self._slots[event.direction]
        if slot.event is not None:
            raise ValueError(f"{event.direction.value} breakout already pending")
        slot.event = event

    def pending_events(self) -> list[BreakoutEvent]:
        """Armed breakouts still waiting for their pullback touch, long first."""
        return [
            slot.event for slot in self._slots.values()
            if slot.event is not None and slot.order is None
        ]

    def open_orders(self) -> list[tuple[BreakoutEvent, LimitOrder]]:
        """Entry orders still working (unfilled at the end of the day)."""
        return [
            (slot.event, slot.order) for slot in self._slots.values()
            if slot.order is not None and slot.order.is_active
        ]

    # ── Per-candle processing ────────────────────────────────────────────

    def process(self, candles: Sequence[Candle], index: int) -> Optional[Position]:
        """Advance both directions on candle *index*, long first.

        Returns the opened ``Position`` on the first fill, else ``None``.
        Stops early once an entry is refused for a too-tight stop.
        """
        for direction in (Direction.LONG, Direction.SHORT):
            position = self._process_slot(self._slots[direction], candles[index], index)
            if position is not None or self.rejection is not None:
                return position
        return None

    def _process_slot(self, slot: _Slot, candle: Candle, index: int) -> Optional[Position]:
        event = slot.event
        if event is None:
            return None
        cfg = self._config
        in_window = is_entry_time_allowed(candle.time, cfg.entry_window)

        if slot.order is not None:
            order = slot.order
            if not in_window:
                order.cancel("entry window closed")
                self.unfilled_orders.append((event, order))
                slot.event = slot.order = None
                return None
            if not order.can_fill(index):
                return None
            if order.fills(candle):
                if self._refuse(event, order.price):
                    order.cancel("stop loss too tight")
                    return None
                price = order.fill(index, format_timestamp(candle.time))
                return self._open(event, price, candle, index, order)
            if cfg.entry_order.dynamic_chase:
                long = event.direction is Direction.LONG
                order.chase(
                    candle, index,
                    ChasePolicy.LOWER if long else ChasePolicy.HIGHER,
                    cfg.rounding, cfg.tick, "dynamic_entry_adjustment",
                )
            return None

        if event.direction is Direction.LONG:
            touched = candle.low <= event.pullback_entry_price
        else:
            touched = candle.high >= event.pullback_entry_price
        if not touched:
            return None

        if not in_window:
            logger.debug(
                "Pullback for %s breakout at %s touched outside the entry window",
                event.direction.value, event.breakout_time,
            )
            self.discarded.append(event)
            slot.event = None
            return None

        if cfg.entry_order is None:
            if self._refuse(event, event.pullback_entry_price):
                return None
            return self._open(event, event.pullback_entry_price, candle, index, None)

        side = OrderSide.BUY if event.direction is Direction.LONG else OrderSide.SELL
        order = LimitOrder(OrderKind.ENTRY, side)
        order.place(
            apply_rounding(candle.close, cfg.rounding), index, format_timestamp(candle.time)
        )
        slot.order = order
        return None

    def _refuse(self, event: BreakoutEvent, price: float) -> bool:
        """Record a rejection when *price* sits too close to the stop."""
        minimum = self._config.minimum_stop_loss_percent
        if minimum <= 0:
            return False
        stop_pct = stop_distance_pct(price, event.stop_loss)
        if stop_pct >= minimum:
            return False
        self.rejection = StopLossRejection(
            direction=event.direction,
            breakout_time=event.breakout_time,
            breakout_price=event.breakout_price,
            stop_loss=event.stop_loss,
            stop_loss_percent=stop_pct,
            minimum_stop_loss_percent=minimum,
            entry_price=price,
        )
        return True

    def _open(
        self,
        event: BreakoutEvent,
        price: float,
        candle: Candle,
        index: int,
        order: Optional[LimitOrder],
    ) -> Position:
        details = None
        if order is not None:
            improvement = event.direction.sign * (order.original_price - price)
            details = EntryOrderDetails(
                dynamic_chase=self._config.entry_order.dynamic_chase,
                order=order.snapshot(),
                price_improvement=improvement,
            )
        return Position(
            direction=event.direction,
            entry_price=price,
            entry_time=format_timestamp(candle.time),
            entry_index=index,
            stop_loss=event.stop_loss,
            target=event.target,
            breakout=event,
            entry_order=details,
        )
