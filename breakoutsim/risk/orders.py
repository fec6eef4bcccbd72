"""Simulated limit orders — one small state machine per order.

States: ``idle → placed → filled | cancelled``.  A reprice keeps the order
placed and appends to its history.  An order placed on candle *i* may fill
no earlier than candle ``i + FILL_DELAY`` (skip-one-candle).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from breakoutsim.risk.rounding import apply_rounding, improves_by_tick, moved_by_tick
from breakoutsim.strategy.models import Candle
from breakoutsim.strategy.session_filter import format_timestamp

if TYPE_CHECKING:
    from breakoutsim.models.strategy_config import PriceRounding

FILL_DELAY = 2


class OrderKind(str, Enum):
    ENTRY = "entry"
    STOP_LOSS = "stop_loss"
    TARGET = "target"
    PRE_CLOSE = "pre_close"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderState(str, Enum):
    IDLE = "idle"
    PLACED = "placed"
    FILLED = "filled"
    CANCELLED = "cancelled"


class ChasePolicy(str, Enum):
    """Which way a reprice to the latest close may move the order."""

    ANY = "any"
    HIGHER = "higher"
    LOWER = "lower"


@dataclass(frozen=True)
class PriceUpdate:
    """One reprice of a pending order."""

    candle_index: int
    time: str
    old_price: float
    new_price: float
    candle_high: float
    candle_low: float
    candle_close: float
    reason: str


@dataclass(frozen=True)
class OrderSnapshot:
    """Immutable record of an order's life, stored on trade results."""

    kind: OrderKind
    side: OrderSide
    state: OrderState
    original_price: float
    final_price: float
    placed_index: int
    placed_time: str
    filled_index: Optional[int] = None
    filled_time: Optional[str] = None
    cancel_reason: Optional[str] = None
    price_updates: tuple[PriceUpdate, ...] = ()

    @property
    def filled(self) -> bool:
        return self.state is OrderState.FILLED

    @property
    def total_price_updates(self) -> int:
        return len(self.price_updates)


class LimitOrder:
    """A simulated limit order.

    Args:
        kind: Which mechanism owns the order.
        side: ``BUY`` fills when a candle trades at or below the price,
              ``SELL`` when it trades at or above it.
    """

    def __init__(self, kind: OrderKind, side: OrderSide) -> None:
        self.kind = kind
        self.side = side
        self.state = OrderState.IDLE
        self.price: Optional[float] = None
        self.original_price: Optional[float] = None
        self.placed_index: Optional[int] = None
        self.placed_time: Optional[str] = None
        self.filled_index: Optional[int] = None
        self.filled_time: Optional[str] = None
        self.cancel_reason: Optional[str] = None
        self.updates: list[PriceUpdate] = []

    # ── Transitions ──────────────────────────────────────────────────────

    def place(self, price: float, index: int, time: str) -> None:
        """Place the order at *price* on candle *index*."""
        if self.state is not OrderState.IDLE:
            raise ValueError(f"{self.kind.value} order already {self.state.value}")
        self.state = OrderState.PLACED
        self.price = price
        self.original_price = price
        self.placed_index = index
        self.placed_time = time

    def fill(self, index: int, time: str) -> float:
        """Mark the order filled on candle *index*; returns the fill price."""
        if self.state is not OrderState.PLACED:
            raise ValueError(f"cannot fill a {self.state.value} {self.kind.value} order")
        self.state = OrderState.FILLED
        self.filled_index = index
        self.filled_time = time
        return self.price

    def cancel(self, reason: str) -> None:
        if self.state is not OrderState.PLACED:
            raise ValueError(f"cannot cancel a {self.state.value} {self.kind.value} order")
        self.state = OrderState.CANCELLED
        self.cancel_reason = reason

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self.state is OrderState.PLACED

    def can_fill(self, index: int) -> bool:
        """True once the skip-one-candle delay has elapsed."""
        return self.is_active and index >= self.placed_index + FILL_DELAY

    def fills(self, candle: Candle) -> bool:
        """True if *candle* traded through the order price."""
        if self.side is OrderSide.SELL:
            return candle.high >= self.price
        return candle.low <= self.price

    # ── Repricing ────────────────────────────────────────────────────────

    def chase(
        self,
        candle: Candle,
        index: int,
        policy: ChasePolicy,
        rounding: Optional[PriceRounding],
        tick_size: float,
        reason: str,
    ) -> bool:
        """Reprice to *candle*'s rounded close if *policy* allows the move.

        The move must be at least one tick.  Returns True when repriced.
        """
        if not self.is_active:
            return False
        old = self.price
        new = apply_rounding(candle.close, rounding)

        if policy is ChasePolicy.ANY:
            allowed = moved_by_tick(old, new, tick_size)
        else:
            allowed = improves_by_tick(old, new, tick_size, upward=policy is ChasePolicy.HIGHER)
        if not allowed:
            return False
        self.reprice(new, index, candle, reason)
        return True

    def reprice(self, new_price: float, index: int, candle: Candle, reason: str) -> None:
        """Move a placed order to *new_price* and record the update."""
        if not self.is_active:
            raise ValueError(f"cannot reprice a {self.state.value} {self.kind.value} order")
        self.updates.append(PriceUpdate(
            candle_index=index,
            time=format_timestamp(candle.time),
            old_price=self.price,
            new_price=new_price,
            candle_high=candle.high,
            candle_low=candle.low,
            candle_close=candle.close,
            reason=reason,
        ))
        self.price = new_price

    def snapshot(self) -> Optional[OrderSnapshot]:
        """Return an immutable record, or ``None`` if never placed."""
        if self.state is OrderState.IDLE:
            return None
        return OrderSnapshot(
            kind=self.kind,
            side=self.side,
            state=self.state,
            original_price=self.original_price,
            final_price=self.price,
            placed_index=self.placed_index,
            placed_time=self.placed_time,
            filled_index=self.filled_index,
            filled_time=self.filled_time,
            cancel_reason=self.cancel_reason,
            price_updates=tuple(self.updates),
        )
