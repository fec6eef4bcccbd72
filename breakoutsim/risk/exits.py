"""Exit manager — decides when and at what price an open position closes.

Checks run once per candle after the entry candle, in priority order:

1. Forced market exit at the scheduled exit time.
2. Pre-close limit order (placed ``pre_exit_minutes`` before the exit time).
3. Max favourable excursion update.
4. Target — plain, or a limit order placed once the target is reached.
5. Stop-loss — circuit breaker, then breach detection and the stop-loss
   limit order.  While a target order is working only the circuit breaker
   can close the position.

Every limit order may fill from the second candle after placement.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from breakoutsim.backtest.results import (
    FORCED_MARKET_EXIT,
    MARKET_CLOSE,
    PRE_CLOSE_ORDER_FILLED,
    STOP_LOSS_HIT,
    STOP_LOSS_ORDER_FILLED,
    TARGET_HIT,
    TARGET_ORDER_FILLED,
    Position,
    PreCloseDetails,
    StopLossDetails,
    TargetDetails,
    circuit_breaker_reason,
)
from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.risk.orders import ChasePolicy, LimitOrder, OrderKind, OrderSide, OrderState
from breakoutsim.risk.rounding import apply_rounding
from breakoutsim.strategy.models import Candle, Direction
from breakoutsim.strategy.session_filter import (
    format_timestamp,
    should_force_exit,
    should_place_pre_close_order,
)

logger = logging.getLogger("breakoutsim")


@dataclass(frozen=True)
class ExitFill:
    price: float
    time: str  # "YYYY-MM-DD HH:MM"
    reason: str
    index: int


class ExitManager:
    """Runs the exit mechanisms for one position.

    Args:
        position: The open position.
        config: Strategy parameters.
        shares: Position size, used for the max favourable excursion.
    """

    def __init__(self, position: Position, config: StrategyConfig, shares: int) -> None:
        self._position = position
        self._config = config
        self._shares = shares
        self._long = position.direction is Direction.LONG

        side = OrderSide.SELL if self._long else OrderSide.BUY
        self._pre_close_order = LimitOrder(OrderKind.PRE_CLOSE, side)
        self._target_order = LimitOrder(OrderKind.TARGET, side)
        self._stop_order = LimitOrder(OrderKind.STOP_LOSS, side)

        self.max_favorable_excursion = 0.0
        self._target_reached_at: Optional[tuple[str, int]] = None
        self._breach: Optional[tuple[str, float, int]] = None
        self._circuit_breaker = False
        self._forced_exit_price: Optional[float] = None

    # ── Per-candle processing ────────────────────────────────────────────

    def on_candle(self, candle: Candle, index: int) -> Optional[ExitFill]:
        """Process one candle; return the exit when the position closes."""
        fill = self._check_forced_exit(candle, index)
        if fill is None:
            fill = self._check_pre_close(candle, index)
        if fill is not None:
            return fill

        self._update_excursion(candle)

        fill = self._check_target(candle, index)
        if fill is None:
            fill = self._check_stop_loss(candle, index)
        return fill

    def close_at_market(self, candle: Candle, index: int) -> ExitFill:
        """Exit at *candle*'s rounded close when nothing else fired."""
        return self._exit(apply_rounding(candle.close, self._config.rounding), candle, index, MARKET_CLOSE)

    # ── Mechanisms ───────────────────────────────────────────────────────

    def _check_forced_exit(self, candle: Candle, index: int) -> Optional[ExitFill]:
        if not should_force_exit(candle.time, self._config.pre_close):
            return None
        price = apply_rounding(candle.close, self._config.rounding)
        self._forced_exit_price = price
        if self._pre_close_order.is_active:
            self._pre_close_order.cancel("forced market exit")
        return self._exit(price, candle, index, FORCED_MARKET_EXIT)

    def _check_pre_close(self, candle: Candle, index: int) -> Optional[ExitFill]:
        cfg = self._config
        order = self._pre_close_order
        if cfg.pre_close is None:
            return None

        if order.state is OrderState.IDLE:
            if should_place_pre_close_order(candle.time, cfg.pre_close):
                order.place(
                    apply_rounding(candle.close, cfg.rounding), index,
                    format_timestamp(candle.time),
                )
            return None

        if not order.can_fill(index):
            return None
        if order.fills(candle):
            price = order.fill(index, format_timestamp(candle.time))
            return self._exit(price, candle, index, PRE_CLOSE_ORDER_FILLED)
        if cfg.pre_close.dynamic_chase:
            order.chase(candle, index, ChasePolicy.ANY, cfg.rounding, cfg.tick, "dynamic_price_adjustment")
        return None

    def _update_excursion(self, candle: Candle) -> None:
        entry = self._position.entry_price
        favourable = (candle.high - entry) if self._long else (entry - candle.low)
        self.max_favorable_excursion = max(self.max_favorable_excursion, favourable * self._shares)

    def _check_target(self, candle: Candle, index: int) -> Optional[ExitFill]:
        cfg = self._config
        target = self._position.target
        reached = candle.high >= target if self._long else candle.low <= target

        if cfg.target_order is None:
            if reached:
                return self._exit(target, candle, index, TARGET_HIT)
            return None

        order = self._target_order
        if order.state is OrderState.IDLE:
            if reached:
                self._target_reached_at = (format_timestamp(candle.time), index)
                order.place(
                    apply_rounding(candle.close, cfg.rounding), index,
                    format_timestamp(candle.time),
                )
            return None

        if not order.can_fill(index):
            return None
        if order.fills(candle):
            price = order.fill(index, format_timestamp(candle.time))
            return self._exit(price, candle, index, TARGET_ORDER_FILLED)
        if cfg.target_order.dynamic_chase:
            order.chase(
                candle, index,
                ChasePolicy.HIGHER if self._long else ChasePolicy.LOWER,
                cfg.rounding, cfg.tick, "dynamic_target_adjustment",
            )
        return None

    def _check_stop_loss(self, candle: Candle, index: int) -> Optional[ExitFill]:
        cfg = self._config
        sl = cfg.stop_loss
        stop = self._position.stop_loss
        adverse = candle.low if self._long else candle.high
        breached = adverse <= stop if self._long else adverse >= stop

        if sl is None:
            if breached:
                return self._exit(apply_rounding(adverse, cfg.rounding), candle, index, STOP_LOSS_HIT)
            return None

        risk = self._position.risk_points
        if sl.circuit_breaker_enabled and risk > 0:
            loss = (self._position.entry_price - adverse) if self._long else (adverse - self._position.entry_price)
            loss_pct = loss / risk * 100.0
            if loss_pct >= sl.max_loss_percent:
                logger.debug(
                    "Circuit breaker at %s: loss %.1f%% of risk", candle.time, loss_pct,
                )
                self._circuit_breaker = True
                if self._stop_order.is_active:
                    self._stop_order.cancel("circuit breaker")
                if self._target_order.is_active:
                    self._target_order.cancel("circuit breaker")
                return self._exit(
                    apply_rounding(adverse, cfg.rounding), candle, index,
                    circuit_breaker_reason(sl.max_loss_percent),
                )

        if self._target_order.is_active:
            return None

        if self._breach is None:
            if breached:
                self._breach = (format_timestamp(candle.time), candle.close, index)
                closed_past = candle.close <= stop if self._long else candle.close >= stop
                if closed_past:
                    self._stop_order.place(
                        apply_rounding(candle.close, cfg.rounding), index,
                        format_timestamp(candle.time),
                    )
            return None

        order = self._stop_order
        if not order.can_fill(index):
            return None
        if order.fills(candle):
            price = order.fill(index, format_timestamp(candle.time))
            return self._exit(price, candle, index, STOP_LOSS_ORDER_FILLED)
        if sl.dynamic_chase:
            order.chase(
                candle, index,
                ChasePolicy.LOWER if self._long else ChasePolicy.HIGHER,
                cfg.rounding, cfg.tick, "dynamic_stop_loss_adjustment",
            )
        return None

    def _exit(self, price: float, candle: Candle, index: int, reason: str) -> ExitFill:
        return ExitFill(price=price, time=format_timestamp(candle.time), reason=reason, index=index)

    # ── Reporting ────────────────────────────────────────────────────────

    def finalize_details(self) -> tuple[StopLossDetails, TargetDetails, PreCloseDetails]:
        """Immutable per-mechanism records for the trade result."""
        cfg = self._config
        sign = self._position.direction.sign

        sl = cfg.stop_loss
        if sl is None:
            stop_details = StopLossDetails(enabled=False)
        else:
            breach_time, breach_close, breach_index = self._breach or (None, None, None)
            stop_details = StopLossDetails(
                enabled=True,
                dynamic_chase=sl.dynamic_chase,
                max_loss_percent=sl.max_loss_percent,
                force_market_order_after_max=sl.force_market_order_after_max,
                stop_loss_breached=self._breach is not None,
                breach_candle_time=breach_time,
                breach_candle_close=breach_close,
                breach_candle_index=breach_index,
                circuit_breaker_triggered=self._circuit_breaker,
                order=self._stop_order.snapshot(),
            )

        if cfg.target_order is None:
            target_details = TargetDetails(enabled=False)
        else:
            reached_time, reached_index = self._target_reached_at or (None, None)
            order = self._target_order.snapshot()
            target_details = TargetDetails(
                enabled=True,
                dynamic_chase=cfg.target_order.dynamic_chase,
                target_reached=self._target_reached_at is not None,
                target_reached_time=reached_time,
                target_reached_index=reached_index,
                order=order,
                price_improvement=(
                    sign * (order.final_price - order.original_price) if order else 0.0
                ),
            )

        pc = cfg.pre_close
        if pc is None:
            pre_close_details = PreCloseDetails(enabled=False)
        else:
            order = self._pre_close_order.snapshot()
            vs_forced = None
            if order is not None and self._forced_exit_price is not None:
                vs_forced = sign * (order.final_price - self._forced_exit_price)
            pre_close_details = PreCloseDetails(
                enabled=True,
                dynamic_chase=pc.dynamic_chase,
                exit_time=pc.exit_time,
                pre_exit_minutes=pc.pre_exit_minutes,
                order=order,
                price_improvement=(
                    sign * (order.final_price - order.original_price) if order else 0.0
                ),
                price_improvement_vs_forced_exit=vs_forced,
            )

        return stop_details, target_details, pre_close_details
