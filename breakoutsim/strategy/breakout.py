"""Breakout detector — tracks a day's swing extremes and emits breakout events.

A breakout is a new extreme beyond the previous tracked one by more than
``BREAKOUT_TOLERANCE``.  It is valid when the time since the previous
extreme lies inside ``[min_threshold, max_threshold]`` minutes, the direction
has nothing pending, the volume confirmation passes and the stop is wide
enough.  Extremes reset on every new extreme whether or not it was valid.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.risk.rounding import apply_rounding
from breakoutsim.risk.sl_tp import calculate_breakout_levels, stop_distance_pct
from breakoutsim.strategy.indicators import (
    check_volume_confirmation,
    is_hammer,
    swing_high,
    swing_low,
)
from breakoutsim.strategy.models import (
    BreakoutEvent,
    Candle,
    Direction,
    InvalidBreakout,
    StopLossRejection,
    VolumeRejection,
)
from breakoutsim.strategy.session_filter import format_timestamp, time_diff_minutes

# Price units a new extreme must clear to count as strictly beyond the old one.
BREAKOUT_TOLERANCE = 0.05


@dataclass
class ScanResult:
    """Breakouts emitted for one candle, or the rejection that ends the day."""

    events: list[BreakoutEvent] = field(default_factory=list)
    rejection: Optional[StopLossRejection] = None


class BreakoutDetector:
    """Scans one day's candles for time-qualified swing breakouts.

    Args:
        candles: The day's candles in time order (must not be empty).
        config: Strategy parameters.
    """

    def __init__(self, candles: Sequence[Candle], config: StrategyConfig) -> None:
        if not candles:
            raise ValueError("BreakoutDetector needs at least one candle")
        self._candles = candles
        self._config = config
        body = config.use_candle_body

        first = candles[0]
        self._prev_high = swing_high(first, body)
        self._prev_high_time = first.time
        self._prev_low = swing_low(first, body)
        self._prev_low_time = first.time

        self._lowest_since_high = swing_low(first, body)
        self._lowest_since_high_time = first.time
        self._highest_since_low = swing_high(first, body)
        self._highest_since_low_time = first.time

        self.patterns: list[str] = []
        self.invalid_breakouts: list[InvalidBreakout] = []
        self.volume_rejections: list[VolumeRejection] = []

    # ── Per-candle steps ─────────────────────────────────────────────────

    def track(self, index: int) -> None:
        """Fold candle *index* into the running swing extremes and patterns.

        Called before entries are processed for the candle.
        """
        candle = self._candles[index]
        body = self._config.use_candle_body
        low = swing_low(candle, body)
        high = swing_high(candle, body)

        if low < self._lowest_since_high:
            self._lowest_since_high = low
            self._lowest_since_high_time = candle.time
        if high > self._highest_since_low:
            self._highest_since_low = high
            self._highest_since_low_time = candle.time

        if is_hammer(candle):
            self.patterns.append("hammer")

    def detect(
        self,
        index: int,
        can_arm: Callable[[Direction], bool],
    ) -> ScanResult:
        """Check candle *index* for new highs and lows.

        Args:
            index: Candle index (>= 1).
            can_arm: Returns False for a direction that already has a
                pending breakout, entry order or position.

        Returns:
            ``ScanResult``; a non-None ``rejection`` means the day is over.
        """
        candle = self._candles[index]
        body = self._config.use_candle_body
        result = ScanResult()

        high = swing_high(candle, body)
        if high > self._prev_high + BREAKOUT_TOLERANCE:
            rejection = self._evaluate(
                Direction.LONG, index, self._prev_high, self._prev_high_time,
                self._lowest_since_high, self._lowest_since_high_time,
                can_arm, result,
            )
            if rejection is not None:
                result.rejection = rejection
                return result
            self._prev_high = high
            self._prev_high_time = candle.time
            self._lowest_since_high = swing_low(candle, body)
            self._lowest_since_high_time = candle.time

        low = swing_low(candle, body)
        if low < self._prev_low - BREAKOUT_TOLERANCE:
            rejection = self._evaluate(
                Direction.SHORT, index, self._prev_low, self._prev_low_time,
                self._highest_since_low, self._highest_since_low_time,
                can_arm, result,
            )
            if rejection is not None:
                result.rejection = rejection
                return result
            self._prev_low = low
            self._prev_low_time = candle.time
            self._highest_since_low = swing_high(candle, body)
            self._highest_since_low_time = candle.time

        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    def _evaluate(
        self,
        direction: Direction,
        index: int,
        extreme: float,
        extreme_time: str,
        opposite: float,
        opposite_time: str,
        can_arm: Callable[[Direction], bool],
        result: ScanResult,
    ) -> Optional[StopLossRejection]:
        """Validate one breakout; append an event to *result* when it passes."""
        cfg = self._config
        candle = self._candles[index]
        gap = time_diff_minutes(candle.time, extreme_time)
        in_window = cfg.min_threshold <= gap <= cfg.max_threshold
        breakout_time = format_timestamp(candle.time)

        if not in_window:
            self.invalid_breakouts.append(InvalidBreakout(
                direction=direction,
                breakout_time=breakout_time,
                breakout_price=apply_rounding(extreme, cfg.rounding),
                time_gap=gap,
                required_time_range=f"{cfg.min_threshold:g}-{cfg.max_threshold:g}",
            ))
            return None

        if not can_arm(direction):
            return None

        volume = check_volume_confirmation(self._candles, index, cfg.volume)
        if not volume.passed:
            self.volume_rejections.append(VolumeRejection(
                direction=direction,
                breakout_time=breakout_time,
                breakout_price=apply_rounding(extreme, cfg.rounding),
                volume_check=volume,
            ))
            return None

        levels = calculate_breakout_levels(
            direction, extreme, opposite, cfg.risk_reward_ratio,
            cfg.pullback_percentage, cfg.rounding,
        )

        if cfg.minimum_stop_loss_percent > 0:
            stop_pct = stop_distance_pct(levels.breakout_price, levels.stop_loss)
            if stop_pct < cfg.minimum_stop_loss_percent:
                return StopLossRejection(
                    direction=direction,
                    breakout_time=breakout_time,
                    breakout_price=levels.breakout_price,
                    stop_loss=levels.stop_loss,
                    stop_loss_percent=stop_pct,
                    minimum_stop_loss_percent=cfg.minimum_stop_loss_percent,
                )

        long = direction is Direction.LONG
        result.events.append(BreakoutEvent(
            direction=direction,
            breakout_price=levels.breakout_price,
            stop_loss=levels.stop_loss,
            target=levels.target,
            pullback_entry_price=levels.pullback_entry_price,
            pullback_amount=levels.pullback_amount,
            risk=levels.risk,
            breakout_time=breakout_time,
            breakout_index=index,
            previous_extreme_time=format_timestamp(extreme_time),
            time_since_previous_extreme=gap,
            swing_high=extreme if long else opposite,
            swing_low=opposite if long else extreme,
            stop_loss_time=format_timestamp(opposite_time),
            volume_check=volume,
            breakout_candle_volume=candle.volume,
            confirmation_candle_volume=self._candles[index - 1].volume,
            patterns=tuple(self.patterns),
        ))
        return None
