"""Candle indicators — swing extremes, volume confirmation, hammer. Pure functions, no I/O."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from breakoutsim.strategy.models import Candle, VolumeCheck

if TYPE_CHECKING:
    from breakoutsim.models.strategy_config import VolumeConfirmation


def swing_high(candle: Candle, use_body: bool = False) -> float:
    """High used for swing tracking: the wick, or the body top."""
    if use_body:
        return max(candle.open, candle.close)
    return candle.high


def swing_low(candle: Candle, use_body: bool = False) -> float:
    """Low used for swing tracking: the wick, or the body bottom."""
    if use_body:
        return min(candle.open, candle.close)
    return candle.low


def check_volume_confirmation(
    candles: Sequence[Candle],
    index: int,
    volume: Optional[VolumeConfirmation],
) -> VolumeCheck:
    """Check the volume of the candle right before a breakout.

    The pre-breakout candle is ``index − 1``.  Its volume must be at least
    ``multiplier`` × the average volume of the up to ``lookback_period``
    candles preceding it.  An empty lookback averages to 0 and passes.

    Args:
        candles: The day's candles.
        index: Index of the breakout candle.
        volume: Volume settings, or ``None`` when confirmation is disabled.
    """
    if volume is None:
        return VolumeCheck(passed=True, reason="Volume confirmation disabled")

    pre_index = index - 1
    if pre_index < 0 or pre_index >= len(candles):
        return VolumeCheck(passed=True, reason="Pre-breakout candle not available")

    pre_candle = candles[pre_index]
    first = max(0, pre_index - volume.lookback_period)
    lookback = tuple(candles[i].volume for i in range(pre_index - 1, first - 1, -1))

    average = sum(lookback) / len(lookback) if lookback else 0.0
    threshold = average * volume.multiplier
    passed = pre_candle.volume >= threshold

    return VolumeCheck(
        passed=passed,
        reason="Volume confirmation passed" if passed else "Volume confirmation failed",
        pre_breakout_candle_time=pre_candle.time,
        pre_breakout_volume=pre_candle.volume,
        average_volume=average,
        volume_threshold=threshold,
        volume_multiplier=volume.multiplier,
        lookback_volumes=lookback,
    )


def is_hammer(candle: Candle) -> bool:
    """Bullish candle with a small upper shadow and a long lower shadow."""
    body = candle.close - candle.open
    lower_shadow = candle.open - candle.low
    upper_shadow = candle.high - candle.close
    return (
        body > 0
        and upper_shadow < lower_shadow * 0.5
        and lower_shadow > body * 2
    )
