"""Breakout stop-loss, target and pullback levels — pure math, no I/O.

Levels are anchored on the broken swing extreme:

- **Long**:  stop = lowest low since the previous high;
  target = breakout + risk × RR; pullback entry = breakout − risk × pullback %.
- **Short**: stop = highest high since the previous low;
  target = breakout − risk × RR; pullback entry = breakout + risk × pullback %.

Every level is rounded to the configured tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from breakoutsim.risk.rounding import apply_rounding
from breakoutsim.strategy.models import Direction

if TYPE_CHECKING:
    from breakoutsim.models.strategy_config import PriceRounding


@dataclass(frozen=True)
class RiskLevels:
    """Computed levels for a breakout trade."""

    breakout_price: float
    stop_loss: float
    target: float
    pullback_entry_price: float
    risk: float
    pullback_amount: float


def calculate_breakout_levels(
    direction: Direction,
    breakout_price: float,
    swing_extreme: float,
    risk_reward_ratio: float,
    pullback_percentage: float,
    rounding: Optional[PriceRounding] = None,
) -> RiskLevels:
    """Calculate stop, target and pullback entry for a breakout.

    Args:
        direction: Trade direction.
        breakout_price: The previous extreme that was broken (unrounded).
        swing_extreme: The opposite swing extreme used as the stop (unrounded).
        risk_reward_ratio: Target distance as a multiple of risk.
        pullback_percentage: Share of risk (0–100) to wait for as retracement.
        rounding: Tick rounding, or ``None`` to keep raw prices.

    Returns:
        ``RiskLevels``; ``risk`` and ``pullback_amount`` are unrounded
        distances derived from the rounded breakout and stop.

    Raises:
        ValueError: If *direction* is not a ``Direction``.
    """
    breakout = apply_rounding(breakout_price, rounding)
    stop = apply_rounding(swing_extreme, rounding)

    if direction is Direction.LONG:
        risk = breakout - stop
        target = apply_rounding(breakout + risk * risk_reward_ratio, rounding)
        pullback_amount = risk * (pullback_percentage / 100.0)
        pullback = apply_rounding(breakout - pullback_amount, rounding)
    elif direction is Direction.SHORT:
        risk = stop - breakout
        target = apply_rounding(breakout - risk * risk_reward_ratio, rounding)
        pullback_amount = risk * (pullback_percentage / 100.0)
        pullback = apply_rounding(breakout + pullback_amount, rounding)
    else:
        raise ValueError(f"direction must be a Direction, got '{direction}'")

    return RiskLevels(
        breakout_price=breakout,
        stop_loss=stop,
        target=target,
        pullback_entry_price=pullback,
        risk=risk,
        pullback_amount=pullback_amount,
    )


def stop_distance_pct(price: float, stop_price: float) -> float:
    """Stop distance as a percentage of *price* (the breakout or entry price; 0 for a zero price)."""
    if price == 0:
        return 0.0
    return abs(price - stop_price) / price * 100.0
