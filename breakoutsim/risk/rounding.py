"""Tick-size price rounding — pure math, no I/O."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from breakoutsim.models.strategy_config import PriceRounding

# Float slack for tick comparisons (prices carry at most a few decimals).
_EPSILON = 1e-9


def round_to_tick(price: float, tick_size: float = 0.05) -> float:
    """Round *price* half-up to the nearest multiple of *tick_size*.

    Zero and NaN are returned unchanged.
    """
    if not price or math.isnan(price):
        return price
    ticks = math.floor(price / tick_size + 0.5)
    return round(ticks * tick_size, 8)


def apply_rounding(price: float, rounding: Optional[PriceRounding]) -> float:
    """Round *price* when rounding is enabled, else return it unchanged."""
    if rounding is None:
        return price
    return round_to_tick(price, rounding.tick_size)


def moved_by_tick(old_price: float, new_price: float, tick_size: float) -> bool:
    """True when the two prices differ by at least one tick."""
    return abs(new_price - old_price) >= tick_size - _EPSILON


def improves_by_tick(old_price: float, new_price: float, tick_size: float, upward: bool) -> bool:
    """True when *new_price* is at least one tick beyond *old_price*.

    ``upward`` selects the direction: higher (True) or lower (False).
    """
    delta = new_price - old_price if upward else old_price - new_price
    return delta >= tick_size - _EPSILON
