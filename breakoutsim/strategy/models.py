"""Strategy data models — typed representations for candles and breakouts."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single one-minute bar with its IST-local timestamp.

    ``time`` uses the ``"DD/MM/YYYY HH:MM AM/PM"`` format.
    """

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: float


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        """+1 for long, −1 for short (profit = sign × (exit − entry))."""
        return 1 if self is Direction.LONG else -1


@dataclass(frozen=True)
class VolumeCheck:
    """Outcome of the pre-breakout volume confirmation."""

    passed: bool
    reason: str
    pre_breakout_candle_time: Optional[str] = None
    pre_breakout_volume: Optional[float] = None
    average_volume: Optional[float] = None
    volume_threshold: Optional[float] = None
    volume_multiplier: Optional[float] = None
    lookback_volumes: tuple[float, ...] = ()


@dataclass(frozen=True)
class BreakoutEvent:
    """A validated breakout waiting for its pullback entry."""

    direction: Direction
    breakout_price: float
    stop_loss: float
    target: float
    pullback_entry_price: float
    pullback_amount: float
    risk: float
    breakout_time: str  # "YYYY-MM-DD HH:MM"
    breakout_index: int
    previous_extreme_time: str
    time_since_previous_extreme: int
    swing_high: float
    swing_low: float
    stop_loss_time: str
    volume_check: VolumeCheck
    breakout_candle_volume: float
    confirmation_candle_volume: float
    patterns: tuple[str, ...] = ()


@dataclass(frozen=True)
class InvalidBreakout:
    """A new extreme whose gap fell outside the configured time window."""

    direction: Direction
    breakout_time: str
    breakout_price: float
    time_gap: int
    required_time_range: str  # "min-max"


@dataclass(frozen=True)
class VolumeRejection:
    """A time-valid breakout dropped by the volume confirmation."""

    direction: Direction
    breakout_time: str
    breakout_price: float
    volume_check: VolumeCheck


@dataclass(frozen=True)
class StopLossRejection:
    """A breakout, or its entry fill, whose stop distance is below the configured minimum."""

    direction: Direction
    breakout_time: str
    breakout_price: float
    stop_loss: float
    stop_loss_percent: float
    minimum_stop_loss_percent: float
    entry_price: Optional[float] = None  # set when the entry fill was too close
