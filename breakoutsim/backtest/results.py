"""Backtest result models — open positions, trade results and non-trade days."""

from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Optional, Union

from breakoutsim.risk.orders import OrderSnapshot
from breakoutsim.strategy.models import BreakoutEvent, Direction, VolumeCheck

# ── Exit reasons ─────────────────────────────────────────────────────────

TARGET_HIT = "target hit"
TARGET_ORDER_FILLED = "target limit order filled"
STOP_LOSS_HIT = "stop-loss hit"
STOP_LOSS_ORDER_FILLED = "stop loss limit order filled"
PRE_CLOSE_ORDER_FILLED = "pre-close limit order filled"
FORCED_MARKET_EXIT = "forced market exit"
MARKET_CLOSE = "market close"
CIRCUIT_BREAKER_PREFIX = "circuit breaker"


def circuit_breaker_reason(max_loss_percent: float) -> str:
    """e.g. ``"circuit breaker (200% max loss)"``."""
    return f"{CIRCUIT_BREAKER_PREFIX} ({max_loss_percent:g}% max loss)"


# ── Positions and fills ──────────────────────────────────────────────────


@dataclass(frozen=True)
class EntryOrderDetails:
    """Entry limit-order record; ``None`` on trades filled by the simple entry."""

    dynamic_chase: bool
    order: OrderSnapshot
    price_improvement: float  # long: original − fill, short: fill − original


@dataclass(frozen=True)
class Position:
    """An open position handed from the entry manager to the exit manager."""

    direction: Direction
    entry_price: float
    entry_time: str  # "YYYY-MM-DD HH:MM"
    entry_index: int
    stop_loss: float
    target: float
    breakout: BreakoutEvent
    entry_order: Optional[EntryOrderDetails] = None

    @property
    def risk_points(self) -> float:
        """Distance from entry to stop, positive when the stop is on the losing side."""
        return self.direction.sign * (self.entry_price - self.stop_loss)


@dataclass(frozen=True)
class Fill:
    price: float
    time: str
    fee: float
    reason: Optional[str] = None


# ── Exit mechanism details ───────────────────────────────────────────────


@dataclass(frozen=True)
class StopLossDetails:
    enabled: bool
    dynamic_chase: bool = False
    max_loss_percent: Optional[float] = None
    force_market_order_after_max: bool = False
    stop_loss_breached: bool = False
    breach_candle_time: Optional[str] = None
    breach_candle_close: Optional[float] = None
    breach_candle_index: Optional[int] = None
    circuit_breaker_triggered: bool = False
    order: Optional[OrderSnapshot] = None


@dataclass(frozen=True)
class TargetDetails:
    enabled: bool
    dynamic_chase: bool = False
    target_reached: bool = False
    target_reached_time: Optional[str] = None
    target_reached_index: Optional[int] = None
    order: Optional[OrderSnapshot] = None
    price_improvement: float = 0.0


@dataclass(frozen=True)
class PreCloseDetails:
    enabled: bool
    dynamic_chase: bool = False
    exit_time: Optional[str] = None
    pre_exit_minutes: Optional[int] = None
    order: Optional[OrderSnapshot] = None
    price_improvement: float = 0.0
    price_improvement_vs_forced_exit: Optional[float] = None


# ── Day outcomes ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TradeResult:
    """A completed round trip on one trading day."""

    date: str
    direction: Direction
    entry: Fill
    exit: Fill
    target: float
    stop_loss: float
    shares: int
    leverage: float
    invested_amount: float
    actual_capital_used: float
    total_fees: float
    risk_points: float
    gross_profit: float
    net_profit: float
    gross_profit_percentage: float
    net_profit_percentage: float
    max_favorable_excursion: float
    breakout: BreakoutEvent
    stop_loss_details: StopLossDetails
    target_details: TargetDetails
    pre_close_details: PreCloseDetails
    entry_order_details: Optional[EntryOrderDetails] = None
    patterns: tuple[str, ...] = ()

    @property
    def exit_reason(self) -> str:
        return self.exit.reason

    @property
    def is_win(self) -> bool:
        return self.net_profit > 0


class NoTradeReason(str, Enum):
    NO_DATA = "no_data"
    NO_BREAKOUT = "no_breakout"
    OUTSIDE_TIME_RANGE = "outside_time_range"
    VOLUME_REJECTED = "volume_rejected"
    STOP_LOSS_TOO_TIGHT = "stop_loss_too_tight"
    NO_PULLBACK = "no_pullback"
    ENTRY_ORDER_UNFILLED = "entry_order_unfilled"
    SIMULATION_ERROR = "simulation_error"


# Reasons that imply a time-valid breakout was seen during the day.
_BREAKOUT_REASONS = frozenset({
    NoTradeReason.VOLUME_REJECTED,
    NoTradeReason.STOP_LOSS_TOO_TIGHT,
    NoTradeReason.NO_PULLBACK,
    NoTradeReason.ENTRY_ORDER_UNFILLED,
})


@dataclass(frozen=True)
class NoTrade:
    """A day on which no position was opened, and why."""

    date: str
    reason: NoTradeReason
    message: str
    direction: Optional[Direction] = None
    breakout_time: Optional[str] = None
    breakout_price: Optional[float] = None
    required_pullback_price: Optional[float] = None
    time_gap: Optional[int] = None
    required_time_range: Optional[str] = None
    volume_check: Optional[VolumeCheck] = None
    stop_loss: Optional[float] = None
    stop_loss_percent: Optional[float] = None
    minimum_stop_loss_percent: Optional[float] = None
    error: Optional[str] = None

    @property
    def minimum_stop_loss_rejection(self) -> bool:
        return self.reason is NoTradeReason.STOP_LOSS_TOO_TIGHT

    @property
    def volume_rejection(self) -> bool:
        return self.reason is NoTradeReason.VOLUME_REJECTED

    @property
    def breakout_detected(self) -> bool:
        return self.reason in _BREAKOUT_REASONS

    @property
    def breakout_outside_time_range(self) -> bool:
        return self.reason is NoTradeReason.OUTSIDE_TIME_RANGE


DayOutcome = Union[TradeResult, NoTrade]


# ── Serialisation ────────────────────────────────────────────────────────


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def outcome_to_dict(outcome: DayOutcome) -> dict:
    """JSON-compatible dict for a day outcome, tagged with ``"trade"``."""
    if not is_dataclass(outcome):
        raise TypeError(f"Expected a day outcome, got {type(outcome).__name__}")
    doc = _plain(asdict(outcome))
    if isinstance(outcome, TradeResult):
        doc["trade"] = True
        doc["exit_reason"] = outcome.exit_reason
    else:
        doc["trade"] = False
        doc.update(
            minimum_stop_loss_rejection=outcome.minimum_stop_loss_rejection,
            volume_rejection=outcome.volume_rejection,
            breakout_detected=outcome.breakout_detected,
            breakout_outside_time_range=outcome.breakout_outside_time_range,
        )
    return doc
