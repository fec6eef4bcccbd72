"""Strategy configuration dataclasses.

Every optional mechanism is either ``None`` (disabled) or a frozen dataclass
carrying that mechanism's parameters, so a disabled mechanism never drags
stale parameters along.  ``StrategyConfig.from_dict`` accepts the
JSON-compatible camelCase document used by config files and the API.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from breakoutsim.strategy.session_filter import parse_date, parse_hhmm


DEFAULT_STRATEGY_DOC: dict[str, Any] = {
    "minThreshold": 60,
    "maxThreshold": 180,
    "riskRewardRatio": 1,
    "pullbackPercentage": 10,
    "minimumStopLossPercent": 0,
    "useCandleBody": False,
    "entryTimeRange": {
        "enabled": False,
        "startTime": "09:15",
        "endTime": "14:45",
    },
    "marketExitTime": {
        "enabled": False,
        "exitTime": "15:00",
        "preExitLimitOrderMinutes": 10,
        "dynamicPriceAdjustment": True,
    },
    "dateFilter": {
        "enabled": False,
        "specificDate": None,
        "dateRange": {"start": None, "end": None},
    },
    "volumeConfirmation": {
        "enabled": True,
        "volumeMultiplier": 3,
        "lookbackPeriod": 5,
    },
    "capital": {
        "initial": 100000,
        "utilizationPercent": 100,
        "leverage": 5,
        "brokerageFeePercent": 0.06,
    },
    "stopLossExitConfig": {
        "enabled": True,
        "dynamicStopLossAdjustment": True,
        "maxLossPercent": 200,
        "forceMarketOrderAfterMax": True,
    },
    "targetExitConfig": {
        "enabled": False,
        "dynamicTargetAdjustment": True,
    },
    "entryOrderConfig": {
        "enabled": False,
        "dynamicEntryAdjustment": True,
    },
    "priceRounding": {
        "enabled": True,
        "tickSize": 0.05,
    },
}

# camelCase document key → StrategyConfig field, for the tunable scalars.
PARAM_FIELDS: dict[str, str] = {
    "minThreshold": "min_threshold",
    "maxThreshold": "max_threshold",
    "riskRewardRatio": "risk_reward_ratio",
    "pullbackPercentage": "pullback_percentage",
    "minimumStopLossPercent": "minimum_stop_loss_percent",
}

DEFAULT_TICK = 0.05


# ── Mechanism blocks ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class EntryWindow:
    """Time-of-day window in which pullback entries may trigger (inclusive)."""

    start: str  # "HH:MM", 24-hour
    end: str


@dataclass(frozen=True)
class PreCloseExit:
    """Scheduled exit: limit order before ``exit_time``, market order at it."""

    exit_time: str
    pre_exit_minutes: int = 10
    dynamic_chase: bool = True


@dataclass(frozen=True)
class VolumeConfirmation:
    """Pre-breakout candle volume must reach ``multiplier`` × lookback average."""

    multiplier: float = 3.0
    lookback_period: int = 5


@dataclass(frozen=True)
class StopLossExit:
    """Breach-driven stop-loss limit order with an optional circuit breaker."""

    dynamic_chase: bool = True
    max_loss_percent: Optional[float] = 200.0
    force_market_order_after_max: bool = True

    @property
    def circuit_breaker_enabled(self) -> bool:
        return bool(self.force_market_order_after_max and self.max_loss_percent)


@dataclass(frozen=True)
class TargetExit:
    """Target limit order placed once the target is reached."""

    dynamic_chase: bool = True


@dataclass(frozen=True)
class EntryOrder:
    """Limit entry order placed once the pullback level is touched."""

    dynamic_chase: bool = True


@dataclass(frozen=True)
class PriceRounding:
    tick_size: float = DEFAULT_TICK


@dataclass(frozen=True)
class DateFilter:
    """Either one ``specific_date`` or an inclusive ``start``–``end`` range."""

    specific_date: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None


@dataclass(frozen=True)
class Capital:
    initial: float = 100_000.0
    utilization_percent: float = 100.0
    leverage: float = 5.0
    brokerage_fee_percent: float = 0.06


# ── Strategy config ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class StrategyConfig:
    """Complete parameter set for one backtest run."""

    min_threshold: float = 60
    max_threshold: float = 180
    risk_reward_ratio: float = 1.0
    pullback_percentage: float = 10.0
    minimum_stop_loss_percent: float = 0.0
    use_candle_body: bool = False
    capital: Capital = field(default_factory=Capital)
    entry_window: Optional[EntryWindow] = None
    pre_close: Optional[PreCloseExit] = None
    volume: Optional[VolumeConfirmation] = field(default_factory=VolumeConfirmation)
    stop_loss: Optional[StopLossExit] = field(default_factory=StopLossExit)
    target_order: Optional[TargetExit] = None
    entry_order: Optional[EntryOrder] = None
    rounding: Optional[PriceRounding] = field(default_factory=PriceRounding)
    date_filter: Optional[DateFilter] = None

    @property
    def tick(self) -> float:
        """Minimum meaningful price move (the tick size, or 0.05 unrounded)."""
        if self.rounding is not None:
            return self.rounding.tick_size
        return DEFAULT_TICK

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def from_dict(cls, doc: Optional[dict] = None) -> StrategyConfig:
        """Build a config from a camelCase document merged over the defaults.

        The merge is shallow: a top-level block supplied by the caller
        replaces the default block as a whole.
        """
        merged = {**copy.deepcopy(DEFAULT_STRATEGY_DOC), **(doc or {})}

        capital_doc = merged.get("capital") or {}
        capital = Capital(
            initial=float(capital_doc.get("initial", 100_000)),
            utilization_percent=float(capital_doc.get("utilizationPercent", 100)),
            leverage=float(capital_doc.get("leverage") or 1),
            brokerage_fee_percent=float(capital_doc.get("brokerageFeePercent") or 0),
        )

        entry_window = None
        block = _enabled_block(merged, "entryTimeRange")
        if block is not None:
            entry_window = EntryWindow(
                start=_first(block, "startTime", "start", default="09:15"),
                end=_first(block, "endTime", "end", default="14:45"),
            )

        pre_close = None
        block = _enabled_block(merged, "marketExitTime")
        if block is not None:
            pre_close = PreCloseExit(
                exit_time=block.get("exitTime", "15:00"),
                pre_exit_minutes=int(
                    _first(block, "preExitLimitOrderMinutes", "preExitMinutes", default=None) or 10
                ),
                dynamic_chase=bool(
                    _first(block, "dynamicPriceAdjustment", "dynamicChase", default=False)
                ),
            )

        volume = None
        block = _enabled_block(merged, "volumeConfirmation")
        if block is not None:
            volume = VolumeConfirmation(
                multiplier=float(_first(block, "volumeMultiplier", "multiplier", default=1)),
                lookback_period=int(block.get("lookbackPeriod", 5)),
            )

        stop_loss = None
        block = _enabled_block(merged, "stopLossExitConfig")
        if block is not None:
            max_loss = block.get("maxLossPercent")
            stop_loss = StopLossExit(
                dynamic_chase=bool(
                    _first(block, "dynamicStopLossAdjustment", "dynamicChase", default=False)
                ),
                max_loss_percent=float(max_loss) if max_loss is not None else None,
                force_market_order_after_max=bool(block.get("forceMarketOrderAfterMax", False)),
            )

        target_order = None
        block = _enabled_block(merged, "targetExitConfig")
        if block is not None:
            target_order = TargetExit(
                dynamic_chase=bool(
                    _first(block, "dynamicTargetAdjustment", "dynamicChase", default=False)
                ),
            )

        entry_order = None
        block = _enabled_block(merged, "entryOrderConfig")
        if block is not None:
            entry_order = EntryOrder(
                dynamic_chase=bool(
                    _first(block, "dynamicEntryAdjustment", "dynamicChase", default=False)
                ),
            )

        rounding = None
        block = _enabled_block(merged, "priceRounding")
        if block is not None:
            rounding = PriceRounding(tick_size=float(block.get("tickSize", DEFAULT_TICK)))

        date_filter = None
        block = _enabled_block(merged, "dateFilter")
        if block is not None:
            date_range = block.get("dateRange") or {}
            date_filter = DateFilter(
                specific_date=block.get("specificDate") or None,
                start=date_range.get("start") or None,
                end=date_range.get("end") or None,
            )

        return cls(
            min_threshold=float(merged["minThreshold"]),
            max_threshold=float(merged["maxThreshold"]),
            risk_reward_ratio=float(merged["riskRewardRatio"]),
            pullback_percentage=float(merged["pullbackPercentage"]),
            minimum_stop_loss_percent=float(merged.get("minimumStopLossPercent") or 0),
            use_candle_body=bool(merged.get("useCandleBody", False)),
            capital=capital,
            entry_window=entry_window,
            pre_close=pre_close,
            volume=volume,
            stop_loss=stop_loss,
            target_order=target_order,
            entry_order=entry_order,
            rounding=rounding,
            date_filter=date_filter,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase document that ``from_dict`` round-trips."""
        ew, pc, vol = self.entry_window, self.pre_close, self.volume
        sl, tgt, eo = self.stop_loss, self.target_order, self.entry_order
        df = self.date_filter
        return {
            "minThreshold": self.min_threshold,
            "maxThreshold": self.max_threshold,
            "riskRewardRatio": self.risk_reward_ratio,
            "pullbackPercentage": self.pullback_percentage,
            "minimumStopLossPercent": self.minimum_stop_loss_percent,
            "useCandleBody": self.use_candle_body,
            "entryTimeRange": (
                {"enabled": True, "startTime": ew.start, "endTime": ew.end}
                if ew else {"enabled": False}
            ),
            "marketExitTime": (
                {
                    "enabled": True,
                    "exitTime": pc.exit_time,
                    "preExitLimitOrderMinutes": pc.pre_exit_minutes,
                    "dynamicPriceAdjustment": pc.dynamic_chase,
                }
                if pc else {"enabled": False}
            ),
            "dateFilter": (
                {
                    "enabled": True,
                    "specificDate": df.specific_date,
                    "dateRange": {"start": df.start, "end": df.end},
                }
                if df else {"enabled": False}
            ),
            "volumeConfirmation": (
                {
                    "enabled": True,
                    "volumeMultiplier": vol.multiplier,
                    "lookbackPeriod": vol.lookback_period,
                }
                if vol else {"enabled": False}
            ),
            "capital": {
                "initial": self.capital.initial,
                "utilizationPercent": self.capital.utilization_percent,
                "leverage": self.capital.leverage,
                "brokerageFeePercent": self.capital.brokerage_fee_percent,
            },
            "stopLossExitConfig": (
                {
                    "enabled": True,
                    "dynamicStopLossAdjustment": sl.dynamic_chase,
                    "maxLossPercent": sl.max_loss_percent,
                    "forceMarketOrderAfterMax": sl.force_market_order_after_max,
                }
                if sl else {"enabled": False}
            ),
            "targetExitConfig": (
                {"enabled": True, "dynamicTargetAdjustment": tgt.dynamic_chase}
                if tgt else {"enabled": False}
            ),
            "entryOrderConfig": (
                {"enabled": True, "dynamicEntryAdjustment": eo.dynamic_chase}
                if eo else {"enabled": False}
            ),
            "priceRounding": (
                {"enabled": True, "tickSize": self.rounding.tick_size}
                if self.rounding else {"enabled": False}
            ),
        }

    # ── Derivation ───────────────────────────────────────────────────────

    def with_params(self, **overrides: float) -> StrategyConfig:
        """Return a copy with top-level numeric parameters replaced.

        Keys may be field names (``min_threshold``) or document keys
        (``minThreshold``).
        """
        changes = {}
        for key, value in overrides.items():
            name = PARAM_FIELDS.get(key, key)
            if name not in PARAM_FIELDS.values():
                raise ValueError(f"Unknown strategy parameter '{key}'")
            changes[name] = float(value)
        return replace(self, **changes)

    def with_date_range(self, start: str, end: str) -> StrategyConfig:
        """Return a copy restricted to the inclusive ``start``–``end`` range."""
        return replace(self, date_filter=DateFilter(start=start, end=end))

    # ── Validation ───────────────────────────────────────────────────────

    def validate(self) -> None:
        """Raise ``ValueError`` if the parameter combination is unusable."""
        if self.min_threshold < 0:
            raise ValueError(f"minThreshold must be >= 0, got {self.min_threshold}")
        if self.min_threshold >= self.max_threshold:
            raise ValueError(
                f"minThreshold ({self.min_threshold}) must be below "
                f"maxThreshold ({self.max_threshold})"
            )
        if self.risk_reward_ratio <= 0:
            raise ValueError(f"riskRewardRatio must be positive, got {self.risk_reward_ratio}")
        if not 0 <= self.pullback_percentage <= 100:
            raise ValueError(
                f"pullbackPercentage must be 0–100, got {self.pullback_percentage}"
            )
        if self.minimum_stop_loss_percent < 0:
            raise ValueError(
                f"minimumStopLossPercent must be >= 0, got {self.minimum_stop_loss_percent}"
            )
        if self.capital.initial <= 0:
            raise ValueError(f"capital.initial must be positive, got {self.capital.initial}")
        if self.capital.leverage <= 0:
            raise ValueError(f"capital.leverage must be positive, got {self.capital.leverage}")
        if not 0 < self.capital.utilization_percent <= 100:
            raise ValueError(
                "capital.utilizationPercent must be in (0, 100], "
                f"got {self.capital.utilization_percent}"
            )
        if self.capital.brokerage_fee_percent < 0:
            raise ValueError(
                "capital.brokerageFeePercent must be >= 0, "
                f"got {self.capital.brokerage_fee_percent}"
            )
        if self.rounding is not None and self.rounding.tick_size <= 0:
            raise ValueError(f"priceRounding.tickSize must be positive, got {self.rounding.tick_size}")
        if self.volume is not None:
            if self.volume.lookback_period < 1:
                raise ValueError(
                    f"volumeConfirmation.lookbackPeriod must be >= 1, got {self.volume.lookback_period}"
                )
            if self.volume.multiplier < 0:
                raise ValueError(
                    f"volumeConfirmation.volumeMultiplier must be >= 0, got {self.volume.multiplier}"
                )
        if self.entry_window is not None:
            if parse_hhmm(self.entry_window.start) > parse_hhmm(self.entry_window.end):
                raise ValueError(
                    f"entryTimeRange start {self.entry_window.start} is after "
                    f"end {self.entry_window.end}"
                )
        if self.pre_close is not None:
            parse_hhmm(self.pre_close.exit_time)
            if self.pre_close.pre_exit_minutes < 0:
                raise ValueError(
                    "marketExitTime.preExitLimitOrderMinutes must be >= 0, "
                    f"got {self.pre_close.pre_exit_minutes}"
                )
        if self.date_filter is not None:
            for value in (self.date_filter.specific_date, self.date_filter.start, self.date_filter.end):
                if value:
                    parse_date(value)


# ── Helpers ──────────────────────────────────────────────────────────────


def _enabled_block(doc: dict, key: str) -> Optional[dict]:
    """Return the block under *key* when it is present and enabled."""
    block = doc.get(key)
    if not isinstance(block, dict) or not block.get("enabled"):
        return None
    return block


def _first(block: dict, *keys: str, default: Any) -> Any:
    """Return the value of the first key present in *block*."""
    for key in keys:
        if key in block:
            return block[key]
    return default
