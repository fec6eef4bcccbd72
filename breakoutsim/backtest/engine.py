"""Backtest engine — replays each trading day through the breakout strategy.

Every day is simulated independently and deterministically: the breakout
detector and the pullback entry manager run candle by candle until the
first entry fills, then the exit manager takes over from the next candle.
No real orders are placed.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from breakoutsim.backtest.results import (
    DayOutcome,
    NoTrade,
    NoTradeReason,
    Fill,
    Position,
    TradeResult,
    outcome_to_dict,
)
from breakoutsim.backtest.stats import calculate_stats
from breakoutsim.data.loader import load_price_data
from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.risk.entry import PullbackEntryManager
from breakoutsim.risk.exits import ExitFill, ExitManager
from breakoutsim.risk.position_sizer import brokerage_fee, calculate_shares
from breakoutsim.strategy.breakout import BreakoutDetector
from breakoutsim.strategy.models import Candle, StopLossRejection
from breakoutsim.strategy.session_filter import include_date, parse_date

logger = logging.getLogger("breakoutsim")


# ── Single day ───────────────────────────────────────────────────────────


def simulate_day(date: str, candles: Sequence[Candle], config: StrategyConfig) -> DayOutcome:
    """Simulate one trading day.

    Args:
        date: ``"DD/MM/YYYY"`` day label.
        candles: The day's one-minute candles in time order.
        config: Strategy parameters.

    Returns:
        A ``TradeResult`` when an entry filled, else a ``NoTrade``.
    """
    if not candles:
        return NoTrade(date, NoTradeReason.NO_DATA, "No data available for this date")

    detector = BreakoutDetector(candles, config)
    entries = PullbackEntryManager(config)
    position: Optional[Position] = None

    for i in range(1, len(candles)):
        detector.track(i)
        position = entries.process(candles, i)
        if entries.rejection is not None:
            return _stop_loss_rejection(date, entries.rejection)
        if position is not None:
            break
        scan = detector.detect(i, entries.is_free)
        if scan.rejection is not None:
            return _stop_loss_rejection(date, scan.rejection)
        for event in scan.events:
            entries.arm(event)

    if position is None:
        return _no_trade(date, detector, entries)
    return _run_position(date, position, candles, config)


def _run_position(
    date: str, position: Position, candles: Sequence[Candle], config: StrategyConfig
) -> TradeResult:
    shares = calculate_shares(config.capital, position.entry_price)
    exits = ExitManager(position, config, shares)

    fill = None
    for i in range(position.entry_index + 1, len(candles)):
        fill = exits.on_candle(candles[i], i)
        if fill is not None:
            break
    if fill is None:
        fill = exits.close_at_market(candles[-1], len(candles) - 1)

    return build_trade_result(date, position, fill, shares, exits, config)


def build_trade_result(
    date: str,
    position: Position,
    exit_fill: ExitFill,
    shares: int,
    exits: ExitManager,
    config: StrategyConfig,
) -> TradeResult:
    """Price a closed position: fees, profit and percentages.

    Percentages are relative to the capital actually committed, i.e. the
    invested amount divided by leverage.
    """
    capital = config.capital
    entry_value = shares * position.entry_price
    exit_value = shares * exit_fill.price
    entry_fee = brokerage_fee(entry_value, capital.brokerage_fee_percent)
    exit_fee = brokerage_fee(exit_value, capital.brokerage_fee_percent)
    total_fees = entry_fee + exit_fee

    gross = position.direction.sign * (exit_fill.price - position.entry_price) * shares
    net = gross - total_fees
    actual_capital = entry_value / capital.leverage

    stop_details, target_details, pre_close_details = exits.finalize_details()
    return TradeResult(
        date=date,
        direction=position.direction,
        entry=Fill(price=position.entry_price, time=position.entry_time, fee=entry_fee),
        exit=Fill(price=exit_fill.price, time=exit_fill.time, fee=exit_fee, reason=exit_fill.reason),
        target=position.target,
        stop_loss=position.stop_loss,
        shares=shares,
        leverage=capital.leverage,
        invested_amount=entry_value,
        actual_capital_used=actual_capital,
        total_fees=total_fees,
        risk_points=position.risk_points,
        gross_profit=gross,
        net_profit=net,
        gross_profit_percentage=gross / actual_capital * 100.0 if actual_capital else 0.0,
        net_profit_percentage=net / actual_capital * 100.0 if actual_capital else 0.0,
        max_favorable_excursion=exits.max_favorable_excursion,
        breakout=position.breakout,
        stop_loss_details=stop_details,
        target_details=target_details,
        pre_close_details=pre_close_details,
        entry_order_details=position.entry_order,
        patterns=position.breakout.patterns,
    )


def _stop_loss_rejection(date: str, rejection: StopLossRejection) -> NoTrade:
    stage = "breakout" if rejection.entry_price is None else f"entry at {rejection.entry_price:g}"
    logger.debug(
        "%s: %s %s rejected, stop %.2f%% < %.2f%%",
        date, rejection.direction.value, stage,
        rejection.stop_loss_percent, rejection.minimum_stop_loss_percent,
    )
    return NoTrade(
        date,
        NoTradeReason.STOP_LOSS_TOO_TIGHT,
        f"Stop loss too tight for {stage}: {rejection.stop_loss_percent:.2f}% "
        f"(minimum {rejection.minimum_stop_loss_percent:g}%)",
        direction=rejection.direction,
        breakout_time=rejection.breakout_time,
        breakout_price=rejection.breakout_price,
        stop_loss=rejection.stop_loss,
        required_pullback_price=rejection.entry_price,
        stop_loss_percent=rejection.stop_loss_percent,
        minimum_stop_loss_percent=rejection.minimum_stop_loss_percent,
    )


def _no_trade(date: str, detector: BreakoutDetector, entries: PullbackEntryManager) -> NoTrade:
    """Explain a day without a fill, most advanced stage first."""
    unfilled = entries.unfilled_orders + entries.open_orders()
    if unfilled:
        event, order = unfilled[0]
        return NoTrade(
            date,
            NoTradeReason.ENTRY_ORDER_UNFILLED,
            f"Entry order placed but not filled ({event.direction.value})",
            direction=event.direction,
            breakout_time=event.breakout_time,
            breakout_price=event.breakout_price,
            required_pullback_price=order.price,
            volume_check=event.volume_check,
        )

    pending = entries.pending_events()
    if pending:
        event = pending[0]
        return NoTrade(
            date,
            NoTradeReason.NO_PULLBACK,
            f"Breakout detected but no pullback entry ({event.direction.value})",
            direction=event.direction,
            breakout_time=event.breakout_time,
            breakout_price=event.breakout_price,
            required_pullback_price=event.pullback_entry_price,
            volume_check=event.volume_check,
        )

    if detector.invalid_breakouts:
        inv = detector.invalid_breakouts[0]
        return NoTrade(
            date,
            NoTradeReason.OUTSIDE_TIME_RANGE,
            f"Breakout detected but outside time threshold range ({inv.time_gap} mins)",
            direction=inv.direction,
            breakout_time=inv.breakout_time,
            breakout_price=inv.breakout_price,
            time_gap=inv.time_gap,
            required_time_range=inv.required_time_range,
        )

    if detector.volume_rejections:
        rej = detector.volume_rejections[0]
        return NoTrade(
            date,
            NoTradeReason.VOLUME_REJECTED,
            f"Breakout rejected by volume confirmation ({rej.direction.value})",
            direction=rej.direction,
            breakout_time=rej.breakout_time,
            breakout_price=rej.breakout_price,
            volume_check=rej.volume_check,
        )

    return NoTrade(date, NoTradeReason.NO_BREAKOUT, "No valid breakout detected")


# ── Whole run ────────────────────────────────────────────────────────────


@dataclass
class BacktestReport:
    """Outcome of a full backtest run."""

    stats: dict
    config: StrategyConfig
    outcomes: list[DayOutcome] = field(default_factory=list)

    @property
    def trades(self) -> list[TradeResult]:
        return [o for o in self.outcomes if isinstance(o, TradeResult)]

    def to_dict(self, include_outcomes: bool = True) -> dict:
        doc = dict(self.stats)
        if include_outcomes:
            doc["all_trades"] = [outcome_to_dict(o) for o in self.outcomes]
        doc["config_used"] = self.config.to_dict()
        return doc


class BacktestEngine:
    """Runs the strategy over many trading days.

    Args:
        config: Strategy parameters (validated on construction).
    """

    def __init__(self, config: StrategyConfig) -> None:
        config.validate()
        self._config = config

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, price_data: Mapping[str, Sequence[Candle]]) -> BacktestReport:
        """Simulate every day that passes the date filter, oldest first.

        A failure inside one day is logged and recorded as a
        ``SIMULATION_ERROR`` non-trade; the run continues.
        """
        cfg = self._config
        dates = sorted(
            (d for d in price_data if include_date(d, cfg.date_filter)),
            key=parse_date,
        )

        outcomes: list[DayOutcome] = []
        for date in dates:
            try:
                outcomes.append(simulate_day(date, price_data[date], cfg))
            except Exception as exc:
                logger.error("Simulation failed for %s: %s", date, exc)
                outcomes.append(NoTrade(
                    date,
                    NoTradeReason.SIMULATION_ERROR,
                    f"Simulation error: {exc}",
                    error=str(exc),
                ))

        stats = calculate_stats(outcomes, cfg)
        logger.debug(
            "Backtest over %d days: %d trades, net %.2f",
            len(outcomes), stats["total_trades"], stats["total_net_profit"],
        )
        return BacktestReport(stats=stats, config=cfg, outcomes=outcomes)


def run_backtest_file(
    path: Union[str, Path], config: StrategyConfig, include_outcomes: bool = True
) -> dict:
    """Load *path* and back-test it; I/O and data errors become ``{"error": msg}``."""
    try:
        price_data = load_price_data(path)
        report = BacktestEngine(config).run(price_data)
    except (OSError, ValueError) as exc:
        logger.error("Backtest of %s failed: %s", path, exc)
        return {"error": str(exc)}
    return report.to_dict(include_outcomes=include_outcomes)
