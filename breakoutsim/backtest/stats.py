"""Backtest statistics — pure functions over a run's day outcomes."""

import math
from collections import Counter
from typing import Optional, Sequence

from breakoutsim.backtest.results import (
    CIRCUIT_BREAKER_PREFIX,
    FORCED_MARKET_EXIT,
    PRE_CLOSE_ORDER_FILLED,
    STOP_LOSS_HIT,
    STOP_LOSS_ORDER_FILLED,
    TARGET_ORDER_FILLED,
    DayOutcome,
    NoTrade,
    NoTradeReason,
    TradeResult,
)
from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.strategy.models import Direction


def calculate_stats(outcomes: Sequence[DayOutcome], config: StrategyConfig) -> dict:
    """Summarise a backtest run.

    Money amounts are rounded to 2 decimals, ratios to 4.  Every average
    over an empty set is 0.

    Returns:
        Dict with totals, averages, win/loss counts, ``risk_reward_analysis``,
        ``exit_reason_stats``, non-trade counts, ``sharpe_ratio``,
        ``max_drawdown`` and one ``*_analysis`` block per enabled exit or
        entry mechanism.
    """
    trades = [o for o in outcomes if isinstance(o, TradeResult)]
    no_trades = [o for o in outcomes if isinstance(o, NoTrade)]
    initial = config.capital.initial

    nets = [t.net_profit for t in trades]
    total_gross = sum(t.gross_profit for t in trades)
    total_net = sum(nets)
    total_fees = sum(t.total_fees for t in trades)

    winners = [p for p in nets if p > 0]
    losers = [p for p in nets if p <= 0]
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = sum(winners) / gross_loss if gross_loss > 0 else None

    reasons = Counter(n.reason for n in no_trades)

    stats = {
        "total_days": len(outcomes),
        "total_trades": len(trades),
        "days_without_trade": len(no_trades),
        "long_trades": sum(1 for t in trades if t.direction is Direction.LONG),
        "short_trades": sum(1 for t in trades if t.direction is Direction.SHORT),
        "total_gross_profit": round(total_gross, 2),
        "total_net_profit": round(total_net, 2),
        "total_fees": round(total_fees, 2),
        "average_gross_profit": round(_mean([t.gross_profit for t in trades]), 2),
        "average_net_profit": round(_mean(nets), 2),
        "total_gross_return_percentage": round(_pct(total_gross, initial), 4),
        "total_net_return_percentage": round(_pct(total_net, initial), 4),
        "average_profit_percentage_per_trade": round(
            _mean([t.net_profit_percentage for t in trades]), 4
        ),
        "final_balance": round(initial + total_net, 2),
        "winning_trades": len(winners),
        "losing_trades": len(losers),
        "win_rate": round(_pct(len(winners), len(trades)), 4),
        "profit_factor": round(profit_factor, 4) if profit_factor is not None else None,
        "sharpe_ratio": round(_sharpe(nets), 4),
        "max_drawdown": round(_max_drawdown(nets), 2),
        "risk_reward_analysis": _risk_reward(trades, config),
        "exit_reason_stats": _by_exit_reason(trades),
        "breakouts_without_entry": (
            reasons[NoTradeReason.NO_PULLBACK] + reasons[NoTradeReason.ENTRY_ORDER_UNFILLED]
        ),
        "breakouts_outside_time_range": reasons[NoTradeReason.OUTSIDE_TIME_RANGE],
        "volume_rejections": reasons[NoTradeReason.VOLUME_REJECTED],
        "minimum_stop_loss_rejections": reasons[NoTradeReason.STOP_LOSS_TOO_TIGHT],
        "simulation_errors": reasons[NoTradeReason.SIMULATION_ERROR],
        "no_trade_reasons": {r.value: n for r, n in sorted(reasons.items())},
    }

    if config.stop_loss is not None:
        stats["stop_loss_exit_analysis"] = _stop_loss_analysis(trades)
    if config.target_order is not None:
        stats["target_exit_analysis"] = _target_analysis(trades)
    if config.pre_close is not None:
        stats["pre_close_exit_analysis"] = _pre_close_analysis(trades)
    if config.entry_order is not None:
        stats["entry_order_analysis"] = _entry_order_analysis(
            trades, reasons[NoTradeReason.ENTRY_ORDER_UNFILLED]
        )
    return stats


# ── Sections ─────────────────────────────────────────────────────────────


def _risk_reward(trades: list[TradeResult], config: StrategyConfig) -> dict:
    """Realised reward per unit of planned risk, averaged over trades."""
    realised = [
        t.net_profit / (t.risk_points * t.shares)
        for t in trades
        if t.risk_points * t.shares > 0
    ]
    wins = sum(1 for t in trades if t.is_win)
    return {
        "planned_rr": config.risk_reward_ratio,
        "actual_average_rr": round(_mean(realised), 4),
        "win_rate": round(wins / len(trades), 4) if trades else 0.0,
    }


def _by_exit_reason(trades: list[TradeResult]) -> dict:
    groups: dict[str, list[float]] = {}
    for t in trades:
        groups.setdefault(t.exit_reason, []).append(t.net_profit)
    return {
        reason: {
            "count": len(profits),
            "total_profit": round(sum(profits), 2),
            "average_profit": round(_mean(profits), 2),
        }
        for reason, profits in groups.items()
    }


def _stop_loss_analysis(trades: list[TradeResult]) -> dict:
    order_exits = [t for t in trades if t.exit_reason == STOP_LOSS_ORDER_FILLED]
    plain_exits = [t for t in trades if t.exit_reason == STOP_LOSS_HIT]
    breaker_exits = [t for t in trades if t.exit_reason.startswith(CIRCUIT_BREAKER_PREFIX)]
    orders = [t.stop_loss_details.order for t in trades if t.stop_loss_details.order]
    return {
        "total_stop_loss_order_exits": len(order_exits),
        "total_traditional_stop_loss_exits": len(plain_exits),
        "total_circuit_breaker_exits": len(breaker_exits),
        "trades_with_breach": sum(1 for t in trades if t.stop_loss_details.stop_loss_breached),
        "trades_with_stop_loss_order": len(orders),
        "trades_with_dynamic_adjustment": sum(1 for o in orders if o.total_price_updates > 0),
        "average_price_updates": round(_mean([o.total_price_updates for o in orders]), 4),
        "average_stop_loss_order_profit": round(_mean([t.net_profit for t in order_exits]), 2),
        "average_circuit_breaker_profit": round(_mean([t.net_profit for t in breaker_exits]), 2),
    }


def _target_analysis(trades: list[TradeResult]) -> dict:
    order_exits = [t for t in trades if t.exit_reason == TARGET_ORDER_FILLED]
    orders = [t.target_details.order for t in trades if t.target_details.order]
    return {
        "total_target_order_exits": len(order_exits),
        "trades_target_reached": sum(1 for t in trades if t.target_details.target_reached),
        "trades_with_target_order": len(orders),
        "target_order_fill_rate": round(_pct(len(order_exits), len(orders)), 4),
        "average_price_updates": round(_mean([o.total_price_updates for o in orders]), 4),
        "average_price_improvement": round(
            _mean([t.target_details.price_improvement for t in order_exits]), 4
        ),
        "average_target_order_profit": round(_mean([t.net_profit for t in order_exits]), 2),
    }


def _pre_close_analysis(trades: list[TradeResult]) -> dict:
    order_exits = [t for t in trades if t.exit_reason == PRE_CLOSE_ORDER_FILLED]
    forced_exits = [t for t in trades if t.exit_reason == FORCED_MARKET_EXIT]
    orders = [t.pre_close_details.order for t in trades if t.pre_close_details.order]
    vs_forced = [
        t.pre_close_details.price_improvement_vs_forced_exit
        for t in trades
        if t.pre_close_details.price_improvement_vs_forced_exit is not None
    ]
    return {
        "total_pre_close_order_exits": len(order_exits),
        "total_forced_market_exits": len(forced_exits),
        "trades_with_pre_close_order": len(orders),
        "pre_close_fill_rate": round(_pct(len(order_exits), len(orders)), 4),
        "average_price_updates": round(_mean([o.total_price_updates for o in orders]), 4),
        "average_price_improvement": round(
            _mean([t.pre_close_details.price_improvement for t in order_exits]), 4
        ),
        "average_improvement_vs_forced_exit": round(_mean(vs_forced), 4),
        "average_pre_close_profit": round(_mean([t.net_profit for t in order_exits]), 2),
        "average_forced_exit_profit": round(_mean([t.net_profit for t in forced_exits]), 2),
    }


def _entry_order_analysis(trades: list[TradeResult], unfilled: int) -> dict:
    details = [t.entry_order_details for t in trades if t.entry_order_details]
    placed = len(details) + unfilled
    return {
        "filled_entry_orders": len(details),
        "unfilled_entry_orders": unfilled,
        "entry_order_fill_rate": round(_pct(len(details), placed), 4),
        "average_price_updates": round(
            _mean([d.order.total_price_updates for d in details]), 4
        ),
        "average_price_improvement": round(_mean([d.price_improvement for d in details]), 4),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _pct(part: float, whole: float) -> float:
    return part / whole * 100.0 if whole else 0.0


def _sharpe(pnls: list[float]) -> float:
    """Annualised Sharpe ratio of the per-trade net profit series.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(pnls)
    if n < 2:
        return 0.0
    mean = sum(pnls) / n
    variance = sum((p - mean) ** 2 for p in pnls) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(252)


def _max_drawdown(pnls: list[float]) -> float:
    """Largest peak-to-trough decline of the cumulative profit curve (positive)."""
    cumulative = peak = max_dd = 0.0
    for p in pnls:
        cumulative += p
        peak = max(peak, cumulative)
        max_dd = max(max_dd, peak - cumulative)
    return max_dd
