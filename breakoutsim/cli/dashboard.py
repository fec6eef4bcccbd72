"""CLI dashboard — prints backtest and optimizer summaries to the console."""

from typing import Optional


def print_summary(stats: dict, title: str = "Backtest Summary") -> str:
    """Format and print the headline numbers of a backtest run.

    Args:
        stats: Dict returned by ``calculate_stats``.
        title: Banner text.

    Returns:
        The formatted string (also printed to stdout).
    """
    rr = stats.get("risk_reward_analysis", {})
    lines = [
        f"──────────────── {title} ────────────────",
        f"  Trading days:      {stats.get('total_days', 0)}",
        f"  Trades:            {stats.get('total_trades', 0)}"
        f" ({stats.get('long_trades', 0)} long / {stats.get('short_trades', 0)} short)",
        f"  Win rate:          {stats.get('win_rate', 0.0):.2f}%",
        f"  Gross profit:      ₹{stats.get('total_gross_profit', 0.0):,.2f}",
        f"  Fees:              ₹{stats.get('total_fees', 0.0):,.2f}",
        f"  Net profit:        ₹{stats.get('total_net_profit', 0.0):,.2f}"
        f" ({stats.get('total_net_return_percentage', 0.0):.2f}%)",
        f"  Final balance:     ₹{stats.get('final_balance', 0.0):,.2f}",
        f"  Avg profit/trade:  {stats.get('average_profit_percentage_per_trade', 0.0):.4f}%",
        f"  Actual avg R:      {rr.get('actual_average_rr', 0.0):.4f} (planned {rr.get('planned_rr', 0)})",
        f"  Sharpe ratio:      {stats.get('sharpe_ratio', 0.0):.4f}",
        f"  Max drawdown:      ₹{stats.get('max_drawdown', 0.0):,.2f}",
        f"  No-trade days:     {stats.get('days_without_trade', 0)}"
        f" (outside range {stats.get('breakouts_outside_time_range', 0)},"
        f" no entry {stats.get('breakouts_without_entry', 0)})",
    ]

    exits = stats.get("exit_reason_stats") or {}
    if exits:
        lines.append("  Exit reasons:")
        for reason, group in sorted(exits.items(), key=lambda kv: -kv[1]["count"]):
            lines.append(
                f"    {reason:<34} {group['count']:>4}  avg ₹{group['average_profit']:,.2f}"
            )
    lines.append("─" * (len(title) + 34))

    output = "\n".join(lines)
    print(output)
    return output


def print_optimization(result: dict, entropy: Optional[float] = None) -> str:
    """Format and print the best combination found by the optimizer."""
    params = result.get("best_params")
    lines = ["──────────────── Optimization Result ────────────────"]
    if params is None:
        lines.append("  No combination met the minimum trade count")
    else:
        for name, value in params.items():
            lines.append(f"  {name:<24} {value:g}")
        lines.append(f"  Best net profit:         ₹{result.get('best_profit', 0.0):,.2f}")
    lines.append(f"  Combinations:            {result.get('valid', 0)}/{result.get('evaluated', 0)} valid")
    if entropy is not None:
        lines.append(f"  Entropy:                 {entropy:.4f}")
    lines.append("─────────────────────────────────────────────────────")

    output = "\n".join(lines)
    print(output)
    return output
