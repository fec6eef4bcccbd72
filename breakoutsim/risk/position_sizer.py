"""Position sizing and brokerage — pure math, no I/O.

Sizes a position in whole shares from the configured capital block.
"""

import math

from breakoutsim.models.strategy_config import Capital


def calculate_shares(capital: Capital, entry_price: float) -> int:
    """Calculate the number of whole shares to trade.

    Formula::

        available  = initial × (utilization_percent / 100)
        leveraged  = available × leverage
        shares     = floor(leveraged / entry_price)

    Args:
        capital: Capital configuration.
        entry_price: Fill price of the entry.

    Returns:
        Whole number of shares (may be 0 for very expensive instruments).

    Raises:
        ValueError: If *entry_price* is non-positive.
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")

    available = capital.initial * (capital.utilization_percent / 100.0)
    leveraged = available * (capital.leverage or 1)
    return math.floor(leveraged / entry_price)


def brokerage_fee(trade_value: float, fee_percent: float) -> float:
    """Brokerage charged on one side of a trade."""
    return trade_value * fee_percent / 100.0
