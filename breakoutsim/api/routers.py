"""HTTP API routers — /config/defaults and /backtest endpoints.

No strategy logic here; requests are validated and handed to the engine.
"""

import copy
import logging
from typing import Optional

from fastapi import APIRouter

from breakoutsim.backtest.engine import BacktestEngine
from breakoutsim.data.loader import parse_price_document
from breakoutsim.models.strategy_config import DEFAULT_STRATEGY_DOC, StrategyConfig

logger = logging.getLogger("breakoutsim")
router = APIRouter()

# ── Shared state ─────────────────────────────────────────────────────────

_last_summary: Optional[dict] = None


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/config/defaults")
async def get_default_config():
    """Return the default strategy document (camelCase)."""
    return copy.deepcopy(DEFAULT_STRATEGY_DOC)


@router.get("/backtest/last")
async def get_last_backtest():
    """Statistics of the most recent POST /backtest run, if any."""
    if _last_summary is None:
        return {"status": "empty"}
    return {"status": "ok", "stats": _last_summary}


@router.post("/backtest")
async def post_backtest(body: dict):
    """Run a backtest over inline price data.

    Body: ``{"data": {"DD/MM/YYYY": [candle, ...]}, "config": {...},
    "includeOutcomes": false}``.
    """
    global _last_summary

    errors = []
    config = None
    price_data = None

    try:
        config = StrategyConfig.from_dict(body.get("config") or {})
        config.validate()
    except (TypeError, ValueError) as exc:
        errors.append(f"config: {exc}")

    try:
        price_data = parse_price_document({"data": body.get("data")})
    except ValueError as exc:
        errors.append(f"data: {exc}")

    if errors:
        return {"status": "error", "errors": errors}

    try:
        report = BacktestEngine(config).run(price_data)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}

    _last_summary = report.stats
    logger.info(
        "API backtest: %d days, %d trades", report.stats["total_days"], report.stats["total_trades"],
    )
    return {
        "status": "ok",
        **report.to_dict(include_outcomes=bool(body.get("includeOutcomes", False))),
    }
