"""Grid-search optimizer with multi-processing and walk-forward validation.

Every combination of the tunable strategy parameters is back-tested over an
optimisation period; the most profitable combination with enough trades is
then re-run over a later validation period.  The drift between the two
periods' average profit per trade is reported as the *entropy*.
"""

import logging
import time
from dataclasses import dataclass, field
from itertools import product
from multiprocessing import Pool, cpu_count
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from breakoutsim.backtest.engine import BacktestEngine
from breakoutsim.models.strategy_config import PARAM_FIELDS, StrategyConfig
from breakoutsim.strategy.models import Candle

logger = logging.getLogger("breakoutsim.optimizer")

DEFAULT_PARAM_RANGES: dict[str, dict[str, float]] = {
    "minThreshold": {"start": 30, "end": 200, "step": 5},
    "maxThreshold": {"start": 100, "end": 300, "step": 5},
    "riskRewardRatio": {"start": 1, "end": 1, "step": 0.25},
    "pullbackPercentage": {"start": 0, "end": 30, "step": 5},
    "minimumStopLossPercent": {"start": 0.5, "end": 0.5, "step": 0.25},
}


@dataclass(frozen=True)
class ParamRange:
    """Inclusive ``start``–``end`` range sampled every ``step``."""

    start: float
    end: float
    step: float

    @classmethod
    def from_dict(cls, doc: Mapping[str, float]) -> "ParamRange":
        try:
            return cls(float(doc["start"]), float(doc["end"]), float(doc["step"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Parameter range needs numeric start/end/step: {doc}") from exc


@dataclass
class OptimizationResult:
    best_params: Optional[dict[str, float]]
    best_profit: float
    best_stats: Optional[dict]
    evaluated: int
    valid: int
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "best_params": self.best_params,
            "best_profit": self.best_profit,
            "best_stats": self.best_stats,
            "evaluated": self.evaluated,
            "valid": self.valid,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


@dataclass
class EntropyReport:
    optimization_avg_profit_percentage: float
    validation_avg_profit_percentage: float
    entropy: float
    details: dict = field(default_factory=dict)


# ── Parameter grid ───────────────────────────────────────────────────────


def generate_parameter_values(param_range: ParamRange) -> list[float]:
    """Values from start to end inclusive, rounded to 2 decimals.

    Raises:
        ValueError: If the step is not positive.
    """
    if param_range.step <= 0:
        raise ValueError(f"step must be positive, got {param_range.step}")
    values = np.arange(param_range.start, param_range.end + param_range.step / 2, param_range.step)
    return [round(float(v), 2) for v in values]


def generate_combinations(
    ranges: Mapping[str, ParamRange], base_config: Optional[StrategyConfig] = None
) -> list[dict[str, float]]:
    """Cartesian product of *ranges*, skipping ``minThreshold >= maxThreshold``.

    A threshold missing from *ranges* is taken from *base_config*, so a grid
    over only one of them is still checked against the other.

    Raises:
        ValueError: For a parameter the optimizer cannot tune.
    """
    for name in ranges:
        if name not in PARAM_FIELDS:
            raise ValueError(f"Cannot optimise unknown parameter '{name}'")

    fixed_low = base_config.min_threshold if base_config is not None else None
    fixed_high = base_config.max_threshold if base_config is not None else None
    names = list(ranges)
    grids = [generate_parameter_values(ranges[n]) for n in names]
    combos = []
    for values in product(*grids):
        params = dict(zip(names, values))
        low = params.get("minThreshold", fixed_low)
        high = params.get("maxThreshold", fixed_high)
        if low is not None and high is not None and low >= high:
            continue
        combos.append(params)
    return combos


def calculate_entropy(optimization_stats: dict, validation_stats: dict) -> EntropyReport:
    """Validation minus optimisation average net profit % per trade."""
    opt = optimization_stats.get("average_profit_percentage_per_trade", 0.0)
    val = validation_stats.get("average_profit_percentage_per_trade", 0.0)
    return EntropyReport(
        optimization_avg_profit_percentage=opt,
        validation_avg_profit_percentage=val,
        entropy=val - opt,
        details={
            "optimization_trades": optimization_stats.get("total_trades", 0),
            "validation_trades": validation_stats.get("total_trades", 0),
        },
    )


# ── Worker side ──────────────────────────────────────────────────────────

_worker_state: dict[str, Any] = {}


def _init_worker(price_data: Mapping[str, Sequence[Candle]], base_config: StrategyConfig) -> None:
    """Pool initializer: ship the price data once per worker process."""
    _worker_state["price_data"] = price_data
    _worker_state["base_config"] = base_config


def _evaluate(params: dict[str, float]) -> tuple[dict[str, float], dict]:
    config = _worker_state["base_config"].with_params(**params)
    report = BacktestEngine(config).run(_worker_state["price_data"])
    return params, report.stats


# ── Optimizer ────────────────────────────────────────────────────────────


class Optimizer:
    """Parallel grid search over the tunable strategy parameters.

    Args:
        price_data: Per-day candles.
        base_config: Config every combination is applied to, including
            the optimisation date filter.
        workers: Worker processes; 1 runs in-process, 0 uses every core.
        minimum_trades: Combinations with fewer trades are not eligible.
    """

    def __init__(
        self,
        price_data: Mapping[str, Sequence[Candle]],
        base_config: StrategyConfig,
        workers: int = 0,
        minimum_trades: int = 0,
    ) -> None:
        self._price_data = price_data
        self._base_config = base_config
        self._workers = workers or cpu_count()
        self._minimum_trades = minimum_trades

    # ── Public API ───────────────────────────────────────────────────────

    def optimize(self, ranges: Mapping[str, ParamRange]) -> OptimizationResult:
        """Back-test every combination and keep the best total net profit."""
        combos = generate_combinations(ranges, self._base_config)
        total = len(combos)
        if not combos:
            logger.warning("No valid parameter combination in the given ranges")
            return OptimizationResult(None, 0.0, None, evaluated=0, valid=0)
        logger.info("Optimizing %d combinations using %d workers", total, self._workers)

        best_params: Optional[dict[str, float]] = None
        best_stats: Optional[dict] = None
        best_profit = float("-inf")
        valid = 0
        start = time.time()

        for n, (params, stats) in enumerate(self._run_all(combos), start=1):
            if stats["total_trades"] < self._minimum_trades:
                logger.debug(
                    "Rejected %s: %d trades (minimum %d)",
                    params, stats["total_trades"], self._minimum_trades,
                )
            else:
                valid += 1
                if stats["total_net_profit"] > best_profit:
                    best_profit = stats["total_net_profit"]
                    best_params, best_stats = params, stats

            if n % max(1, total // 10) == 0:
                logger.info("Progress: %d/%d (%.1f%%)", n, total, n / total * 100)

        elapsed = time.time() - start
        if best_params is None:
            logger.warning("No combination reached %d trades", self._minimum_trades)
            best_profit = 0.0
        else:
            logger.info("Best profit %.2f with %s (%.1fs)", best_profit, best_params, elapsed)

        return OptimizationResult(
            best_params=best_params,
            best_profit=best_profit,
            best_stats=best_stats,
            evaluated=total,
            valid=valid,
            elapsed_seconds=elapsed,
        )

    def validate(self, params: dict[str, float], start: str, end: str) -> dict:
        """Re-run *params* over the ``start``–``end`` validation period."""
        config = self._base_config.with_params(**params).with_date_range(start, end)
        return BacktestEngine(config).run(self._price_data).stats

    # ── Helpers ──────────────────────────────────────────────────────────

    def _run_all(self, combos: list[dict[str, float]]):
        if self._workers == 1 or len(combos) <= 1:
            _init_worker(self._price_data, self._base_config)
            yield from map(_evaluate, combos)
            return

        with Pool(
            processes=self._workers,
            initializer=_init_worker,
            initargs=(self._price_data, self._base_config),
        ) as pool:
            yield from pool.imap(_evaluate, combos, chunksize=max(1, len(combos) // (self._workers * 4)))


def parse_ranges(doc: Optional[Mapping[str, Mapping[str, float]]] = None) -> dict[str, ParamRange]:
    """Build ``ParamRange`` objects from a JSON-style mapping (defaults when empty)."""
    doc = doc or DEFAULT_PARAM_RANGES
    if not isinstance(doc, Mapping):
        raise ValueError(f"Parameter ranges must be an object, got {type(doc).__name__}")
    return {name: ParamRange.from_dict(r) for name, r in doc.items()}
