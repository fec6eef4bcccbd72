"""Tests for breakoutsim.backtest.optimizer — grid generation, search and entropy."""

import pytest

from breakoutsim.backtest.optimizer import (
    DEFAULT_PARAM_RANGES,
    OptimizationResult,
    Optimizer,
    ParamRange,
    calculate_entropy,
    generate_combinations,
    generate_parameter_values,
    parse_ranges,
)
from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.strategy.models import Candle


# ── Helpers ──────────────────────────────────────────────────────────────


def _ts(day, offset):
    hours, minutes = divmod(9 * 60 + 15 + offset, 60)
    return f"{day} {hours % 12 or 12:02d}:{minutes:02d} {'AM' if hours < 12 else 'PM'}"


def _day(day, rows):
    return [Candle(_ts(day, off), o, h, l, c, 1000) for off, o, h, l, c in rows]


def _price_data():
    """A winning long day (+14,391) and a losing short day (−8,104.5)."""
    return {
        "02/01/2024": _day("02/01/2024", [
            (0, 100.0, 101.0, 99.0, 100.0),
            (1, 100.0, 100.5, 99.2, 99.5),
            (2, 99.5, 100.0, 99.0, 99.8),
            (10, 100.0, 102.0, 99.8, 101.8),
            (11, 101.8, 101.9, 100.5, 101.0),
            (12, 101.0, 101.2, 99.9, 100.4),
            (13, 100.4, 101.5, 100.2, 101.2),
            (14, 101.2, 103.3, 101.0, 103.0),
        ]),
        "03/01/2024": _day("03/01/2024", [
            (0, 100.0, 101.0, 99.0, 100.0),
            (1, 100.0, 100.8, 99.5, 100.5),
            (10, 100.0, 100.2, 97.9, 98.1),
            (11, 98.1, 99.5, 98.0, 99.2),
            (12, 99.2, 100.1, 99.0, 99.9),
            (13, 99.9, 101.2, 99.8, 101.1),
            (14, 101.1, 101.4, 100.9, 101.3),
            (15, 101.3, 101.6, 101.2, 101.5),
            (16, 101.5, 101.7, 101.4, 101.45),
        ]),
    }


def _base_config():
    return StrategyConfig.from_dict({
        "minThreshold": 5,
        "maxThreshold": 60,
        "pullbackPercentage": 50,
        "volumeConfirmation": {"enabled": False},
    })


# ── Parameter grid ───────────────────────────────────────────────────────


class TestParameterValues:
    def test_inclusive_end(self):
        assert generate_parameter_values(ParamRange(1, 2, 0.25)) == [1.0, 1.25, 1.5, 1.75, 2.0]

    def test_single_value(self):
        assert generate_parameter_values(ParamRange(0.5, 0.5, 0.25)) == [0.5]

    def test_rounded_to_two_decimals(self):
        values = generate_parameter_values(ParamRange(0, 0.3, 0.1))
        assert values == [0.0, 0.1, 0.2, 0.3]

    def test_non_positive_step_rejected(self):
        with pytest.raises(ValueError, match="step"):
            generate_parameter_values(ParamRange(0, 10, 0))


class TestCombinations:
    def test_cartesian_product(self):
        combos = generate_combinations({
            "riskRewardRatio": ParamRange(1, 2, 1),
            "pullbackPercentage": ParamRange(0, 10, 5),
        })
        assert len(combos) == 6
        assert {"riskRewardRatio": 2.0, "pullbackPercentage": 5.0} in combos

    def test_skips_min_not_below_max(self):
        combos = generate_combinations({
            "minThreshold": ParamRange(50, 70, 10),
            "maxThreshold": ParamRange(60, 60, 5),
        })
        assert combos == [{"minThreshold": 50.0, "maxThreshold": 60.0}]

    def test_single_threshold_checked_against_base_config(self):
        combos = generate_combinations(
            {"minThreshold": ParamRange(50, 70, 5)}, _base_config(),
        )
        # base maxThreshold is 60
        assert combos == [{"minThreshold": 50.0}, {"minThreshold": 55.0}]

    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValueError, match="useCandleBody"):
            generate_combinations({"useCandleBody": ParamRange(0, 1, 1)})

    def test_parse_ranges_defaults(self):
        ranges = parse_ranges()
        assert set(ranges) == set(DEFAULT_PARAM_RANGES)
        assert ranges["minThreshold"] == ParamRange(30, 200, 5)

    def test_parse_ranges_rejects_non_object(self):
        with pytest.raises(ValueError, match="must be an object"):
            parse_ranges([1, 2])

    def test_parse_ranges_rejects_incomplete(self):
        with pytest.raises(ValueError, match="start/end/step"):
            parse_ranges({"minThreshold": {"start": 5, "end": 10}})


# ── Search ───────────────────────────────────────────────────────────────


class TestOptimizer:
    def test_best_combination(self):
        # minThreshold 15 puts both 10-minute breakouts outside the window
        optimizer = Optimizer(_price_data(), _base_config(), workers=1)
        result = optimizer.optimize({"minThreshold": ParamRange(5, 15, 10)})
        assert isinstance(result, OptimizationResult)
        assert result.evaluated == 2
        assert result.valid == 2
        assert result.best_params == {"minThreshold": 5.0}
        assert result.best_profit == pytest.approx(6286.5)
        assert result.best_stats["total_trades"] == 2

    def test_partial_grid_skips_crossed_thresholds(self):
        optimizer = Optimizer(_price_data(), _base_config(), workers=1)
        result = optimizer.optimize({"minThreshold": ParamRange(50, 70, 5)})
        assert result.evaluated == 2
        assert result.valid == 2
        # both breakouts come 10 minutes after their extreme, below 50
        assert result.best_stats["total_trades"] == 0

    def test_no_valid_combination(self):
        optimizer = Optimizer(_price_data(), _base_config(), workers=1)
        result = optimizer.optimize({"maxThreshold": ParamRange(1, 5, 1)})
        assert result.evaluated == 0
        assert result.best_params is None

    def test_minimum_trades_filter(self):
        optimizer = Optimizer(_price_data(), _base_config(), workers=1, minimum_trades=3)
        result = optimizer.optimize({"minThreshold": ParamRange(5, 15, 10)})
        assert result.valid == 0
        assert result.best_params is None
        assert result.best_profit == 0.0
        assert result.to_dict()["best_stats"] is None

    def test_validation_period(self):
        optimizer = Optimizer(_price_data(), _base_config(), workers=1)
        stats = optimizer.validate({"minThreshold": 5.0}, "03/01/2024", "31/01/2024")
        assert stats["total_days"] == 1
        assert stats["total_net_profit"] == pytest.approx(-8104.5)


class TestEntropy:
    def test_validation_minus_optimisation(self):
        report = calculate_entropy(
            {"average_profit_percentage_per_trade": 2.0, "total_trades": 4},
            {"average_profit_percentage_per_trade": 0.5, "total_trades": 2},
        )
        assert report.entropy == pytest.approx(-1.5)
        assert report.optimization_avg_profit_percentage == 2.0
        assert report.validation_avg_profit_percentage == 0.5
        assert report.details == {"optimization_trades": 4, "validation_trades": 2}

    def test_missing_fields_default_to_zero(self):
        assert calculate_entropy({}, {}).entropy == 0.0
