"""Tests for the strategy package.

Covers time helpers, swing/volume/hammer indicators and the breakout
detector.
"""

import datetime

import pytest

from breakoutsim.models.strategy_config import (
    DateFilter,
    EntryWindow,
    PreCloseExit,
    StrategyConfig,
    VolumeConfirmation,
)
from breakoutsim.strategy.breakout import BreakoutDetector
from breakoutsim.strategy.indicators import (
    check_volume_confirmation,
    is_hammer,
    swing_high,
    swing_low,
)
from breakoutsim.strategy.models import Candle, Direction
from breakoutsim.strategy.session_filter import (
    format_timestamp,
    include_date,
    is_entry_time_allowed,
    parse_date,
    parse_hhmm,
    parse_time_to_minutes,
    should_force_exit,
    should_place_pre_close_order,
    time_diff_minutes,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _ts(offset, day="15/01/2024"):
    """Timestamp *offset* minutes after the 09:15 open."""
    hours, minutes = divmod(9 * 60 + 15 + offset, 60)
    suffix = "AM" if hours < 12 else "PM"
    return f"{day} {hours % 12 or 12:02d}:{minutes:02d} {suffix}"


def _make_candle(offset, o, h, l, c, vol=1000):
    return Candle(time=_ts(offset), open=o, high=h, low=l, close=c, volume=vol)


def _make_config(**doc):
    base = {
        "minThreshold": 5,
        "maxThreshold": 60,
        "pullbackPercentage": 50,
        "volumeConfirmation": {"enabled": False},
    }
    base.update(doc)
    return StrategyConfig.from_dict(base)


def _long_breakout_day():
    """Swing high 101 at 09:15, broken by candle 3 ten minutes later."""
    return [
        _make_candle(0, 100.0, 101.0, 99.0, 100.0),
        _make_candle(1, 100.0, 100.5, 99.2, 99.5),
        _make_candle(2, 99.5, 100.0, 99.0, 99.8),
        _make_candle(10, 100.0, 102.0, 99.8, 101.8),
        _make_candle(11, 101.8, 101.9, 100.5, 101.0),
    ]


def _scan(candles, config, free=lambda d: True):
    detector = BreakoutDetector(candles, config)
    results = []
    for i in range(1, len(candles)):
        detector.track(i)
        results.append(detector.detect(i, free))
    return detector, results


# ── Time helpers ─────────────────────────────────────────────────────────


class TestSessionFilter:
    def test_parse_time_to_minutes(self):
        assert parse_time_to_minutes("15/01/2024 09:15 AM") == 555
        assert parse_time_to_minutes("15/01/2024 12:00 PM") == 720
        assert parse_time_to_minutes("15/01/2024 12:30 AM") == 30
        assert parse_time_to_minutes("15/01/2024 03:29 PM") == 929

    def test_malformed_timestamp(self):
        with pytest.raises(ValueError, match="Malformed"):
            parse_time_to_minutes("2024-01-15T09:15")

    def test_parse_hhmm(self):
        assert parse_hhmm("9:15") == 555
        assert parse_hhmm("15:09") == 909
        with pytest.raises(ValueError):
            parse_hhmm("9.15")

    def test_format_timestamp(self):
        assert format_timestamp("05/03/2021 01:07 PM") == "2021-03-05 13:07"

    def test_time_diff_is_absolute(self):
        assert time_diff_minutes(_ts(10), _ts(0)) == 10
        assert time_diff_minutes(_ts(0), _ts(10)) == 10

    def test_entry_window_inclusive(self):
        window = EntryWindow("09:20", "09:30")
        assert is_entry_time_allowed(_ts(0), None)
        assert not is_entry_time_allowed(_ts(4), window)
        assert is_entry_time_allowed(_ts(5), window)
        assert is_entry_time_allowed(_ts(15), window)
        assert not is_entry_time_allowed(_ts(16), window)

    def test_pre_close_schedule(self):
        pre_close = PreCloseExit("09:45", pre_exit_minutes=10)
        assert not should_place_pre_close_order(_ts(19), pre_close)
        assert should_place_pre_close_order(_ts(20), pre_close)
        assert not should_force_exit(_ts(29), pre_close)
        assert should_force_exit(_ts(30), pre_close)
        assert not should_force_exit(_ts(30), None)

    def test_date_filter(self):
        assert parse_date("02/01/2021") == datetime.date(2021, 1, 2)
        assert include_date("02/01/2021", None)
        specific = DateFilter(specific_date="02/01/2021")
        assert include_date("02/01/2021", specific)
        assert not include_date("03/01/2021", specific)
        period = DateFilter(start="01/01/2021", end="31/01/2021")
        assert include_date("31/01/2021", period)
        assert not include_date("01/02/2021", period)


# ── Indicators ───────────────────────────────────────────────────────────


class TestIndicators:
    def test_swing_extremes_wick_or_body(self):
        candle = _make_candle(0, 100.0, 102.0, 98.0, 101.0)
        assert swing_high(candle) == 102.0
        assert swing_low(candle) == 98.0
        assert swing_high(candle, use_body=True) == 101.0
        assert swing_low(candle, use_body=True) == 100.0

    def test_volume_uses_pre_breakout_candle(self):
        vols = [100, 100, 100, 300, 50]
        candles = [_make_candle(i, 1, 1, 1, 1, v) for i, v in enumerate(vols)]
        # breakout at 4: pre-breakout candle 3 (300) vs avg(100, 100, 100) × 3
        check = check_volume_confirmation(candles, 4, VolumeConfirmation(3, 5))
        assert check.passed
        assert check.pre_breakout_volume == 300
        assert check.average_volume == pytest.approx(100)
        assert check.lookback_volumes == (100, 100, 100)

    def test_volume_lookback_window(self):
        vols = [1000, 10, 10, 25, 0]
        candles = [_make_candle(i, 1, 1, 1, 1, v) for i, v in enumerate(vols)]
        # lookback 2 → candles 2 and 1 only, avg 10, threshold 20
        check = check_volume_confirmation(candles, 4, VolumeConfirmation(2, 2))
        assert check.passed
        assert check.volume_threshold == pytest.approx(20)

    def test_volume_failure(self):
        candles = [_make_candle(i, 1, 1, 1, 1, 1000) for i in range(5)]
        check = check_volume_confirmation(candles, 4, VolumeConfirmation(3, 5))
        assert not check.passed
        assert check.reason == "Volume confirmation failed"

    def test_volume_disabled_passes(self):
        assert check_volume_confirmation([], 0, None).passed

    def test_hammer(self):
        assert is_hammer(_make_candle(0, 100.0, 100.6, 98.0, 100.5))
        assert not is_hammer(_make_candle(0, 100.5, 100.6, 98.0, 100.0))
        assert not is_hammer(_make_candle(0, 100.0, 101.5, 99.9, 101.0))


# ── Breakout detector ────────────────────────────────────────────────────


class TestBreakoutDetector:
    def test_valid_long_breakout(self):
        _, results = _scan(_long_breakout_day(), _make_config())
        events = [e for r in results for e in r.events]
        assert len(events) == 1
        ev = events[0]
        assert ev.direction is Direction.LONG
        assert ev.breakout_index == 3
        assert ev.breakout_price == pytest.approx(101.0)
        assert ev.stop_loss == pytest.approx(99.0)
        assert ev.target == pytest.approx(103.0)
        assert ev.pullback_entry_price == pytest.approx(100.0)
        assert ev.time_since_previous_extreme == 10
        assert ev.breakout_time == "2024-01-15 09:25"
        assert ev.previous_extreme_time == "2024-01-15 09:15"

    def test_gap_outside_window_is_recorded(self):
        detector, results = _scan(_long_breakout_day(), _make_config(maxThreshold=8))
        assert not any(r.events for r in results)
        assert len(detector.invalid_breakouts) == 1
        inv = detector.invalid_breakouts[0]
        assert inv.time_gap == 10
        assert inv.required_time_range == "5-8"

    def test_threshold_bounds_inclusive(self):
        _, results = _scan(_long_breakout_day(), _make_config(minThreshold=10, maxThreshold=10))
        assert sum(len(r.events) for r in results) == 1

    def test_tolerance_required(self):
        candles = _long_breakout_day()
        candles[3] = _make_candle(10, 100.0, 101.04, 99.8, 101.0)
        candles[4] = _make_candle(11, 101.0, 101.03, 100.5, 100.8)
        detector, results = _scan(candles, _make_config())
        # candle 3 beats the 101 high by less than the 0.05 tolerance
        assert results[2].events == []
        assert not any(r.events for r in results)
        assert not detector.invalid_breakouts

    def test_busy_direction_not_armed(self):
        detector, results = _scan(_long_breakout_day(), _make_config(), free=lambda d: False)
        assert not any(r.events for r in results)
        assert not detector.volume_rejections

    def test_volume_rejection_recorded(self):
        config = _make_config(volumeConfirmation={
            "enabled": True, "volumeMultiplier": 3, "lookbackPeriod": 5,
        })
        detector, results = _scan(_long_breakout_day(), config)
        assert not any(r.events for r in results)
        assert len(detector.volume_rejections) == 1
        assert detector.volume_rejections[0].breakout_price == pytest.approx(101.0)

    def test_minimum_stop_rejection(self):
        _, results = _scan(_long_breakout_day(), _make_config(minimumStopLossPercent=5))
        rejection = results[2].rejection
        assert rejection is not None
        assert rejection.direction is Direction.LONG
        assert rejection.stop_loss_percent == pytest.approx(2 / 101 * 100)

    def test_extremes_reset_after_invalid_breakout(self):
        """An out-of-window high still becomes the new reference high."""
        candles = _long_breakout_day() + [_make_candle(40, 101.0, 102.2, 100.9, 102.0)]
        detector, results = _scan(candles, _make_config(maxThreshold=8))
        # second high is measured from 09:25 (gap 30), not from 09:15
        assert [i.time_gap for i in detector.invalid_breakouts] == [10, 30]

    def test_short_breakout(self):
        candles = [
            _make_candle(0, 100.0, 101.0, 99.0, 100.0),
            _make_candle(1, 100.0, 100.8, 99.5, 100.5),
            _make_candle(10, 100.0, 100.2, 97.9, 98.1),
        ]
        _, results = _scan(candles, _make_config())
        ev = results[1].events[0]
        assert ev.direction is Direction.SHORT
        assert ev.breakout_price == pytest.approx(99.0)
        assert ev.stop_loss == pytest.approx(101.0)
        assert ev.target == pytest.approx(97.0)
        assert ev.pullback_entry_price == pytest.approx(100.0)

    def test_hammer_tags_copied_into_events(self):
        candles = _long_breakout_day()
        candles[2] = _make_candle(2, 99.5, 99.62, 99.0, 99.6)
        _, results = _scan(candles, _make_config())
        assert results[2].events[0].patterns == ("hammer",)

    def test_empty_day_rejected(self):
        with pytest.raises(ValueError):
            BreakoutDetector([], _make_config())
