"""Tests for breakoutsim.data.loader — price files, config files and JSON output."""

import json

import numpy as np
import pytest

from breakoutsim.data.loader import (
    candles_from_records,
    load_price_data,
    load_strategy_config,
    parse_price_document,
    save_json,
)


def _record(time, o=100.0, h=101.0, l=99.0, c=100.5, vol=1200):
    return {
        "timestamp_readable_IST": time,
        "open": o, "high": h, "low": l, "close": c, "volume": vol,
    }


class TestJsonPrices:
    def test_load_json(self, tmp_path):
        path = tmp_path / "prices.json"
        path.write_text(json.dumps({"data": {
            "02/01/2024": [_record("02/01/2024 09:15 AM"), _record("02/01/2024 09:16 AM")],
            "03/01/2024": [_record("03/01/2024 09:15 AM")],
        }}))
        data = load_price_data(path)
        assert sorted(data) == ["02/01/2024", "03/01/2024"]
        first = data["02/01/2024"][0]
        assert first.time == "02/01/2024 09:15 AM"
        assert first.high == 101.0
        assert first.volume == 1200.0

    def test_numeric_strings_accepted(self):
        candles = candles_from_records([_record("02/01/2024 09:15 AM", o="100.25")])
        assert candles[0].open == 100.25

    def test_plain_timestamp_key(self):
        rec = _record("x")
        rec["timestamp"] = rec.pop("timestamp_readable_IST")
        assert candles_from_records([rec])[0].time == "x"

    def test_missing_field_rejected(self):
        rec = _record("02/01/2024 09:15 AM")
        del rec["close"]
        with pytest.raises(ValueError, match="Malformed candle record #0"):
            candles_from_records([rec])

    def test_document_without_data_rejected(self):
        with pytest.raises(ValueError, match="Invalid price data"):
            parse_price_document({"candles": []})
        with pytest.raises(ValueError, match="Invalid price data"):
            parse_price_document([])

    def test_empty_day_kept(self):
        assert parse_price_document({"data": {"02/01/2024": []}}) == {"02/01/2024": []}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "prices.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="invalid JSON"):
            load_price_data(path)


class TestCsvPrices:
    def test_grouped_by_date(self, tmp_path):
        path = tmp_path / "prices.csv"
        path.write_text(
            "timestamp_readable_IST,open,high,low,close,volume\n"
            "02/01/2024 09:15 AM,100,101,99,100.5,1000\n"
            "02/01/2024 09:16 AM,100.5,101.5,100,101,1100\n"
            "03/01/2024 09:15 AM,101,102,100.5,101.5,900\n"
        )
        data = load_price_data(path)
        assert list(data) == ["02/01/2024", "03/01/2024"]
        assert len(data["02/01/2024"]) == 2
        second = data["02/01/2024"][1]
        assert second.time == "02/01/2024 09:16 AM"
        assert second.close == 101.0
        assert isinstance(second.volume, float)

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "prices.csv"
        path.write_text("timestamp,open,high,low\n02/01/2024 09:15 AM,1,2,0\n")
        with pytest.raises(ValueError, match="missing columns"):
            load_price_data(path)


class TestStrategyConfigFile:
    def test_merged_over_defaults(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text(json.dumps({"minThreshold": 30, "riskRewardRatio": 2}))
        cfg = load_strategy_config(path)
        assert cfg.min_threshold == 30
        assert cfg.risk_reward_ratio == 2
        assert cfg.max_threshold == 180

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            load_strategy_config(path)


class TestSaveJson:
    def test_creates_parents_and_handles_numpy(self, tmp_path):
        target = tmp_path / "out" / "nested" / "result.json"
        written = save_json(target, {"profit": np.float64(12.5), "trades": np.int64(3)})
        assert written == target
        assert json.loads(target.read_text()) == {"profit": 12.5, "trades": 3}

    def test_unserialisable_value(self, tmp_path):
        with pytest.raises(TypeError):
            save_json(tmp_path / "bad.json", {"x": object()})
