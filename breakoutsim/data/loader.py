"""Price and config file loading, and JSON result persistence.

Price JSON layout::

    {"data": {"DD/MM/YYYY": [{"timestamp_readable_IST": "DD/MM/YYYY HH:MM AM",
                              "open": .., "high": .., "low": .., "close": ..,
                              "volume": ..}, ...]}}

CSV files carry one candle per row with a ``timestamp_readable_IST`` (or
``timestamp``) column and are grouped into days by the timestamp's date.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Union

import numpy as np
import pandas as pd

from breakoutsim.models.strategy_config import StrategyConfig
from breakoutsim.strategy.models import Candle

logger = logging.getLogger("breakoutsim.data")

PriceData = dict[str, list[Candle]]

TIMESTAMP_KEY = "timestamp_readable_IST"
_PRICE_FIELDS = ("open", "high", "low", "close", "volume")


def candles_from_records(records: Iterable[Mapping[str, Any]]) -> list[Candle]:
    """Convert raw candle dicts into ``Candle`` objects.

    Raises:
        ValueError: If a record lacks a timestamp or price field.
    """
    candles = []
    for n, rec in enumerate(records):
        try:
            time = rec.get(TIMESTAMP_KEY) or rec["timestamp"]
            values = [float(rec[f]) for f in _PRICE_FIELDS]
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed candle record #{n}: {exc}") from exc
        candles.append(Candle(time, *values))
    return candles


def parse_price_document(doc: Any) -> PriceData:
    """Validate a ``{"data": {date: [candle, ...]}}`` document."""
    if not isinstance(doc, dict) or not isinstance(doc.get("data"), dict):
        raise ValueError("Invalid price data: expected an object with a 'data' mapping")
    return {date: candles_from_records(rows or []) for date, rows in doc["data"].items()}


def load_price_data(path: Union[str, Path]) -> PriceData:
    """Load per-day candles from a JSON or CSV file."""
    path = Path(path)
    if path.suffix.lower() == ".csv":
        data = _load_csv(path)
    else:
        with path.open(encoding="utf-8") as fh:
            try:
                doc = json.load(fh)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}: invalid JSON ({exc})") from exc
        data = parse_price_document(doc)
    logger.info("Loaded %d trading days from %s", len(data), path)
    return data


def _load_csv(path: Path) -> PriceData:
    df = pd.read_csv(path)
    time_col = TIMESTAMP_KEY if TIMESTAMP_KEY in df.columns else "timestamp"
    missing = [c for c in (time_col, *_PRICE_FIELDS) if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")

    df = df.dropna(subset=[time_col])
    df["date"] = df[time_col].astype(str).str.split().str[0]
    data: PriceData = {}
    for date, group in df.groupby("date", sort=False):
        data[date] = [
            Candle(str(row[time_col]), *(float(row[f]) for f in _PRICE_FIELDS))
            for _, row in group.iterrows()
        ]
    return data


def load_strategy_config(path: Union[str, Path]) -> StrategyConfig:
    """Load a camelCase strategy document and merge it over the defaults."""
    with Path(path).open(encoding="utf-8") as fh:
        try:
            doc = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(doc, dict):
        raise ValueError(f"{path}: strategy config must be a JSON object")
    return StrategyConfig.from_dict(doc)


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def save_json(path: Union[str, Path], payload: Any) -> Path:
    """Write *payload* as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=_json_default)
    logger.info("Saved %s", path)
    return path
