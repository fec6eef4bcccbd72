"""breakoutsim — application configuration.

Loads .env variables into a typed config object.  Strategy parameters live
in ``breakoutsim.models.strategy_config``; this module only covers where the
application finds its inputs and how it runs.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class AppConfig:
    """Typed configuration loaded from environment variables."""

    data_path: str
    strategy_config_path: str | None
    results_dir: str
    log_level: str
    optimizer_workers: int  # 0 = one worker per CPU
    api_port: int
    min_trades: int

    @property
    def workers(self) -> int:
        """Return the effective optimizer worker count."""
        if self.optimizer_workers > 0:
            return self.optimizer_workers
        return os.cpu_count() or 1


def load_config(env_path: str | None = None) -> AppConfig:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the variable when a numeric variable cannot
    be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    workers = _int_var("OPTIMIZER_WORKERS", "0")
    if workers < 0:
        raise ValueError(f"OPTIMIZER_WORKERS must be >= 0, got {workers}")
    min_trades = _int_var("MIN_TRADES", "0")
    if min_trades < 0:
        raise ValueError(f"MIN_TRADES must be >= 0, got {min_trades}")

    return AppConfig(
        data_path=os.environ.get("DATA_PATH", "data/SBIN-EQ.json"),
        strategy_config_path=os.environ.get("STRATEGY_CONFIG_PATH") or None,
        results_dir=os.environ.get("RESULTS_DIR", "results"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        optimizer_workers=workers,
        api_port=_int_var("API_PORT", "8080"),
        min_trades=min_trades,
    )


def _int_var(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None
