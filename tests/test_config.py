"""Tests for breakoutsim.config — environment variable loading and validation."""

import pytest

from breakoutsim.config import load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure app env vars are cleared between tests."""
    for var in [
        "DATA_PATH",
        "STRATEGY_CONFIG_PATH",
        "RESULTS_DIR",
        "LOG_LEVEL",
        "OPTIMIZER_WORKERS",
        "API_PORT",
        "MIN_TRADES",
    ]:
        monkeypatch.delenv(var, raising=False)


def _load(tmp_path):
    # Non-existent env_path so load_dotenv never reads a developer .env
    return load_config(env_path=str(tmp_path / "nonexistent.env"))


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        cfg = _load(tmp_path)
        assert cfg.data_path == "data/SBIN-EQ.json"
        assert cfg.strategy_config_path is None
        assert cfg.results_dir == "results"
        assert cfg.log_level == "INFO"
        assert cfg.optimizer_workers == 0
        assert cfg.api_port == 8080
        assert cfg.min_trades == 0

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATA_PATH", "/tmp/prices.csv")
        monkeypatch.setenv("STRATEGY_CONFIG_PATH", "strategy.json")
        monkeypatch.setenv("OPTIMIZER_WORKERS", "3")
        monkeypatch.setenv("MIN_TRADES", "20")
        cfg = _load(tmp_path)
        assert cfg.data_path == "/tmp/prices.csv"
        assert cfg.strategy_config_path == "strategy.json"
        assert cfg.workers == 3
        assert cfg.min_trades == 20

    def test_zero_workers_means_cpu_count(self, tmp_path):
        assert _load(tmp_path).workers >= 1

    def test_reads_env_file(self, monkeypatch, tmp_path):
        env = tmp_path / ".env"
        env.write_text("API_PORT=9100\n")
        # Register API_PORT with monkeypatch so the value load_dotenv sets is undone
        monkeypatch.setenv("API_PORT", "0")
        monkeypatch.delenv("API_PORT")
        cfg = load_config(env_path=str(env))
        assert cfg.api_port == 9100

    def test_non_integer_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv("API_PORT", "eighty")
        with pytest.raises(ValueError, match="API_PORT"):
            _load(tmp_path)

    def test_negative_workers_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OPTIMIZER_WORKERS", "-2")
        with pytest.raises(ValueError, match="OPTIMIZER_WORKERS"):
            _load(tmp_path)

    def test_negative_min_trades_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MIN_TRADES", "-1")
        with pytest.raises(ValueError, match="MIN_TRADES"):
            _load(tmp_path)
