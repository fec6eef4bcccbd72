"""breakoutsim — application entry point.

Builds the FastAPI app and provides the CLI entry point for the backtest,
optimize and serve modes.
"""

import json
import logging
from pathlib import Path

from fastapi import FastAPI

from breakoutsim.api.routers import router

app = FastAPI(title="breakoutsim API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("breakoutsim")


@app.get("/health")
async def health():
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv=None) -> int:
    """Parse CLI arguments and dispatch to the selected mode."""
    import argparse

    from breakoutsim.config import load_config

    parser = argparse.ArgumentParser(description="Intraday breakout strategy backtester")
    parser.add_argument(
        "--mode",
        choices=["backtest", "optimize", "serve"],
        default="backtest",
        help="What to run (default: backtest)",
    )
    parser.add_argument("--data", help="Price data file (JSON or CSV); overrides DATA_PATH")
    parser.add_argument("--config", help="Strategy config JSON; overrides STRATEGY_CONFIG_PATH")
    parser.add_argument("--start", help="Backtest / optimisation start date (DD/MM/YYYY)")
    parser.add_argument("--end", help="Backtest / optimisation end date (DD/MM/YYYY)")
    parser.add_argument("--validate-start", help="Validation period start (DD/MM/YYYY)")
    parser.add_argument("--validate-end", help="Validation period end (DD/MM/YYYY)")
    parser.add_argument("--ranges", help="JSON file of parameter ranges {name: {start, end, step}}")
    parser.add_argument("--save", action="store_true", help="Write results under RESULTS_DIR")
    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.mode == "serve":
        import uvicorn

        uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level="info")
        return 0

    from breakoutsim.data.loader import load_price_data, load_strategy_config
    from breakoutsim.models.strategy_config import StrategyConfig

    config_path = args.config or config.strategy_config_path
    try:
        strategy = load_strategy_config(config_path) if config_path else StrategyConfig()
        if args.start and args.end:
            strategy = strategy.with_date_range(args.start, args.end)
        strategy.validate()
        price_data = load_price_data(args.data or config.data_path)
    except (OSError, ValueError) as exc:
        logger.error("Could not load inputs: %s", exc)
        return 1

    results_dir = Path(config.results_dir)
    if args.mode == "backtest":
        return _backtest(strategy, price_data, results_dir if args.save else None)
    return _optimize(strategy, price_data, args, config, results_dir if args.save else None)


def _backtest(strategy, price_data, results_dir) -> int:
    from breakoutsim.backtest.engine import BacktestEngine
    from breakoutsim.cli.dashboard import print_summary
    from breakoutsim.data.loader import save_json

    report = BacktestEngine(strategy).run(price_data)
    print_summary(report.stats)
    if results_dir is not None:
        save_json(results_dir / "backtest_results.json", report.to_dict())
    return 0


def _optimize(strategy, price_data, args, config, results_dir) -> int:
    from breakoutsim.backtest.optimizer import Optimizer, calculate_entropy, parse_ranges
    from breakoutsim.cli.dashboard import print_optimization, print_summary
    from breakoutsim.data.loader import save_json

    optimizer = Optimizer(
        price_data, strategy, workers=config.workers, minimum_trades=config.min_trades,
    )
    try:
        ranges_doc = None
        if args.ranges:
            ranges_doc = json.loads(Path(args.ranges).read_text(encoding="utf-8"))
        result = optimizer.optimize(parse_ranges(ranges_doc))
    except (OSError, ValueError) as exc:
        logger.error("Invalid parameter ranges: %s", exc)
        return 1

    payload = result.to_dict()
    entropy = None
    if result.best_params is not None:
        best = strategy.with_params(**result.best_params)
        payload["best_config"] = best.to_dict()
        if args.validate_start and args.validate_end:
            validation = optimizer.validate(result.best_params, args.validate_start, args.validate_end)
            report = calculate_entropy(result.best_stats, validation)
            entropy = report.entropy
            payload["validation_stats"] = validation
            payload["entropy"] = {
                "entropy": report.entropy,
                "optimization_avg_profit_percentage": report.optimization_avg_profit_percentage,
                "validation_avg_profit_percentage": report.validation_avg_profit_percentage,
                **report.details,
            }
            print_summary(validation, title="Validation Summary")

    print_optimization(payload, entropy)
    if results_dir is not None:
        save_json(results_dir / "best_config.json", payload)
    return 0 if result.best_params is not None else 1


if __name__ == "__main__":
    raise SystemExit(_run_cli())
