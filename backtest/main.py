# -*- coding: utf-8 -*-
"""
Command line entry point for strategy backtests.
"""
import argparse
import logging
import sys

from screener.config import load_config
from screener.logger import setup_logger
from screener.main import build_provider

from .engine import BacktestEngine
from .report import format_batch, format_report, summary_row
from .strategies import STRATEGIES, StrategyConfig

log = logging.getLogger(__name__)


def strategy_params(args) -> dict:
    """Only the flags the user actually passed; the rest keep strategy defaults."""
    names = [
        "stop_loss", "take_profit", "trailing_stop", "trailing_activation",
        "short_period", "long_period", "volume_multiple", "price_change_min",
    ]
    return {n: getattr(args, n) for n in names if getattr(args, n) is not None}


def run(argv=None):
    parser = argparse.ArgumentParser(description="Backtest a strategy on Taiwan stocks")
    parser.add_argument("--symbols", type=str, required=True, help="Comma separated stock codes, e.g. 2330,2317.")
    parser.add_argument("--start", type=str, required=True, help="Start date (YYYY-MM-DD).")
    parser.add_argument("--end", type=str, required=True, help="End date (YYYY-MM-DD).")
    parser.add_argument("--strategy", type=str, default="MA_CROSS", choices=sorted(STRATEGIES), help="Entry rule.")
    parser.add_argument("--stop-loss", dest="stop_loss", type=float, default=None)
    parser.add_argument("--take-profit", dest="take_profit", type=float, default=None)
    parser.add_argument("--trailing-stop", dest="trailing_stop", type=float, default=None)
    parser.add_argument("--trailing-activation", dest="trailing_activation", type=float, default=None)
    parser.add_argument("--short-period", dest="short_period", type=int, default=None)
    parser.add_argument("--long-period", dest="long_period", type=int, default=None)
    parser.add_argument("--volume-multiple", dest="volume_multiple", type=float, default=None)
    parser.add_argument("--price-change-min", dest="price_change_min", type=float, default=None)
    parser.add_argument("--config", type=str, default="config.ini", help="INI file with [database]/[backtest] settings.")
    parser.add_argument("--data-dir", type=str, default=None, help="CSV data directory (overrides config).")
    parser.add_argument("--db-url", type=str, default=None, help="SQLAlchemy URL (overrides config).")
    parser.add_argument("--threads", type=int, default=1, help="Symbols backtested in parallel.")
    parser.add_argument("--out", type=str, default="backtest_report.md", help="Markdown report path.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    args = parser.parse_args(argv)

    setup_logger(None, level=logging.DEBUG if args.verbose else logging.INFO)

    app_config = load_config(args.config)
    data_dir = args.data_dir or app_config.data_dir
    database_url = args.db_url if args.data_dir else (args.db_url or app_config.database_url)
    provider, _ = build_provider(data_dir, database_url, start_date=args.start, end_date=args.end)

    symbols = [s.strip() for s in args.symbols.split(",") if s.strip()]
    strategy_config = StrategyConfig(type=args.strategy, params=strategy_params(args))
    engine = BacktestEngine(provider, app_config.backtest)

    if len(symbols) == 1:
        try:
            report = engine.run(symbols[0], args.start, args.end, strategy_config)
        except Exception as e:
            log.error(f"Backtest failed: {e}")
            sys.exit(1)
        text = format_report(report)
        print(summary_row(report))
    else:
        reports = engine.run_batch(symbols, args.start, args.end, strategy_config, workers=args.threads)
        text = format_batch(reports)
        for r in reports:
            print(summary_row(r))

    with open(args.out, "w", encoding="utf-8") as f:
        f.write(text)
    log.info(f"Report written to {args.out}")


if __name__ == "__main__":
    run()
