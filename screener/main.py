# -*- coding: utf-8 -*-
"""
Command line entry point for the Taiwan three-dimensional stock screener.
- Loads history (CSV directory or database)
- Runs the screen
- Saves signals and writes the ranked list
"""
import argparse
import dataclasses
import logging
import sys

from .config import load_config
from .data_loader import DataLoader
from .database import SignalStore, SqlDataProvider, get_db_engine
from .engine import ScreenerEngine, results_to_frame
from .logger import setup_logger

log = logging.getLogger(__name__)


def build_provider(data_dir=None, database_url=None, **window):
    """
    Database wins when both sources are configured. ``window`` (start_date,
    end_date or days) limits which CSV files are read.
    """
    if database_url:
        log.info("Reading history from database")
        engine = get_db_engine(database_url)
        return SqlDataProvider(engine), engine
    log.info(f"Reading history from CSV files under {data_dir or 'data/raw'}")
    return DataLoader(data_dir).provider(**window), None


def run(argv=None):
    """
    Main execution function.
    """
    parser = argparse.ArgumentParser(description="Taiwan three-dimensional stock screener")
    parser.add_argument("--date", type=str, default=None, help="Target trading day (YYYY-MM-DD), latest by default.")
    parser.add_argument("--config", type=str, default="config.ini", help="INI file with [database]/[screener] settings.")
    parser.add_argument("--data-dir", type=str, default=None, help="CSV data directory (overrides config).")
    parser.add_argument("--db-url", type=str, default=None, help="SQLAlchemy URL (overrides config).")
    parser.add_argument("--top", type=int, default=None, help="Number of symbols kept for persistence.")
    parser.add_argument("--threads", type=int, default=None, help="Worker threads for per-symbol scoring.")
    parser.add_argument("--no-save", action="store_true", help="Do not write signals to the database.")
    parser.add_argument("--out", type=str, default="tw_screener_results.csv", help="Output CSV filename.")
    parser.add_argument("--log-file", type=str, default=None, help="Also log to this file.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    args = parser.parse_args(argv)

    setup_logger(None, args.log_file, logging.DEBUG if args.verbose else logging.INFO)

    app_config = load_config(args.config)
    screener_cfg = app_config.screener
    overrides = {}
    if args.top is not None:
        overrides["top_n"] = args.top
    if args.threads is not None:
        overrides["workers"] = args.threads
    if overrides:
        screener_cfg = dataclasses.replace(screener_cfg, **overrides)

    data_dir = args.data_dir or app_config.data_dir
    # An explicit --data-dir beats a database configured in the INI file.
    database_url = args.db_url if args.data_dir else (args.db_url or app_config.database_url)
    # Only the latest files are needed unless screening a past date.
    window = {} if args.date else {"days": screener_cfg.price_lookback + 40}
    provider, engine = build_provider(data_dir, database_url, **window)

    store = SignalStore(engine) if engine is not None and not args.no_save else None
    screener = ScreenerEngine(provider, screener_cfg, signal_store=store)
    result = screener.run(args.date)

    if not result.top_n:
        log.warning("Screening did not yield any candidates.")
        sys.exit(0)

    out_df = results_to_frame(result.top_n)
    out_df.to_csv(args.out, index=False, encoding="utf-8-sig")
    log.info(f"Done! Results saved to {args.out}")

    s = result.summary
    print(f"\n{result.date}: market {s.total_market}, filtered {s.after_filter}, "
          f"scored {s.analyzed}, skipped {s.skipped}, failed {s.failed}")
    print(f"Tier1 {s.tier1_count} | Tier2 {s.tier2_count} | Tier3 {s.tier3_count}\n")
    print(out_df.to_string(index=False))


if __name__ == "__main__":
    run()
