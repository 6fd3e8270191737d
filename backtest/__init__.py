from .engine import BacktestEngine
from .metrics import calculate_performance
from .models import BacktestReport, PerformanceReport, Trade
from .strategies import (MACrossStrategy, StrategyConfig, VolumeBreakoutStrategy,
                         create_strategy)


def run_backtest(provider, symbol, start_date, end_date, strategy_config, config=None) -> BacktestReport:
    engine = BacktestEngine(provider, config) if config else BacktestEngine(provider)
    return engine.run(symbol, start_date, end_date, strategy_config)


def run_backtest_batch(provider, symbols, start_date, end_date, strategy_config, config=None, workers=1):
    engine = BacktestEngine(provider, config) if config else BacktestEngine(provider)
    return engine.run_batch(symbols, start_date, end_date, strategy_config, workers=workers)
