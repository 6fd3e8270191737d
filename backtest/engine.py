# -*- coding: utf-8 -*-
"""
Backtest engine: one strategy, one symbol, one position at a time.

Walks the chronological bars through a FLAT / IN_POSITION state machine,
buying whole lots with slippage and commission and selling with
slippage, commission and transaction tax.
"""
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

import numpy as np
import pandas as pd

from screener.config import BacktestConfig
from screener.errors import InsufficientDataError

from .metrics import calculate_performance
from .models import BacktestReport, Position, Trade
from .strategies import FORCED_CLOSE, BaseStrategy, StrategyConfig, create_strategy

log = logging.getLogger(__name__)


def _holding_days(entry_date, exit_date) -> int:
    try:
        return abs((pd.Timestamp(exit_date) - pd.Timestamp(entry_date)).days)
    except (TypeError, ValueError):
        return 0


def _date_str(value) -> str:
    try:
        return pd.Timestamp(value).strftime("%Y-%m-%d")
    except (TypeError, ValueError):
        return str(value)


class BacktestEngine:
    """
    Runs strategies against a data provider's chronological price history.
    """

    def __init__(self, provider=None, config: BacktestConfig = BacktestConfig()):
        self.provider = provider
        self.config = config

    def run(
        self,
        symbol: str,
        start_date: str,
        end_date: str,
        strategy_config: Union[StrategyConfig, BaseStrategy],
    ) -> BacktestReport:
        log.info(f"Backtesting {symbol} {start_date} ~ {end_date}")
        data = self.provider.price_range(symbol, start_date, end_date)
        if len(data) < self.config.min_bars:
            raise InsufficientDataError(f"Backtest of {symbol} ({start_date}~{end_date})",
                                        self.config.min_bars, len(data))

        strategy = strategy_config if isinstance(strategy_config, BaseStrategy) else create_strategy(strategy_config)
        trades, equity_curve = self.simulate(data, strategy, symbol)
        performance = calculate_performance(trades, equity_curve, self.config)

        log.info(f"{symbol}: {performance.total_trades} trades, return {performance.total_return_pct}%")
        return BacktestReport(
            symbol=symbol,
            start_date=start_date,
            end_date=end_date,
            strategy_type=strategy.name,
            strategy_params=strategy.params(),
            trading_days=len(data),
            performance=performance,
            trades=trades,
            equity_curve=equity_curve,
        )

    def run_batch(
        self,
        symbols: list[str],
        start_date: str,
        end_date: str,
        strategy_config: Union[StrategyConfig, BaseStrategy],
        workers: int = 1,
    ) -> list[BacktestReport]:
        """
        Backtests every symbol, best total return first. A symbol that fails
        is logged and left out of the results.
        """
        def safe_run(symbol):
            try:
                return self.run(symbol, start_date, end_date, strategy_config)
            except Exception as e:
                log.warning(f"Backtest of {symbol} failed: {e}")
                return None

        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                reports = list(executor.map(safe_run, symbols))
        else:
            reports = [safe_run(s) for s in symbols]

        reports = [r for r in reports if r is not None]
        reports.sort(key=lambda r: (-r.performance.total_return_pct, r.symbol))
        log.info(f"Batch finished: {len(reports)}/{len(symbols)} symbols succeeded")
        return reports

    def simulate(self, data: pd.DataFrame, strategy: BaseStrategy, symbol: str = "UNKNOWN"):
        """
        Returns (trades, equity_curve); the curve has one point per bar.
        """
        cfg = self.config
        trades: list[Trade] = []
        equity_curve: list[float] = []
        capital = float(cfg.initial_capital)
        position: Optional[Position] = None
        highest_since_entry = 0.0

        closes = data["close"].to_numpy(dtype=float)
        if "high" in data.columns:
            highs = pd.to_numeric(data["high"], errors="coerce").to_numpy(dtype=float)
            highs = np.where(np.isnan(highs) | (highs <= 0), closes, highs)
        else:
            highs = closes
        dates = data["date"].tolist() if "date" in data.columns else list(range(len(data)))

        for i in range(len(data)):
            close = closes[i]

            if position is not None:
                highest_since_entry = max(highest_since_entry, highs[i])
                signal = strategy.should_exit(position.entry_price, close, highest_since_entry)
                if signal is not None:
                    exit_price = close * (1 - cfg.slippage)
                    trade, proceeds = self._close(position, exit_price, dates[i], i, signal.reason)
                    trades.append(trade)
                    capital += proceeds
                    position = None
                    highest_since_entry = 0.0

            elif strategy.should_enter(data.iloc[:i + 1]):
                entry_price = close * (1 + cfg.slippage)
                budget = capital * cfg.position_size
                shares = math.floor(budget / (entry_price * cfg.round_lot)) * cfg.round_lot
                cost = entry_price * shares * (1 + cfg.commission)
                if shares > 0 and cost <= capital:
                    capital -= cost
                    highest_since_entry = highs[i]
                    position = Position(
                        symbol=symbol,
                        entry_date=dates[i],
                        entry_price=entry_price,
                        shares=shares,
                        cost=cost,
                        entry_index=i,
                    )

            holding = position.shares * close if position is not None else 0.0
            equity_curve.append(capital + holding)

        if position is not None and len(data) > 0:
            # Forced close at the last close, no slippage.
            last = len(data) - 1
            trade, proceeds = self._close(position, closes[last], dates[last], last, FORCED_CLOSE)
            trades.append(trade)
            capital += proceeds
            equity_curve[-1] = capital

        return trades, equity_curve

    def _close(self, position: Position, exit_price: float, exit_date, index: int, reason: str):
        cfg = self.config
        gross = exit_price * position.shares
        proceeds = gross - gross * cfg.commission - gross * cfg.tax
        pnl = proceeds - position.cost
        trade = Trade(
            symbol=position.symbol,
            entry_date=_date_str(position.entry_date),
            entry_price=round(position.entry_price, 2),
            exit_date=_date_str(exit_date),
            exit_price=round(exit_price, 2),
            shares=position.shares,
            cost=round(position.cost, 2),
            pnl=round(pnl, 2),
            return_pct=round(pnl / position.cost * 100, 2),
            exit_reason=reason,
            holding_days=_holding_days(position.entry_date, exit_date),
            holding_bars=index - position.entry_index,
        )
        return trade, proceeds
