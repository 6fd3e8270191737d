# -*- coding: utf-8 -*-
"""
Records produced by a backtest run. All of them are write-once.
"""
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Position:
    symbol: str
    entry_date: Any
    entry_price: float
    shares: int
    cost: float          # entry value plus buy-side commission
    entry_index: int


@dataclass(frozen=True)
class Trade:
    symbol: str
    entry_date: Any
    entry_price: float
    exit_date: Any
    exit_price: float
    shares: int
    cost: float
    pnl: float
    return_pct: float
    exit_reason: str
    holding_days: int     # calendar days
    holding_bars: int     # trading days


@dataclass(frozen=True)
class MonthlyReturn:
    month: str           # YYYY-MM of the exit date
    pnl: float
    trades: int
    return_pct: float    # pnl over starting capital, in %


@dataclass(frozen=True)
class PerformanceReport:
    total_return: float = 0
    total_return_pct: float = 0
    max_drawdown: float = 0
    max_drawdown_pct: float = 0
    win_rate: float = 0          # fraction of closed trades, 0-1
    sharpe_ratio: float = 0
    total_trades: int = 0
    win_count: int = 0
    lose_count: int = 0
    avg_win: float = 0           # mean return % of winners
    avg_loss: float = 0          # mean |return %| of losers
    profit_factor: float = 0
    expectancy: float = 0        # % per trade
    max_win_streak: int = 0
    max_loss_streak: int = 0
    monthly_returns: list = field(default_factory=list)


@dataclass(frozen=True)
class BacktestReport:
    symbol: str
    start_date: str
    end_date: str
    strategy_type: str
    strategy_params: dict
    trading_days: int
    performance: PerformanceReport
    trades: list = field(default_factory=list)
    equity_curve: list = field(default_factory=list)
