# -*- coding: utf-8 -*-
"""
Performance statistics over a trade ledger and an equity curve.
Pure functions: nothing here touches the simulation.
"""
import math
from typing import Sequence

import numpy as np
import pandas as pd

from screener.config import TRADING_DAYS_PER_YEAR, BacktestConfig

from .models import MonthlyReturn, PerformanceReport, Trade


def max_drawdown(equity_curve: Sequence[float]) -> tuple[float, float]:
    """
    Largest peak-to-trough drop, as (absolute, % of that peak).
    """
    if len(equity_curve) == 0:
        return 0.0, 0.0
    equity = np.asarray(equity_curve, dtype=float)
    peaks = np.maximum.accumulate(equity)
    drops = peaks - equity
    i = int(np.argmax(drops))
    if drops[i] <= 0:
        return 0.0, 0.0
    pct = drops[i] / peaks[i] * 100 if peaks[i] > 0 else 0.0
    return float(drops[i]), float(pct)


def sharpe_ratio(equity_curve: Sequence[float], risk_free_rate: float = 0.02) -> float:
    """Annualised Sharpe of the curve's daily returns; 0 when they never vary."""
    if len(equity_curve) < 2:
        return 0.0
    equity = pd.Series(equity_curve, dtype=float)
    prev = equity.shift(1)
    daily_ret = ((equity - prev) / prev)[prev > 0]
    if daily_ret.empty:
        return 0.0
    std = daily_ret.std(ddof=0)
    if std == 0 or np.isnan(std):
        return 0.0
    daily_rf = risk_free_rate / TRADING_DAYS_PER_YEAR
    return float((daily_ret.mean() - daily_rf) / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def _streaks(is_win: pd.Series) -> tuple[int, int]:
    if is_win.empty:
        return 0, 0
    groups = is_win.ne(is_win.shift()).cumsum()
    streak = is_win.groupby(groups).agg(["first", "count"])
    first = streak["first"].astype(bool)
    wins = streak.loc[first, "count"]
    losses = streak.loc[~first, "count"]
    return (int(wins.max()) if not wins.empty else 0,
            int(losses.max()) if not losses.empty else 0)


def monthly_returns(trades: Sequence[Trade], initial_capital: float) -> list[MonthlyReturn]:
    if not trades:
        return []
    df = pd.DataFrame({
        "month": [pd.Timestamp(t.exit_date).strftime("%Y-%m") for t in trades],
        "pnl": [t.pnl for t in trades],
    })
    grouped = df.groupby("month", sort=True)["pnl"].agg(["sum", "count"])
    return [
        MonthlyReturn(
            month=month,
            pnl=float(row["sum"]),
            trades=int(row["count"]),
            return_pct=round(float(row["sum"]) / initial_capital * 100, 2),
        )
        for month, row in grouped.iterrows()
    ]


def calculate_performance(
    trades: Sequence[Trade],
    equity_curve: Sequence[float],
    config: BacktestConfig = BacktestConfig(),
) -> PerformanceReport:
    total_trades = len(trades)
    if total_trades == 0:
        return PerformanceReport()

    df = pd.DataFrame({
        "pnl": [t.pnl for t in trades],
        "return_pct": [t.return_pct for t in trades],
    })
    is_win = df["pnl"] > 0
    wins = df[is_win]
    losses = df[~is_win]

    win_rate = len(wins) / total_trades
    avg_win = wins["return_pct"].mean() if not wins.empty else 0.0
    avg_loss = abs(losses["return_pct"].mean()) if not losses.empty else 0.0

    final_equity = equity_curve[-1] if len(equity_curve) else config.initial_capital
    total_return = final_equity - config.initial_capital
    total_return_pct = total_return / config.initial_capital * 100

    dd, dd_pct = max_drawdown(equity_curve)
    sharpe = sharpe_ratio(equity_curve, config.risk_free_rate)

    gross_win = wins["pnl"].sum()
    gross_loss = abs(losses["pnl"].sum())
    if gross_loss > 0:
        profit_factor = round(gross_win / gross_loss, 2)
    else:
        profit_factor = math.inf if gross_win > 0 else 0.0

    expectancy = win_rate * avg_win - (1 - win_rate) * avg_loss
    max_win_streak, max_loss_streak = _streaks(is_win)

    return PerformanceReport(
        total_return=round(float(total_return)),
        total_return_pct=round(float(total_return_pct), 2),
        max_drawdown=round(dd),
        max_drawdown_pct=round(dd_pct, 2),
        win_rate=round(win_rate, 4),
        sharpe_ratio=round(sharpe, 2),
        total_trades=total_trades,
        win_count=len(wins),
        lose_count=len(losses),
        avg_win=round(float(avg_win), 2),
        avg_loss=round(float(avg_loss), 2),
        profit_factor=float(profit_factor),
        expectancy=round(float(expectancy), 2),
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        monthly_returns=monthly_returns(trades, config.initial_capital),
    )
