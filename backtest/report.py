# -*- coding: utf-8 -*-
"""
Markdown rendering of backtest reports.
"""
import math
from dataclasses import asdict
from datetime import datetime

import pandas as pd

from .models import BacktestReport


def _fmt_factor(value: float) -> str:
    return "∞" if math.isinf(value) else f"{value:.2f}"


def trades_frame(report: BacktestReport) -> pd.DataFrame:
    return pd.DataFrame([asdict(t) for t in report.trades])


def summary_row(report: BacktestReport) -> dict:
    p = report.performance
    return {
        "Symbol": report.symbol,
        "Strategy": report.strategy_type,
        "Trades": p.total_trades,
        "Win Rate %": round(p.win_rate * 100, 1),
        "Return %": p.total_return_pct,
        "Max DD %": p.max_drawdown_pct,
        "Sharpe": p.sharpe_ratio,
        "Profit Factor": _fmt_factor(p.profit_factor),
        "Expectancy %": p.expectancy,
    }


def format_report(report: BacktestReport) -> str:
    p = report.performance
    lines = [
        f"# Backtest Report: {report.symbol}",
        "",
        f"- Period: {report.start_date} ~ {report.end_date} ({report.trading_days} trading days)",
        f"- Strategy: {report.strategy_type} {report.strategy_params}",
        "",
        "## Performance",
        "",
        f"- Total return: {p.total_return_pct:+.2f}% ({p.total_return:+,.0f})",
        f"- Max drawdown: -{p.max_drawdown_pct:.2f}% ({p.max_drawdown:,.0f})",
        f"- Sharpe ratio: {p.sharpe_ratio:.2f}",
        f"- Profit factor: {_fmt_factor(p.profit_factor)}",
        f"- Expectancy: {p.expectancy:.2f}% per trade",
        "",
        "## Trades",
        "",
        f"- Total: {p.total_trades} ({p.win_count} won, {p.lose_count} lost)",
        f"- Win rate: {p.win_rate * 100:.2f}%",
        f"- Average win: +{p.avg_win:.2f}%, average loss: -{p.avg_loss:.2f}%",
        f"- Longest streaks: {p.max_win_streak} wins, {p.max_loss_streak} losses",
        "",
    ]

    if p.monthly_returns:
        monthly = pd.DataFrame([asdict(m) for m in p.monthly_returns])
        lines += ["## Monthly", "", monthly.to_markdown(index=False), ""]

    if report.trades:
        cols = ["entry_date", "entry_price", "exit_date", "exit_price", "shares", "pnl", "return_pct", "exit_reason"]
        lines += ["## Ledger", "", trades_frame(report)[cols].to_markdown(index=False), ""]

    lines.append("_Past performance does not guarantee future results._")
    return "\n".join(lines)


def format_batch(reports: list[BacktestReport]) -> str:
    header = f"# Backtest Batch Report\nGenerated: {datetime.now():%Y-%m-%d %H:%M:%S}\n\n"
    if not reports:
        return header + "No symbol produced a backtest.\n"
    df = pd.DataFrame([summary_row(r) for r in reports])
    return header + df.to_markdown(index=False) + "\n"
