# -*- coding: utf-8 -*-
"""
SQL access: reads price/flow/fundamental history through SQLAlchemy and
stores screener signals.

Expected tables:
    daily_prices(symbol, date, open, high, low, close, volume)
    institutional_trades(symbol, date, foreign_net, trust_net, dealer_net,
                         margin_balance, short_balance)
    fundamentals(symbol, date, revenue_growth_mom, revenue_growth_yoy,
                 eps, eps_prev_year, pe_ratio)              optional
"""
import logging
from typing import Optional

import pandas as pd
from sqlalchemy import create_engine, inspect, text

from .data_loader import snapshot_from_row
from .models import FLOW_COLUMNS, PRICE_COLUMNS, FundamentalSnapshot, StockAnalysis

log = logging.getLogger(__name__)

SIGNAL_TABLE = "screener_signals"


def get_db_engine(url: str):
    """
    Creates a SQLAlchemy engine, e.g. ``sqlite:///data/stock.db``.
    """
    return create_engine(url)


def mysql_url(user, password, host, database) -> str:
    """Connection string for the MySQL database the crawlers write to."""
    return f"mysql+mysqlconnector://{user}:{password}@{host}/{database}"


def _date_str(date) -> str:
    return pd.Timestamp(date).strftime("%Y-%m-%d")


class SqlDataProvider:
    """Same interface as FrameDataProvider, backed by SQL queries."""

    def __init__(self, engine):
        self.engine = engine

    def _query(self, sql: str, params: dict) -> pd.DataFrame:
        with self.engine.connect() as connection:
            return pd.read_sql_query(text(sql), connection, params=params)

    def _has_table(self, name: str) -> bool:
        return inspect(self.engine).has_table(name)

    def latest_date(self) -> Optional[str]:
        df = self._query("SELECT MAX(date) AS latest FROM daily_prices", {})
        latest = df["latest"].iloc[0] if not df.empty else None
        if latest is None or pd.isna(latest):
            return None
        return _date_str(latest)

    def list_symbols(self, date) -> list[str]:
        df = self._query(
            "SELECT DISTINCT symbol FROM daily_prices WHERE date <= :date ORDER BY symbol",
            {"date": _date_str(date)},
        )
        return df["symbol"].astype(str).tolist()

    def price_history(self, symbol: str, date, limit: int) -> pd.DataFrame:
        df = self._query(
            "SELECT date, open, high, low, close, volume FROM daily_prices "
            "WHERE symbol = :symbol AND date <= :date ORDER BY date DESC LIMIT :limit",
            {"symbol": symbol, "date": _date_str(date), "limit": limit},
        )
        return df.reindex(columns=PRICE_COLUMNS)

    def price_range(self, symbol: str, start_date, end_date) -> pd.DataFrame:
        df = self._query(
            "SELECT date, open, high, low, close, volume FROM daily_prices "
            "WHERE symbol = :symbol AND date >= :start AND date <= :end ORDER BY date ASC",
            {"symbol": symbol, "start": _date_str(start_date), "end": _date_str(end_date)},
        )
        return df.reindex(columns=PRICE_COLUMNS)

    def institutional_history(self, symbol: str, date, limit: int) -> pd.DataFrame:
        if not self._has_table("institutional_trades"):
            return pd.DataFrame(columns=FLOW_COLUMNS)
        df = self._query(
            "SELECT * FROM institutional_trades "
            "WHERE symbol = :symbol AND date <= :date ORDER BY date DESC LIMIT :limit",
            {"symbol": symbol, "date": _date_str(date), "limit": limit},
        )
        return df.rename(columns={"investment_net": "trust_net"})

    def fundamental_snapshot(self, symbol: str, date) -> Optional[FundamentalSnapshot]:
        # The fundamentals table is optional.
        if not self._has_table("fundamentals"):
            return None
        df = self._query(
            "SELECT * FROM fundamentals WHERE symbol = :symbol AND date <= :date "
            "ORDER BY date DESC LIMIT 1",
            {"symbol": symbol, "date": _date_str(date)},
        )
        if df.empty:
            return None
        return snapshot_from_row(df.iloc[0])


def signals_frame(analyses: list[StockAnalysis], date) -> pd.DataFrame:
    """One row per ranked symbol, in the screener_signals layout."""
    rows = []
    for item in analyses:
        tech = item.technical
        rows.append({
            "symbol": item.symbol,
            "date": _date_str(date),
            "technical_score": tech.score,
            "institutional_score": item.institutional.score,
            "fundamental_score": item.fundamental.score,
            "total_score": item.composite.total_score,
            "tier": item.composite.tier.value,
            "vao_score": tech.vao.score if tech.vao else None,
            "mtm_score": tech.mtm.strength if tech.mtm else None,
            "ma_trend": tech.ma.alignment.value if tech.ma else None,
            "entry_type": tech.entry_signal.entry_type.value if tech.entry_signal else None,
            "foreign_sentiment": item.institutional.sentiment,
            "recommendation": item.composite.recommendation.value,
        })
    return pd.DataFrame(rows)


class SignalStore:
    """Appends each run's top-N to the screener_signals table."""

    def __init__(self, engine, table_name: str = SIGNAL_TABLE):
        self.engine = engine
        self.table_name = table_name

    def save(self, analyses: list[StockAnalysis], date):
        df = signals_frame(analyses, date)
        if df.empty:
            log.info("No signals to save.")
            return
        # Re-running a date replaces that date's rows; a failed write keeps the old ones.
        with self.engine.begin() as connection:
            if inspect(connection).has_table(self.table_name):
                connection.execute(
                    text(f"DELETE FROM {self.table_name} WHERE date = :date"),
                    {"date": _date_str(date)},
                )
            df.to_sql(self.table_name, con=connection, if_exists="append", index=False)
        log.info(f"Saved {len(df)} signals to '{self.table_name}'.")

    def load(self, date) -> pd.DataFrame:
        with self.engine.connect() as connection:
            return pd.read_sql_query(
                text(f"SELECT * FROM {self.table_name} WHERE date = :date ORDER BY total_score DESC"),
                connection,
                params={"date": _date_str(date)},
            )
