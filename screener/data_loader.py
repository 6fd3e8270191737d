# -*- coding: utf-8 -*-
"""
Loads price, institutional and fundamental history from local CSV files
and serves per-symbol slices to the screener and the backtester.
"""
import glob
import logging
import os
from dataclasses import asdict
from typing import Optional

import pandas as pd

from .models import FLOW_COLUMNS, PRICE_COLUMNS, FundamentalSnapshot, bars_to_frame, flows_to_frame

log = logging.getLogger(__name__)

FUNDAMENTAL_FIELDS = ["revenue_growth_mom", "revenue_growth_yoy", "eps", "eps_prev_year", "pe_ratio"]


def _to_timestamp(value) -> pd.Timestamp:
    return pd.Timestamp(value).normalize()


def _normalize(df: pd.DataFrame, numeric_cols: list[str]) -> pd.DataFrame:
    """Common cleanup: symbol as string, parsed dates, numeric coercion."""
    df = df.rename(columns={"sid": "symbol", "investment_net": "trust_net"}).copy()
    df["symbol"] = df["symbol"].astype(str).str.strip()
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    for col in numeric_cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df.sort_values(["symbol", "date"]).reset_index(drop=True)


def snapshot_from_row(row: pd.Series) -> FundamentalSnapshot:
    values = {}
    for name in FUNDAMENTAL_FIELDS:
        value = row.get(name)
        values[name] = None if value is None or pd.isna(value) else float(value)
    return FundamentalSnapshot(**values)


class FrameDataProvider:
    """
    Serves history out of in-memory DataFrames.

    prices needs symbol (or sid), date, open, high, low, close, volume.
    institutional needs symbol, date and the flow columns; missing flow
    columns read as 0. fundamentals needs symbol plus any of the
    FundamentalSnapshot fields, optionally dated.
    """

    def __init__(
        self,
        prices: pd.DataFrame,
        institutional: Optional[pd.DataFrame] = None,
        fundamentals: Optional[pd.DataFrame] = None,
    ):
        prices = _normalize(prices, PRICE_COLUMNS[1:])
        self._prices = {sym: grp.reset_index(drop=True) for sym, grp in prices.groupby("symbol", sort=True)}
        self._latest = prices["date"].max() if not prices.empty else None

        self._flows = {}
        if institutional is not None and not institutional.empty:
            institutional = _normalize(institutional, FLOW_COLUMNS[1:])
            self._flows = {sym: grp.reset_index(drop=True) for sym, grp in institutional.groupby("symbol")}

        self._fundamentals = {}
        if fundamentals is not None and not fundamentals.empty:
            fundamentals = fundamentals.rename(columns={"sid": "symbol"}).copy()
            fundamentals["symbol"] = fundamentals["symbol"].astype(str).str.strip()
            if "date" in fundamentals.columns:
                fundamentals["date"] = pd.to_datetime(fundamentals["date"]).dt.normalize()
                fundamentals = fundamentals.sort_values(["symbol", "date"])
            self._fundamentals = {sym: grp.reset_index(drop=True) for sym, grp in fundamentals.groupby("symbol")}

    @classmethod
    def from_records(cls, bars: dict, flows: Optional[dict] = None, fundamentals: Optional[dict] = None):
        """
        Builds a provider from per-symbol lists of PriceBar and
        InstitutionalFlow plus one FundamentalSnapshot per symbol.
        """
        if bars:
            prices = pd.concat(
                [bars_to_frame(rows).assign(symbol=sym) for sym, rows in bars.items()], ignore_index=True
            )
        else:
            prices = pd.DataFrame(columns=["symbol"] + PRICE_COLUMNS)

        institutional = None
        if flows:
            institutional = pd.concat(
                [flows_to_frame(rows).assign(symbol=sym) for sym, rows in flows.items()], ignore_index=True
            )

        fundamental_df = None
        if fundamentals:
            fundamental_df = pd.DataFrame([{"symbol": sym, **asdict(snap)} for sym, snap in fundamentals.items()])

        return cls(prices, institutional=institutional, fundamentals=fundamental_df)

    def latest_date(self) -> Optional[str]:
        if self._latest is None or pd.isna(self._latest):
            return None
        return self._latest.strftime("%Y-%m-%d")

    def list_symbols(self, date) -> list[str]:
        cutoff = _to_timestamp(date)
        return [sym for sym, grp in self._prices.items() if (grp["date"] <= cutoff).any()]

    def price_history(self, symbol: str, date, limit: int) -> pd.DataFrame:
        """Newest-first bars up to and including ``date``."""
        grp = self._prices.get(symbol)
        if grp is None:
            return pd.DataFrame(columns=PRICE_COLUMNS)
        upto = grp[grp["date"] <= _to_timestamp(date)].tail(limit)
        return upto.iloc[::-1].reset_index(drop=True)

    def price_range(self, symbol: str, start_date, end_date) -> pd.DataFrame:
        """Chronological bars within [start_date, end_date]."""
        grp = self._prices.get(symbol)
        if grp is None:
            return pd.DataFrame(columns=PRICE_COLUMNS)
        mask = (grp["date"] >= _to_timestamp(start_date)) & (grp["date"] <= _to_timestamp(end_date))
        return grp[mask].reset_index(drop=True)

    def institutional_history(self, symbol: str, date, limit: int) -> pd.DataFrame:
        grp = self._flows.get(symbol)
        if grp is None:
            return pd.DataFrame(columns=FLOW_COLUMNS)
        upto = grp[grp["date"] <= _to_timestamp(date)].tail(limit)
        return upto.iloc[::-1].reset_index(drop=True)

    def fundamental_snapshot(self, symbol: str, date) -> Optional[FundamentalSnapshot]:
        grp = self._fundamentals.get(symbol)
        if grp is None or grp.empty:
            return None
        if "date" in grp.columns:
            grp = grp[grp["date"] <= _to_timestamp(date)]
            if grp.empty:
                return None
        return snapshot_from_row(grp.iloc[-1])


class DataLoader:
    """
    Reads the CSV layout produced by the crawlers:

        <data_dir>/daily_quotes/YYYY-MM-DD.csv     one file per trading day
        <data_dir>/institutional/institution_*.csv
        <data_dir>/fundamentals.csv                optional
    """

    def __init__(self, data_dir=None):
        if data_dir is None:
            self.data_dir = os.path.join(os.getcwd(), "data", "raw")
        else:
            self.data_dir = data_dir

    def load_prices(self, start_date=None, end_date=None, days=None) -> pd.DataFrame:
        """
        Load daily quote files.
        Args:
            start_date (str): 'YYYY-MM-DD'
            end_date (str): 'YYYY-MM-DD'
            days (int): Load the last N files (if start_date is None)
        """
        all_files = sorted(glob.glob(os.path.join(self.data_dir, "daily_quotes", "*.csv")))
        if not all_files:
            log.warning(f"No daily quote files under {self.data_dir}")
            return pd.DataFrame(columns=["symbol"] + PRICE_COLUMNS)

        selected = all_files
        if start_date:
            selected = []
            for f in all_files:
                date_str = os.path.basename(f).replace(".csv", "")
                if start_date <= date_str and not (end_date and date_str > end_date):
                    selected.append(f)
        elif days:
            selected = all_files[-days:]

        if not selected:
            return pd.DataFrame(columns=["symbol"] + PRICE_COLUMNS)

        log.info(f"Loading {len(selected)} daily files...")
        dfs = [pd.read_csv(f, dtype={"sid": str, "symbol": str}) for f in selected]
        return pd.concat(dfs, ignore_index=True)

    def load_institutional(self) -> Optional[pd.DataFrame]:
        files = sorted(glob.glob(os.path.join(self.data_dir, "institutional", "institution_*.csv")))
        if not files:
            return None
        dfs = [pd.read_csv(f, dtype={"sid": str, "symbol": str}) for f in files]
        data = pd.concat(dfs, ignore_index=True)
        num_cols = [c for c in data.columns if c not in ["date", "sid", "symbol", "name", "exchange"]]
        data[num_cols] = data[num_cols].apply(pd.to_numeric, errors="coerce").fillna(0)
        return data

    def load_fundamentals(self) -> Optional[pd.DataFrame]:
        path = os.path.join(self.data_dir, "fundamentals.csv")
        if not os.path.exists(path):
            return None
        return pd.read_csv(path, dtype={"sid": str, "symbol": str})

    def provider(self, start_date=None, end_date=None, days=None) -> FrameDataProvider:
        return FrameDataProvider(
            self.load_prices(start_date=start_date, end_date=end_date, days=days),
            institutional=self.load_institutional(),
            fundamentals=self.load_fundamentals(),
        )
