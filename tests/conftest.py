"""
Shared frame builders for the screener and backtest tests.
"""
import numpy as np
import pandas as pd
import pytest

END_DATE = "2024-04-01"


def build_bars(closes, volumes=None, opens=None, highs=None, end=END_DATE, newest_first=True, symbol=None):
    """OHLCV frame over business days ending at ``end``; open defaults to close."""
    n = len(closes)
    closes = np.asarray(closes, dtype=float)
    volumes = np.full(n, 1000.0) if volumes is None else np.asarray(volumes, dtype=float)
    opens = closes.copy() if opens is None else np.asarray(opens, dtype=float)
    highs = np.maximum(opens, closes) if highs is None else np.asarray(highs, dtype=float)
    df = pd.DataFrame({
        "date": pd.bdate_range(end=end, periods=n),
        "open": opens,
        "high": highs,
        "low": np.minimum(opens, closes),
        "close": closes,
        "volume": volumes,
    })
    if symbol is not None:
        df.insert(0, "symbol", symbol)
    if newest_first:
        return df.iloc[::-1].reset_index(drop=True)
    return df


def build_flows(foreign, trust=None, dealer=None, margin=None, short=None, end=END_DATE):
    """Newest-first institutional flow frame; the lists are given newest-first too."""
    n = len(foreign)
    zeros = [0] * n
    return pd.DataFrame({
        "date": pd.bdate_range(end=end, periods=n)[::-1],
        "foreign_net": foreign,
        "trust_net": trust if trust is not None else zeros,
        "dealer_net": dealer if dealer is not None else zeros,
        "margin_balance": margin if margin is not None else zeros,
        "short_balance": short if short is not None else zeros,
    })


@pytest.fixture
def make_bars():
    return build_bars


@pytest.fixture
def make_flows():
    return build_flows


@pytest.fixture
def breakout_series():
    """
    65 steadily rising bars whose last bar jumps 6% on ten times the usual
    volume, closing above every high of the previous month.
    """
    closes = [100 + 0.5 * k for k in range(64)]
    closes.append(round(closes[-1] * 1.06, 2))
    volumes = [1000] * 64 + [10000]
    highs = [c * 1.01 for c in closes]
    return closes, volumes, highs


@pytest.fixture
def breakout_frame(breakout_series):
    closes, volumes, highs = breakout_series
    return build_bars(closes, volumes=volumes, highs=highs)


@pytest.fixture
def flat_frame():
    return build_bars([100.0] * 65)


@pytest.fixture
def falling_frame():
    return build_bars([200 - 0.5 * k for k in range(65)])


@pytest.fixture
def buying_flows():
    """Five days of steady foreign, trust and dealer buying."""
    return build_flows([600] * 5, trust=[200] * 5, dealer=[100] * 5)
