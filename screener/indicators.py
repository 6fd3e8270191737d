# -*- coding: utf-8 -*-
"""
Functions for calculating technical indicators.

Every function here takes a price frame ordered newest-first
(``df.iloc[0]`` is the latest bar) with columns open, high, low, close
and volume.
"""
import logging
from typing import Mapping, Optional

import numpy as np
import pandas as pd

from .errors import InsufficientDataError, InvalidInputError
from .models import (Alignment, MomentumDirection, MomentumResult, MomentumSignal,
                     MovingAverage, MovingAverageSystem, Trend, VAOResult, VAOSignal)

log = logging.getLogger(__name__)

MA_SYSTEM_BARS = 60


def _require(df: pd.DataFrame, required: int, what: str):
    n = 0 if df is None else len(df)
    if n < required:
        raise InsufficientDataError(what, required, n)


def _positive(value: int, name: str):
    if value is None or value <= 0:
        raise InvalidInputError(f"{name} must be a positive integer, got {value}")


# --- VAO 量價爆發 (Volume/price breakout) ---

def calculate_vao(
    df: pd.DataFrame,
    total_shares: Optional[float] = None,
    short_period: int = 5,
    long_period: int = 20,
) -> VAOResult:
    """
    Scores a volume surge that coincides with a price surge.

    Volume conditions are worth up to 50 points, the day's price change up
    to 30 and turnover (only when the share count is known) up to 20.
    """
    _positive(short_period, "short_period")
    _positive(long_period, "long_period")
    _require(df, max(long_period, 2), "VAO")

    volumes = df["volume"].astype(float)
    closes = df["close"].astype(float)
    today_volume = volumes.iloc[0]
    avg_volume_5 = volumes.iloc[:short_period].mean()
    avg_volume_20 = volumes.iloc[:long_period].mean()

    yesterday_close = closes.iloc[1]
    price_change = (closes.iloc[0] - yesterday_close) / yesterday_close * 100 if yesterday_close > 0 else 0.0

    turnover_rate = None
    if total_shares and total_shares > 0:
        turnover_rate = today_volume / total_shares * 100

    score = 0
    # 量能條件 (volume, 50%)
    if avg_volume_5 > 0 and today_volume > avg_volume_5 * 1.5:
        score += 25
    if avg_volume_20 > 0 and today_volume > avg_volume_20 * 2.0:
        score += 25
    # 價格條件 (price, 30%)
    if price_change > 3:
        score += 15
    if price_change > 5:
        score += 15
    # 周轉條件 (turnover, 20%)
    if turnover_rate is not None:
        if turnover_rate > 5:
            score += 10
        if turnover_rate > 10:
            score += 10

    if score >= 70:
        signal = VAOSignal.STRONG
    elif score >= 50:
        signal = VAOSignal.MODERATE
    else:
        signal = VAOSignal.WEAK

    return VAOResult(
        score=score,
        signal=signal,
        volume_ratio_5=float(today_volume / avg_volume_5) if avg_volume_5 > 0 else None,
        volume_ratio_20=float(today_volume / avg_volume_20) if avg_volume_20 > 0 else None,
        price_change=round(float(price_change), 2),
        turnover_rate=round(float(turnover_rate), 2) if turnover_rate is not None else None,
        today_volume=float(today_volume),
        avg_volume_5=int(round(avg_volume_5)),
        avg_volume_20=int(round(avg_volume_20)),
    )


def calculate_vao_batch(
    frames: Mapping[str, pd.DataFrame],
    shares: Optional[Mapping[str, float]] = None,
) -> list[tuple[str, VAOResult]]:
    """
    Runs VAO over many symbols, best score first. Symbols without enough
    history are logged and left out.
    """
    shares = shares or {}
    results = []
    for symbol, df in frames.items():
        try:
            results.append((symbol, calculate_vao(df, total_shares=shares.get(symbol))))
        except InsufficientDataError as e:
            log.warning(f"Skipping VAO for {symbol}: {e}")
    results.sort(key=lambda item: item[1].score, reverse=True)
    return results


# --- MTM 動能 (Momentum) ---

def calculate_mtm(df: pd.DataFrame, period: int = 10, ma_period: int = 5) -> MomentumResult:
    """
    MTM = close today - close ``period`` bars ago; MTMMA averages the last
    ``ma_period`` daily MTM values.
    """
    _positive(period, "period")
    _positive(ma_period, "ma_period")
    _require(df, max(period + ma_period, 2), "MTM")

    closes = df["close"].to_numpy(dtype=float)
    mtm_series = closes[:ma_period] - closes[period:period + ma_period]
    mtm = mtm_series[0]
    mtmma = mtm_series.mean()

    direction = MomentumDirection.ACCELERATING if mtm > mtmma else MomentumDirection.DECELERATING

    strength = 0
    if mtm > 0 and mtmma > 0:
        strength += 40
    if mtm > mtmma:
        strength += 30
    if closes[0] > closes[1]:
        strength += 30

    if strength >= 70:
        signal = MomentumSignal.STRONG_BUY
    elif strength >= 50:
        signal = MomentumSignal.BUY
    elif strength >= 30:
        signal = MomentumSignal.HOLD
    else:
        signal = MomentumSignal.WEAK

    return MomentumResult(
        mtm=round(float(mtm), 2),
        mtmma=round(float(mtmma), 2),
        direction=direction,
        signal=signal,
        strength=strength,
    )


# --- MA 均線系統 (Moving averages) ---

def calculate_ma(df: pd.DataFrame, period: int) -> MovingAverage:
    """Simple moving average of the newest ``period`` closes."""
    _positive(period, "period")
    _require(df, period, f"MA{period}")

    value = float(df["close"].iloc[:period].astype(float).mean())
    price = float(df["close"].iloc[0])
    deviation = round((price - value) / value * 100, 2) if value > 0 else 0.0
    return MovingAverage(
        value=round(value, 2),
        period=period,
        trend=Trend.ABOVE if price >= value else Trend.BELOW,
        deviation=deviation,
    )


def calculate_ma_system(df: pd.DataFrame) -> MovingAverageSystem:
    """MA5/10/20/60 and whether they are stacked bullish or bearish."""
    _require(df, MA_SYSTEM_BARS, "MA system")

    ma5, ma10, ma20, ma60 = (calculate_ma(df, p) for p in (5, 10, 20, 60))
    values = np.array([ma5.value, ma10.value, ma20.value, ma60.value])
    steps = np.diff(values)
    if (steps < 0).all():
        alignment = Alignment.BULLISH
    elif (steps > 0).all():
        alignment = Alignment.BEARISH
    else:
        alignment = Alignment.MIXED

    return MovingAverageSystem(
        ma5=ma5,
        ma10=ma10,
        ma20=ma20,
        ma60=ma60,
        alignment=alignment,
        above_ma20=bool(df["close"].iloc[0] >= ma20.value),
    )


def simple_moving_average(closes: pd.Series, period: int) -> float:
    """Mean of the last ``period`` values of a chronological series."""
    _positive(period, "period")
    return float(closes.iloc[-period:].mean())
