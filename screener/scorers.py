# -*- coding: utf-8 -*-
"""
Dimension scorers: technical, institutional flow (籌碼面) and
fundamentals. Each turns one symbol's raw inputs into a 0-100 score.

The scorers never raise for short or missing data. Technical and
institutional scores come back as 0 with ``error`` set, fundamentals fall
back to a neutral 50; the screener decides what to do with either.
"""
import logging
import math
from typing import Optional

import numpy as np
import pandas as pd

from . import indicators
from .errors import ScreenerError
from .models import (Alignment, EntrySignal, EntryType, FundamentalScore,
                     FundamentalSnapshot, InstitutionalScore, MomentumDirection,
                     MomentumResult, MovingAverageSystem, TechnicalScore)

log = logging.getLogger(__name__)

TECHNICAL_MIN_BARS = 60
INSTITUTIONAL_MIN_DAYS = 3
NEUTRAL_SCORE = 50


def round_half_up(x: float) -> int:
    """Rounds .5 away from zero for positive scores, unlike the builtin round()."""
    return int(math.floor(x + 0.5))


def clamp_score(x: float) -> int:
    return min(100, max(0, round_half_up(x)))


# --- 技術面 (Technical) ---

def score_technical(df: pd.DataFrame, total_shares: Optional[float] = None) -> TechnicalScore:
    """
    Blends VAO (35%), MTM strength (30%) and the moving-average stack (35%).
    Needs 60 newest-first bars.
    """
    if df is None or len(df) < TECHNICAL_MIN_BARS:
        n = 0 if df is None else len(df)
        return TechnicalScore(score=0, error=f"not enough price data ({n} bars, need {TECHNICAL_MIN_BARS})")

    try:
        vao = indicators.calculate_vao(df, total_shares=total_shares)
        mtm = indicators.calculate_mtm(df, period=10, ma_period=5)
        ma = indicators.calculate_ma_system(df)
    except ScreenerError as e:
        return TechnicalScore(score=0, error=f"technical scoring failed: {e}")

    vao_part = vao.score / 100 * 35
    mtm_part = mtm.strength / 100 * 30

    ma_score = 0
    if ma.alignment == Alignment.BULLISH:
        ma_score += 50
    elif ma.alignment == Alignment.MIXED:
        ma_score += 25
    if ma.above_ma20:
        ma_score += 30
    # 價格貼近 MA20 是較好的買點位置
    if abs(ma.ma20.deviation) <= 3:
        ma_score += 20
    ma_part = ma_score / 100 * 35

    return TechnicalScore(
        score=clamp_score(vao_part + mtm_part + ma_part),
        vao=vao,
        mtm=mtm,
        ma=ma,
        entry_signal=evaluate_entry_signal(df, mtm, ma),
    )


def evaluate_entry_signal(df: pd.DataFrame, mtm: MomentumResult, ma: MovingAverageSystem) -> EntrySignal:
    """
    A: close breaks the prior 20-day high on volume > 1.2x the 5-day average.
    B: close above MA10 with positive, accelerating momentum.
    C: close within 3% of MA20 on a reversal candle.
    Triggers on (A and B) or (B and C).
    """
    today = df.iloc[0]
    yesterday = df.iloc[1]
    avg_volume_5 = df["volume"].iloc[:5].astype(float).sum() / 5

    prior = df.iloc[1:21]
    highs = prior["high"] if "high" in prior else prior["close"]
    highs = highs.where(highs.notna() & (highs > 0), prior["close"])
    recent_high = float(highs.max())

    breakout = bool(today["close"] > recent_high and today["volume"] > avg_volume_5 * 1.2)
    momentum = bool(
        today["close"] > ma.ma10.value
        and mtm.mtm > 0
        and mtm.direction == MomentumDirection.ACCELERATING
    )
    near_ma20 = ma.ma20.value > 0 and abs((today["close"] - ma.ma20.value) / ma.ma20.value) < 0.03
    reversal = today["close"] > today["open"] and yesterday["close"] < yesterday["open"]
    pullback = bool(near_ma20 and reversal)

    triggered = (breakout and momentum) or (momentum and pullback)
    if not triggered:
        entry_type = EntryType.NONE
    elif breakout:
        entry_type = EntryType.BREAKOUT
    else:
        entry_type = EntryType.PULLBACK_BOUNCE

    return EntrySignal(
        triggered=triggered,
        breakout=breakout,
        momentum=momentum,
        pullback=pullback,
        entry_type=entry_type,
    )


# --- 籌碼面 (Institutional flow) ---

def consecutive_positive(values: pd.Series) -> int:
    """Number of leading (newest) rows that are strictly positive."""
    mask = (values > 0).to_numpy()
    if mask.all():
        return len(mask)
    return int(np.argmin(mask))


def _sentiment(score: int) -> str:
    if score >= 80:
        return "strong"
    if score >= 60:
        return "healthy"
    if score >= 40:
        return "watch"
    return "avoid"


def score_institutional(df: pd.DataFrame) -> InstitutionalScore:
    """
    Scores three days or more of newest-first flow:
    foreign continuity 40%, investment trust 35%, dealers 15% and
    margin/short health 10%.
    """
    if df is None or len(df) < INSTITUTIONAL_MIN_DAYS:
        n = 0 if df is None else len(df)
        return InstitutionalScore(score=0, error=f"not enough flow data ({n} days, need {INSTITUTIONAL_MIN_DAYS})")

    flows = df.rename(columns={"investment_net": "trust_net"})
    cols = ["foreign_net", "trust_net", "dealer_net", "margin_balance", "short_balance"]
    flows = flows.reindex(columns=cols).apply(pd.to_numeric, errors="coerce").fillna(0)
    latest = flows.iloc[0]
    prev = flows.iloc[1]

    # 外資連續性 (foreign)
    foreign_consecutive = consecutive_positive(flows["foreign_net"])
    foreign_5day = float(flows["foreign_net"].iloc[:5].sum())
    foreign_score = 0
    if foreign_consecutive >= 3:
        foreign_score += 50
    elif foreign_consecutive >= 2:
        foreign_score += 30
    if foreign_5day > 1000:
        foreign_score += 30
    elif foreign_5day > 500:
        foreign_score += 15
    if latest["foreign_net"] > 0:
        foreign_score += 20
    foreign_score = min(100, foreign_score)

    # 投信布局 (investment trust)
    trust_consecutive = consecutive_positive(flows["trust_net"])
    trust_score = 0
    if trust_consecutive >= 3:
        trust_score += 50
    elif trust_consecutive >= 2:
        trust_score += 30
    if latest["trust_net"] > 500:
        trust_score += 30
    elif latest["trust_net"] > 100:
        trust_score += 15
    if latest["trust_net"] > 0:
        trust_score += 20
    trust_score = min(100, trust_score)

    # 自營動向 (dealers)
    dealer_score = 0
    if latest["dealer_net"] > 0:
        dealer_score += 50
    if latest["dealer_net"] > 500:
        dealer_score += 30
    if consecutive_positive(flows["dealer_net"]) >= 2:
        dealer_score += 20
    dealer_score = min(100, dealer_score)

    # 資券健康度 (margin/short health), neutral start
    margin_score = NEUTRAL_SCORE
    if latest["margin_balance"] < prev["margin_balance"]:
        margin_score += 25
    elif latest["margin_balance"] > prev["margin_balance"]:
        margin_score -= 15
    if latest["short_balance"] > 0 and latest["margin_balance"] > 0:
        if latest["short_balance"] / latest["margin_balance"] < 0.2:
            margin_score += 25
    margin_score = min(100, max(0, margin_score))

    score = clamp_score(
        foreign_score * 0.40
        + trust_score * 0.35
        + dealer_score * 0.15
        + margin_score * 0.10
    )
    return InstitutionalScore(
        score=score,
        sentiment=_sentiment(score),
        foreign_score=foreign_score,
        trust_score=trust_score,
        dealer_score=dealer_score,
        margin_score=margin_score,
        foreign_consecutive_buy=foreign_consecutive,
        foreign_5day_sum=foreign_5day,
    )


# --- 基本面 (Fundamentals) ---

def _band(value: float, bands: list[tuple[float, int]], floor: int) -> int:
    """First score whose lower bound ``value`` exceeds, else ``floor``."""
    for bound, score in bands:
        if value > bound:
            return score
    return floor


REVENUE_YOY_BANDS = [(30, 100), (15, 80), (5, 65), (0, 55), (-10, 35)]
REVENUE_MOM_BANDS = [(20, 90), (10, 75), (0, 60), (-10, 40)]
EPS_GROWTH_BANDS = [(30, 100), (15, 80), (0, 65), (-15, 35)]
PE_BANDS = [(10, 85), (15, 75), (20, 60), (30, 45)]


def _pe_score(pe: float) -> int:
    # Lower P/E scores higher, so the bands are upper bounds here.
    for bound, score in PE_BANDS:
        if pe < bound:
            return score
    return 25


def score_fundamental(snapshot: Optional[FundamentalSnapshot]) -> FundamentalScore:
    """
    Revenue YoY 40%, revenue MoM 15%, EPS growth 30%, P/E 15%.
    Anything missing counts as a neutral 50.
    """
    if snapshot is None:
        return FundamentalScore(score=NEUTRAL_SCORE, note="no fundamental data, neutral score")

    yoy = snapshot.revenue_growth_yoy
    revenue_score = _band(yoy, REVENUE_YOY_BANDS, 15) if yoy is not None else NEUTRAL_SCORE

    mom = snapshot.revenue_growth_mom
    mom_score = _band(mom, REVENUE_MOM_BANDS, 20) if mom is not None else NEUTRAL_SCORE

    eps_score = NEUTRAL_SCORE
    eps_growth = None
    if snapshot.eps is not None and snapshot.eps_prev_year is not None and snapshot.eps_prev_year > 0:
        eps_growth = (snapshot.eps - snapshot.eps_prev_year) / snapshot.eps_prev_year * 100
        eps_score = _band(eps_growth, EPS_GROWTH_BANDS, 15)
        eps_growth = round(eps_growth, 2)

    pe = snapshot.pe_ratio
    pe_score = _pe_score(pe) if pe is not None and pe > 0 else NEUTRAL_SCORE

    score = revenue_score * 0.40 + mom_score * 0.15 + eps_score * 0.30 + pe_score * 0.15
    return FundamentalScore(
        score=clamp_score(score),
        revenue_score=revenue_score,
        mom_score=mom_score,
        eps_score=eps_score,
        pe_score=pe_score,
        eps_growth=eps_growth,
    )
