# -*- coding: utf-8 -*-
"""
Records exchanged between the indicator library, the scorers, the
screener engine and the backtester.

Series (prices, institutional flow) travel as pandas DataFrames with
lowercase columns; the dataclasses here describe single rows and the
write-once results each stage produces.
"""
from dataclasses import asdict, dataclass, field
from datetime import date as Date
from enum import Enum
from typing import Optional, Sequence

import pandas as pd

PRICE_COLUMNS = ["date", "open", "high", "low", "close", "volume"]
FLOW_COLUMNS = [
    "date",
    "foreign_net",
    "trust_net",
    "dealer_net",
    "margin_balance",
    "short_balance",
]


class VAOSignal(str, Enum):
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


class MomentumDirection(str, Enum):
    ACCELERATING = "ACCELERATING"
    DECELERATING = "DECELERATING"


class MomentumSignal(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    WEAK = "WEAK"


class Trend(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"


class Alignment(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    MIXED = "MIXED"


class EntryType(str, Enum):
    BREAKOUT = "BREAKOUT"
    PULLBACK_BOUNCE = "PULLBACK_BOUNCE"
    NONE = "NONE"


class Tier(str, Enum):
    TIER1 = "TIER1"
    TIER2 = "TIER2"
    TIER3 = "TIER3"
    EXCLUDED = "EXCLUDED"


class Recommendation(str, Enum):
    BUY = "BUY"
    WATCH = "WATCH"
    AVOID = "AVOID"


# --- Input rows ---

@dataclass(frozen=True)
class PriceBar:
    date: Date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class InstitutionalFlow:
    """Net shares bought (+) or sold (-) by each investor class on one day."""
    date: Date
    foreign_net: int = 0
    trust_net: int = 0
    dealer_net: int = 0
    margin_balance: int = 0   # 融資餘額 (financing balance)
    short_balance: int = 0    # 融券餘額 (short-sale balance)


@dataclass(frozen=True)
class FundamentalSnapshot:
    """
    Latest fundamentals for one symbol. Every field is optional; a missing
    field scores as neutral instead of failing.
    """
    revenue_growth_mom: Optional[float] = None   # 月營收月增率 (%)
    revenue_growth_yoy: Optional[float] = None   # 月營收年增率 (%)
    eps: Optional[float] = None
    eps_prev_year: Optional[float] = None
    pe_ratio: Optional[float] = None


UNCLASSIFIED_SECTOR = "Unclassified"


@dataclass(frozen=True)
class Holding:
    """One position in the current book."""
    symbol: str
    shares: int
    buy_price: float
    sector: str = UNCLASSIFIED_SECTOR


def bars_to_frame(bars: Sequence[PriceBar], newest_first: bool = True) -> pd.DataFrame:
    """Builds a price frame from bars, ordered newest-first by default."""
    df = pd.DataFrame([asdict(b) for b in bars], columns=PRICE_COLUMNS)
    df = df.sort_values("date", ascending=not newest_first, kind="stable")
    return df.reset_index(drop=True)


def flows_to_frame(flows: Sequence[InstitutionalFlow]) -> pd.DataFrame:
    """Builds a newest-first institutional flow frame."""
    df = pd.DataFrame([asdict(f) for f in flows], columns=FLOW_COLUMNS)
    return df.sort_values("date", ascending=False, kind="stable").reset_index(drop=True)


# --- Indicator results ---

@dataclass(frozen=True)
class VAOResult:
    score: int
    signal: VAOSignal
    volume_ratio_5: Optional[float]
    volume_ratio_20: Optional[float]
    price_change: float
    turnover_rate: Optional[float]
    today_volume: float
    avg_volume_5: int
    avg_volume_20: int


@dataclass(frozen=True)
class MomentumResult:
    mtm: float
    mtmma: float
    direction: MomentumDirection
    signal: MomentumSignal
    strength: int


@dataclass(frozen=True)
class MovingAverage:
    value: float
    period: int
    trend: Trend
    deviation: float   # (price - MA) / MA, in %


@dataclass(frozen=True)
class MovingAverageSystem:
    ma5: MovingAverage
    ma10: MovingAverage
    ma20: MovingAverage
    ma60: MovingAverage
    alignment: Alignment
    above_ma20: bool


# --- Dimension scores ---

@dataclass(frozen=True)
class EntrySignal:
    triggered: bool
    breakout: bool          # A: 20-day high broken on volume
    momentum: bool          # B: above MA10 with accelerating positive momentum
    pullback: bool          # C: reversal candle near MA20
    entry_type: EntryType

    @property
    def conditions(self) -> dict:
        return {"A": self.breakout, "B": self.momentum, "C": self.pullback}


@dataclass(frozen=True)
class TechnicalScore:
    score: int
    vao: Optional[VAOResult] = None
    mtm: Optional[MomentumResult] = None
    ma: Optional[MovingAverageSystem] = None
    entry_signal: Optional[EntrySignal] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class InstitutionalScore:
    score: int
    sentiment: Optional[str] = None
    foreign_score: int = 0
    trust_score: int = 0
    dealer_score: int = 0
    margin_score: int = 0
    foreign_consecutive_buy: int = 0
    foreign_5day_sum: float = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class FundamentalScore:
    score: int
    revenue_score: int = 50
    mom_score: int = 50
    eps_score: int = 50
    pe_score: int = 50
    eps_growth: Optional[float] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class CompositeResult:
    total_score: int
    tier: Tier
    recommendation: Recommendation
    technical: float
    institutional: float
    fundamental: float
    weights: dict = field(default_factory=dict)


@dataclass(frozen=True)
class StockAnalysis:
    """Everything the screener knows about one symbol on one date."""
    symbol: str
    date: str
    latest_price: float
    technical: TechnicalScore
    institutional: InstitutionalScore
    fundamental: FundamentalScore
    composite: CompositeResult
