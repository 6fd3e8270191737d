# -*- coding: utf-8 -*-
"""
Three-dimensional screening run:
- Loads the symbol universe
- Applies the liquidity/price filter
- Scores each survivor on technical, institutional and fundamental data
- Ranks and tiers the results
"""
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd

from .composite import calculate_composite_score
from .config import FILTER_BARS, ScreenerConfig
from .models import StockAnalysis, Tier
from .scorers import score_fundamental, score_institutional, score_technical

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreenerSummary:
    total_market: int = 0
    after_filter: int = 0
    analyzed: int = 0
    skipped: int = 0
    failed: int = 0
    tier1_count: int = 0
    tier2_count: int = 0
    tier3_count: int = 0


@dataclass(frozen=True)
class ScreenerResult:
    date: str
    tier1: list = field(default_factory=list)
    tier2: list = field(default_factory=list)
    tier3: list = field(default_factory=list)
    top_n: list = field(default_factory=list)
    summary: ScreenerSummary = field(default_factory=ScreenerSummary)


class ScreenerEngine:
    """
    Runs the screen for one trading day against a data provider
    (FrameDataProvider, SqlDataProvider or anything with the same methods).
    """

    def __init__(self, provider, config: ScreenerConfig = ScreenerConfig(), signal_store=None):
        self.provider = provider
        self.config = config
        self.signal_store = signal_store
        self._symbol_re = re.compile(config.symbol_pattern)

    def run(self, date: Optional[str] = None) -> ScreenerResult:
        target_date = date or self.provider.latest_date()
        if target_date is None:
            log.warning("No price data available; nothing to screen.")
            return ScreenerResult(date="")
        target_date = pd.Timestamp(target_date).strftime("%Y-%m-%d")
        log.info(f"Starting three-dimensional screen for {target_date}")

        universe = self.provider.list_symbols(target_date)
        log.info(f"Universe: {len(universe)} symbols")

        filtered = self.apply_filters(universe, target_date)
        log.info(f"Passed liquidity filter: {len(filtered)} symbols")

        analyzed, skipped, failed = self.score_all(filtered, target_date)

        analyzed.sort(key=lambda a: (-a.composite.total_score, a.symbol))

        cfg = self.config
        tier1 = [a for a in analyzed if a.composite.tier == Tier.TIER1][:cfg.tier1_limit]
        tier2 = [a for a in analyzed if a.composite.tier == Tier.TIER2][:cfg.tier2_limit]
        tier3 = [a for a in analyzed if a.composite.tier == Tier.TIER3][:cfg.tier3_limit]
        top_n = analyzed[:cfg.top_n]

        if self.signal_store is not None:
            try:
                self.signal_store.save(top_n, target_date)
            except Exception as e:
                log.error(f"Failed to save signals for {target_date}: {e}")

        summary = ScreenerSummary(
            total_market=len(universe),
            after_filter=len(filtered),
            analyzed=len(analyzed),
            skipped=skipped,
            failed=failed,
            tier1_count=len(tier1),
            tier2_count=len(tier2),
            tier3_count=len(tier3),
        )
        log.info(
            f"Done: Tier1={summary.tier1_count}, Tier2={summary.tier2_count}, "
            f"Tier3={summary.tier3_count} ({summary.analyzed} scored, "
            f"{summary.skipped} skipped, {summary.failed} failed)"
        )
        return ScreenerResult(
            date=target_date,
            tier1=tier1,
            tier2=tier2,
            tier3=tier3,
            top_n=top_n,
            summary=summary,
        )

    def apply_filters(self, symbols: list[str], date: str) -> list[str]:
        """
        Keeps 4-digit common stocks with enough volume and price. Volume
        comes in shares and the floor is in lots.
        """
        result = []
        for symbol in symbols:
            if not self._symbol_re.match(symbol):
                continue
            recent = self.provider.price_history(symbol, date, FILTER_BARS)
            if len(recent) < FILTER_BARS:
                continue
            avg_lots = recent["volume"].astype(float).mean() / self.config.round_lot
            latest_price = float(recent["close"].iloc[0])
            if avg_lots >= self.config.min_avg_volume and latest_price >= self.config.min_price:
                result.append(symbol)
        return result

    def score_all(self, symbols: list[str], date: str) -> tuple[list[StockAnalysis], int, int]:
        """
        Scores every symbol, optionally on a thread pool. One failing symbol
        is logged and dropped; it never stops the run.
        """
        def safe_analyze(symbol):
            try:
                return symbol, self.analyze_stock(symbol, date), None
            except Exception as e:
                return symbol, None, e

        if self.config.workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
                outcomes = list(executor.map(safe_analyze, symbols))
        else:
            outcomes = [safe_analyze(s) for s in symbols]

        analyzed, skipped, failed = [], 0, 0
        for symbol, result, error in outcomes:
            if error is not None:
                failed += 1
                log.warning(f"Scoring {symbol} failed: {error}")
            elif result is None:
                skipped += 1
            else:
                analyzed.append(result)
        return analyzed, skipped, failed

    def analyze_stock(self, symbol: str, date: str) -> Optional[StockAnalysis]:
        """Scores one symbol, or returns None when its price history is too short."""
        cfg = self.config
        prices = self.provider.price_history(symbol, date, cfg.price_lookback)
        if prices is None or len(prices) < cfg.min_price_bars:
            log.debug(f"Skipping {symbol}: only {0 if prices is None else len(prices)} price bars")
            return None

        flows = self.provider.institutional_history(symbol, date, cfg.institutional_lookback)
        fundamentals = self.provider.fundamental_snapshot(symbol, date)

        technical = score_technical(prices)
        institutional = score_institutional(flows)
        fundamental = score_fundamental(fundamentals)
        composite = calculate_composite_score(
            technical.score,
            institutional.score,
            fundamental.score,
            weights=cfg.weights,
            thresholds=cfg.thresholds,
        )
        return StockAnalysis(
            symbol=symbol,
            date=date,
            latest_price=float(prices["close"].iloc[0]),
            technical=technical,
            institutional=institutional,
            fundamental=fundamental,
            composite=composite,
        )


def results_to_frame(analyses: list[StockAnalysis]) -> pd.DataFrame:
    """Flattens ranked analyses for CSV output or printing."""
    rows = []
    for rank, a in enumerate(analyses, start=1):
        signal = a.technical.entry_signal
        rows.append({
            "rank": rank,
            "symbol": a.symbol,
            "close": a.latest_price,
            "total": a.composite.total_score,
            "tier": a.composite.tier.value,
            "recommendation": a.composite.recommendation.value,
            "technical": a.technical.score,
            "institutional": a.institutional.score,
            "fundamental": a.fundamental.score,
            "sentiment": a.institutional.sentiment,
            "entry": signal.entry_type.value if signal else None,
        })
    return pd.DataFrame(rows)
