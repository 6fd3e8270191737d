# -*- coding: utf-8 -*-
"""
Concentration check for the current book.

Values each holding at its latest close, then reports position and
sector weights, the Herfindahl index (HHI) and advice: trim oversized
positions or sectors, review deep losers, keep the holding count in
range and rebalance toward target weights.
"""
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Optional

import pandas as pd

from .config import PortfolioConfig
from .errors import InvalidInputError
from .models import UNCLASSIFIED_SECTOR, Holding
from .scorers import round_half_up

log = logging.getLogger(__name__)

HOLDING_COLUMNS = ["symbol", "shares", "buy_price"]


class AdviceType(str, Enum):
    REDUCE = "REDUCE"
    SECTOR_REBALANCE = "SECTOR_REBALANCE"
    REVIEW = "REVIEW"
    ADD = "ADD"
    REDUCE_COUNT = "REDUCE_COUNT"
    REBALANCE = "REBALANCE"


@dataclass(frozen=True)
class PositionValue:
    symbol: str
    sector: str
    shares: int
    buy_price: float
    current_price: float
    current_value: float
    cost_basis: float
    pnl: int
    return_pct: float
    weight: float


@dataclass(frozen=True)
class SectorExposure:
    sector: str
    weight: float
    symbols: tuple


@dataclass(frozen=True)
class Advice:
    type: AdviceType
    reason: str
    action: str
    symbol: Optional[str] = None
    sector: Optional[str] = None
    symbols: tuple = ()
    target_weight: Optional[float] = None


@dataclass(frozen=True)
class RiskMetrics:
    total_cost: float = 0.0
    total_value: float = 0.0
    total_pnl: int = 0
    total_return_pct: float = 0.0
    worst_symbol: Optional[str] = None       # only when something is under water
    worst_return_pct: Optional[float] = None
    best_symbol: Optional[str] = None        # only when something is in profit
    best_return_pct: Optional[float] = None


@dataclass(frozen=True)
class PortfolioAnalysis:
    total_value: float = 0.0
    positions: list = field(default_factory=list)
    sectors: list = field(default_factory=list)
    hhi: float = 0.0
    diversification: str = ""
    over_concentrated: bool = False
    sector_over_concentrated: bool = False
    advice: list = field(default_factory=list)
    risk: RiskMetrics = field(default_factory=RiskMetrics)

    @property
    def stock_count(self) -> int:
        return len(self.positions)


def _diversification(hhi: float) -> str:
    if hhi < 0.15:
        return "good"
    if hhi < 0.25:
        return "fair"
    return "concentrated"


def load_holdings(path: str) -> list[Holding]:
    """
    Reads a holdings CSV with symbol (or sid), shares, buy_price and an
    optional sector column.
    """
    df = pd.read_csv(path, dtype=str)
    if "symbol" not in df.columns and "sid" in df.columns:
        df = df.rename(columns={"sid": "symbol"})
    missing = [c for c in HOLDING_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidInputError(f"Holdings file {path} is missing columns: {missing}")

    holdings = []
    for row in df.itertuples(index=False):
        sector = getattr(row, "sector", None)
        holdings.append(Holding(
            symbol=str(row.symbol),
            shares=int(float(row.shares)),
            buy_price=float(row.buy_price),
            sector=sector if isinstance(sector, str) and sector else UNCLASSIFIED_SECTOR,
        ))
    log.info(f"Loaded {len(holdings)} holdings from {path}")
    return holdings


class PortfolioOptimizer:
    """
    Works from any provider with ``latest_date`` and ``price_history``.
    Without a provider, or without a price for a symbol, the holding is
    valued at its buy price.
    """

    def __init__(self, provider=None, config: PortfolioConfig = PortfolioConfig()):
        self.provider = provider
        self.config = config

    def optimize(
        self,
        holdings: Iterable[Holding],
        date: Optional[str] = None,
        target_weights: Optional[Mapping[str, float]] = None,
    ) -> PortfolioAnalysis:
        holdings = list(holdings)
        if not holdings:
            log.info("No holdings; nothing to optimize.")
            return PortfolioAnalysis()

        positions = self.value_positions(holdings, date)
        total_value = sum(p.current_value for p in positions)
        sectors = self.sector_exposure(positions)
        hhi = round(sum(p.weight ** 2 for p in positions), 4)

        cfg = self.config
        analysis = PortfolioAnalysis(
            total_value=total_value,
            positions=positions,
            sectors=sectors,
            hhi=hhi,
            diversification=_diversification(hhi),
            over_concentrated=any(p.weight > cfg.max_single_position for p in positions),
            sector_over_concentrated=any(s.weight > cfg.max_sector_weight for s in sectors),
            advice=self.advise(positions, sectors, target_weights or {}),
            risk=risk_metrics(positions),
        )
        log.info(
            f"Portfolio: {analysis.stock_count} holdings worth {total_value:,.0f}, "
            f"HHI {hhi}, {len(analysis.advice)} suggestions"
        )
        return analysis

    def _latest_price(self, holding: Holding, date: Optional[str]) -> float:
        if self.provider is not None and date is not None:
            recent = self.provider.price_history(holding.symbol, date, 1)
            if recent is not None and not recent.empty:
                return float(recent["close"].iloc[0])
        log.debug(f"No price for {holding.symbol}; valuing at cost")
        return float(holding.buy_price)

    def value_positions(self, holdings: list[Holding], date: Optional[str] = None) -> list[PositionValue]:
        if date is None and self.provider is not None:
            date = self.provider.latest_date()
        prices = [self._latest_price(h, date) for h in holdings]
        total_value = sum(price * h.shares for price, h in zip(prices, holdings))
        if total_value <= 0:
            raise InvalidInputError("Holdings have no market value")

        positions = []
        for price, h in zip(prices, holdings):
            value = price * h.shares
            cost = h.buy_price * h.shares
            pnl = value - cost
            positions.append(PositionValue(
                symbol=h.symbol,
                sector=h.sector or UNCLASSIFIED_SECTOR,
                shares=h.shares,
                buy_price=h.buy_price,
                current_price=price,
                current_value=value,
                cost_basis=cost,
                pnl=round_half_up(pnl),
                return_pct=round(pnl / cost * 100, 2) if cost > 0 else 0.0,
                weight=value / total_value,
            ))
        return positions

    def sector_exposure(self, positions: list[PositionValue]) -> list[SectorExposure]:
        """Sectors in order of first appearance."""
        df = pd.DataFrame([asdict(p) for p in positions])
        return [
            SectorExposure(sector=sector, weight=float(grp["weight"].sum()), symbols=tuple(grp["symbol"]))
            for sector, grp in df.groupby("sector", sort=False)
        ]

    def advise(self, positions: list[PositionValue], sectors: list[SectorExposure],
               target_weights: Mapping[str, float]) -> list[Advice]:
        cfg = self.config
        advice = []

        for p in positions:
            if p.weight > cfg.max_single_position:
                advice.append(Advice(
                    AdviceType.REDUCE,
                    f"{p.symbol} is {p.weight * 100:.1f}% of the book, above the {cfg.max_single_position * 100:g}% cap",
                    f"Trim {p.symbol} below {cfg.max_single_position * 100:g}%",
                    symbol=p.symbol,
                    target_weight=cfg.max_single_position,
                ))

        for s in sectors:
            if s.weight > cfg.max_sector_weight:
                advice.append(Advice(
                    AdviceType.SECTOR_REBALANCE,
                    f"{s.sector} is {s.weight * 100:.1f}% of the book, above the {cfg.max_sector_weight * 100:g}% cap",
                    "Spread into other sectors",
                    sector=s.sector,
                    symbols=s.symbols,
                    target_weight=cfg.max_sector_weight,
                ))

        for p in positions:
            if p.return_pct < cfg.review_loss_pct:
                advice.append(Advice(
                    AdviceType.REVIEW,
                    f"{p.symbol} is down {abs(p.return_pct):.2f}%",
                    "Check whether the fundamentals changed and consider cutting the loss",
                    symbol=p.symbol,
                ))

        count = len(positions)
        if count < cfg.min_stocks:
            advice.append(Advice(
                AdviceType.ADD,
                f"Only {count} holdings; at least {cfg.min_stocks} spreads the risk",
                "Add names from the screener's top tiers",
            ))
        if count > cfg.max_stocks:
            advice.append(Advice(
                AdviceType.REDUCE_COUNT,
                f"{count} holdings is more than {cfg.max_stocks}",
                "Drop the weakest names",
            ))

        for p in positions:
            target = target_weights.get(p.symbol)
            if target is not None and abs(p.weight - target) > cfg.rebalance_threshold:
                advice.append(Advice(
                    AdviceType.REBALANCE,
                    f"{p.symbol} is {p.weight * 100:.1f}% against a {target * 100:g}% target",
                    "Buy up to the target" if p.weight < target else "Sell down to the target",
                    symbol=p.symbol,
                    target_weight=target,
                ))

        return advice


def risk_metrics(positions: list[PositionValue]) -> RiskMetrics:
    total_cost = sum(p.cost_basis for p in positions)
    total_value = sum(p.current_value for p in positions)
    total_pnl = total_value - total_cost

    losers = [p for p in positions if p.return_pct < 0]
    winners = [p for p in positions if p.return_pct > 0]
    worst = min(losers, key=lambda p: p.return_pct) if losers else None
    best = max(winners, key=lambda p: p.return_pct) if winners else None

    return RiskMetrics(
        total_cost=total_cost,
        total_value=total_value,
        total_pnl=round_half_up(total_pnl),
        total_return_pct=round(total_pnl / total_cost * 100, 2) if total_cost > 0 else 0.0,
        worst_symbol=worst.symbol if worst else None,
        worst_return_pct=worst.return_pct if worst else None,
        best_symbol=best.symbol if best else None,
        best_return_pct=best.return_pct if best else None,
    )


def format_portfolio_report(analysis: PortfolioAnalysis) -> str:
    if not analysis.positions:
        return "# Portfolio Report\n\nNo holdings.\n"
    risk = analysis.risk
    lines = [
        "# Portfolio Report",
        "",
        f"- Market value: {analysis.total_value:,.0f}",
        f"- Return: {risk.total_return_pct:+.2f}% ({risk.total_pnl:+,})",
        f"- Holdings: {analysis.stock_count}",
        f"- Diversification: {analysis.diversification} (HHI {analysis.hhi:.4f})",
        "",
        "## Positions",
        "",
    ]
    table = pd.DataFrame([{
        "Symbol": p.symbol,
        "Sector": p.sector,
        "Shares": p.shares,
        "Price": p.current_price,
        "Weight %": round(p.weight * 100, 1),
        "Return %": p.return_pct,
    } for p in analysis.positions])
    lines += [table.to_markdown(index=False), "", "## Advice", ""]

    if analysis.advice:
        for i, a in enumerate(analysis.advice, start=1):
            lines.append(f"{i}. [{a.type.value}] {a.reason}. {a.action}.")
    else:
        lines.append("Allocation is within every limit.")
    lines.append("")
    return "\n".join(lines)
