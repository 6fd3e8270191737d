# -*- coding: utf-8 -*-
"""
Alert scan over the latest trading day.

Technical triggers come from the indicator library, flow triggers from
the institutional history, and risk triggers from the positions held.
Every scan function takes newest-first frames, like the scorers.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

import pandas as pd

from .config import AlertConfig
from .indicators import calculate_ma, calculate_ma_system, calculate_mtm, calculate_vao
from .models import Holding
from .scorers import INSTITUTIONAL_MIN_DAYS, consecutive_positive

log = logging.getLogger(__name__)

MA_PERIOD = 20
FLOW_FIELDS = ["foreign_net", "trust_net", "dealer_net", "margin_balance", "short_balance"]


class AlertType(str, Enum):
    # 技術面
    VAO_EXPLOSION = "VAO_EXPLOSION"
    MTM_REVERSAL = "MTM_REVERSAL"
    MA_BREAKOUT = "MA_BREAKOUT"
    VOLUME_SPIKE_DOWN = "VOLUME_SPIKE_DOWN"
    # 籌碼面
    FOREIGN_CONSECUTIVE_BUY = "FOREIGN_CONSECUTIVE_BUY"
    INSTITUTIONAL_SYNC = "INSTITUTIONAL_SYNC"
    MARGIN_SURGE = "MARGIN_SURGE"
    # 持倉風控
    STOP_LOSS = "STOP_LOSS"
    MA_BREAKDOWN = "MA_BREAKDOWN"


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


SEVERITY_ORDER = {Severity.CRITICAL: 0, Severity.WARNING: 1, Severity.INFO: 2}


@dataclass(frozen=True)
class Alert:
    type: AlertType
    symbol: str
    severity: Severity
    message: str
    data: dict = field(default_factory=dict)


def sort_alerts(alerts: list[Alert]) -> list[Alert]:
    """Most severe first; scan order is kept within a severity."""
    return sorted(alerts, key=lambda a: SEVERITY_ORDER[a.severity])


def scan_technical(symbol: str, prices: pd.DataFrame, config: AlertConfig = AlertConfig()) -> list[Alert]:
    """
    VAO burst, MTM turning positive, a close back above MA20 and a heavy
    drop on rising volume. Fewer than ``config.min_price_bars`` bars give
    no alerts.
    """
    if prices is None or len(prices) < config.min_price_bars:
        return []
    alerts = []

    vao = calculate_vao(prices)
    if vao.score >= config.vao_threshold:
        alerts.append(Alert(
            AlertType.VAO_EXPLOSION, symbol, Severity.WARNING,
            f"VAO volume burst ({vao.score}), {vao.volume_ratio_5 or 0:.1f}x 5-day volume",
            {"score": vao.score, "volume_ratio_5": vao.volume_ratio_5},
        ))

    mtm = calculate_mtm(prices)
    prev_mtm = calculate_mtm(prices.iloc[1:])
    if prev_mtm.mtm <= 0 < mtm.mtm:
        alerts.append(Alert(
            AlertType.MTM_REVERSAL, symbol, Severity.INFO,
            f"MTM turned positive ({prev_mtm.mtm} -> {mtm.mtm})",
            {"mtm": mtm.mtm, "previous_mtm": prev_mtm.mtm},
        ))

    closes = prices["close"].astype(float)
    ma20 = calculate_ma(prices, MA_PERIOD)
    prev_ma20 = calculate_ma(prices.iloc[1:], MA_PERIOD)
    if closes.iloc[1] < prev_ma20.value and closes.iloc[0] >= ma20.value:
        alignment = calculate_ma_system(prices).alignment
        alerts.append(Alert(
            AlertType.MA_BREAKOUT, symbol, Severity.INFO,
            f"Closed back above MA20 ({ma20.value}), alignment {alignment.value}",
            {"ma20": ma20.value, "close": float(closes.iloc[0]), "alignment": alignment.value},
        ))

    # 異常放量下跌
    volumes = prices["volume"].astype(float)
    prev_close = closes.iloc[1]
    avg_volume_5 = volumes.iloc[:5].mean()
    if prev_close > 0 and avg_volume_5 > 0:
        day_change = (closes.iloc[0] - prev_close) / prev_close * 100
        volume_ratio = volumes.iloc[0] / avg_volume_5
        if day_change < config.drop_pct and volume_ratio > config.drop_volume_ratio:
            alerts.append(Alert(
                AlertType.VOLUME_SPIKE_DOWN, symbol, Severity.CRITICAL,
                f"Fell {day_change:.1f}% on {volume_ratio:.1f}x 5-day volume",
                {"day_change": round(float(day_change), 2), "volume_ratio": round(float(volume_ratio), 2)},
            ))

    return alerts


def scan_institutional(symbol: str, flows: pd.DataFrame, config: AlertConfig = AlertConfig()) -> list[Alert]:
    """Foreign buying streaks, all three groups buying together and margin surges."""
    if flows is None or len(flows) < INSTITUTIONAL_MIN_DAYS:
        return []
    flows = flows.rename(columns={"investment_net": "trust_net"})
    flows = flows.reindex(columns=FLOW_FIELDS).apply(pd.to_numeric, errors="coerce").fillna(0)
    alerts = []

    streak = consecutive_positive(flows["foreign_net"])
    if streak >= config.foreign_consecutive_days:
        total = int(flows["foreign_net"].iloc[:streak].sum())
        alerts.append(Alert(
            AlertType.FOREIGN_CONSECUTIVE_BUY, symbol, Severity.WARNING,
            f"Foreign investors net bought {streak} days running ({total:,} total)",
            {"consecutive_days": streak, "total": total},
        ))

    latest = flows.iloc[0]
    if latest["foreign_net"] > 0 and latest["trust_net"] > 0 and latest["dealer_net"] > 0:
        alerts.append(Alert(
            AlertType.INSTITUTIONAL_SYNC, symbol, Severity.WARNING,
            f"All three institutional groups bought (foreign {latest['foreign_net']:,.0f}, "
            f"trust {latest['trust_net']:,.0f}, dealer {latest['dealer_net']:,.0f})",
            {k: float(latest[k]) for k in ("foreign_net", "trust_net", "dealer_net")},
        ))

    current = float(latest["margin_balance"])
    previous = float(flows["margin_balance"].iloc[1])
    if previous > 0:
        change = (current - previous) / previous
        if change > config.margin_surge_rate:
            alerts.append(Alert(
                AlertType.MARGIN_SURGE, symbol, Severity.CRITICAL,
                f"Margin balance up {change * 100:.1f}% to {current:,.0f}",
                {"change": round(change, 4), "current": current, "previous": previous},
            ))

    return alerts


def scan_position_risk(holding: Holding, prices: pd.DataFrame, config: AlertConfig = AlertConfig()) -> list[Alert]:
    """Stop-loss and MA20 breakdown checks for one held position."""
    if prices is None or prices.empty or holding.buy_price <= 0:
        return []
    alerts = []
    closes = prices["close"].astype(float)
    close = float(closes.iloc[0])

    current_return = (close - holding.buy_price) / holding.buy_price
    if current_return <= -config.stop_loss:
        alerts.append(Alert(
            AlertType.STOP_LOSS, holding.symbol, Severity.CRITICAL,
            f"Stop-loss hit: {current_return * 100:.1f}% (limit -{config.stop_loss * 100:g}%)",
            {"buy_price": holding.buy_price, "close": close, "return_pct": round(current_return * 100, 2)},
        ))

    if len(prices) > MA_PERIOD:
        ma20 = calculate_ma(prices, MA_PERIOD)
        prev_ma20 = calculate_ma(prices.iloc[1:], MA_PERIOD)
        if close < ma20.value and closes.iloc[1] >= prev_ma20.value:
            alerts.append(Alert(
                AlertType.MA_BREAKDOWN, holding.symbol, Severity.WARNING,
                f"Closed at {close} below MA20 ({ma20.value})",
                {"ma20": ma20.value, "close": close},
            ))

    return alerts


class AlertEngine:
    """Scans symbols against a data provider and returns severity-sorted alerts."""

    def __init__(self, provider, config: AlertConfig = AlertConfig()):
        self.provider = provider
        self.config = config

    def scan(self, symbols: list[str], date: Optional[str] = None,
             holdings: Optional[Iterable[Holding]] = None) -> list[Alert]:
        target_date = date or self.provider.latest_date()
        if target_date is None:
            log.warning("No price data available; nothing to scan.")
            return []
        target_date = pd.Timestamp(target_date).strftime("%Y-%m-%d")
        held = {h.symbol: h for h in holdings or []}

        alerts = []
        for symbol in symbols:
            try:
                alerts.extend(self.scan_symbol(symbol, target_date, held.get(symbol)))
            except Exception as e:
                log.warning(f"Alert scan of {symbol} failed: {e}")

        alerts = sort_alerts(alerts)
        log.info(f"Alert scan for {target_date}: {len(alerts)} alerts over {len(symbols)} symbols")
        return alerts

    def scan_symbol(self, symbol: str, date: str, holding: Optional[Holding] = None) -> list[Alert]:
        cfg = self.config
        prices = self.provider.price_history(symbol, date, cfg.price_lookback)
        flows = self.provider.institutional_history(symbol, date, cfg.institutional_lookback)

        alerts = scan_technical(symbol, prices, cfg) + scan_institutional(symbol, flows, cfg)
        if holding is not None:
            alerts += scan_position_risk(holding, prices, cfg)
        return alerts


def format_alerts(alerts: list[Alert]) -> str:
    if not alerts:
        return "No alerts.\n"
    lines = [f"Alerts ({len(alerts)})", ""]
    for severity in Severity:
        group = [a for a in alerts if a.severity == severity]
        if group:
            lines.append(f"{severity.value}:")
            lines += [f"- {a.symbol}: {a.message}" for a in group]
            lines.append("")
    return "\n".join(lines)
