# -*- coding: utf-8 -*-
"""
Configuration settings for the Taiwan three-dimensional stock screener
and the backtester.

The module-level constants are the committed defaults. Components take
one of the frozen config objects below so a run can override them
without touching module state.
"""
import configparser
import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path

from .errors import InvalidInputError

log = logging.getLogger(__name__)

# 三維權重 (Dimension weights)
WEIGHT_TECHNICAL = 0.40
WEIGHT_INSTITUTIONAL = 0.30
WEIGHT_FUNDAMENTAL = 0.30

# 分級門檻 (Tier thresholds on the composite score)
TIER1_SCORE = 75              # 強勢關注 (Strong focus)
TIER2_SCORE = 60              # 穩健選擇 (Steady picks)
TIER3_SCORE = 45              # 觀察清單 (Watch list)
TIER1_MIN_DIMENSION = 60      # Every dimension must clear this for TIER1
TIER2_MIN_DIMENSION = 50

# 流動性篩選 (Liquidity filter)
MIN_AVG_VOLUME = 1000         # 5 日均量下限，單位：張 (lots); quotes carry shares
MIN_PRICE = 10.0
TOP_N = 20
TIER1_LIMIT = 10
TIER2_LIMIT = 20
TIER3_LIMIT = 20
SYMBOL_PATTERN = r"^\d{4}$"   # 普通股代碼 (drops ETFs and warrants)

# 資料視窗 (History windows)
PRICE_LOOKBACK = 80
INSTITUTIONAL_LOOKBACK = 20
MIN_PRICE_BARS = 60
FILTER_BARS = 5

# 回測 (Backtest economics)
INITIAL_CAPITAL = 1_000_000
POSITION_SIZE_PCT = 1.0       # 1.0 = 全押 (all-in, only one position is ever open)
COMMISSION_RATE = 0.001425    # 手續費，買賣各收
TAX_RATE = 0.003              # 證交稅，僅賣出
SLIPPAGE = 0.001
RISK_FREE_RATE = 0.02
ROUND_LOT = 1000              # 一張 = 1000 股
MIN_BACKTEST_BARS = 30
TRADING_DAYS_PER_YEAR = 252

# 警示 (Alert scan)
ALERT_VAO_THRESHOLD = 70                # VAO 爆量門檻
ALERT_FOREIGN_CONSECUTIVE_DAYS = 3      # 外資連續買超天數
ALERT_MARGIN_SURGE_RATE = 0.10          # 融資單日增幅
ALERT_STOP_LOSS = 0.07                  # 持股停損
ALERT_DROP_PCT = -4.0                   # 放量下跌的日跌幅 (%)
ALERT_DROP_VOLUME_RATIO = 1.5           # 放量下跌的 5 日量比
ALERT_INSTITUTIONAL_LOOKBACK = 10

# 投資組合 (Portfolio concentration)
MAX_SINGLE_POSITION = 0.25              # 單檔上限
MAX_SECTOR_WEIGHT = 0.40                # 單一產業上限
MIN_STOCKS = 3
MAX_STOCKS = 10
REVIEW_LOSS_PCT = -15.0                 # 虧損超過即檢視
REBALANCE_THRESHOLD = 0.05              # 偏離目標權重 5% 再平衡


@dataclass(frozen=True)
class ScoringWeights:
    technical: float = WEIGHT_TECHNICAL
    institutional: float = WEIGHT_INSTITUTIONAL
    fundamental: float = WEIGHT_FUNDAMENTAL

    def __post_init__(self):
        total = self.technical + self.institutional + self.fundamental
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise InvalidInputError(f"Scoring weights must sum to 1.0, got {total}")

    def as_dict(self) -> dict:
        return {
            "technical": self.technical,
            "institutional": self.institutional,
            "fundamental": self.fundamental,
        }


@dataclass(frozen=True)
class TierThresholds:
    tier1: float = TIER1_SCORE
    tier2: float = TIER2_SCORE
    tier3: float = TIER3_SCORE
    tier1_min_dimension: float = TIER1_MIN_DIMENSION
    tier2_min_dimension: float = TIER2_MIN_DIMENSION


@dataclass(frozen=True)
class ScreenerConfig:
    min_avg_volume: float = MIN_AVG_VOLUME
    min_price: float = MIN_PRICE
    round_lot: int = ROUND_LOT    # shares per lot in the volume column; 1 if it already holds lots
    top_n: int = TOP_N
    tier1_limit: int = TIER1_LIMIT
    tier2_limit: int = TIER2_LIMIT
    tier3_limit: int = TIER3_LIMIT
    symbol_pattern: str = SYMBOL_PATTERN
    price_lookback: int = PRICE_LOOKBACK
    institutional_lookback: int = INSTITUTIONAL_LOOKBACK
    min_price_bars: int = MIN_PRICE_BARS
    workers: int = 1
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    thresholds: TierThresholds = field(default_factory=TierThresholds)

    def __post_init__(self):
        if self.round_lot <= 0:
            raise InvalidInputError("round_lot must be positive")


@dataclass(frozen=True)
class BacktestConfig:
    initial_capital: float = INITIAL_CAPITAL
    position_size: float = POSITION_SIZE_PCT
    commission: float = COMMISSION_RATE
    tax: float = TAX_RATE
    slippage: float = SLIPPAGE
    risk_free_rate: float = RISK_FREE_RATE
    round_lot: int = ROUND_LOT
    min_bars: int = MIN_BACKTEST_BARS

    def __post_init__(self):
        if self.initial_capital <= 0:
            raise InvalidInputError("initial_capital must be positive")
        if not 0 < self.position_size <= 1:
            raise InvalidInputError("position_size must be in (0, 1]")
        if self.round_lot <= 0:
            raise InvalidInputError("round_lot must be positive")


@dataclass(frozen=True)
class AlertConfig:
    vao_threshold: int = ALERT_VAO_THRESHOLD
    foreign_consecutive_days: int = ALERT_FOREIGN_CONSECUTIVE_DAYS
    margin_surge_rate: float = ALERT_MARGIN_SURGE_RATE
    stop_loss: float = ALERT_STOP_LOSS
    drop_pct: float = ALERT_DROP_PCT
    drop_volume_ratio: float = ALERT_DROP_VOLUME_RATIO
    price_lookback: int = PRICE_LOOKBACK
    min_price_bars: int = MIN_PRICE_BARS
    institutional_lookback: int = ALERT_INSTITUTIONAL_LOOKBACK


@dataclass(frozen=True)
class PortfolioConfig:
    max_single_position: float = MAX_SINGLE_POSITION
    max_sector_weight: float = MAX_SECTOR_WEIGHT
    min_stocks: int = MIN_STOCKS
    max_stocks: int = MAX_STOCKS
    review_loss_pct: float = REVIEW_LOSS_PCT
    rebalance_threshold: float = REBALANCE_THRESHOLD

    def __post_init__(self):
        if not 0 < self.max_single_position <= 1 or not 0 < self.max_sector_weight <= 1:
            raise InvalidInputError("Position and sector caps must be in (0, 1]")
        if self.min_stocks > self.max_stocks:
            raise InvalidInputError("min_stocks must not exceed max_stocks")


@dataclass(frozen=True)
class AppConfig:
    screener: ScreenerConfig = field(default_factory=ScreenerConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    database_url: str | None = None
    data_dir: str | None = None


def _read_section(parser: configparser.ConfigParser, section: str, config_cls) -> dict:
    """Pull the keys of a config dataclass out of an INI section, typed by its field annotations."""
    if section not in parser:
        return {}
    types = {f.name: f.type for f in fields(config_cls)}
    values = {}
    for key in parser[section]:
        kind = types.get(key)
        if kind is bool:
            values[key] = parser[section].getboolean(key)
        elif kind is int:
            values[key] = parser[section].getint(key)
        elif kind is float:
            values[key] = parser[section].getfloat(key)
        elif kind is str:
            values[key] = parser[section][key]
        else:
            log.warning(f"Ignoring unknown key '{key}' in [{section}]")
    return values


def load_config(path: str | Path = "config.ini") -> AppConfig:
    """
    Reads an INI file with [database], [screener], [weights], [tiers],
    [backtest], [alerts] and [portfolio] sections. Missing files or keys
    fall back to the defaults above.
    """
    parser = configparser.ConfigParser()
    read = parser.read(path, encoding="utf-8")
    if not read:
        log.info(f"No config file at {path}, using defaults.")
        return AppConfig()

    screener_cfg = ScreenerConfig(
        weights=ScoringWeights(**_read_section(parser, "weights", ScoringWeights)),
        thresholds=TierThresholds(**_read_section(parser, "tiers", TierThresholds)),
        **_read_section(parser, "screener", ScreenerConfig),
    )
    backtest_cfg = BacktestConfig(**_read_section(parser, "backtest", BacktestConfig))
    alert_cfg = AlertConfig(**_read_section(parser, "alerts", AlertConfig))
    portfolio_cfg = PortfolioConfig(**_read_section(parser, "portfolio", PortfolioConfig))

    database_url = None
    data_dir = None
    if "database" in parser:
        db = parser["database"]
        database_url = db.get("url")
        data_dir = db.get("data_dir")
        # The crawlers' MySQL credentials, when no full URL is given.
        if not database_url and db.get("host") and db.get("database"):
            from .database import mysql_url
            database_url = mysql_url(db.get("user"), db.get("password"), db.get("host"), db.get("database"))

    return AppConfig(
        screener=screener_cfg,
        backtest=backtest_cfg,
        alerts=alert_cfg,
        portfolio=portfolio_cfg,
        database_url=database_url,
        data_dir=data_dir,
    )
