# -*- coding: utf-8 -*-
"""
Backtest strategies.

A strategy is a pair of pure rules: an entry predicate over the
chronological window that ends at the current bar, and an exit rule over
the open position. Strategies hold parameters only, never state.
"""
from dataclasses import asdict, dataclass, field
from typing import Optional

import pandas as pd

from screener.errors import InvalidInputError
from screener.indicators import simple_moving_average

MA_CROSS = "MA_CROSS"
VOLUME_BREAKOUT = "VOLUME_BREAKOUT"

STOP_LOSS = "stop loss"
TAKE_PROFIT = "take profit"
TRAILING_STOP = "trailing stop"
FORCED_CLOSE = "forced end-of-period close"


@dataclass(frozen=True)
class ExitSignal:
    kind: str      # STOP_LOSS, TAKE_PROFIT or TRAILING_STOP
    reason: str    # kind plus the figure that fired it


@dataclass(frozen=True)
class BaseStrategy:
    """
    Shared exit rule, checked in this order:
    fixed stop-loss, fixed take-profit, then a trailing stop that only arms
    once the high since entry is ``trailing_activation`` above entry.
    """
    stop_loss: float = 0.07
    take_profit: float = 0.15
    trailing_stop: float = 0.03
    trailing_activation: float = 0.10

    name = "BASE"

    def __post_init__(self):
        for attr in ("stop_loss", "take_profit", "trailing_stop", "trailing_activation"):
            if getattr(self, attr) < 0:
                raise InvalidInputError(f"{attr} must not be negative")

    @property
    def min_bars(self) -> int:
        return 1

    def should_enter(self, window: pd.DataFrame) -> bool:
        raise NotImplementedError

    def should_exit(self, entry_price: float, close: float, highest_since_entry: float) -> Optional[ExitSignal]:
        current_return = (close - entry_price) / entry_price

        if current_return <= -self.stop_loss:
            return ExitSignal(STOP_LOSS, f"{STOP_LOSS} ({current_return * 100:.1f}%)")

        if current_return >= self.take_profit:
            return ExitSignal(TAKE_PROFIT, f"{TAKE_PROFIT} ({current_return * 100:.1f}%)")

        if highest_since_entry > 0:
            high_return = (highest_since_entry - entry_price) / entry_price
            if high_return >= self.trailing_activation:
                drawdown = (highest_since_entry - close) / highest_since_entry
                if drawdown >= self.trailing_stop:
                    return ExitSignal(TRAILING_STOP, f"{TRAILING_STOP} ({drawdown * 100:.1f}% off high)")

        return None

    def params(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MACrossStrategy(BaseStrategy):
    """Golden cross: the short SMA closes above the long SMA after being at or below it."""
    short_period: int = 10
    long_period: int = 20

    name = MA_CROSS

    def __post_init__(self):
        super().__post_init__()
        if self.short_period <= 0 or self.long_period <= 0:
            raise InvalidInputError("MA periods must be positive")
        if self.short_period >= self.long_period:
            raise InvalidInputError("short_period must be shorter than long_period")

    @property
    def min_bars(self) -> int:
        return self.long_period + 2

    def should_enter(self, window: pd.DataFrame) -> bool:
        if len(window) < self.min_bars:
            return False
        closes = window["close"].astype(float)
        previous = closes.iloc[:-1]
        short_ma = simple_moving_average(closes, self.short_period)
        long_ma = simple_moving_average(closes, self.long_period)
        prev_short_ma = simple_moving_average(previous, self.short_period)
        prev_long_ma = simple_moving_average(previous, self.long_period)
        return bool(prev_short_ma <= prev_long_ma and short_ma > long_ma)


@dataclass(frozen=True)
class VolumeBreakoutStrategy(BaseStrategy):
    """Volume above ``volume_multiple`` x the 5-day average on a day up at least ``price_change_min`` %."""
    volume_multiple: float = 1.5
    price_change_min: float = 2.0

    name = VOLUME_BREAKOUT

    def __post_init__(self):
        super().__post_init__()
        if self.volume_multiple <= 0:
            raise InvalidInputError("volume_multiple must be positive")

    @property
    def min_bars(self) -> int:
        return 21

    def should_enter(self, window: pd.DataFrame) -> bool:
        if len(window) < self.min_bars:
            return False
        today = window.iloc[-1]
        yesterday_close = float(window["close"].iloc[-2])
        avg_volume_5 = simple_moving_average(window["volume"].astype(float), 5)
        price_change = (today["close"] - yesterday_close) / yesterday_close * 100 if yesterday_close > 0 else 0.0
        return bool(today["volume"] > avg_volume_5 * self.volume_multiple and price_change >= self.price_change_min)


STRATEGIES = {
    MA_CROSS: MACrossStrategy,
    VOLUME_BREAKOUT: VolumeBreakoutStrategy,
    "VAO_BREAKOUT": VolumeBreakoutStrategy,
}


@dataclass(frozen=True)
class StrategyConfig:
    type: str = MA_CROSS
    params: dict = field(default_factory=dict)


def create_strategy(config: StrategyConfig) -> BaseStrategy:
    cls = STRATEGIES.get(str(config.type).upper())
    if cls is None:
        raise InvalidInputError(f"Unknown strategy type '{config.type}', expected one of {sorted(STRATEGIES)}")
    try:
        return cls(**config.params)
    except TypeError as e:
        raise InvalidInputError(f"Bad parameters for {config.type}: {e}") from e
