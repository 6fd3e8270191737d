import pandas as pd
import pytest

from screener.errors import InsufficientDataError, InvalidInputError
from screener.indicators import (calculate_ma, calculate_ma_system, calculate_mtm, calculate_vao,
                                 calculate_vao_batch, simple_moving_average)
from screener.models import Alignment, MomentumDirection, MomentumSignal, Trend, VAOSignal


class TestVAO:
    def test_volume_and_price_surge_is_strong(self, breakout_frame):
        vao = calculate_vao(breakout_frame)

        assert vao.score == 80
        assert vao.signal == VAOSignal.STRONG
        assert vao.price_change == pytest.approx(6.0, abs=0.01)
        assert vao.avg_volume_5 == 2800
        assert vao.avg_volume_20 == 1450
        assert vao.volume_ratio_5 == pytest.approx(10000 / 2800)
        assert vao.turnover_rate is None

    def test_turnover_adds_points_when_shares_known(self, breakout_frame):
        vao = calculate_vao(breakout_frame, total_shares=50_000)

        assert vao.turnover_rate == pytest.approx(20.0)
        assert vao.score == 100

    def test_moderate_surge(self, make_bars):
        df = make_bars([100.0] * 29 + [104.0], volumes=[1000] * 29 + [10000])
        vao = calculate_vao(df)

        assert vao.score == 65
        assert vao.signal == VAOSignal.MODERATE

    def test_quiet_day_is_weak(self, flat_frame):
        vao = calculate_vao(flat_frame)

        assert vao.score == 0
        assert vao.signal == VAOSignal.WEAK
        assert vao.price_change == 0

    def test_short_history_raises(self, make_bars):
        with pytest.raises(InsufficientDataError) as exc:
            calculate_vao(make_bars([100.0] * 10))
        assert exc.value.required == 20
        assert exc.value.actual == 10

    def test_non_positive_period_raises(self, flat_frame):
        with pytest.raises(InvalidInputError):
            calculate_vao(flat_frame, short_period=0)

    def test_batch_sorts_and_skips_short_series(self, breakout_frame, flat_frame, make_bars):
        results = calculate_vao_batch({
            "1101": flat_frame,
            "2330": breakout_frame,
            "9999": make_bars([100.0] * 5),
        })

        assert [symbol for symbol, _ in results] == ["2330", "1101"]


class TestMTM:
    def test_rising_breakout_is_strong_buy(self, breakout_frame):
        mtm = calculate_mtm(breakout_frame)

        assert mtm.mtm == pytest.approx(12.39)
        assert mtm.mtmma == pytest.approx(6.48)
        assert mtm.direction == MomentumDirection.ACCELERATING
        assert mtm.strength == 100
        assert mtm.signal == MomentumSignal.STRONG_BUY

    def test_stalling_rise_is_decelerating(self, make_bars):
        df = make_bars([100.0 + k for k in range(20)] + [119.0])
        mtm = calculate_mtm(df)

        assert mtm.mtm == pytest.approx(9.0)
        assert mtm.mtmma == pytest.approx(9.8)
        assert mtm.direction == MomentumDirection.DECELERATING
        assert mtm.strength == 40
        assert mtm.signal == MomentumSignal.HOLD

    def test_falling_prices_are_weak(self, falling_frame):
        mtm = calculate_mtm(falling_frame)

        assert mtm.mtm < 0
        assert mtm.strength == 0
        assert mtm.signal == MomentumSignal.WEAK

    def test_needs_period_plus_average_bars(self, make_bars):
        with pytest.raises(InsufficientDataError):
            calculate_mtm(make_bars([100.0] * 14))
        calculate_mtm(make_bars([100.0] * 15))


class TestMovingAverages:
    def test_flat_price_sits_on_its_average(self, flat_frame):
        ma = calculate_ma(flat_frame, 20)

        assert ma.value == 100.0
        assert ma.period == 20
        assert ma.trend == Trend.ABOVE
        assert ma.deviation == 0

    def test_rising_series_is_bullish(self, breakout_frame):
        system = calculate_ma_system(breakout_frame)

        assert system.alignment == Alignment.BULLISH
        assert system.above_ma20
        assert system.ma5.value > system.ma10.value > system.ma20.value > system.ma60.value

    def test_falling_series_is_bearish(self, falling_frame):
        system = calculate_ma_system(falling_frame)

        assert system.alignment == Alignment.BEARISH
        assert not system.above_ma20
        assert system.ma20.trend == Trend.BELOW
        assert system.ma20.deviation < 0

    def test_flat_series_is_mixed(self, flat_frame):
        assert calculate_ma_system(flat_frame).alignment == Alignment.MIXED

    def test_system_needs_sixty_bars(self, make_bars):
        with pytest.raises(InsufficientDataError):
            calculate_ma_system(make_bars([100.0] * 59))

    def test_simple_moving_average_uses_the_tail(self):
        assert simple_moving_average(pd.Series([1.0, 2.0, 3.0, 4.0]), 2) == 3.5
