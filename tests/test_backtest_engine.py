import pandas as pd
import pytest

from backtest import run_backtest, run_backtest_batch
from backtest.engine import BacktestEngine
from backtest.strategies import (FORCED_CLOSE, STOP_LOSS, TAKE_PROFIT, TRAILING_STOP, MACrossStrategy,
                                 StrategyConfig)
from screener.config import BacktestConfig
from screener.data_loader import FrameDataProvider
from screener.errors import InsufficientDataError

# Flat, then a golden cross on bar 30 followed by a gentle climb that never
# reaches the take-profit or arms the trailing stop.
CROSS_AND_HOLD = [100.0] * 30 + [101.0 + 0.4 * k for k in range(10)]
CROSS_AND_DROP = [100.0] * 30 + [101.0] + [92.0] * 10
CROSS_AND_JUMP = [100.0] * 30 + [101.0] + [120.0] * 5
CROSS_AND_TRAIL = [100.0] * 30 + [101.0, 105.0, 110.0, 112.0, 108.0]


@pytest.fixture
def engine():
    return BacktestEngine()


class TestSimulate:
    def test_open_position_is_force_closed(self, engine, make_bars):
        data = make_bars(CROSS_AND_HOLD, newest_first=False)
        trades, curve = engine.simulate(data, MACrossStrategy(), "2330")

        assert len(trades) == 1
        trade = trades[0]
        assert trade.exit_reason == FORCED_CLOSE
        assert trade.entry_date == data["date"].iloc[30].strftime("%Y-%m-%d")
        assert trade.exit_date == data["date"].iloc[-1].strftime("%Y-%m-%d")
        assert trade.exit_price == pytest.approx(104.6)
        assert trade.holding_bars == 9
        assert len(curve) == len(data)
        assert curve[-1] == pytest.approx(1_000_000 + trade.pnl, abs=0.01)

    def test_entry_costs_include_slippage_and_commission(self, engine, make_bars):
        data = make_bars(CROSS_AND_HOLD, newest_first=False)
        trade = engine.simulate(data, MACrossStrategy())[0][0]

        assert trade.entry_price == pytest.approx(101.1)
        assert trade.shares == 9000
        assert trade.shares % 1000 == 0
        assert trade.cost == pytest.approx(101.0 * 1.001 * 9000 * 1.001425, abs=0.01)

    def test_exit_proceeds_pay_commission_and_tax(self, engine, make_bars):
        data = make_bars(CROSS_AND_HOLD, newest_first=False)
        trade = engine.simulate(data, MACrossStrategy())[0][0]

        gross = 104.6 * 9000
        expected = gross * (1 - 0.001425 - 0.003) - 101.0 * 1.001 * 9000 * 1.001425
        assert trade.pnl == pytest.approx(expected, abs=0.02)

    def test_stop_loss_exit_uses_slippage(self, engine, make_bars):
        data = make_bars(CROSS_AND_DROP, newest_first=False)
        trades, curve = engine.simulate(data, MACrossStrategy(), "2330")

        assert len(trades) == 1
        assert trades[0].exit_reason.startswith(STOP_LOSS)
        assert trades[0].exit_price == pytest.approx(92.0 * 0.999, abs=0.01)
        assert trades[0].pnl < 0
        assert curve[-1] < 1_000_000

    def test_take_profit_exit(self, engine, make_bars):
        data = make_bars(CROSS_AND_JUMP, newest_first=False)
        trades, _ = engine.simulate(data, MACrossStrategy())

        assert len(trades) == 1
        assert trades[0].exit_reason.startswith(TAKE_PROFIT)
        assert trades[0].holding_bars == 1

    def test_trailing_stop_exit(self, engine, make_bars):
        # +10.8% at 112 arms the trail; 108 is 3.6% off that high.
        data = make_bars(CROSS_AND_TRAIL, newest_first=False)
        trades, curve = engine.simulate(data, MACrossStrategy(), "2330")

        assert len(trades) == 1
        trade = trades[0]
        assert trade.exit_reason.startswith(TRAILING_STOP)
        assert trade.exit_date == data["date"].iloc[-1].strftime("%Y-%m-%d")
        assert trade.exit_price == pytest.approx(108.0 * 0.999, abs=0.01)
        assert trade.holding_bars == 4
        assert trade.pnl > 0
        assert curve[-1] == pytest.approx(1_000_000 + trade.pnl, abs=0.01)

    def test_no_signal_no_trades(self, engine, make_bars):
        data = make_bars([100.0] * 40, newest_first=False)
        trades, curve = engine.simulate(data, MACrossStrategy())

        assert trades == []
        assert curve == [1_000_000.0] * 40

    def test_capital_below_one_lot_skips_entry(self, make_bars):
        engine = BacktestEngine(config=BacktestConfig(initial_capital=50_000))
        data = make_bars(CROSS_AND_HOLD, newest_first=False)

        assert engine.simulate(data, MACrossStrategy())[0] == []


@pytest.fixture
def provider(make_bars):
    prices = pd.concat([
        make_bars(CROSS_AND_HOLD, newest_first=False, symbol="2330"),
        make_bars(CROSS_AND_DROP, newest_first=False, symbol="2317"),
        make_bars([100.0] * 20, newest_first=False, symbol="1101"),
    ], ignore_index=True)
    return FrameDataProvider(prices)


class TestRun:
    def test_report_fields(self, provider):
        report = BacktestEngine(provider).run("2330", "2024-01-01", "2024-04-01", StrategyConfig("MA_CROSS"))

        assert report.symbol == "2330"
        assert report.strategy_type == "MA_CROSS"
        assert report.strategy_params["short_period"] == 10
        assert report.trading_days == 40
        assert report.performance.total_trades == 1
        assert report.performance.win_rate == 1.0
        assert report.trades[0].exit_reason == FORCED_CLOSE

    def test_accepts_a_strategy_instance(self, provider):
        report = BacktestEngine(provider).run("2330", "2024-01-01", "2024-04-01", MACrossStrategy(stop_loss=0.05))
        assert report.strategy_params["stop_loss"] == 0.05

    def test_short_history_raises(self, provider):
        with pytest.raises(InsufficientDataError):
            BacktestEngine(provider).run("1101", "2024-01-01", "2024-04-01", StrategyConfig())

    def test_batch_skips_failures_and_sorts_by_return(self, provider):
        reports = run_backtest_batch(provider, ["2317", "1101", "2330", "9999"], "2024-01-01", "2024-04-01",
                                     StrategyConfig(), workers=2)

        assert [r.symbol for r in reports] == ["2330", "2317"]

    def test_run_backtest_helper(self, provider):
        report = run_backtest(provider, "2317", "2024-01-01", "2024-04-01", StrategyConfig(),
                              BacktestConfig(slippage=0.0))

        assert report.trades[0].exit_price == 92.0
        assert report.performance.max_loss_streak == 1
