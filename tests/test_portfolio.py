import pandas as pd
import pytest

from screener.config import PortfolioConfig
from screener.data_loader import FrameDataProvider
from screener.errors import InvalidInputError
from screener.models import UNCLASSIFIED_SECTOR, Holding
from screener.portfolio import (AdviceType, PortfolioAnalysis, PortfolioOptimizer, format_portfolio_report,
                                load_holdings)


@pytest.fixture
def make_market(make_bars):
    def build(closes: dict):
        return FrameDataProvider(pd.concat(
            [make_bars([price] * 3, newest_first=False, symbol=symbol) for symbol, price in closes.items()],
            ignore_index=True,
        ))
    return build


def _types(analysis):
    return [a.type for a in analysis.advice]


class TestOptimize:
    def test_empty_book(self):
        analysis = PortfolioOptimizer().optimize([])

        assert analysis == PortfolioAnalysis()
        assert analysis.stock_count == 0

    def test_values_at_latest_close(self, make_market):
        market = make_market({"2330": 550.0, "2317": 110.0, "2454": 850.0})
        holdings = [
            Holding("2330", 1000, 500.0, "Semiconductors"),
            Holding("2317", 2000, 100.0, "EMS"),
            Holding("2454", 500, 800.0, "Semiconductors"),
        ]
        analysis = PortfolioOptimizer(market).optimize(holdings)

        assert analysis.total_value == 1_195_000
        first = analysis.positions[0]
        assert first.current_price == 550.0
        assert first.pnl == 50_000
        assert first.return_pct == 10.0
        assert sum(p.weight for p in analysis.positions) == pytest.approx(1.0)
        assert [s.sector for s in analysis.sectors] == ["Semiconductors", "EMS"]
        assert analysis.sectors[0].symbols == ("2330", "2454")

    def test_oversized_position_and_sector(self, make_market):
        market = make_market({"2330": 550.0, "2317": 110.0, "2454": 850.0})
        holdings = [
            Holding("2330", 1000, 500.0, "Semiconductors"),
            Holding("2317", 2000, 100.0, "EMS"),
            Holding("2454", 500, 800.0, "Semiconductors"),
        ]
        analysis = PortfolioOptimizer(market).optimize(holdings)

        assert _types(analysis) == [AdviceType.REDUCE, AdviceType.REDUCE, AdviceType.SECTOR_REBALANCE]
        assert [a.symbol for a in analysis.advice[:2]] == ["2330", "2454"]
        assert analysis.advice[0].target_weight == 0.25
        assert analysis.over_concentrated
        assert analysis.sector_over_concentrated

    def test_caps_are_inclusive(self):
        holdings = [Holding(s, 1000, 100.0, sector) for s, sector in
                    (("2330", "A"), ("2317", "B"), ("2454", "C"), ("2412", "D"))]
        analysis = PortfolioOptimizer().optimize(holdings)

        assert analysis.hhi == 0.25
        assert analysis.diversification == "concentrated"
        assert analysis.advice == []
        assert not analysis.over_concentrated

    def test_deep_loss_is_flagged_for_review(self, make_market):
        market = make_market({"2330": 600.0, "9999": 80.0})
        holdings = [Holding("2330", 1000, 600.0, "A"), Holding("9999", 1000, 100.0, "B")]
        analysis = PortfolioOptimizer(market).optimize(holdings)
        review = [a for a in analysis.advice if a.type == AdviceType.REVIEW]

        assert [a.symbol for a in review] == ["9999"]
        assert AdviceType.ADD in _types(analysis)
        assert analysis.risk.worst_symbol == "9999"
        assert analysis.risk.worst_return_pct == -20.0
        assert analysis.risk.best_symbol is None

    def test_too_many_holdings(self):
        holdings = [Holding(f"{2000 + i}", 1000, 100.0, f"S{i}") for i in range(11)]
        analysis = PortfolioOptimizer().optimize(holdings)

        assert _types(analysis) == [AdviceType.REDUCE_COUNT]
        assert analysis.diversification == "good"

    def test_drift_from_target_weight(self):
        holdings = [Holding(s, 1000, 100.0, sector) for s, sector in
                    (("2330", "A"), ("2317", "B"), ("2454", "C"), ("2412", "D"))]
        analysis = PortfolioOptimizer().optimize(holdings, target_weights={"2330": 0.35, "2317": 0.27})

        assert _types(analysis) == [AdviceType.REBALANCE]
        assert analysis.advice[0].symbol == "2330"
        assert analysis.advice[0].target_weight == 0.35

    def test_caps_come_from_config(self):
        holdings = [Holding("2330", 1000, 100.0, "A"), Holding("2317", 1000, 100.0, "B")]
        config = PortfolioConfig(max_single_position=0.5, max_sector_weight=0.5, min_stocks=2)

        assert PortfolioOptimizer(config=config).optimize(holdings).advice == []

    def test_without_prices_holdings_are_valued_at_cost(self):
        analysis = PortfolioOptimizer().optimize([Holding("2330", 1000, 500.0)])

        assert analysis.total_value == 500_000
        assert analysis.risk.total_pnl == 0
        assert analysis.risk.total_return_pct == 0.0
        assert analysis.positions[0].sector == UNCLASSIFIED_SECTOR

    def test_worthless_book_raises(self):
        with pytest.raises(InvalidInputError):
            PortfolioOptimizer().optimize([Holding("2330", 0, 500.0)])


class TestRiskMetrics:
    def test_totals_and_best(self, make_market):
        market = make_market({"2330": 550.0, "2317": 90.0})
        holdings = [Holding("2330", 1000, 500.0, "A"), Holding("2317", 1000, 100.0, "B")]
        risk = PortfolioOptimizer(market).optimize(holdings).risk

        assert risk.total_cost == 600_000
        assert risk.total_value == 640_000
        assert risk.total_pnl == 40_000
        assert risk.total_return_pct == pytest.approx(6.67)
        assert risk.best_symbol == "2330"
        assert risk.worst_symbol == "2317"


def test_format_portfolio_report():
    analysis = PortfolioOptimizer().optimize([Holding("2330", 1000, 500.0, "Semiconductors")])
    text = format_portfolio_report(analysis)

    assert text.startswith("# Portfolio Report")
    assert "- Holdings: 1" in text
    assert "[ADD]" in text
    assert "2330" in text


def test_format_empty_report():
    assert "No holdings." in format_portfolio_report(PortfolioAnalysis())


class TestLoadHoldings:
    def test_reads_csv(self, tmp_path):
        path = tmp_path / "holdings.csv"
        pd.DataFrame({
            "sid": ["0050", "2330"],
            "shares": [2000, 1000],
            "buy_price": [120.5, 580.0],
            "sector": [None, "Semiconductors"],
        }).to_csv(path, index=False)
        holdings = load_holdings(str(path))

        assert holdings == [
            Holding("0050", 2000, 120.5, UNCLASSIFIED_SECTOR),
            Holding("2330", 1000, 580.0, "Semiconductors"),
        ]

    def test_missing_columns_raise(self, tmp_path):
        path = tmp_path / "holdings.csv"
        pd.DataFrame({"symbol": ["2330"], "shares": [1000]}).to_csv(path, index=False)

        with pytest.raises(InvalidInputError):
            load_holdings(str(path))
