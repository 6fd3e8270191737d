import pytest

from screener.models import EntryType, FundamentalSnapshot
from screener.scorers import (clamp_score, round_half_up, score_fundamental, score_institutional,
                              score_technical)


class TestTechnicalScore:
    def test_breakout_scores_high(self, breakout_frame):
        result = score_technical(breakout_frame)

        # VAO 80 * .35 + MTM 100 * .30 + MA 80 * .35
        assert result.score == 86
        assert result.error is None
        assert result.entry_signal.triggered
        assert result.entry_signal.entry_type == EntryType.BREAKOUT
        assert result.entry_signal.conditions == {"A": True, "B": True, "C": False}

    def test_short_history_scores_zero(self, make_bars):
        result = score_technical(make_bars([100.0] * 59))

        assert result.score == 0
        assert result.error is not None
        assert result.vao is None

    def test_flat_series_only_earns_ma_points(self, flat_frame):
        result = score_technical(flat_frame)

        assert result.score == 26
        assert not result.entry_signal.triggered
        assert result.entry_signal.entry_type == EntryType.NONE

    def test_pullback_bounce(self, make_bars):
        # Red candle then a green one, right on MA20.
        closes = [100.0] * 58 + [99.0, 101.0]
        opens = [100.0] * 58 + [100.0, 99.0]
        result = score_technical(make_bars(closes, opens=opens))
        signal = result.entry_signal

        assert not signal.breakout
        assert signal.momentum
        assert signal.pullback
        assert signal.triggered
        assert signal.entry_type == EntryType.PULLBACK_BOUNCE


class TestInstitutionalScore:
    def test_steady_buying_scores_high(self, buying_flows):
        result = score_institutional(buying_flows)

        assert result.score >= 60
        assert result.score == 85
        assert result.sentiment == "strong"
        assert result.foreign_score == 100
        assert result.trust_score == 85
        assert result.dealer_score == 70
        assert result.foreign_consecutive_buy == 5
        assert result.foreign_5day_sum == 3000

    def test_too_few_days_scores_zero(self, make_flows):
        result = score_institutional(make_flows([600, 600]))

        assert result.score == 0
        assert result.error is not None

    def test_missing_frame_scores_zero(self):
        assert score_institutional(None).score == 0

    def test_investment_net_column_is_accepted(self, buying_flows):
        renamed = buying_flows.rename(columns={"trust_net": "investment_net"})
        assert score_institutional(renamed).score == 85

    def test_falling_margin_with_light_shorts_is_healthy(self, make_flows):
        flows = make_flows([0] * 3, margin=[900, 1000, 1000], short=[100, 100, 100])
        assert score_institutional(flows).margin_score == 100

    def test_rising_margin_is_penalised(self, make_flows):
        flows = make_flows([0] * 3, margin=[1100, 1000, 1000])
        assert score_institutional(flows).margin_score == 35

    def test_broken_streak_counts_from_latest_day(self, make_flows):
        result = score_institutional(make_flows([600, -100, 600, 600, 600]))
        assert result.foreign_consecutive_buy == 1

    def test_heavy_selling_is_avoid(self, make_flows):
        result = score_institutional(make_flows([-600] * 5))

        assert result.score == 5
        assert result.sentiment == "avoid"


class TestFundamentalScore:
    def test_missing_snapshot_is_neutral(self):
        result = score_fundamental(None)

        assert result.score == 50
        assert result.note is not None

    def test_empty_snapshot_is_neutral(self):
        assert score_fundamental(FundamentalSnapshot()).score == 50

    def test_strong_growth(self):
        result = score_fundamental(FundamentalSnapshot(
            revenue_growth_yoy=35, revenue_growth_mom=25, eps=3.0, eps_prev_year=2.0, pe_ratio=8,
        ))

        assert (result.revenue_score, result.mom_score, result.eps_score, result.pe_score) == (100, 90, 100, 85)
        assert result.eps_growth == 50.0
        assert result.score == 96

    def test_shrinking_business(self):
        result = score_fundamental(FundamentalSnapshot(
            revenue_growth_yoy=-20, revenue_growth_mom=-15, eps=1.0, eps_prev_year=2.0, pe_ratio=40,
        ))

        assert (result.revenue_score, result.mom_score, result.eps_score, result.pe_score) == (15, 20, 15, 25)
        assert result.score == 17

    def test_loss_making_prior_year_skips_eps_growth(self):
        result = score_fundamental(FundamentalSnapshot(eps=1.0, eps_prev_year=0))

        assert result.eps_score == 50
        assert result.eps_growth is None

    def test_band_edges_are_exclusive(self):
        result = score_fundamental(FundamentalSnapshot(revenue_growth_yoy=30, pe_ratio=10))

        assert result.revenue_score == 80
        assert result.pe_score == 75


class TestRounding:
    def test_half_rounds_up(self):
        assert round_half_up(84.5) == 85
        assert round_half_up(84.49) == 84

    def test_clamp(self):
        assert clamp_score(120) == 100
        assert clamp_score(-3) == 0


@pytest.mark.parametrize("length", [60, 65, 80])
def test_v_shaped_series_stays_in_range(make_bars, length):
    half = length // 2
    closes = [150.0 - k for k in range(half)] + [150.0 - half + k for k in range(length - half)]
    df = make_bars(closes, volumes=[1000 + 37 * k for k in range(length)])
    result = score_technical(df)

    assert 0 <= result.vao.score <= 100
    assert 0 <= result.mtm.strength <= 100
    assert 0 <= result.score <= 100
