from .alerts import AlertEngine, format_alerts
from .composite import calculate_composite_score
from .config import ScoringWeights, ScreenerConfig, TierThresholds
from .engine import ScreenerEngine, ScreenerResult
from .errors import InsufficientDataError, InvalidInputError, ScreenerError
from .portfolio import PortfolioOptimizer, format_portfolio_report, load_holdings
from .scorers import score_fundamental, score_institutional, score_technical


def run_screener(provider, date=None, config=ScreenerConfig(), signal_store=None) -> ScreenerResult:
    """Runs one screen and returns the ranked tiers plus the run summary."""
    return ScreenerEngine(provider, config, signal_store=signal_store).run(date)
