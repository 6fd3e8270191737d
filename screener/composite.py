# -*- coding: utf-8 -*-
"""
Three-dimensional composite score: weighted total, tier and recommendation.
"""
from .config import ScoringWeights, TierThresholds
from .errors import InvalidInputError
from .models import CompositeResult, Recommendation, Tier
from .scorers import round_half_up

RECOMMENDATIONS = {
    Tier.TIER1: Recommendation.BUY,
    Tier.TIER2: Recommendation.WATCH,
    Tier.TIER3: Recommendation.WATCH,
    Tier.EXCLUDED: Recommendation.AVOID,
}


def classify_tier(total_score: float, min_dimension: float, thresholds: TierThresholds) -> Tier:
    """
    A high total never lifts a symbol into TIER1 or TIER2 on its own: every
    dimension also has to clear that tier's floor.
    """
    if total_score >= thresholds.tier1 and min_dimension >= thresholds.tier1_min_dimension:
        return Tier.TIER1
    if total_score >= thresholds.tier2 and min_dimension >= thresholds.tier2_min_dimension:
        return Tier.TIER2
    if total_score >= thresholds.tier3:
        return Tier.TIER3
    return Tier.EXCLUDED


def calculate_composite_score(
    technical: float,
    institutional: float,
    fundamental: float,
    weights: ScoringWeights = ScoringWeights(),
    thresholds: TierThresholds = TierThresholds(),
) -> CompositeResult:
    for name, value in (("technical", technical), ("institutional", institutional), ("fundamental", fundamental)):
        if value is None or not 0 <= value <= 100:
            raise InvalidInputError(f"{name} score must be within 0-100, got {value}")

    total = round_half_up(
        technical * weights.technical
        + institutional * weights.institutional
        + fundamental * weights.fundamental
    )
    total = min(100, max(0, total))
    tier = classify_tier(total, min(technical, institutional, fundamental), thresholds)

    return CompositeResult(
        total_score=total,
        tier=tier,
        recommendation=RECOMMENDATIONS[tier],
        technical=technical,
        institutional=institutional,
        fundamental=fundamental,
        weights=weights.as_dict(),
    )
