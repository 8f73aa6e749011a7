"""
Confidence scoring for merged readings.

Confidence is a heuristic in [0, 1] describing how well providers agree; it
is never a claim about ground truth. ``source_count`` is the number of
providers in the group including the reading being merged.
"""
from __future__ import annotations

ODDS_TOLERANCE = 0.05

SCORE_AGREE_BASE = 0.5
SCORE_AGREE_STEP = 0.15
SCORE_DISAGREE_FLOOR = 0.3
SCORE_DISAGREE_STEP = 0.1

ODDS_AGREE_BASE = 0.6
ODDS_AGREE_STEP = 0.1
ODDS_DISAGREE_FLOOR = 0.4
ODDS_DISAGREE_WEIGHT = 2.0


def _clamp(value: float) -> float:
    return round(max(0.0, min(1.0, value)), 4)


def score_confidence(source_count: int, scores_match: bool) -> float:
    """Agreeing sources raise confidence; each disagreeing source lowers it."""
    if scores_match:
        return _clamp(SCORE_AGREE_BASE + source_count * SCORE_AGREE_STEP)
    return _clamp(max(SCORE_DISAGREE_FLOOR, 1.0 - source_count * SCORE_DISAGREE_STEP))


def relative_odds_diff(reference: float, candidate: float) -> float:
    return abs(reference - candidate) / reference


def market_confidence(source_count: int, odds_diff: float) -> float:
    """Odds within ODDS_TOLERANCE count as agreement."""
    if odds_diff < ODDS_TOLERANCE:
        return _clamp(ODDS_AGREE_BASE + source_count * ODDS_AGREE_STEP)
    return _clamp(max(ODDS_DISAGREE_FLOOR, 1.0 - odds_diff * ODDS_DISAGREE_WEIGHT))
