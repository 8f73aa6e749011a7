"""
Cross-provider aggregation for the Live Feed service.
Merges live scores and market odds from several providers into one view with
a confidence score and source provenance.
"""
from aggregator.engine import DataAggregator, market_key, normalize_team, score_key

__all__ = [
    "DataAggregator",
    "market_key",
    "normalize_team",
    "score_key",
]
