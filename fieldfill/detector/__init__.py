"""Candidate scoring, caching and page-level field detection."""

from .cache import DetectionCache, make_cache_key
from .detector import DEFAULT_SELECTORS, FieldDetector, InspectedField
from .scoring import Candidate, CandidateScorer, ScoringWeights, rank_candidates

__all__ = [
    "DetectionCache",
    "make_cache_key",
    "DEFAULT_SELECTORS",
    "FieldDetector",
    "InspectedField",
    "Candidate",
    "CandidateScorer",
    "ScoringWeights",
    "rank_candidates",
]
