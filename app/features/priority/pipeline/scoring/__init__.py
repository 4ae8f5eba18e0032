"""
Urgency scoring package.

Scores WorkItems and maps scores onto urgency tiers.
"""

from .service import ScoringConfig, UrgencyScorer, scoring_service

__all__ = ["ScoringConfig", "UrgencyScorer", "scoring_service"]
