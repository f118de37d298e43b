"""
Compatibility scoring package.

Rates a pair of profiles and explains the rating in a few short reasons.
"""

from .service import CompatibilityScorer, ScoreWeights, compatibility_scorer

__all__ = ["CompatibilityScorer", "ScoreWeights", "compatibility_scorer"]
