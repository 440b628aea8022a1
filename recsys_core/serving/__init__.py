"""
Serving module for final recommendations.

This module provides:
- RecommenderConfig: top-K size, PPR blending and sequence re-scoring
- Constraints: Hard item filters
- TrainedModel: Explicit bundle of a training run's state
- Recommender: Combines tower, sequence and PPR scores into a top-K list
"""

from .config import RecommenderConfig
from .constraints import Constraints
from .recommender import RecommendedItem, Recommender, top_k_indices
from .trained_model import TrainedModel

__all__ = [
    "Constraints",
    "RecommendedItem",
    "Recommender",
    "RecommenderConfig",
    "TrainedModel",
    "top_k_indices",
]
