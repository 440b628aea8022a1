"""
Graph signals for re-ranking.

This module provides:
- PPRConfig: Restart probability, iteration count and graph mode
- GraphRanker: Personalized PageRank with a cached transition matrix
- personalized_pagerank: One-shot PPR for a single user
- personalized_pagerank_vector: The same scores as a dense item-index-ordered array
"""

from .config import PPR_MODES, PPRConfig
from .ppr import (
    GraphRanker,
    personalized_pagerank,
    personalized_pagerank_vector,
    power_iteration,
    row_normalize,
)

__all__ = [
    "PPR_MODES",
    "GraphRanker",
    "PPRConfig",
    "personalized_pagerank",
    "personalized_pagerank_vector",
    "power_iteration",
    "row_normalize",
]
