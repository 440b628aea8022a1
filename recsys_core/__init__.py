"""
Candidate retrieval and re-ranking core for recommender systems.

This package implements:
- Indexing: raw user/item ids → contiguous indices (sorted, deterministic)
- Two-Tower retrieval: user/item embedding towers trained with in-batch
  softmax or BPR, optionally folding in multi-hot item tags
- Sequence scoring: SASRec-style causal self-attention over recent items
- Graph signal: Personalized PageRank over the user-item graph
- Recommendation: blended scores, history exclusion, hard constraints, top-K
- Evaluation: per-user held-out splits scored with Recall, Precision and NDCG@K

Usage:
    # Train from the command line
    python -m recsys_core.train_model --interactions ratings.csv --user 42

    # Or from Python
    from recsys_core import HyperParameters, Interaction, recommend, train

    interactions = [Interaction(user_id=1, item_id=10), ...]
    trained = train(interactions, HyperParameters(epochs=5))
    for item in recommend(1, trained):
        print(item.item_id, item.score)
"""

from .api import build_indexers, evaluate, personalized_pagerank, recommend, train
from .config import HyperParameters
from .data import (
    IDMapper,
    Interaction,
    InteractionGraph,
    build_interaction_graph,
    holdout_split,
)
from .errors import (
    DegenerateBatch,
    NumericalInstability,
    RecsysError,
    StopTraining,
    UnknownEntity,
)
from .serving import Constraints, RecommendedItem, Recommender, TrainedModel

__version__ = "1.0.0"

__all__ = [
    "Constraints",
    "DegenerateBatch",
    "HyperParameters",
    "IDMapper",
    "Interaction",
    "InteractionGraph",
    "NumericalInstability",
    "RecommendedItem",
    "Recommender",
    "RecsysError",
    "StopTraining",
    "TrainedModel",
    "UnknownEntity",
    "build_indexers",
    "build_interaction_graph",
    "evaluate",
    "holdout_split",
    "personalized_pagerank",
    "recommend",
    "train",
]
