"""
Data preparation module for retrieval and re-ranking.

This module handles:
- ID mappings (user_id, item_id → contiguous indices)
- Interaction graph (chronological user histories, item audiences)
- Tag vocabulary and multi-hot item content features
- Shuffled positive pairs and the PyTorch Dataset used for training
- Per-user held-out splits for evaluation
"""

from .config import DataConfig
from .dataset import (
    ExampleDataset,
    IDMapper,
    Interaction,
    build_indexers,
    build_user_positives,
    holdout_split,
    interactions_from_dataframe,
    make_training_pairs,
)
from .graph import InteractionGraph, build_interaction_graph
from .tags import TagVocabulary

__all__ = [
    "DataConfig",
    "ExampleDataset",
    "IDMapper",
    "Interaction",
    "InteractionGraph",
    "TagVocabulary",
    "build_indexers",
    "build_interaction_graph",
    "build_user_positives",
    "holdout_split",
    "interactions_from_dataframe",
    "make_training_pairs",
]
