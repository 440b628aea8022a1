"""
Configuration dataclasses for data preparation.

This module defines how raw interactions are turned into the implicit
feedback used for retrieval training and sequence modelling.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class DataConfig:
    """
    Configuration for data preparation.

    Attributes:
        positive_threshold: Minimum rating to keep an interaction (default: None)
            None keeps every interaction as an implicit positive.
            With explicit ratings, e.g. 4 keeps only ratings >= 4.

        min_sequence_length: Minimum history length for sequence samples (default: 3)
            Users with shorter histories are skipped when building
            next-item training windows.

        tag_vocab_size: Number of most frequent tags kept as item content (default: 200)
    """

    positive_threshold: Optional[float] = None
    min_sequence_length: int = 3
    tag_vocab_size: int = 200

    def __post_init__(self):
        """Validate configuration."""
        if self.min_sequence_length < 2:
            raise ValueError("min_sequence_length must be >= 2")
        if self.tag_vocab_size < 0:
            raise ValueError("tag_vocab_size must be >= 0")
