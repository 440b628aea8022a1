"""
Sequence-aware next-item scoring.

This module provides:
- SequenceConfig: Configuration for the scorer and its training
- SASRecScorer: Single-head causal self-attention over recent items
- build_sequence_samples: Sliding-window training rows from user histories
- SequenceTrainer: Sampled-BPR training loop
"""

from .config import SequenceConfig
from .samples import build_sequence_samples
from .sasrec import PAD, SASRecScorer
from .trainer import SequenceTrainer

__all__ = [
    "PAD",
    "SASRecScorer",
    "SequenceConfig",
    "SequenceTrainer",
    "build_sequence_samples",
]
