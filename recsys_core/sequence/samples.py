"""
Sliding-window next-item samples from chronological user histories.
"""

import logging
from typing import Optional

import numpy as np

from ..data import InteractionGraph

logger = logging.getLogger(__name__)


def build_sequence_samples(
    graph: InteractionGraph,
    max_len: int,
    min_length: int = 3,
    max_samples: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Build (prefix window, next item) training rows.

    For every user with at least min_length events, each position t >= 1
    of the chronological history yields one row: the last max_len items
    before t (shifted by +1 and left-padded with 0) followed by the item at
    t (also shifted by +1).

    Args:
        graph: InteractionGraph with chronological user_items
        max_len: Window length L
        min_length: Minimum history length to use a user (default: 3)
        max_samples: Keep a random subset of at most this many rows
        rng: Random source for subsetting (default: unseeded)

    Returns:
        int64 array of shape [N, L + 1]; the last column is the target
    """
    rows = []
    for user_idx in sorted(graph.user_items):
        shifted = [item_idx + 1 for item_idx in graph.user_items[user_idx]]
        if len(shifted) < min_length:
            continue
        for t in range(1, len(shifted)):
            prefix = shifted[max(0, t - max_len) : t]
            rows.append([0] * (max_len - len(prefix)) + prefix + [shifted[t]])

    samples = np.asarray(rows, dtype=np.int64).reshape(-1, max_len + 1)
    if max_samples is not None and len(samples) > max_samples:
        rng = rng if rng is not None else np.random.default_rng()
        samples = samples[np.sort(rng.choice(len(samples), size=max_samples, replace=False))]

    logger.info(f"Sequence samples: {len(samples):,} windows of length {max_len}")
    return samples
