"""
Uniform negative sampling with collision resampling.

Negatives are drawn uniformly from [low, high) and redrawn wherever they
coincide with the positive they are paired with. The random source is an
explicit torch.Generator so tests can make sampling deterministic.
"""

from typing import Optional

import torch


def sample_negatives(
    positives: torch.Tensor,
    high: int,
    generator: Optional[torch.Generator] = None,
    num_negatives: int = 1,
    low: int = 0,
) -> torch.Tensor:
    """
    Draw negatives for each positive item index.

    Args:
        positives: Positive item indices, shape [batch_size]
        high: Exclusive upper bound of the item index space
        generator: Random source (default: torch global RNG)
        num_negatives: Negatives per positive (default: 1)
        low: Inclusive lower bound, e.g. 1 to skip a pad index (default: 0)

    Returns:
        Negative indices, shape [batch_size] when num_negatives == 1,
        otherwise [batch_size, num_negatives]

    Raises:
        ValueError: If the index space has fewer than two items, so a
            collision could never be resolved
    """
    if high - low < 2:
        raise ValueError(
            f"Negative sampling needs at least 2 candidate items, got range [{low}, {high})"
        )

    device = positives.device
    shape = (positives.shape[0], num_negatives)
    positives = positives.view(-1, 1).cpu()

    negatives = torch.randint(low, high, shape, generator=generator)
    collisions = negatives == positives
    while collisions.any():
        redraw = torch.randint(low, high, (int(collisions.sum()),), generator=generator)
        negatives[collisions] = redraw
        collisions = negatives == positives

    if num_negatives == 1:
        negatives = negatives.squeeze(1)
    return negatives.to(device)
