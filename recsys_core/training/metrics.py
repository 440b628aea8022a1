"""
Evaluation metrics for candidate retrieval.

Per user, over the top-K ranked items with binary relevance:
- Recall@K: fraction of the held-out relevant items found in the top K
- Precision@K: fraction of the top K that is relevant
- NDCG@K: DCG with gain 1 / log2(rank + 1) for every hit, divided by the
  DCG of an ideal ranking that places min(K, |relevant|) hits first

Also provides a popularity baseline for comparison.
"""

from typing import Dict, List, Optional, Set

import numpy as np
import torch
from tqdm import tqdm

from ..model import TwoTowerModel

METRIC_NAMES = ("recall", "precision", "ndcg")


def _ranking_metrics(
    ranked: np.ndarray, positives: Set[int], k_values: List[int]
) -> Dict[str, float]:
    """Recall, precision and NDCG at every K for one user's ranking."""
    hits = np.array([item in positives for item in ranked[: max(k_values)].tolist()], dtype=bool)
    discounts = 1.0 / np.log2(np.arange(len(hits)) + 2.0)

    metrics = {}
    for k in k_values:
        top = hits[:k]
        num_hits = int(top.sum())
        idcg = float(np.sum(1.0 / np.log2(np.arange(min(k, len(positives))) + 2.0)))
        metrics[f"recall@{k}"] = num_hits / len(positives)
        metrics[f"precision@{k}"] = num_hits / k
        metrics[f"ndcg@{k}"] = float(np.sum(discounts[:k][top])) / idcg
    return metrics


def _average(per_user: List[Dict[str, float]], k_values: List[int]) -> Dict[str, float]:
    keys = [f"{name}@{k}" for name in METRIC_NAMES for k in k_values]
    return {
        key: float(np.mean([m[key] for m in per_user])) if per_user else 0.0 for key in keys
    }


def compute_ranking_metrics(
    model: TwoTowerModel,
    user_positives: Dict[int, Set[int]],
    k_values: Optional[List[int]] = None,
    exclude: Optional[Dict[int, Set[int]]] = None,
    device: str = "cpu",
    show_progress: bool = False,
) -> Dict[str, float]:
    """
    Compute Recall@K, Precision@K and NDCG@K for retrieval evaluation.

    For each user:
    1. Score all items with the towers
    2. Drop items in the user's exclude set (e.g. training history)
    3. Rank by score descending, ties broken by lower item index
    4. Compare the top-K items with the user's held-out positives

    Users without positives are not evaluated.

    Args:
        model: Trained TwoTowerModel
        user_positives: Dict mapping user_idx to held-out positive item_idx
        k_values: List of K values to compute (default: [10, 50])
        exclude: Dict mapping user_idx to item_idx never to rank (default: none)
        device: Computation device
        show_progress: Whether to show a progress bar

    Returns:
        Dict with recall@k, precision@k and ndcg@k for each k value, averaged
        over users
        Example: {"recall@10": 0.15, ..., "ndcg@50": 0.12}
    """
    k_values = k_values or [10, 50]
    if min(k_values) < 1:
        raise ValueError(f"k_values must be >= 1, got {k_values}")
    exclude = exclude or {}

    users = [u for u, items in user_positives.items() if items]
    iterator = tqdm(users, desc="Computing ranking metrics", disable=not show_progress)

    per_user = []
    with torch.no_grad():
        for user_idx in iterator:
            scores = model.score_all_items(torch.tensor([user_idx], device=device))[0]
            scores = scores.cpu().numpy().astype(np.float64)
            for item_idx in exclude.get(user_idx, ()):
                scores[item_idx] = -np.inf

            ranked = np.argsort(-scores, kind="stable")
            per_user.append(_ranking_metrics(ranked, user_positives[user_idx], k_values))

    # Average across users
    return _average(per_user, k_values)


def compute_popularity_baseline(
    user_positives: Dict[int, Set[int]],
    item_popularity: np.ndarray,
    k_values: Optional[List[int]] = None,
    exclude: Optional[Dict[int, Set[int]]] = None,
) -> Dict[str, float]:
    """
    Ranking metrics when every user is shown the most popular unseen items.

    Args:
        user_positives: Dict mapping user_idx to held-out positive item_idx
        item_popularity: Interaction count per item, in item-index order
        k_values: List of K values to compute (default: [10, 50])
        exclude: Dict mapping user_idx to item_idx never to rank

    Returns:
        Dict with recall@k, precision@k and ndcg@k for each k value
    """
    k_values = k_values or [10, 50]
    exclude = exclude or {}
    by_popularity = np.argsort(-np.asarray(item_popularity), kind="stable")

    per_user = []
    for user_idx, positives in user_positives.items():
        if not positives:
            continue
        seen = exclude.get(user_idx, set())
        ranked = np.array([i for i in by_popularity if i not in seen], dtype=np.int64)
        per_user.append(_ranking_metrics(ranked, positives, k_values))

    return _average(per_user, k_values)
