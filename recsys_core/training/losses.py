"""
Loss functions for retrieval training.

Provides:
- in_batch_softmax_loss: Softmax cross-entropy with in-batch negatives
- bpr_loss: Bayesian Personalized Ranking with one sampled negative
- sampled_bpr_loss: BPR averaged over K sampled negatives per positive
"""

import torch
import torch.nn.functional as F

from ..errors import DegenerateBatch


def in_batch_softmax_loss(
    user_emb: torch.Tensor,
    item_emb: torch.Tensor,
    temperature: float = 1.0,
) -> torch.Tensor:
    """
    In-batch softmax loss.

    For each user, treats:
    - Their positive item as the correct class
    - All other items in the batch as negative classes

    How it works:
    - Compute all-pairs scores: logits[i][j] = user_i · item_j
    - The diagonal (i=j) holds the positive pairs
    - Off-diagonal entries are in-batch negatives
    - Apply softmax cross-entropy with the diagonal as target, mean over rows

    A batch of size 1 has no negatives and is rejected.

    Args:
        user_emb: User vectors, shape [batch_size, dim]
        item_emb: Item vectors, shape [batch_size, dim]
        temperature: Divides the logits (default: 1.0)

    Returns:
        Scalar loss value

    Raises:
        DegenerateBatch: If batch_size <= 1
    """
    batch_size = user_emb.shape[0]
    if batch_size <= 1:
        raise DegenerateBatch(batch_size)

    # [batch_size, batch_size]
    logits = torch.matmul(user_emb, item_emb.T) / temperature

    # labels[i] = i
    labels = torch.arange(batch_size, device=logits.device)

    return F.cross_entropy(logits, labels)


def bpr_loss(
    user_emb: torch.Tensor,
    pos_item_emb: torch.Tensor,
    neg_item_emb: torch.Tensor,
) -> torch.Tensor:
    """
    Bayesian Personalized Ranking (BPR) loss.

    For each (user, pos_item, neg_item) triplet:
    - Maximize: score(user, pos) - score(user, neg)
    - Loss: -log(sigmoid(pos_score - neg_score))

    Args:
        user_emb: User vectors, shape [batch_size, dim]
        pos_item_emb: Positive item vectors, shape [batch_size, dim]
        neg_item_emb: Negative item vectors, shape [batch_size, dim]

    Returns:
        Scalar loss value
    """
    pos_scores = (user_emb * pos_item_emb).sum(dim=-1)  # [batch_size]
    neg_scores = (user_emb * neg_item_emb).sum(dim=-1)  # [batch_size]

    return -F.logsigmoid(pos_scores - neg_scores).mean()


def sampled_bpr_loss(
    query_emb: torch.Tensor,
    pos_item_emb: torch.Tensor,
    neg_item_emb: torch.Tensor,
) -> torch.Tensor:
    """
    BPR loss against K negatives per positive, averaged over all pairs.

    Args:
        query_emb: Query vectors (user or sequence state), shape [batch_size, dim]
        pos_item_emb: Positive item vectors, shape [batch_size, dim]
        neg_item_emb: Negative item vectors, shape [batch_size, K, dim]

    Returns:
        Scalar loss value
    """
    pos_scores = (query_emb * pos_item_emb).sum(dim=-1)  # [batch_size]
    neg_scores = (query_emb.unsqueeze(1) * neg_item_emb).sum(dim=-1)  # [batch_size, K]

    return -F.logsigmoid(pos_scores.unsqueeze(1) - neg_scores).mean()
