"""
Self-attentive sequential scorer (single-head SASRec).

Input sequences hold item indices shifted by +1 so that 0 is the pad token.
The representation at the last observed position is compared by dot
product with item vectors to score a candidate next item.
"""

import math
from typing import Optional, Sequence, Union

import torch
import torch.nn as nn
import torch.nn.functional as F

from .config import SequenceConfig

PAD = 0

SequenceLike = Union[torch.Tensor, Sequence[int], Sequence[Sequence[int]]]


class SASRecScorer(nn.Module):
    """
    Single-head causal self-attention over a user's recent items.

    Architecture:
        X = ItemEmb(seq) + PosEmb(0..L-1), zeroed at pad positions   [B, L, D]
        A = softmax(Q K^T / sqrt(D) + causal mask + key pad mask)    [B, L, L]
        Z = LayerNorm(X + Wo(A V))                                   [B, L, D]
        h = Z[last observed position]                                [B, D]
        score(item) = h · ItemEmb(item + 1)

    Pad keys are removed from the attention weights after the softmax, so a
    pad position never contributes to any output, and a query with no
    visible real item attends to nothing.

    Example:
        scorer = SASRecScorer(num_items=5000, config=SequenceConfig(max_len=30))
        window = graph.sequence_window(user_idx, 30)   # shifted, left-padded
        scores = scorer.score_all(window)              # [5000], catalogue order
    """

    def __init__(self, num_items: int, config: Optional[SequenceConfig] = None):
        """
        Initialize the scorer.

        Args:
            num_items: Catalogue size I; the item table has I + 1 rows (row 0 = pad)
            config: SequenceConfig
        """
        super().__init__()

        if config is None:
            config = SequenceConfig()
        if num_items < 1:
            raise ValueError("SASRecScorer needs at least one item")

        self.config = config
        self.num_items = num_items
        self.embedding_dim = config.embedding_dim
        self.max_len = config.max_len

        dim = config.embedding_dim
        self.item_embedding = nn.Embedding(num_items + 1, dim, padding_idx=PAD)
        self.position_embedding = nn.Embedding(config.max_len, dim)
        self.query = nn.Linear(dim, dim, bias=False)
        self.key = nn.Linear(dim, dim, bias=False)
        self.value = nn.Linear(dim, dim, bias=False)
        self.out = nn.Linear(dim, dim, bias=False)
        self.layer_norm = nn.LayerNorm(dim)
        self.dropout = nn.Dropout(config.dropout)

        for module in (self.item_embedding, self.position_embedding):
            nn.init.normal_(module.weight, mean=0, std=config.init_std)
        for module in (self.query, self.key, self.value, self.out):
            nn.init.normal_(module.weight, mean=0, std=config.init_std)
        with torch.no_grad():
            self.item_embedding.weight[PAD].zero_()

    def _as_batch(self, seqs: SequenceLike) -> torch.Tensor:
        device = self.item_embedding.weight.device
        seqs = torch.as_tensor(seqs, dtype=torch.long, device=device)
        if seqs.dim() == 1:
            seqs = seqs.unsqueeze(0)
        if seqs.shape[1] > self.max_len:
            seqs = seqs[:, -self.max_len :]
        return seqs

    def encode(
        self,
        seqs: SequenceLike,
        last_positions: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        Encode sequences into next-item query vectors.

        Args:
            seqs: Shifted item indices, shape [B, L] or [L], L <= max_len
            last_positions: Position of the last observed item per row
                (default: right-most non-pad position, 0 for all-pad rows)

        Returns:
            Representations at the last observed positions, shape [B, D]
        """
        seqs = self._as_batch(seqs)
        batch_size, length = seqs.shape
        valid = seqs != PAD  # [B, L]

        positions = torch.arange(length, device=seqs.device)
        x = self.item_embedding(seqs) + self.position_embedding(positions).unsqueeze(0)
        x = x * valid.unsqueeze(-1)

        q, k, v = self.query(x), self.key(x), self.value(x)
        att = torch.matmul(q, k.transpose(1, 2)) / math.sqrt(self.embedding_dim)  # [B, L, L]

        causal = torch.ones(length, length, dtype=torch.bool, device=seqs.device).tril()
        visible = causal.unsqueeze(0) & valid.unsqueeze(1)  # [B, L(query), L(key)]
        att = att.masked_fill(~visible, -1e9)
        weights = F.softmax(att, dim=-1) * visible

        z = self.out(torch.matmul(self.dropout(weights), v))
        z = self.layer_norm(x + z)

        if last_positions is None:
            last_positions = (valid.long() * positions).argmax(dim=1)
        return z[torch.arange(batch_size, device=seqs.device), last_positions]

    def forward(self, seqs: SequenceLike) -> torch.Tensor:
        return self.encode(seqs)

    def catalogue_embeddings(self) -> torch.Tensor:
        """Item vectors in catalogue index order (pad row dropped), [I, D]."""
        return self.item_embedding.weight[1:]

    @torch.no_grad()
    def score_all(self, seq: SequenceLike) -> torch.Tensor:
        """
        Score every catalogue item as the next item of one sequence.

        Args:
            seq: Shifted item indices, shape [L] or [1, L]

        Returns:
            Scores in catalogue index order, shape [num_items]
        """
        was_training = self.training
        self.eval()
        try:
            h = self.encode(seq)  # [1, D]
            return torch.matmul(self.catalogue_embeddings(), h[0])
        finally:
            self.train(was_training)

    @torch.no_grad()
    def score_items(self, seq: SequenceLike, item_indices: Sequence[int]) -> torch.Tensor:
        """
        Score a restricted candidate set as the next item of one sequence.

        Args:
            seq: Shifted item indices, shape [L] or [1, L]
            item_indices: Catalogue item indices (unshifted, 0-based)

        Returns:
            Scores aligned with item_indices, shape [C]
        """
        was_training = self.training
        self.eval()
        try:
            h = self.encode(seq)  # [1, D]
            device = h.device
            candidates = torch.as_tensor(item_indices, dtype=torch.long, device=device) + 1
            return torch.matmul(self.item_embedding(candidates), h[0])
        finally:
            self.train(was_training)
