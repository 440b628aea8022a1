"""
Two-Tower model for candidate retrieval.

The Two-Tower architecture learns separate vectors for users and items
that are compared by dot product.
"""

from typing import Optional, Tuple

import torch
import torch.nn as nn

from .config import DeepVariant, ModelConfig
from .tower import ContentItemTower, Tower


class TwoTowerModel(nn.Module):
    """
    Two-Tower model for candidate retrieval.

    Architecture:
        User Tower: user_idx → user vector [D]
        Item Tower: item_idx (+ tag vector for the deep variant) → item vector [D]

    Scoring:
        - score(): row-wise dot product, [B,D] x [B,D] → [B] (BPR)
        - score_matrix(): all pairs, [B,D] x [M,D] → [B,M] (in-batch softmax,
          full-catalogue scoring)

    Example:
        model = TwoTowerModel(num_users=1000, num_items=5000)

        # Training
        user_emb, item_emb = model(user_ids, pos_item_ids)
        loss = in_batch_softmax_loss(user_emb, item_emb)

        # Inference
        scores = model.score_all_items(torch.tensor([user_idx]))  # [1, num_items]
    """

    def __init__(
        self,
        num_users: int,
        num_items: int,
        config: Optional[ModelConfig] = None,
        item_features: Optional[torch.Tensor] = None,
    ):
        """
        Initialize the Two-Tower model.

        Args:
            num_users: Number of unique users
            num_items: Number of unique items
            config: ModelConfig (default: baseline variant)
            item_features: Multi-hot tag matrix [num_items, tag_vocab_size];
                required by the deep variant, ignored by the baseline
        """
        super().__init__()

        if config is None:
            config = ModelConfig()
        if num_users < 1 or num_items < 1:
            raise ValueError("TwoTowerModel needs at least one user and one item")

        self.config = config
        self.num_users = num_users
        self.num_items = num_items
        self.embedding_dim = config.embedding_dim

        variant = config.variant
        if isinstance(variant, DeepVariant):
            if item_features is None:
                raise ValueError("DeepVariant requires item_features")
            item_features = torch.as_tensor(item_features, dtype=torch.float32)
            expected = (num_items, variant.tag_vocab_size)
            if tuple(item_features.shape) != expected:
                raise ValueError(
                    f"item_features has shape {tuple(item_features.shape)}, expected {expected}"
                )
            self.user_tower = Tower(
                num_entities=num_users,
                embedding_dim=config.embedding_dim,
                hidden_dim=variant.hidden_dim if variant.user_hidden else None,
                init_std=config.init_std,
                normalize=config.normalize,
            )
            self.item_tower = ContentItemTower(
                item_features=item_features,
                embedding_dim=config.embedding_dim,
                hidden_dim=variant.hidden_dim,
                init_std=config.init_std,
                normalize=config.normalize,
            )
        else:
            self.user_tower = Tower(
                num_entities=num_users,
                embedding_dim=config.embedding_dim,
                init_std=config.init_std,
                normalize=config.normalize,
            )
            self.item_tower = Tower(
                num_entities=num_items,
                embedding_dim=config.embedding_dim,
                init_std=config.init_std,
                normalize=config.normalize,
            )

    @property
    def user_table(self) -> torch.Tensor:
        """Trainable user embedding table, shape [num_users, D]."""
        return self.user_tower.embedding.weight

    @property
    def item_table(self) -> torch.Tensor:
        """Trainable item ID embedding table, shape [num_items, D]."""
        return self.item_tower.embedding.weight

    def user_forward(self, user_ids: torch.Tensor) -> torch.Tensor:
        """
        Get user vectors.

        Args:
            user_ids: User indices, shape [batch_size]

        Returns:
            User vectors, shape [batch_size, embedding_dim]
        """
        return self.user_tower(user_ids)

    def item_forward(self, item_ids: torch.Tensor) -> torch.Tensor:
        """
        Get item vectors.

        Args:
            item_ids: Item indices, shape [batch_size]

        Returns:
            Item vectors, shape [batch_size, embedding_dim]
        """
        return self.item_tower(item_ids)

    @staticmethod
    def score(user_emb: torch.Tensor, item_emb: torch.Tensor) -> torch.Tensor:
        """Row-wise dot product sum(u * i), shape [batch_size]."""
        return (user_emb * item_emb).sum(dim=-1)

    @staticmethod
    def score_matrix(user_emb: torch.Tensor, item_emb: torch.Tensor) -> torch.Tensor:
        """All-pairs scores U @ I^T, shape [num_user_rows, num_item_rows]."""
        return torch.matmul(user_emb, item_emb.T)

    def all_item_embeddings(self) -> torch.Tensor:
        """Item vectors for the whole catalogue in index order, [num_items, D]."""
        device = self.item_table.device
        return self.item_forward(torch.arange(self.num_items, device=device))

    @torch.no_grad()
    def score_all_items(self, user_ids: torch.Tensor) -> torch.Tensor:
        """
        Score every catalogue item for each user.

        Args:
            user_ids: User indices, shape [batch_size]

        Returns:
            Scores, shape [batch_size, num_items]
        """
        was_training = self.training
        self.eval()
        try:
            return self.score_matrix(self.user_forward(user_ids), self.all_item_embeddings())
        finally:
            self.train(was_training)

    def forward(
        self, user_ids: torch.Tensor, pos_item_ids: torch.Tensor
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Forward pass for training.

        Args:
            user_ids: User indices, shape [batch_size]
            pos_item_ids: Positive item indices, shape [batch_size]

        Returns:
            Tuple of (user_emb, item_emb)
        """
        user_emb = self.user_forward(user_ids)
        item_emb = self.item_forward(pos_item_ids)

        return user_emb, item_emb
