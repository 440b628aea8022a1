"""
Tower modules for the Two-Tower model.

A tower maps entity indices (users or items) to dense D-dimensional vectors.
- Tower: embedding lookup, optionally followed by one hidden ReLU layer
- ContentItemTower: item embedding concatenated with a projection of the
  item's multi-hot tag vector, then hidden ReLU layer → linear back to D
"""

from typing import Optional

import torch
import torch.nn as nn
import torch.nn.functional as F


class Tower(nn.Module):
    """
    Embedding tower: Embedding → [Linear → ReLU → Linear] → [L2 Normalize].

    Without hidden_dim this is a pure table lookup, the baseline used for
    collaborative filtering. With hidden_dim the lookup is passed through a
    one-hidden-layer transform that maps back to embedding_dim.

    Example:
        tower = Tower(num_entities=1000, embedding_dim=32)
        ids = torch.tensor([0, 1, 2])
        embeddings = tower(ids)  # [3, 32]
    """

    def __init__(
        self,
        num_entities: int,
        embedding_dim: int,
        hidden_dim: Optional[int] = None,
        init_std: float = 0.05,
        normalize: bool = False,
    ):
        """
        Initialize the tower.

        Args:
            num_entities: Number of unique entities (users or items)
            embedding_dim: Output embedding dimension
            hidden_dim: Width of the optional hidden layer (default: None)
            init_std: Standard deviation for embedding initialization
            normalize: L2-normalize the output
        """
        super().__init__()

        self.num_entities = num_entities
        self.embedding_dim = embedding_dim
        self.normalize = normalize

        self.embedding = nn.Embedding(num_entities, embedding_dim)
        if hidden_dim:
            self.mlp = nn.Sequential(
                nn.Linear(embedding_dim, hidden_dim),
                nn.ReLU(),
                nn.Linear(hidden_dim, embedding_dim),
            )
        else:
            self.mlp = None

        nn.init.normal_(self.embedding.weight, mean=0, std=init_std)

    def forward(self, ids: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            ids: Entity indices, shape [batch_size]

        Returns:
            Embeddings, shape [batch_size, embedding_dim]
        """
        x = self.embedding(ids)

        if self.mlp is not None:
            x = self.mlp(x)

        if self.normalize:
            x = F.normalize(x, p=2, dim=-1)

        return x


class ContentItemTower(nn.Module):
    """
    Item tower with content features.

    Architecture:
        id_part  = Embedding(item_idx)                       [B, D]
        tag_part = Linear(tags[item_idx])                    [B, D]
        hidden   = ReLU(Linear(concat(id_part, tag_part)))   [B, H]
        out      = Linear(hidden)                            [B, D]

    The multi-hot tag matrix is stored as a non-trainable buffer so it
    follows the module across devices but is never updated.
    """

    def __init__(
        self,
        item_features: torch.Tensor,
        embedding_dim: int,
        hidden_dim: int,
        init_std: float = 0.05,
        normalize: bool = False,
    ):
        """
        Initialize the tower.

        Args:
            item_features: Multi-hot matrix, shape [num_items, tag_vocab_size]
            embedding_dim: Output embedding dimension D
            hidden_dim: Width H of the hidden layer
            init_std: Standard deviation for embedding initialization
            normalize: L2-normalize the output
        """
        super().__init__()

        num_items, tag_vocab_size = item_features.shape
        self.num_entities = num_items
        self.embedding_dim = embedding_dim
        self.normalize = normalize

        self.register_buffer("item_features", item_features.float())
        self.embedding = nn.Embedding(num_items, embedding_dim)
        self.tag_projection = nn.Linear(tag_vocab_size, embedding_dim)
        self.hidden = nn.Linear(2 * embedding_dim, hidden_dim)
        self.output = nn.Linear(hidden_dim, embedding_dim)

        nn.init.normal_(self.embedding.weight, mean=0, std=init_std)

    def forward(self, ids: torch.Tensor) -> torch.Tensor:
        id_part = self.embedding(ids)
        tag_part = self.tag_projection(self.item_features[ids])
        x = F.relu(self.hidden(torch.cat([id_part, tag_part], dim=-1)))
        x = self.output(x)

        if self.normalize:
            x = F.normalize(x, p=2, dim=-1)

        return x
