"""
Configuration for Two-Tower model architecture.

The tower variant is chosen once at construction:
- BaselineVariant: pure ID embedding lookups
- DeepVariant: item ID embedding fused with a multi-hot tag vector through
  a small feed-forward network, optionally with a matching user transform
"""

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class BaselineVariant:
    """User and item towers are plain embedding lookups."""

    name: str = field(default="baseline", init=False)


@dataclass(frozen=True)
class DeepVariant:
    """
    Item tower folds in content features.

    Attributes:
        tag_vocab_size: Width K of the multi-hot item content vector
        hidden_dim: Width of the hidden ReLU layer
        user_hidden: Also pass the user embedding through a hidden layer
    """

    tag_vocab_size: int
    hidden_dim: int = 64
    user_hidden: bool = False
    name: str = field(default="deep", init=False)

    def __post_init__(self):
        if self.tag_vocab_size < 1:
            raise ValueError("DeepVariant needs tag_vocab_size >= 1")
        if self.hidden_dim < 1:
            raise ValueError("hidden_dim must be >= 1")


TowerVariant = Union[BaselineVariant, DeepVariant]


@dataclass
class ModelConfig:
    """
    Configuration for Two-Tower model architecture.

    Attributes:
        embedding_dim: Dimension D of user/item vectors (default: 32)

        variant: BaselineVariant() or DeepVariant(...) (default: baseline)

        init_std: Standard deviation for embedding initialization (default: 0.05)
            Small values keep the loss away from saturation at step 0.

        normalize: L2-normalize tower outputs (default: False)
            Scores are then cosine similarities instead of raw dot products.
    """

    embedding_dim: int = 32
    variant: TowerVariant = field(default_factory=BaselineVariant)
    init_std: float = 0.05
    normalize: bool = False

    def __post_init__(self):
        if self.embedding_dim < 1:
            raise ValueError("embedding_dim must be >= 1")
        if self.init_std <= 0:
            raise ValueError("init_std must be > 0")

    @property
    def is_deep(self) -> bool:
        return isinstance(self.variant, DeepVariant)
