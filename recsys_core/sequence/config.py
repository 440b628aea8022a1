"""
Configuration for the self-attentive next-item scorer.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class SequenceConfig:
    """
    Configuration for SASRec-style sequence scoring.

    Attributes:
        embedding_dim: Dimension of item and position vectors (default: 32)
        max_len: Window length L of the most recent items (default: 30)
        num_negatives: Sampled negatives per positive position (default: 5)
        dropout: Dropout on the attention output (default: 0.0)
        init_std: Standard deviation for weight initialization (default: 0.05)

        learning_rate: Adam learning rate
        weight_decay: Adam L2 regularization
        batch_size: Windows per minibatch
        num_epochs: Passes over the windows
        max_samples: Cap on shuffled windows used per run (None = all)
        min_sequence_length: Users with shorter histories are skipped
        seed: Seed for window shuffling and negative sampling
        device: Training device
        log_every_n_steps: Log the step loss every N steps
        show_progress: Show a tqdm bar per epoch
    """

    embedding_dim: int = 32
    max_len: int = 30
    num_negatives: int = 5
    dropout: float = 0.0
    init_std: float = 0.05

    learning_rate: float = 1e-3
    weight_decay: float = 0.0
    batch_size: int = 128
    num_epochs: int = 3
    max_samples: Optional[int] = None
    min_sequence_length: int = 3
    seed: int = 42
    device: str = "cpu"
    log_every_n_steps: int = 5
    show_progress: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.max_len < 1:
            raise ValueError("max_len must be >= 1")
        if self.num_negatives < 1:
            raise ValueError("num_negatives must be >= 1")
        if self.min_sequence_length < 2:
            raise ValueError("min_sequence_length must be >= 2")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    def to_dict(self) -> dict:
        """Convert config to dictionary for logging."""
        return {
            "embedding_dim": self.embedding_dim,
            "max_len": self.max_len,
            "num_negatives": self.num_negatives,
            "dropout": self.dropout,
            "learning_rate": self.learning_rate,
            "batch_size": self.batch_size,
            "num_epochs": self.num_epochs,
            "max_samples": self.max_samples,
            "min_sequence_length": self.min_sequence_length,
            "seed": self.seed,
        }
