"""
Configuration for Two-Tower model training.
"""

from dataclasses import dataclass, field
from typing import List, Optional

LOSS_FUNCTIONS = ("softmax", "bpr")


@dataclass
class TrainingConfig:
    """
    Configuration for Two-Tower model training.

    Attributes:
        # Model
        embedding_dim: Dimension of user/item vectors
        hidden_dim: Hidden layer width of the deep variant

        # Training
        loss_fn: "softmax" (in-batch sampled softmax) or "bpr"
        learning_rate: Adam learning rate
        weight_decay: L2 regularization passed to Adam
        batch_size: Minibatch size (larger = more in-batch negatives)
        num_epochs: Number of passes over the training pairs
        max_training_pairs: Cap on shuffled pairs used per run (None = all)
        temperature: Divides in-batch logits; 1.0 keeps raw dot products

        # Reproducibility and device
        seed: Seed for pair shuffling and negative sampling
        device: Training device ("cpu" or "cuda")

        # Evaluation (used when the trainer is given held-out positives)
        eval_k_values: K values for Recall@K, Precision@K and NDCG@K
        eval_every_n_epochs: Evaluate every N epochs (the first and last
            epochs are always evaluated)

        # Monitoring
        log_every_n_steps: Log the step loss every N steps
        show_progress: Show a tqdm bar per epoch

        # MLflow (tracking is off unless a URI is given)
        mlflow_tracking_uri: MLflow tracking server URI
        mlflow_experiment: MLflow experiment name
        run_name: Optional run name (auto-generated if None)
    """

    # Model
    embedding_dim: int = 32
    hidden_dim: int = 64

    # Training
    loss_fn: str = "softmax"
    learning_rate: float = 1e-3
    weight_decay: float = 0.0
    batch_size: int = 256
    num_epochs: int = 5
    max_training_pairs: Optional[int] = None
    temperature: float = 1.0

    # Reproducibility and device
    seed: int = 42
    device: str = "cpu"

    # Evaluation
    eval_k_values: List[int] = field(default_factory=lambda: [10, 50])
    eval_every_n_epochs: int = 1

    # Monitoring
    log_every_n_steps: int = 5
    show_progress: bool = False

    # MLflow
    mlflow_tracking_uri: Optional[str] = None
    mlflow_experiment: str = "candidate_retrieval"
    run_name: Optional[str] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.loss_fn not in LOSS_FUNCTIONS:
            raise ValueError(f"loss_fn must be one of {LOSS_FUNCTIONS}, got {self.loss_fn!r}")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.num_epochs < 0:
            raise ValueError("num_epochs must be >= 0")
        if self.learning_rate <= 0:
            raise ValueError("learning_rate must be > 0")
        if self.temperature <= 0:
            raise ValueError("temperature must be > 0")
        if self.max_training_pairs is not None and self.max_training_pairs < 1:
            raise ValueError("max_training_pairs must be >= 1 or None")
        if not self.eval_k_values or min(self.eval_k_values) < 1:
            raise ValueError("eval_k_values must be a non-empty list of K >= 1")
        if self.eval_every_n_epochs < 1:
            raise ValueError("eval_every_n_epochs must be >= 1")

    def to_dict(self) -> dict:
        """Convert config to dictionary for logging."""
        return {
            "embedding_dim": self.embedding_dim,
            "hidden_dim": self.hidden_dim,
            "loss_fn": self.loss_fn,
            "learning_rate": self.learning_rate,
            "weight_decay": self.weight_decay,
            "batch_size": self.batch_size,
            "num_epochs": self.num_epochs,
            "max_training_pairs": self.max_training_pairs,
            "temperature": self.temperature,
            "eval_k_values": list(self.eval_k_values),
            "seed": self.seed,
            "device": self.device,
        }
