"""
Top-level hyper-parameters for a full training and recommendation run.

HyperParameters is the single configuration object a host application
hands to train() and recommend(). It fans out into the per-stage configs
(DataConfig, TrainingConfig, ModelConfig, SequenceConfig, PPRConfig,
RecommenderConfig).
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .data import DataConfig
from .graph import PPRConfig
from .model import BaselineVariant, DeepVariant, ModelConfig
from .sequence import SequenceConfig
from .serving import RecommenderConfig
from .training import TrainingConfig


@dataclass
class HyperParameters:
    """
    Hyper-parameters for retrieval, sequence scoring, PPR and ranking.

    Example YAML:
        embedding_dim: 64
        loss_type: bpr
        epochs: 10
        use_ppr: true
        blend_weight: 0.2
    """

    # Two-Tower
    embedding_dim: int = 32
    hidden_dim: int = 64
    loss_type: str = "softmax"
    learning_rate: float = 1e-3
    batch_size: int = 256
    epochs: int = 5
    max_training_pairs: Optional[int] = None
    tag_vocab_size: int = 200

    # Data
    positive_threshold: Optional[float] = None

    # Evaluation
    eval_k_values: List[int] = field(default_factory=lambda: [10, 50])
    eval_every_n_epochs: int = 1
    holdout_per_user: int = 1

    # Sequence scorer
    train_sequence: bool = False
    sequence_max_len: int = 30
    sequence_negatives: int = 5
    sequence_epochs: int = 3
    sequence_batch_size: int = 128
    sequence_max_samples: Optional[int] = None
    min_sequence_length: int = 3

    # Graph
    ppr_alpha: float = 0.15
    ppr_iterations: int = 20
    ppr_mode: str = "bipartite"

    # Ranking
    use_ppr: bool = False
    blend_weight: float = 0.15
    top_k: int = 10
    candidate_pool_size: int = 200

    # Reproducibility and monitoring
    seed: int = 42
    device: str = "cpu"
    show_progress: bool = False
    mlflow_tracking_uri: Optional[str] = None

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "HyperParameters":
        """Build from a dict; unknown keys raise ValueError."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown hyper-parameters: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "HyperParameters":
        """Load hyper-parameters from a YAML file."""
        with open(yaml_path) as f:
            values = yaml.safe_load(f) or {}

        # Handle nested structure if present
        if "hyperparameters" in values:
            values = values["hyperparameters"]

        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def data_config(self) -> DataConfig:
        return DataConfig(
            positive_threshold=self.positive_threshold,
            min_sequence_length=self.min_sequence_length,
            tag_vocab_size=self.tag_vocab_size,
        )

    def training_config(self) -> TrainingConfig:
        return TrainingConfig(
            embedding_dim=self.embedding_dim,
            hidden_dim=self.hidden_dim,
            loss_fn=self.loss_type,
            learning_rate=self.learning_rate,
            batch_size=self.batch_size,
            num_epochs=self.epochs,
            max_training_pairs=self.max_training_pairs,
            eval_k_values=list(self.eval_k_values),
            eval_every_n_epochs=self.eval_every_n_epochs,
            seed=self.seed,
            device=self.device,
            show_progress=self.show_progress,
            mlflow_tracking_uri=self.mlflow_tracking_uri,
        )

    def model_config(self, tag_vocab_size: int = 0) -> ModelConfig:
        """ModelConfig; the deep variant is used when tag_vocab_size > 0."""
        if tag_vocab_size > 0:
            variant = DeepVariant(tag_vocab_size=tag_vocab_size, hidden_dim=self.hidden_dim)
        else:
            variant = BaselineVariant()
        return ModelConfig(embedding_dim=self.embedding_dim, variant=variant)

    def sequence_config(self) -> SequenceConfig:
        return SequenceConfig(
            embedding_dim=self.embedding_dim,
            max_len=self.sequence_max_len,
            num_negatives=self.sequence_negatives,
            learning_rate=self.learning_rate,
            batch_size=self.sequence_batch_size,
            num_epochs=self.sequence_epochs,
            max_samples=self.sequence_max_samples,
            min_sequence_length=self.min_sequence_length,
            seed=self.seed,
            device=self.device,
            show_progress=self.show_progress,
        )

    def ppr_config(self) -> PPRConfig:
        return PPRConfig(
            alpha=self.ppr_alpha,
            num_iterations=self.ppr_iterations,
            mode=self.ppr_mode,
        )

    def recommender_config(self) -> RecommenderConfig:
        return RecommenderConfig(
            top_k=self.top_k,
            use_ppr=self.use_ppr,
            blend_weight=self.blend_weight,
            use_sequence=self.train_sequence,
            candidate_pool_size=self.candidate_pool_size,
        )
