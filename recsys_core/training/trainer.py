"""
Two-Tower model trainer.

Implements:
- Training loop over shuffled (user_idx, item_idx) positive pairs
- Interchangeable loss strategies: in-batch softmax or BPR
- Optional per-epoch validation (Recall@K, Precision@K, NDCG@K) on
  held-out positives
- Optional MLflow logging of step and epoch loss and validation metrics
"""

import logging
from typing import Any, Dict, Optional, Set

import numpy as np
import torch

from ..data import make_training_pairs
from ..model import TwoTowerModel
from .base import BaseTrainer
from .config import TrainingConfig
from .losses import bpr_loss, in_batch_softmax_loss
from .metrics import compute_ranking_metrics
from .sampling import sample_negatives
from .tracking import ExperimentTracker

logger = logging.getLogger(__name__)


class TwoTowerTrainer(BaseTrainer):
    """
    Trainer for the Two-Tower retrieval model.

    Loss strategies:
    - "softmax": logits = U @ I^T over the minibatch; row k's label is k.
      Every other item in the batch is a free negative. Batches with a
      single row are skipped with a warning.
    - "bpr": one negative per positive, uniform over the full item index
      space, resampled on collision with the positive.

    Example:
        config = TrainingConfig(loss_fn="bpr", num_epochs=10)
        model = TwoTowerModel(num_users, num_items, ModelConfig(embedding_dim=32))
        with TwoTowerTrainer(model, config) as trainer:
            history = trainer.fit(graph.positive_pairs())
    """

    def __init__(
        self,
        model: TwoTowerModel,
        config: TrainingConfig,
        generator: Optional[torch.Generator] = None,
        rng: Optional[np.random.Generator] = None,
        validation: Optional[Dict[int, Set[int]]] = None,
        validation_exclude: Optional[Dict[int, Set[int]]] = None,
    ):
        """
        Initialize the trainer.

        Args:
            model: TwoTowerModel to train (ownership passes to the trainer)
            config: Training configuration
            generator: torch random source for BPR negatives (default: seeded by config.seed)
            rng: numpy random source for pair subsetting (default: seeded by config.seed)
            validation: Held-out positives, user_idx -> item_idx, evaluated
                after epochs (default: no validation)
            validation_exclude: Items never ranked for a user during
                validation, typically the training history
        """
        super().__init__(
            model=model,
            learning_rate=config.learning_rate,
            batch_size=config.batch_size,
            num_epochs=config.num_epochs,
            weight_decay=config.weight_decay,
            device=config.device,
            seed=config.seed,
            generator=generator,
            rng=rng,
            log_every_n_steps=config.log_every_n_steps,
            show_progress=config.show_progress,
            tracker=ExperimentTracker(config.mlflow_tracking_uri, config.mlflow_experiment),
        )
        self.config = config
        self.validation = validation or {}
        self.validation_exclude = validation_exclude or {}

        if config.loss_fn == "softmax" and config.batch_size < 2:
            logger.warning("batch_size < 2 with in-batch softmax: every batch will be skipped")

        param_count = sum(p.numel() for p in model.parameters())
        logger.info(f"Model parameters: {param_count:,}")
        logger.info(f"Optimizer: Adam (lr={config.learning_rate}), loss: {config.loss_fn}")

    def _prepare_examples(self, examples: np.ndarray) -> np.ndarray:
        return make_training_pairs(examples, self.config.max_training_pairs, self.rng)

    def _run_name(self) -> str:
        return self.config.run_name or (
            f"{self.config.loss_fn}_dim{self.config.embedding_dim}_lr{self.config.learning_rate}"
        )

    def _run_params(self) -> Dict[str, Any]:
        return self.config.to_dict()

    def _compute_loss(self, batch: torch.Tensor) -> torch.Tensor:
        user_ids = batch[:, 0].to(self.device)
        pos_items = batch[:, 1].to(self.device)

        if self.config.loss_fn == "softmax":
            user_emb, item_emb = self.model(user_ids, pos_items)
            return in_batch_softmax_loss(user_emb, item_emb, self.config.temperature)

        neg_items = sample_negatives(pos_items, self.model.num_items, self.generator)
        user_emb = self.model.user_forward(user_ids)
        pos_emb = self.model.item_forward(pos_items)
        neg_emb = self.model.item_forward(neg_items)
        return bpr_loss(user_emb, pos_emb, neg_emb)

    def _on_epoch_end(self, epoch: int) -> None:
        if not self.validation:
            return
        is_last = epoch + 1 == self.num_epochs
        if (epoch + 1) % self.config.eval_every_n_epochs != 0 and epoch != 0 and not is_last:
            return

        val_metrics = self.validate()
        self.history.validation_metrics.append((epoch, val_metrics))

        # Log to MLflow (replace @ with _at_ for valid metric names)
        for metric, value in val_metrics.items():
            mlflow_metric = metric.replace("@", "_at_")
            self.tracker.log_metric(f"val_{mlflow_metric}", value, step=epoch)

        metrics_str = ", ".join(f"{k}: {v:.4f}" for k, v in val_metrics.items())
        logger.info(f"Epoch {epoch + 1}: {metrics_str}")

    def validate(self) -> Dict[str, float]:
        """Compute validation metrics on the held-out positives."""
        return compute_ranking_metrics(
            model=self._require_model(),
            user_positives=self.validation,
            k_values=self.config.eval_k_values,
            exclude=self.validation_exclude,
            device=self.device,
            show_progress=False,
        )
