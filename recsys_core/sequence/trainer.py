"""
Trainer for the self-attentive next-item scorer.

Each row is a shifted, left-padded prefix window plus its next item. The
loss is BPR against K negatives per positive, drawn uniformly from the
shifted item range [1, num_items] and resampled on collision.
"""

import logging
from typing import Any, Dict, Optional

import numpy as np
import torch

from ..training import BaseTrainer, sample_negatives, sampled_bpr_loss
from .config import SequenceConfig
from .sasrec import SASRecScorer

logger = logging.getLogger(__name__)


class SequenceTrainer(BaseTrainer):
    """
    Trainer for SASRecScorer.

    Example:
        samples = build_sequence_samples(graph, max_len=30)
        with SequenceTrainer(scorer, config) as trainer:
            history = trainer.fit(samples)
    """

    def __init__(
        self,
        scorer: SASRecScorer,
        config: SequenceConfig,
        generator: Optional[torch.Generator] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        super().__init__(
            model=scorer,
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
        )
        self.config = config

        param_count = sum(p.numel() for p in scorer.parameters())
        logger.info(
            f"Sequence scorer parameters: {param_count:,} "
            f"(max_len={config.max_len}, negatives={config.num_negatives})"
        )

    def _run_name(self) -> str:
        return f"sasrec_dim{self.config.embedding_dim}_len{self.config.max_len}"

    def _run_params(self) -> Dict[str, Any]:
        return self.config.to_dict()

    def _compute_loss(self, batch: torch.Tensor) -> torch.Tensor:
        seqs = batch[:, :-1].to(self.device)
        targets = batch[:, -1].to(self.device)

        negatives = sample_negatives(
            targets,
            high=self.model.num_items + 1,
            generator=self.generator,
            num_negatives=self.config.num_negatives,
            low=1,
        )
        if negatives.dim() == 1:
            negatives = negatives.unsqueeze(1)

        h = self.model.encode(seqs)
        pos_emb = self.model.item_embedding(targets)
        neg_emb = self.model.item_embedding(negatives)
        return sampled_bpr_loss(h, pos_emb, neg_emb)
