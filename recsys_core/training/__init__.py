"""
Training module for Two-Tower candidate retrieval.

This module provides:
- TrainingConfig: Configuration for training
- Loss functions: in_batch_softmax_loss, bpr_loss, sampled_bpr_loss
- sample_negatives: Uniform negative sampling with collision resampling
- BaseTrainer / TwoTowerTrainer: Step-by-step training with per-step callbacks
- Metrics: compute_ranking_metrics (recall, precision, NDCG), compute_popularity_baseline
"""

from .base import BaseTrainer, StepCallback, StepReport, TrainingHistory
from .config import LOSS_FUNCTIONS, TrainingConfig
from .losses import bpr_loss, in_batch_softmax_loss, sampled_bpr_loss
from .metrics import METRIC_NAMES, compute_popularity_baseline, compute_ranking_metrics
from .sampling import sample_negatives
from .tracking import ExperimentTracker
from .trainer import TwoTowerTrainer

__all__ = [
    "LOSS_FUNCTIONS",
    "METRIC_NAMES",
    "BaseTrainer",
    "ExperimentTracker",
    "StepCallback",
    "StepReport",
    "TrainingConfig",
    "TrainingHistory",
    "TwoTowerTrainer",
    "bpr_loss",
    "compute_popularity_baseline",
    "compute_ranking_metrics",
    "in_batch_softmax_loss",
    "sample_negatives",
    "sampled_bpr_loss",
]
