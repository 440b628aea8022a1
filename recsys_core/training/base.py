"""
Shared step/epoch loop for the retrieval and sequence trainers.

Implements:
- Strictly sequential Adam steps, one shuffled DataLoader minibatch per step
- Per-step callback so the caller controls pacing and can stop early
- Skipping of degenerate batches with a warning
- Fatal handling of non-finite losses with restore of the last stable
  end-of-epoch parameters
- Scoped ownership of the model and optimizer (release / context manager)
"""

import copy
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader
from tqdm import tqdm

from ..data import ExampleDataset
from ..errors import DegenerateBatch, NumericalInstability, StopTraining
from .tracking import ExperimentTracker

logger = logging.getLogger(__name__)


@dataclass
class StepReport:
    """Progress of one completed training step, passed to on_step callbacks."""

    epoch: int
    step: int
    steps_per_epoch: int
    global_step: int
    loss: float


@dataclass
class TrainingHistory:
    """
    Loss history of a training run.

    Attributes:
        step_losses: Loss of every completed step, in order
        epoch_losses: Mean step loss of every epoch with at least one step
        skipped_batches: Degenerate batches skipped without a step
        stopped_early: True if a callback raised StopTraining
        validation_metrics: (epoch, metrics) for every evaluated epoch
    """

    step_losses: List[float] = field(default_factory=list)
    epoch_losses: List[float] = field(default_factory=list)
    skipped_batches: int = 0
    stopped_early: bool = False
    validation_metrics: List[Tuple[int, Dict[str, float]]] = field(default_factory=list)

    @property
    def num_steps(self) -> int:
        return len(self.step_losses)

    @property
    def final_loss(self) -> Optional[float]:
        return self.epoch_losses[-1] if self.epoch_losses else None


StepCallback = Callable[[StepReport], None]


class BaseTrainer:
    """
    Minibatch trainer that exclusively owns a model and its Adam optimizer.

    Subclasses implement _compute_loss(batch) for one minibatch, where a
    minibatch is a [B, C] long tensor of rows of the example array passed
    to fit(), drawn by a shuffling DataLoader.

    Example:
        with TwoTowerTrainer(model, config) as trainer:
            history = trainer.fit(pairs, on_step=lambda r: print(r.loss))
    """

    def __init__(
        self,
        model: nn.Module,
        learning_rate: float,
        batch_size: int,
        num_epochs: int,
        weight_decay: float = 0.0,
        device: str = "cpu",
        seed: int = 42,
        generator: Optional[torch.Generator] = None,
        rng: Optional[np.random.Generator] = None,
        log_every_n_steps: int = 5,
        show_progress: bool = False,
        tracker: Optional[ExperimentTracker] = None,
    ):
        """
        Initialize the trainer.

        Args:
            model: Model whose parameters this trainer will own and update
            learning_rate: Adam learning rate
            batch_size: Rows per minibatch
            num_epochs: Passes over the examples in fit()
            weight_decay: Adam L2 regularization
            device: Training device
            seed: Seed for the default random sources
            generator: torch random source for batch shuffling and negative
                sampling (default: seeded)
            rng: numpy random source for example subsetting (default: seeded)
            log_every_n_steps: Log the step loss every N steps
            show_progress: Show a tqdm progress bar per epoch
            tracker: Optional experiment tracker
        """
        self.device = device
        self.model: Optional[nn.Module] = model.to(device)
        self.optimizer: Optional[torch.optim.Optimizer] = torch.optim.Adam(
            self.model.parameters(),
            lr=learning_rate,
            weight_decay=weight_decay,
        )
        self.batch_size = batch_size
        self.num_epochs = num_epochs

        if generator is None:
            generator = torch.Generator()
            generator.manual_seed(seed)
        self.generator = generator
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.log_every_n_steps = max(1, log_every_n_steps)
        self.show_progress = show_progress
        self.tracker = tracker or ExperimentTracker(None, "")

        # Training state
        self.global_step = 0
        self.epochs_completed = 0
        self.history = TrainingHistory()
        self._snapshot: Optional[Dict[str, Any]] = None

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    def _compute_loss(self, batch: torch.Tensor) -> torch.Tensor:
        raise NotImplementedError

    def _prepare_examples(self, examples: np.ndarray) -> np.ndarray:
        return examples

    def _on_epoch_end(self, epoch: int) -> None:
        """Called after every completed epoch, once its snapshot is taken."""

    def _run_name(self) -> str:
        return type(self).__name__

    def _run_params(self) -> Dict[str, Any]:
        return {}

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def _require_model(self) -> nn.Module:
        if self.model is None or self.optimizer is None:
            raise RuntimeError("Trainer has been released")
        return self.model

    def train_step(self, batch: torch.Tensor) -> float:
        """
        Run one optimization step on one minibatch.

        Args:
            batch: Example rows for this step

        Returns:
            The scalar loss before the update

        Raises:
            DegenerateBatch: If the loss cannot be computed for this batch
            NumericalInstability: If the loss is NaN or infinite
        """
        model = self._require_model()
        model.train()
        self.optimizer.zero_grad()

        loss = self._compute_loss(batch)
        value = loss.item()
        if not math.isfinite(value):
            self._abort(value)

        loss.backward()
        self.optimizer.step()
        self.global_step += 1
        return value

    def train_epoch(
        self,
        loader: DataLoader,
        epoch: int,
        on_step: Optional[StepCallback] = None,
    ) -> Optional[float]:
        """
        Train for one epoch over a fresh shuffle of examples.

        Args:
            loader: Shuffling DataLoader over the examples
            epoch: Zero-based epoch number (for reporting)
            on_step: Called after every completed step

        Returns:
            Mean step loss, or None if every batch was skipped
        """
        steps_per_epoch = len(loader)

        pbar = tqdm(
            loader,
            total=steps_per_epoch,
            desc=f"Epoch {epoch + 1}/{self.num_epochs}",
            disable=not self.show_progress,
        )
        losses: List[float] = []
        try:
            for step, batch in enumerate(pbar, 1):
                try:
                    loss = self.train_step(batch)
                except DegenerateBatch as e:
                    self.history.skipped_batches += 1
                    logger.warning(f"Skipping batch {step}/{steps_per_epoch}: {e}")
                    continue

                losses.append(loss)
                self.history.step_losses.append(loss)
                self.tracker.log_metric("step_loss", loss, step=self.global_step)
                pbar.set_postfix({"loss": f"{loss:.4f}"})

                if self.global_step % self.log_every_n_steps == 0:
                    logger.info(
                        f"epoch {epoch + 1}/{self.num_epochs} · "
                        f"step {step}/{steps_per_epoch} · loss={loss:.4f}"
                    )

                if on_step is not None:
                    on_step(
                        StepReport(
                            epoch=epoch,
                            step=step,
                            steps_per_epoch=steps_per_epoch,
                            global_step=self.global_step,
                            loss=loss,
                        )
                    )
        finally:
            pbar.close()
            if losses:
                self.history.epoch_losses.append(float(np.mean(losses)))

        return float(np.mean(losses)) if losses else None

    def fit(
        self,
        examples: np.ndarray,
        on_step: Optional[StepCallback] = None,
    ) -> TrainingHistory:
        """
        Train for num_epochs epochs.

        A StopTraining raised by on_step ends the run cleanly; the partially
        completed epoch is kept. A non-finite loss restores the last stable
        end-of-epoch parameters and propagates NumericalInstability.

        Args:
            examples: Example rows
            on_step: Called after every completed step

        Returns:
            TrainingHistory

        Raises:
            ValueError: If there are no examples to train on
        """
        self._require_model()
        examples = self._prepare_examples(examples)
        if len(examples) == 0:
            raise ValueError("Cannot train on an empty example set")

        loader = DataLoader(
            ExampleDataset(examples),
            batch_size=self.batch_size,
            shuffle=True,
            generator=self.generator,
            num_workers=0,
        )
        logger.info(
            f"Training {self._run_name()}: {len(examples):,} examples, "
            f"{len(loader):,} batches of {self.batch_size}, epochs={self.num_epochs}"
        )

        self.tracker.start(self._run_name(), self._run_params())
        status = "FAILED"
        try:
            for epoch in range(self.num_epochs):
                try:
                    epoch_loss = self.train_epoch(loader, epoch, on_step)
                except StopTraining:
                    self.history.stopped_early = True
                    logger.info(f"Training stopped by caller during epoch {epoch + 1}")
                    break

                self.epochs_completed = epoch + 1
                self._take_snapshot()
                if epoch_loss is not None:
                    self.tracker.log_metric("train_loss", epoch_loss, step=epoch)
                    logger.info(f"Epoch {epoch + 1}: loss={epoch_loss:.4f}")
                self._on_epoch_end(epoch)
            status = "FINISHED"
        finally:
            self.tracker.end(status)

        logger.info(
            f"Training complete: {self.history.num_steps} steps, "
            f"{self.history.skipped_batches} skipped batches"
        )
        return self.history

    # ------------------------------------------------------------------
    # Checkpointing and ownership
    # ------------------------------------------------------------------

    def _take_snapshot(self) -> None:
        """Keep an in-memory copy of the parameters after a completed epoch."""
        self._snapshot = {
            "epoch": self.epochs_completed,
            "model_state_dict": copy.deepcopy(self.model.state_dict()),
            "optimizer_state_dict": copy.deepcopy(self.optimizer.state_dict()),
        }

    def _abort(self, loss: float) -> None:
        restored_epoch = None
        if self._snapshot is not None:
            self.model.load_state_dict(self._snapshot["model_state_dict"])
            self.optimizer.load_state_dict(self._snapshot["optimizer_state_dict"])
            restored_epoch = self._snapshot["epoch"]
        logger.error(f"Non-finite loss at step {self.global_step + 1}; aborting training")
        raise NumericalInstability(self.global_step + 1, loss, restored_epoch)

    def release(self) -> None:
        """Drop the model, optimizer state and snapshot owned by this trainer."""
        if self.optimizer is not None:
            self.optimizer.state.clear()
        self.model = None
        self.optimizer = None
        self._snapshot = None

    @property
    def released(self) -> bool:
        return self.model is None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
