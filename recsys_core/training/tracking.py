"""
Optional MLflow experiment tracking for training runs.

Tracking is enabled only when a tracking URI is configured. Without one,
every call is a no-op so training carries no MLflow side effects.
"""

import logging
from typing import Any, Dict, Optional

import mlflow

logger = logging.getLogger(__name__)


class ExperimentTracker:
    """
    Thin wrapper over an MLflow run.

    Example:
        tracker = ExperimentTracker("file:///tmp/mlruns", "candidate_retrieval")
        tracker.start("dim32_lr0.001", config.to_dict())
        tracker.log_metric("train_loss", 0.52, step=0)
        tracker.end()
    """

    def __init__(self, tracking_uri: Optional[str], experiment: str):
        self.tracking_uri = tracking_uri
        self.experiment = experiment
        self._active = False

    @property
    def enabled(self) -> bool:
        return self.tracking_uri is not None

    def start(self, run_name: str, params: Dict[str, Any]) -> None:
        """Start a run and log its parameters."""
        if not self.enabled:
            return
        mlflow.set_tracking_uri(self.tracking_uri)
        mlflow.set_experiment(self.experiment)
        mlflow.start_run(run_name=run_name)
        mlflow.log_params(params)
        self._active = True
        logger.info(f"MLflow run started: {run_name}")

    def log_metric(self, name: str, value: float, step: Optional[int] = None) -> None:
        if self._active:
            mlflow.log_metric(name, value, step=step)

    def end(self, status: str = "FINISHED") -> None:
        if self._active:
            mlflow.end_run(status=status)
            self._active = False
