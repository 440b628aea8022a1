"""
Error taxonomy for the retrieval and re-ranking core.

Identifier and data-shape problems are raised immediately. Numerical
problems abort the current training run. Cold-start cases (a user with no
history) are returned as empty results and never raised.
"""

from typing import Any, Optional


class RecsysError(Exception):
    """Base class for all errors raised by recsys_core."""


class UnknownEntity(RecsysError, KeyError):
    """
    A user or item identifier is not known to the IDMapper.

    Raised instead of silently substituting a zero vector.

    Attributes:
        kind: "user" or "item"
        entity_id: The offending identifier (raw id or index)
    """

    def __init__(self, kind: str, entity_id: Any):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id!r}")

    def __str__(self) -> str:
        # KeyError.__str__ wraps the message in quotes
        return self.args[0]


class NumericalInstability(RecsysError, ArithmeticError):
    """
    Training loss became NaN or infinite.

    Attributes:
        step: Global step at which the loss diverged
        loss: The non-finite loss value
        restored_epoch: Epoch whose end-of-epoch parameters were restored,
            or None if no stable snapshot existed yet
        trained: The TrainedModel holding the restored parameters, attached
            by recsys_core.api.train before the error propagates (None when
            raised directly by a trainer)
    """

    def __init__(self, step: int, loss: float, restored_epoch: Optional[int] = None):
        self.step = step
        self.loss = loss
        self.restored_epoch = restored_epoch
        self.trained: Optional[Any] = None
        message = f"Non-finite loss {loss} at step {step}"
        if restored_epoch is not None:
            message += f" (restored parameters from epoch {restored_epoch})"
        super().__init__(message)


class DegenerateBatch(RecsysError, ValueError):
    """In-batch softmax was asked to score a batch with fewer than two rows."""

    def __init__(self, batch_size: int):
        self.batch_size = batch_size
        super().__init__(
            f"In-batch softmax needs at least 2 rows, got batch of size {batch_size}"
        )


class StopTraining(Exception):
    """Raised from a step callback to stop issuing further training steps."""
