"""
Bundle of everything a trained retrieval run owns.
"""

import logging
from dataclasses import astuple, dataclass, field
from typing import Dict, List, Optional, Tuple

from ..data import IDMapper, InteractionGraph, TagVocabulary
from ..graph import GraphRanker, PPRConfig
from ..model import TwoTowerModel
from ..sequence import SASRecScorer
from ..training import TrainingHistory

logger = logging.getLogger(__name__)


@dataclass
class TrainedModel:
    """
    Explicit dataset/model state passed from training to recommendation.

    Attributes:
        id_mapper: IDMapper the tables were sized from
        graph: InteractionGraph for histories and PPR
        model: Trained TwoTowerModel (None once released)
        history: Two-Tower loss history
        tag_vocabulary: Tag vocabulary of the deep variant, if any
        sequence_scorer: Trained SASRecScorer, if any
        sequence_history: Sequence scorer loss history, if any
    """

    id_mapper: IDMapper
    graph: InteractionGraph
    model: Optional[TwoTowerModel]
    history: TrainingHistory = field(default_factory=TrainingHistory)
    tag_vocabulary: Optional[TagVocabulary] = None
    sequence_scorer: Optional[SASRecScorer] = None
    sequence_history: Optional[TrainingHistory] = None
    _graph_rankers: Dict[Tuple, GraphRanker] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    @property
    def released(self) -> bool:
        return self.model is None

    @property
    def loss_history(self) -> List[float]:
        return list(self.history.step_losses)

    def graph_ranker(self, ppr_config: Optional[PPRConfig] = None) -> GraphRanker:
        """
        GraphRanker over this run's graph, built once per PPR setting.

        The ranker caches its transition matrix, so repeated recommendation
        calls with the same settings reuse it.
        """
        ppr_config = ppr_config or PPRConfig()
        key = astuple(ppr_config)
        if key not in self._graph_rankers:
            self._graph_rankers[key] = GraphRanker(self.graph, ppr_config)
        return self._graph_rankers[key]

    def release(self) -> None:
        """Drop the embedding tables so a new run can replace them."""
        if self.model is not None:
            logger.info("Releasing trained model tables")
        self.model = None
        self.sequence_scorer = None
        self._graph_rankers.clear()
