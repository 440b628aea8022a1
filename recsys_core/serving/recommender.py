"""
Final top-K recommendation from tower scores, sequence scores and PPR.

Pipeline for one user:
    1. Score every item with the Two-Tower model
    2. Optional: keep the top candidate_pool_size unseen items and replace
       their scores with the sequence scorer's next-item scores
    3. Optional: add blend_weight * PPR(item)
    4. Drop items in the user's history and items failing constraints
    5. Sort by score descending, item index ascending on ties; keep K
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Tuple

import numpy as np
import torch

from ..data import IDMapper, InteractionGraph
from ..graph import GraphRanker, PPRConfig
from ..model import TwoTowerModel
from ..sequence import SASRecScorer
from .config import RecommenderConfig
from .constraints import Constraints
from .trained_model import TrainedModel

logger = logging.getLogger(__name__)


@dataclass
class RecommendedItem:
    """
    A single recommended item.

    Attributes:
        item_id: Raw item identifier
        score: Final blended score (higher is better)
        rank: Position in the final list (1-indexed)
        retrieval_score: Tower (or sequence) score before PPR blending
        ppr_score: PPR score of the item (0.0 when PPR is off)
    """

    item_id: Hashable
    score: float
    rank: int
    retrieval_score: float
    ppr_score: float = 0.0

    def as_tuple(self) -> Tuple[Hashable, float]:
        return self.item_id, self.score

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "item_id": self.item_id,
            "score": float(self.score),
            "rank": self.rank,
            "retrieval_score": float(self.retrieval_score),
            "ppr_score": float(self.ppr_score),
        }


def top_k_indices(scores: np.ndarray, eligible: np.ndarray, k: int) -> np.ndarray:
    """
    Indices of the k best eligible scores.

    Ordered by score descending, then index ascending.

    Raises:
        ValueError: If k < 1
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    candidates = np.flatnonzero(eligible)
    order = np.lexsort((candidates, -scores[candidates]))
    return candidates[order[:k]]


class Recommender:
    """
    Combines retrieval, sequence and graph signals into a top-K list.

    Items in the user's history are always excluded. The exclusion happens
    after scoring, so it never changes the scores of other items.

    Example:
        recommender = Recommender.from_trained(trained, RecommenderConfig(use_ppr=True))
        for item in recommender.recommend(user_id=123, k=10):
            print(f"Rank {item.rank}: Item {item.item_id} ({item.score:.4f})")
    """

    def __init__(
        self,
        model: TwoTowerModel,
        id_mapper: IDMapper,
        graph: InteractionGraph,
        config: Optional[RecommenderConfig] = None,
        sequence_scorer: Optional[SASRecScorer] = None,
        ppr_config: Optional[PPRConfig] = None,
        graph_ranker: Optional[GraphRanker] = None,
    ):
        """
        Initialize the recommender.

        Args:
            model: Trained TwoTowerModel
            id_mapper: IDMapper the model was trained with
            graph: InteractionGraph for histories and PPR
            config: RecommenderConfig
            sequence_scorer: Trained SASRecScorer (needed when use_sequence)
            ppr_config: PPR settings used when use_ppr
            graph_ranker: Prebuilt GraphRanker for graph to reuse (overrides
                ppr_config)
        """
        if model is None:
            raise ValueError("Recommender needs a trained model (was it released?)")

        self.model = model
        self.id_mapper = id_mapper
        self.graph = graph
        self.config = config or RecommenderConfig()
        self.sequence_scorer = sequence_scorer
        self.graph_ranker = graph_ranker or GraphRanker(graph, ppr_config)

        if self.config.use_sequence and sequence_scorer is None:
            raise ValueError("use_sequence=True requires a sequence_scorer")

    @classmethod
    def from_trained(
        cls,
        trained: TrainedModel,
        config: Optional[RecommenderConfig] = None,
        ppr_config: Optional[PPRConfig] = None,
    ) -> "Recommender":
        return cls(
            model=trained.model,
            id_mapper=trained.id_mapper,
            graph=trained.graph,
            config=config,
            sequence_scorer=trained.sequence_scorer,
            graph_ranker=trained.graph_ranker(ppr_config),
        )

    def _tower_scores(self, user_idx: int) -> np.ndarray:
        device = self.model.item_table.device
        scores = self.model.score_all_items(torch.tensor([user_idx], device=device))[0]
        return scores.cpu().numpy().astype(np.float64)

    def _sequence_scores(
        self, user_idx: int, scores: np.ndarray, unseen: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Re-score the tower's top unseen pool; items outside it become ineligible."""
        pool = top_k_indices(scores, unseen, self.config.candidate_pool_size)
        window = self.graph.sequence_window(user_idx, self.sequence_scorer.max_len)

        rescored = np.full_like(scores, -np.inf)
        rescored[pool] = self.sequence_scorer.score_items(window, pool.tolist()).cpu().numpy()
        in_pool = np.zeros_like(unseen)
        in_pool[pool] = True
        return rescored, in_pool

    def recommend(
        self,
        user_id: Hashable,
        k: Optional[int] = None,
        constraints: Optional[Constraints] = None,
    ) -> List[RecommendedItem]:
        """
        Top-K items for one user.

        Args:
            user_id: Raw user id
            k: Number of items (default: config.top_k)
            constraints: Optional hard filters

        Returns:
            At most k RecommendedItem, best first

        Raises:
            UnknownEntity: If user_id, or an item id in constraints, is not indexed
            ValueError: If k < 1
        """
        k = k if k is not None else self.config.top_k
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        user_idx = self.id_mapper.user_index(user_id)
        history = self.graph.history(user_idx)

        eligible = np.ones(self.id_mapper.num_items, dtype=bool)
        eligible[sorted(history)] = False

        retrieval = self._tower_scores(user_idx)
        if self.config.use_sequence and history:
            retrieval, in_pool = self._sequence_scores(user_idx, retrieval, eligible)
            eligible &= in_pool

        ppr = np.zeros_like(retrieval)
        if self.config.use_ppr:
            ppr = self.graph_ranker.rank_vector(user_idx)
        scores = retrieval + self.config.blend_weight * ppr

        if constraints is not None:
            eligible &= constraints.mask(self.id_mapper)

        top = top_k_indices(scores, eligible, k)
        logger.debug(f"User {user_id!r}: {int(eligible.sum())} eligible items, returning {len(top)}")

        return [
            RecommendedItem(
                item_id=self.id_mapper.item_id(item_idx),
                score=float(scores[item_idx]),
                rank=rank,
                retrieval_score=float(retrieval[item_idx]),
                ppr_score=float(ppr[item_idx]),
            )
            for rank, item_idx in enumerate(top, 1)
        ]
