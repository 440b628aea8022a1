"""
Personalized PageRank over the interaction graph.

Power iteration:
    r_{t+1} = (1 - alpha) * P^T r_t + alpha * p

where P is the row-stochastic transition matrix and p the restart
distribution. The iteration count is fixed. Mass that reaches a node with
no outgoing edges is dropped, not redistributed, so returned scores sum to
at most 1.
"""

import logging
from typing import Dict, Hashable, Optional

import numpy as np
from scipy import sparse

from ..data import InteractionGraph
from .config import PPRConfig

logger = logging.getLogger(__name__)


def row_normalize(adjacency: sparse.spmatrix) -> sparse.csr_matrix:
    """Scale each row to sum to 1; all-zero rows stay zero (dangling)."""
    adjacency = sparse.csr_matrix(adjacency, dtype=np.float64)
    degree = np.asarray(adjacency.sum(axis=1)).ravel()
    inv_degree = np.divide(1.0, degree, out=np.zeros_like(degree), where=degree > 0)
    return (sparse.diags(inv_degree) @ adjacency).tocsr()


def power_iteration(
    transition_t: sparse.csr_matrix,
    restart: np.ndarray,
    alpha: float,
    num_iterations: int,
) -> np.ndarray:
    """
    Run a fixed number of PPR iterations.

    Args:
        transition_t: Transposed row-stochastic transition matrix P^T
        restart: Restart distribution p (sums to 1)
        alpha: Restart probability
        num_iterations: Number of iterations

    Returns:
        Rank vector r after num_iterations steps, starting from r_0 = p
    """
    rank = restart.copy()
    for _ in range(num_iterations):
        rank = (1.0 - alpha) * (transition_t @ rank) + alpha * restart
    return rank


class GraphRanker:
    """
    Personalized PageRank ranker bound to one InteractionGraph.

    The transition matrix for the configured mode is built on first use
    and reused for every seed user.

    Example:
        ranker = GraphRanker(graph, PPRConfig(alpha=0.15, num_iterations=20))
        scores = ranker.rank(user_id)          # {item_id: score}
        vector = ranker.rank_vector(user_idx)  # [num_items], item-index order
    """

    def __init__(self, graph: InteractionGraph, config: Optional[PPRConfig] = None):
        self.graph = graph
        self.config = config or PPRConfig()
        self._transition_t: Optional[sparse.csr_matrix] = None

    @property
    def transition_t(self) -> sparse.csr_matrix:
        if self._transition_t is None:
            if self.config.mode == "bipartite":
                adjacency = self.graph.bipartite_adjacency()
            else:
                adjacency = self.graph.covisitation_adjacency()
            self._transition_t = row_normalize(adjacency).T.tocsr()
            logger.debug(
                f"PPR transition ({self.config.mode}): "
                f"{adjacency.shape[0]:,} nodes, {adjacency.nnz:,} edges"
            )
        return self._transition_t

    def _restart(self, user_idx: int, history) -> np.ndarray:
        num_users, num_items = self.graph.num_users, self.graph.num_items
        if self.config.mode == "bipartite":
            restart = np.zeros(num_users + num_items)
            restart[user_idx] = 1.0
        else:
            restart = np.zeros(num_items)
            restart[sorted(history)] = 1.0 / len(history)
        return restart

    def rank_vector(self, user_idx: int) -> np.ndarray:
        """
        PPR score of every item for one user, in item-index order.

        Args:
            user_idx: Internal user index

        Returns:
            float64 array of shape [num_items]; all zeros for a user with
            no history
        """
        history = self.graph.history(user_idx)
        if not history:
            return np.zeros(self.graph.num_items)

        rank = power_iteration(
            self.transition_t,
            self._restart(user_idx, history),
            self.config.alpha,
            self.config.num_iterations,
        )
        if self.config.mode == "bipartite":
            rank = rank[self.graph.num_users :]
        return rank

    def rank(self, user_id: Hashable) -> Dict[Hashable, float]:
        """
        PPR scores keyed by raw item id.

        Args:
            user_id: Raw user id

        Returns:
            {item_id: score} for items with a positive score, in item-index
            order; empty for a user with no history

        Raises:
            UnknownEntity: If user_id is not indexed
        """
        user_idx = self.graph.id_mapper.user_index(user_id)
        vector = self.rank_vector(user_idx)
        id_mapper = self.graph.id_mapper
        return {
            id_mapper.item_id(item_idx): float(vector[item_idx])
            for item_idx in np.flatnonzero(vector > 0)
        }


def personalized_pagerank(
    user_id: Hashable,
    graph: InteractionGraph,
    alpha: float = 0.15,
    iterations: int = 20,
    mode: str = "bipartite",
) -> Dict[Hashable, float]:
    """
    Personalized PageRank seeded at one user's history.

    Args:
        user_id: Raw user id
        graph: InteractionGraph
        alpha: Restart probability (default: 0.15)
        iterations: Number of power iterations (default: 20)
        mode: "bipartite" or "covisitation" (default: "bipartite")

    Returns:
        {item_id: score}, non-negative scores summing to at most 1; empty
        for a user with no history
    """
    ranker = GraphRanker(graph, PPRConfig(alpha=alpha, num_iterations=iterations, mode=mode))
    return ranker.rank(user_id)


def personalized_pagerank_vector(
    user_id: Hashable,
    graph: InteractionGraph,
    alpha: float = 0.15,
    iterations: int = 20,
    mode: str = "bipartite",
) -> np.ndarray:
    """Dense PPR scores in item-index order, shape [num_items]."""
    ranker = GraphRanker(graph, PPRConfig(alpha=alpha, num_iterations=iterations, mode=mode))
    return ranker.rank_vector(graph.id_mapper.user_index(user_id))
