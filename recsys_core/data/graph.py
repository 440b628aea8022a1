"""
Interaction graph built from the interaction log.

Holds, per dataset load:
- user_items: user_idx → chronological list of item_idx
- item_users: item_idx → set of user_idx

These maps drive negative-sampling exclusion, history exclusion at
recommendation time, sequence windows and the Personalized PageRank graphs.
"""

import logging
from collections import defaultdict
from typing import Dict, FrozenSet, List, Optional, Sequence, Set

import numpy as np
from scipy import sparse

from ..errors import UnknownEntity
from .dataset import IDMapper, Interaction

logger = logging.getLogger(__name__)


class InteractionGraph:
    """
    Immutable user/item adjacency derived from interactions.

    The bipartite and co-visitation adjacency matrices are not built until
    first requested and are cached afterwards.

    Example:
        graph = InteractionGraph.build(interactions, id_mapper)
        graph.user_items[0]          # [item_idx, ...] oldest first
        graph.sequence_window(0, 5)  # [0, 0, 3, 1, 4] (index + 1, left-padded)
    """

    def __init__(
        self,
        id_mapper: IDMapper,
        user_items: Dict[int, List[int]],
        item_users: Dict[int, Set[int]],
        pairs: np.ndarray,
    ):
        self.id_mapper = id_mapper
        self.user_items = user_items
        self.item_users = {i: frozenset(users) for i, users in item_users.items()}
        self._pairs = pairs
        self._histories = {u: frozenset(items) for u, items in user_items.items()}
        self._bipartite: Optional[sparse.csr_matrix] = None
        self._covisitation: Optional[sparse.csr_matrix] = None

    @classmethod
    def build(cls, interactions: Sequence[Interaction], id_mapper: IDMapper) -> "InteractionGraph":
        """
        Build the graph from interactions.

        Per-user item lists are ordered by timestamp; interactions without a
        timestamp use their arrival position. Equal keys keep arrival order.

        Args:
            interactions: Interaction records in arrival order
            id_mapper: IDMapper covering every user and item in interactions

        Returns:
            InteractionGraph instance
        """
        events: Dict[int, List[tuple]] = defaultdict(list)
        item_users: Dict[int, Set[int]] = defaultdict(set)
        pairs = np.empty((len(interactions), 2), dtype=np.int64)

        for ordinal, record in enumerate(interactions):
            user_idx = id_mapper.user_index(record.user_id)
            item_idx = id_mapper.item_index(record.item_id)
            key = record.timestamp if record.timestamp is not None else float(ordinal)
            events[user_idx].append((key, ordinal, item_idx))
            item_users[item_idx].add(user_idx)
            pairs[ordinal] = (user_idx, item_idx)

        user_items = {
            user_idx: [item_idx for _, _, item_idx in sorted(user_events)]
            for user_idx, user_events in events.items()
        }

        logger.info(
            f"Interaction graph: {len(user_items):,} users, "
            f"{len(item_users):,} items, {len(pairs):,} interactions"
        )
        return cls(id_mapper, user_items, dict(item_users), pairs)

    @property
    def num_users(self) -> int:
        return self.id_mapper.num_users

    @property
    def num_items(self) -> int:
        return self.id_mapper.num_items

    @property
    def num_interactions(self) -> int:
        return len(self._pairs)

    def _check_user(self, user_idx: int) -> None:
        if not 0 <= user_idx < self.num_users:
            raise UnknownEntity("user", user_idx)

    def history(self, user_idx: int) -> FrozenSet[int]:
        """Distinct item indices the user has interacted with."""
        self._check_user(user_idx)
        return self._histories.get(user_idx, frozenset())

    def positive_pairs(self) -> np.ndarray:
        """(user_idx, item_idx) pairs in arrival order, shape [N, 2]."""
        return self._pairs.copy()

    def item_popularity(self) -> np.ndarray:
        """Number of distinct users per item, in item-index order."""
        counts = np.zeros(self.num_items, dtype=np.int64)
        for item_idx, users in self.item_users.items():
            counts[item_idx] = len(users)
        return counts

    def sequence_window(self, user_idx: int, max_len: int) -> List[int]:
        """
        Last max_len items of a user's history, shifted by +1 and left-padded.

        Index 0 is reserved as the pad sentinel, so item_idx k appears as k + 1.

        Args:
            user_idx: Internal user index
            max_len: Window length L

        Returns:
            List of length max_len
        """
        self._check_user(user_idx)
        recent = [item_idx + 1 for item_idx in self.user_items.get(user_idx, [])[-max_len:]]
        return [0] * (max_len - len(recent)) + recent

    def bipartite_adjacency(self) -> sparse.csr_matrix:
        """
        Symmetric 0/1 adjacency over users and items.

        Node layout: users occupy 0..U-1 and items occupy U..U+I-1.
        Repeated interactions between the same pair form a single edge.
        """
        if self._bipartite is None:
            num_users = self.num_users
            num_nodes = num_users + self.num_items
            unique_pairs = np.unique(self._pairs, axis=0) if len(self._pairs) else self._pairs
            users = unique_pairs[:, 0]
            items = unique_pairs[:, 1] + num_users
            rows = np.concatenate([users, items])
            cols = np.concatenate([items, users])
            data = np.ones(len(rows), dtype=np.float64)
            self._bipartite = sparse.csr_matrix((data, (rows, cols)), shape=(num_nodes, num_nodes))
        return self._bipartite

    def covisitation_adjacency(self) -> sparse.csr_matrix:
        """
        Item-item co-occurrence counts.

        Entry (a, b) is the number of users who interacted with both a and b;
        the diagonal is zero.
        """
        if self._covisitation is None:
            incidence = self.bipartite_adjacency()[: self.num_users, self.num_users :]
            counts = (incidence.T @ incidence).tocsr()
            counts.setdiag(0)
            counts.eliminate_zeros()
            self._covisitation = counts
        return self._covisitation


def build_interaction_graph(
    interactions: Sequence[Interaction],
    id_mapper: IDMapper,
) -> InteractionGraph:
    """Build the InteractionGraph for interactions indexed by id_mapper."""
    return InteractionGraph.build(interactions, id_mapper)
