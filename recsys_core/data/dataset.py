"""
Dataset utilities for retrieval training.

This module provides:
- Interaction: A single (user, item, rating, timestamp) record
- interactions_from_dataframe: Convert a pandas DataFrame into Interactions
- IDMapper: Bidirectional mappings between original IDs and contiguous indices
- build_indexers: Build an IDMapper from an interaction stream
- make_training_pairs: Shuffled, optionally capped positive pairs
- ExampleDataset: PyTorch Dataset over integer example rows
- holdout_split / build_user_positives: Per-user held-out evaluation data
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd
import torch
from torch.utils.data import Dataset

from ..errors import UnknownEntity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interaction:
    """
    One observed user-item event.

    Attributes:
        user_id: Opaque user identifier
        item_id: Opaque item identifier
        rating: Explicit rating, 1.0 (implicit positive) when absent
        timestamp: Event time; None means "use arrival order"
    """

    user_id: Hashable
    item_id: Hashable
    rating: float = 1.0
    timestamp: Optional[float] = None


def interactions_from_dataframe(
    df: pd.DataFrame,
    positive_threshold: Optional[float] = None,
) -> List[Interaction]:
    """
    Convert a DataFrame of interactions into Interaction records.

    Required columns are 'user_id' and 'item_id'. Optional 'rating' and
    'timestamp' columns are used when present; missing values fall back to
    the implicit defaults. A missing rating counts as 1.0 both for the
    threshold filter and in the returned records.

    Args:
        df: DataFrame of interactions
        positive_threshold: Keep only rows with rating >= threshold (default: None)

    Returns:
        List of Interaction in DataFrame row order
    """
    missing = {"user_id", "item_id"} - set(df.columns)
    if missing:
        raise ValueError(f"Interaction frame is missing columns: {sorted(missing)}")

    if "rating" in df.columns:
        df = df.assign(rating=df["rating"].fillna(1.0))

    if positive_threshold is not None and "rating" in df.columns:
        before = len(df)
        df = df[df["rating"] >= positive_threshold]
        logger.info(
            f"Kept {len(df):,} of {before:,} interactions with rating >= {positive_threshold}"
        )

    users = df["user_id"].tolist()
    items = df["item_id"].tolist()
    ratings = df["rating"].tolist() if "rating" in df.columns else [None] * len(df)
    timestamps = df["timestamp"].tolist() if "timestamp" in df.columns else [None] * len(df)

    interactions = []
    for user_id, item_id, rating, timestamp in zip(users, items, ratings, timestamps):
        interactions.append(
            Interaction(
                user_id=user_id,
                item_id=item_id,
                rating=1.0 if rating is None or pd.isna(rating) else float(rating),
                timestamp=None if timestamp is None or pd.isna(timestamp) else float(timestamp),
            )
        )
    return interactions


def _sorted_ids(ids: Iterable[Hashable]) -> List[Hashable]:
    """Sort ids ascending; ids of mixed, incomparable types sort by (type, str)."""
    unique = set(ids)
    try:
        return sorted(unique)
    except TypeError:
        return sorted(unique, key=lambda x: (type(x).__name__, str(x)))


class IDMapper:
    """
    Manages bidirectional ID mappings for users and items.

    Embedding tables require contiguous integer indices starting from 0.
    This class creates and manages mappings:
    - user_id → user_idx (0 to num_users-1)
    - item_id → item_idx (0 to num_items-1)

    Raw ids are sorted before indices are assigned, so the same set of
    interactions always yields the same mapping regardless of order.

    Example:
        mapper = IDMapper.from_interactions(interactions)
        user_idx = mapper.user_index(user_id)
        item_id = mapper.item_id(item_idx)
    """

    def __init__(
        self,
        user_to_idx: Dict[Hashable, int],
        item_to_idx: Dict[Hashable, int],
    ):
        """
        Initialize with pre-built mappings.

        Args:
            user_to_idx: Mapping from original user_id to index
            item_to_idx: Mapping from original item_id to index
        """
        self.user_to_idx = user_to_idx
        self.item_to_idx = item_to_idx

        # Build reverse mappings
        self.idx_to_user = {v: k for k, v in user_to_idx.items()}
        self.idx_to_item = {v: k for k, v in item_to_idx.items()}

    @property
    def num_users(self) -> int:
        """Number of unique users."""
        return len(self.user_to_idx)

    @property
    def num_items(self) -> int:
        """Number of unique items."""
        return len(self.item_to_idx)

    @classmethod
    def from_ids(cls, user_ids: Iterable[Hashable], item_ids: Iterable[Hashable]) -> "IDMapper":
        """Build mappings from raw user and item ids (duplicates allowed)."""
        user_to_idx = {uid: idx for idx, uid in enumerate(_sorted_ids(user_ids))}
        item_to_idx = {iid: idx for idx, iid in enumerate(_sorted_ids(item_ids))}
        return cls(user_to_idx, item_to_idx)

    @classmethod
    def from_interactions(cls, interactions: Sequence[Interaction]) -> "IDMapper":
        """
        Build mappings from every user and item appearing in interactions.

        Args:
            interactions: Interaction records in any order

        Returns:
            IDMapper instance
        """
        return cls.from_ids(
            (r.user_id for r in interactions),
            (r.item_id for r in interactions),
        )

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "IDMapper":
        """
        Build mappings from a DataFrame with user_id and item_id columns.

        Args:
            df: DataFrame with 'user_id' and 'item_id' columns

        Returns:
            IDMapper instance
        """
        return cls.from_ids(df["user_id"].tolist(), df["item_id"].tolist())

    def has_user(self, user_id: Hashable) -> bool:
        return user_id in self.user_to_idx

    def has_item(self, item_id: Hashable) -> bool:
        return item_id in self.item_to_idx

    def user_index(self, user_id: Hashable) -> int:
        """Index for a raw user id; raises UnknownEntity."""
        try:
            return self.user_to_idx[user_id]
        except KeyError:
            raise UnknownEntity("user", user_id) from None

    def item_index(self, item_id: Hashable) -> int:
        """Index for a raw item id; raises UnknownEntity."""
        try:
            return self.item_to_idx[item_id]
        except KeyError:
            raise UnknownEntity("item", item_id) from None

    def user_id(self, user_idx: int) -> Hashable:
        try:
            return self.idx_to_user[int(user_idx)]
        except KeyError:
            raise UnknownEntity("user", user_idx) from None

    def item_id(self, item_idx: int) -> Hashable:
        try:
            return self.idx_to_item[int(item_idx)]
        except KeyError:
            raise UnknownEntity("item", item_idx) from None

    def item_ids(self) -> List[Hashable]:
        """All raw item ids in index order."""
        return [self.idx_to_item[idx] for idx in range(self.num_items)]

    def verify(self) -> bool:
        """
        Verify that mappings are valid (bijective and contiguous).

        Returns:
            True if valid, raises AssertionError otherwise
        """
        # Check bijective
        assert len(self.user_to_idx) == len(self.idx_to_user), "User mapping not bijective"
        assert len(self.item_to_idx) == len(self.idx_to_item), "Item mapping not bijective"

        # Check contiguous
        assert set(self.user_to_idx.values()) == set(range(self.num_users)), (
            "User indices not contiguous"
        )
        assert set(self.item_to_idx.values()) == set(range(self.num_items)), (
            "Item indices not contiguous"
        )

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view of the mappings, e.g. for a host application to persist."""
        return {
            "user_to_idx": dict(self.user_to_idx),
            "item_to_idx": dict(self.item_to_idx),
        }


def build_indexers(interactions: Sequence[Interaction]) -> IDMapper:
    """Build the user/item IDMapper for an interaction stream."""
    id_mapper = IDMapper.from_interactions(interactions)
    logger.info(f"Indexed {id_mapper.num_users:,} users and {id_mapper.num_items:,} items")
    return id_mapper


def make_training_pairs(
    pairs: np.ndarray,
    max_pairs: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Shuffle positive (user_idx, item_idx) pairs and optionally cap their count.

    Args:
        pairs: int64 array of shape [N, 2]
        max_pairs: Keep at most this many pairs after shuffling (default: all)
        rng: Random source for the shuffle (default: unseeded)

    Returns:
        Shuffled copy of shape [min(N, max_pairs), 2]
    """
    rng = rng if rng is not None else np.random.default_rng()
    pairs = np.asarray(pairs, dtype=np.int64).reshape(-1, 2)
    shuffled = pairs[rng.permutation(len(pairs))]
    if max_pairs is not None:
        shuffled = shuffled[:max_pairs]
    return shuffled



class ExampleDataset(Dataset):
    """
    PyTorch Dataset over rows of an integer example array.

    Rows are (user_idx, item_idx) pairs for the retrieval model or shifted
    prefix windows plus target for the sequence scorer. The default collate
    function stacks them into a [B, C] long tensor.

    Example:
        dataset = ExampleDataset(pairs)
        loader = DataLoader(dataset, batch_size=1024, shuffle=True)

        for batch in loader:
            users, items = batch[:, 0], batch[:, 1]
    """

    def __init__(self, examples: np.ndarray):
        """
        Args:
            examples: Array of shape [N, C]; converted to int64
        """
        examples = np.asarray(examples, dtype=np.int64)
        if examples.ndim != 2:
            raise ValueError(f"Examples must be a 2-D array, got shape {examples.shape}")
        self.examples = torch.from_numpy(examples)

    def __len__(self) -> int:
        return len(self.examples)

    def __getitem__(self, idx: int) -> torch.Tensor:
        return self.examples[idx]


def holdout_split(
    interactions: Sequence[Interaction],
    num_test_per_user: int = 1,
    positive_threshold: Optional[float] = None,
) -> Tuple[List[Interaction], List[Interaction]]:
    """
    Hold out each user's most recent positive interactions for evaluation.

    Each user's events are ordered by timestamp (arrival order breaks ties
    and stands in for missing timestamps). The last num_test_per_user events
    with rating >= positive_threshold are held out; everything else stays in
    training. A user is only split when at least one event would remain in
    training, so every evaluated user is known to the trained model.

    Args:
        interactions: Interaction records in arrival order
        num_test_per_user: Positives held out per user
        positive_threshold: Minimum rating of a held-out event (default: any)

    Returns:
        (train, held_out) lists, each in original arrival order
    """
    if num_test_per_user < 1:
        raise ValueError("num_test_per_user must be >= 1")

    by_user: Dict[Hashable, List[int]] = defaultdict(list)
    for position, record in enumerate(interactions):
        by_user[record.user_id].append(position)

    held_out_positions: Set[int] = set()
    for positions in by_user.values():
        ordered = sorted(
            positions,
            key=lambda p: (
                interactions[p].timestamp if interactions[p].timestamp is not None else float("-inf"),
                p,
            ),
        )
        candidates = [
            p
            for p in ordered
            if positive_threshold is None or interactions[p].rating >= positive_threshold
        ]
        test = candidates[-num_test_per_user:]
        if len(test) < len(ordered):
            held_out_positions.update(test)

    train = [r for p, r in enumerate(interactions) if p not in held_out_positions]
    held_out = [r for p, r in enumerate(interactions) if p in held_out_positions]
    logger.info(
        f"Held out {len(held_out):,} interactions for "
        f"{len({r.user_id for r in held_out}):,} users; {len(train):,} remain for training"
    )
    return train, held_out


def build_user_positives(
    interactions: Iterable[Interaction],
    id_mapper: IDMapper,
) -> Dict[int, Set[int]]:
    """
    Map user index to the set of positive item indices.

    Records whose user or item is unknown to id_mapper are skipped, since
    the model has no embedding to score them with.

    Args:
        interactions: Interaction records
        id_mapper: Mapping the model was trained with

    Returns:
        Dictionary user_idx -> set of item_idx
    """
    user_positives: Dict[int, Set[int]] = defaultdict(set)
    skipped = 0
    for record in interactions:
        if not (id_mapper.has_user(record.user_id) and id_mapper.has_item(record.item_id)):
            skipped += 1
            continue
        user_positives[id_mapper.user_index(record.user_id)].add(
            id_mapper.item_index(record.item_id)
        )
    if skipped:
        logger.warning(f"Skipped {skipped:,} interactions with unknown users or items")
    return dict(user_positives)
