"""
Bounded tag vocabulary for item content features.

The vocabulary keeps the K most frequent tags across items. Each item is
then described by a multi-hot vector over that vocabulary, used by the
deep item tower.
"""

import logging
from collections import Counter
from typing import Dict, Hashable, Iterable, List, Mapping

import numpy as np

from .dataset import IDMapper

logger = logging.getLogger(__name__)


class TagVocabulary:
    """
    Top-K tag vocabulary.

    Frequency counts each tag at most once per item. Ties in frequency are
    broken by tag string ascending so the vocabulary is deterministic.

    Example:
        vocab = TagVocabulary.build(item_tags, max_size=200)
        features = vocab.item_matrix(id_mapper, item_tags)  # [num_items, len(vocab)]
    """

    def __init__(self, tags: List[str]):
        self.tags = list(tags)
        self.tag_to_idx: Dict[str, int] = {tag: idx for idx, tag in enumerate(self.tags)}

    def __len__(self) -> int:
        return len(self.tags)

    def __contains__(self, tag: str) -> bool:
        return tag in self.tag_to_idx

    @classmethod
    def build(cls, item_tags: Mapping[Hashable, Iterable[str]], max_size: int) -> "TagVocabulary":
        """
        Build the vocabulary from item → tags.

        Args:
            item_tags: Mapping from raw item id to its tags
            max_size: Maximum vocabulary size K

        Returns:
            TagVocabulary instance
        """
        freq: Counter = Counter()
        for tags in item_tags.values():
            freq.update({str(tag).strip() for tag in tags if str(tag).strip()})

        ranked = sorted(freq.items(), key=lambda kv: (-kv[1], kv[0]))[:max_size]
        vocab = cls([tag for tag, _ in ranked])
        logger.info(f"Tag vocabulary: {len(vocab)} of {len(freq)} distinct tags")
        return vocab

    def encode(self, tags: Iterable[str]) -> np.ndarray:
        """Multi-hot vector for one item's tags; unknown tags are ignored."""
        vector = np.zeros(len(self), dtype=np.float32)
        for tag in tags:
            idx = self.tag_to_idx.get(str(tag).strip())
            if idx is not None:
                vector[idx] = 1.0
        return vector

    def item_matrix(
        self,
        id_mapper: IDMapper,
        item_tags: Mapping[Hashable, Iterable[str]],
    ) -> np.ndarray:
        """
        Multi-hot matrix for every indexed item.

        Args:
            id_mapper: IDMapper defining the item row order
            item_tags: Mapping from raw item id to its tags

        Returns:
            float32 array of shape [num_items, len(self)]; items without
            known tags get a zero row
        """
        matrix = np.zeros((id_mapper.num_items, len(self)), dtype=np.float32)
        for item_idx in range(id_mapper.num_items):
            tags = item_tags.get(id_mapper.item_id(item_idx))
            if tags:
                matrix[item_idx] = self.encode(tags)
        return matrix
