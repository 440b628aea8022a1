"""
Hard constraints applied to scored items before top-K selection.
"""

from dataclasses import dataclass, field
from typing import Callable, Collection, Hashable, Optional

import numpy as np

from ..data import IDMapper


@dataclass
class Constraints:
    """
    Hard item filters.

    Attributes:
        allowed_items: If set, only these raw item ids may be recommended
        excluded_items: Raw item ids that may never be recommended
        predicate: Policy filter called with a raw item id; False rejects it

    Raw ids in allowed_items or excluded_items must be known to the
    IDMapper; unknown ids raise UnknownEntity.

    Example:
        Constraints(excluded_items={42}, predicate=lambda iid: prices[iid] <= 300)
    """

    allowed_items: Optional[Collection[Hashable]] = None
    excluded_items: Collection[Hashable] = field(default_factory=tuple)
    predicate: Optional[Callable[[Hashable], bool]] = None

    def mask(self, id_mapper: IDMapper) -> np.ndarray:
        """
        Boolean mask of items passing every constraint, in item-index order.

        Args:
            id_mapper: IDMapper resolving raw item ids

        Returns:
            bool array of shape [num_items]
        """
        num_items = id_mapper.num_items
        if self.allowed_items is None:
            passing = np.ones(num_items, dtype=bool)
        else:
            passing = np.zeros(num_items, dtype=bool)
            passing[[id_mapper.item_index(i) for i in self.allowed_items]] = True

        excluded = [id_mapper.item_index(i) for i in self.excluded_items]
        passing[excluded] = False

        if self.predicate is not None:
            for item_idx in np.flatnonzero(passing):
                if not self.predicate(id_mapper.item_id(item_idx)):
                    passing[item_idx] = False

        return passing
