import numpy as np
import pytest
import torch

from recsys_core.data import Interaction, IDMapper, InteractionGraph


@pytest.fixture
def scenario_interactions():
    """3 users, 4 items: u1-{i1,i2}, u2-{i2,i3}, u3-{i4}."""
    return [
        Interaction("u1", "i1"),
        Interaction("u1", "i2"),
        Interaction("u2", "i2"),
        Interaction("u2", "i3"),
        Interaction("u3", "i4"),
    ]


@pytest.fixture
def scenario_graph(scenario_interactions):
    id_mapper = IDMapper.from_interactions(scenario_interactions)
    return InteractionGraph.build(scenario_interactions, id_mapper)


@pytest.fixture
def cluster_interactions():
    """Two disjoint clusters: users 0-9 × items 100-109, users 10-19 × items 200-209."""
    rng = np.random.default_rng(0)
    records = []
    for user in range(20):
        base = 100 if user < 10 else 200
        for item in rng.choice(10, size=6, replace=False):
            records.append(Interaction(user, base + int(item), timestamp=float(len(records))))
    return records


@pytest.fixture
def cluster_graph(cluster_interactions):
    id_mapper = IDMapper.from_interactions(cluster_interactions)
    return InteractionGraph.build(cluster_interactions, id_mapper)


@pytest.fixture
def generator():
    g = torch.Generator()
    g.manual_seed(0)
    return g
