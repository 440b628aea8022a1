import numpy as np
import pytest
from scipy import sparse

from recsys_core.data import IDMapper, InteractionGraph
from recsys_core.errors import UnknownEntity
from recsys_core.graph import (
    GraphRanker,
    PPRConfig,
    personalized_pagerank,
    personalized_pagerank_vector,
    power_iteration,
    row_normalize,
)


def test_row_normalize_keeps_dangling_rows_zero():
    adjacency = sparse.csr_matrix(np.array([[0, 2, 2], [1, 0, 0], [0, 0, 0]]))
    transition = row_normalize(adjacency).toarray()
    assert transition[0].tolist() == [0.0, 0.5, 0.5]
    assert transition[1].tolist() == [1.0, 0.0, 0.0]
    assert transition[2].sum() == 0.0


def test_zero_iterations_returns_restart():
    restart = np.array([0.0, 1.0])
    transition_t = sparse.csr_matrix(np.array([[0.0, 1.0], [1.0, 0.0]]))
    assert power_iteration(transition_t, restart, 0.15, 0).tolist() == [0.0, 1.0]


class TestBipartite:
    def test_scores_are_a_sub_distribution(self, scenario_graph):
        scores = personalized_pagerank("u2", scenario_graph)
        assert scores
        assert all(score > 0 for score in scores.values())
        assert 0 < sum(scores.values()) <= 1.0

    def test_reaches_neighbours_only(self, scenario_graph):
        scores = personalized_pagerank("u2", scenario_graph)
        assert scores["i2"] > 0
        assert scores["i3"] > 0
        assert scores["i1"] > 0  # two hops through u1
        assert "i4" not in scores  # disconnected component

    def test_history_items_rank_above_distant_items(self, scenario_graph):
        scores = personalized_pagerank("u2", scenario_graph)
        assert scores["i2"] > scores["i1"]
        assert scores["i3"] > scores["i1"]

    def test_total_mass_is_conserved_without_dangling_nodes(self, scenario_graph):
        ranker = GraphRanker(scenario_graph)
        restart = np.zeros(scenario_graph.num_users + scenario_graph.num_items)
        restart[1] = 1.0
        rank = power_iteration(ranker.transition_t, restart, 0.15, 20)
        assert rank.sum() == pytest.approx(1.0)

    def test_unknown_user_raises(self, scenario_graph):
        with pytest.raises(UnknownEntity):
            personalized_pagerank("nobody", scenario_graph)


class TestCovisitation:
    def test_restart_spreads_over_history(self, scenario_graph):
        scores = personalized_pagerank("u1", scenario_graph, mode="covisitation")
        assert set(scores) == {"i1", "i2", "i3"}
        assert sum(scores.values()) == pytest.approx(1.0)

    def test_dangling_mass_is_not_redistributed(self, scenario_graph):
        scores = personalized_pagerank("u3", scenario_graph, mode="covisitation", alpha=0.15)
        assert scores == pytest.approx({"i4": 0.15})


def test_user_without_history_gets_empty_result(scenario_interactions):
    id_mapper = IDMapper.from_ids(["u1", "u2", "u3", "u4"], ["i1", "i2", "i3", "i4"])
    graph = InteractionGraph.build(scenario_interactions, id_mapper)

    assert personalized_pagerank("u4", graph) == {}
    assert personalized_pagerank("u4", graph, mode="covisitation") == {}
    assert GraphRanker(graph).rank_vector(3).tolist() == [0.0] * 4


def test_invalid_ppr_config():
    with pytest.raises(ValueError):
        PPRConfig(alpha=0.0)
    with pytest.raises(ValueError):
        PPRConfig(mode="random-walk")
    with pytest.raises(ValueError):
        PPRConfig(num_iterations=-1)


def test_dense_vector_matches_dict(scenario_graph):
    vector = personalized_pagerank_vector("u2", scenario_graph)
    scores = personalized_pagerank("u2", scenario_graph)
    assert vector.shape == (4,)
    assert vector[3] == 0.0
    for item_id, score in scores.items():
        assert vector[scenario_graph.id_mapper.item_index(item_id)] == pytest.approx(score)
