import itertools

import numpy as np
import pandas as pd
import pytest
import torch
from torch.utils.data import DataLoader

from recsys_core.data import (
    DataConfig,
    ExampleDataset,
    IDMapper,
    Interaction,
    InteractionGraph,
    TagVocabulary,
    build_indexers,
    build_user_positives,
    holdout_split,
    interactions_from_dataframe,
    make_training_pairs,
)
from recsys_core.errors import UnknownEntity


class TestIDMapper:
    def test_same_mapping_for_every_permutation(self, scenario_interactions):
        expected = build_indexers(scenario_interactions)
        for perm in itertools.permutations(scenario_interactions):
            mapper = build_indexers(list(perm))
            assert mapper.user_to_idx == expected.user_to_idx
            assert mapper.item_to_idx == expected.item_to_idx

    def test_indices_follow_sorted_ids(self, scenario_interactions):
        mapper = build_indexers(scenario_interactions)
        assert [mapper.user_index(u) for u in ("u1", "u2", "u3")] == [0, 1, 2]
        assert [mapper.item_index(i) for i in ("i1", "i2", "i3", "i4")] == [0, 1, 2, 3]
        assert mapper.verify()

    def test_numeric_ids_sort_numerically(self):
        mapper = IDMapper.from_ids([10, 2, 33], [5, 40, 7])
        assert mapper.user_to_idx == {2: 0, 10: 1, 33: 2}
        assert mapper.item_ids() == [5, 7, 40]

    def test_mixed_id_types_are_deterministic(self):
        a = IDMapper.from_ids([1, "a", 2.5], ["x"])
        b = IDMapper.from_ids(["a", 2.5, 1], ["x"])
        assert a.user_to_idx == b.user_to_idx

    def test_unknown_ids_raise(self, scenario_interactions):
        mapper = build_indexers(scenario_interactions)
        with pytest.raises(UnknownEntity) as exc:
            mapper.user_index("nobody")
        assert exc.value.kind == "user"
        assert exc.value.entity_id == "nobody"
        with pytest.raises(UnknownEntity):
            mapper.item_index("i99")
        with pytest.raises(UnknownEntity):
            mapper.item_id(4)

    def test_unknown_entity_is_a_key_error(self, scenario_interactions):
        mapper = build_indexers(scenario_interactions)
        with pytest.raises(KeyError):
            mapper.user_index("nobody")

    def test_from_dataframe(self):
        df = pd.DataFrame({"user_id": [3, 1, 3], "item_id": [9, 8, 8]})
        mapper = IDMapper.from_dataframe(df)
        assert mapper.num_users == 2
        assert mapper.num_items == 2
        assert mapper.user_index(1) == 0


class TestInteractionsFromDataframe:
    def test_defaults_for_missing_columns(self):
        df = pd.DataFrame({"user_id": [1, 2], "item_id": [10, 20]})
        records = interactions_from_dataframe(df)
        assert records == [Interaction(1, 10, 1.0, None), Interaction(2, 20, 1.0, None)]

    def test_positive_threshold_filters_low_ratings(self):
        df = pd.DataFrame(
            {"user_id": [1, 1, 2], "item_id": [10, 11, 10], "rating": [5, 2, 4], "timestamp": [3, 1, 2]}
        )
        records = interactions_from_dataframe(df, positive_threshold=4)
        assert [(r.user_id, r.item_id) for r in records] == [(1, 10), (2, 10)]
        assert records[0].timestamp == 3.0

    def test_missing_rating_counts_as_implicit_positive(self):
        df = pd.DataFrame(
            {"user_id": [1, 1, 2], "item_id": [10, 11, 12], "rating": [5.0, np.nan, 2.0]}
        )
        unfiltered = interactions_from_dataframe(df)
        assert unfiltered[1].rating == 1.0

        kept = interactions_from_dataframe(df, positive_threshold=1.0)
        assert [r.item_id for r in kept] == [10, 11, 12]
        assert kept[1].rating == 1.0

        strict = interactions_from_dataframe(df, positive_threshold=3.0)
        assert [r.item_id for r in strict] == [10]

    def test_missing_required_column(self):
        with pytest.raises(ValueError):
            interactions_from_dataframe(pd.DataFrame({"user_id": [1]}))


class TestInteractionGraph:
    def test_user_items_are_chronological(self):
        records = [
            Interaction("u", "c", timestamp=30),
            Interaction("u", "a", timestamp=10),
            Interaction("u", "b", timestamp=20),
        ]
        graph = InteractionGraph.build(records, IDMapper.from_interactions(records))
        assert graph.user_items[0] == [0, 1, 2]

    def test_arrival_order_without_timestamps(self):
        records = [Interaction("u", "c"), Interaction("u", "a"), Interaction("u", "b")]
        graph = InteractionGraph.build(records, IDMapper.from_interactions(records))
        assert graph.user_items[0] == [2, 0, 1]

    def test_item_users_and_history(self, scenario_graph):
        assert scenario_graph.item_users[1] == frozenset({0, 1})
        assert scenario_graph.history(0) == frozenset({0, 1})
        assert scenario_graph.num_interactions == 5

    def test_history_of_unknown_index_raises(self, scenario_graph):
        with pytest.raises(UnknownEntity):
            scenario_graph.history(7)

    def test_sequence_window_is_shifted_and_left_padded(self, scenario_graph):
        assert scenario_graph.sequence_window(1, 4) == [0, 0, 2, 3]
        assert scenario_graph.sequence_window(1, 1) == [3]

    def test_positive_pairs(self, scenario_graph):
        pairs = scenario_graph.positive_pairs()
        assert pairs.shape == (5, 2)
        assert pairs.tolist() == [[0, 0], [0, 1], [1, 1], [1, 2], [2, 3]]

    def test_covisitation_counts(self, scenario_graph):
        counts = scenario_graph.covisitation_adjacency().toarray()
        assert counts[0, 1] == 1  # i1, i2 share u1
        assert counts[1, 2] == 1  # i2, i3 share u2
        assert counts[0, 2] == 0
        assert np.all(np.diag(counts) == 0)
        assert counts[3].sum() == 0

    def test_bipartite_is_symmetric(self, scenario_graph):
        adjacency = scenario_graph.bipartite_adjacency()
        assert adjacency.shape == (7, 7)
        assert (adjacency != adjacency.T).nnz == 0
        assert adjacency.sum() == 10


class TestTagVocabulary:
    def test_top_k_by_frequency_then_name(self):
        item_tags = {1: ["drama", "crime"], 2: ["drama", "comedy"], 3: ["comedy", "drama"]}
        vocab = TagVocabulary.build(item_tags, max_size=2)
        assert vocab.tags == ["drama", "comedy"]

    def test_item_matrix(self):
        item_tags = {"a": ["x", "y"], "b": ["y"]}
        mapper = IDMapper.from_ids(["u"], ["a", "b", "c"])
        vocab = TagVocabulary.build(item_tags, max_size=5)
        matrix = vocab.item_matrix(mapper, item_tags)
        assert matrix.shape == (3, 2)
        assert matrix.dtype == np.float32
        assert matrix[mapper.item_index("a")].tolist() == [1.0, 1.0]
        assert matrix[mapper.item_index("c")].tolist() == [0.0, 0.0]


class TestTrainingPairs:
    def test_shuffle_is_a_permutation_and_capped(self):
        pairs = np.arange(20).reshape(10, 2)
        shuffled = make_training_pairs(pairs, rng=np.random.default_rng(1))
        assert sorted(map(tuple, shuffled.tolist())) == sorted(map(tuple, pairs.tolist()))
        assert len(make_training_pairs(pairs, max_pairs=4, rng=np.random.default_rng(1))) == 4

    def test_example_dataset_rows(self):
        dataset = ExampleDataset(np.arange(10).reshape(5, 2))
        assert len(dataset) == 5
        assert dataset[2].tolist() == [4, 5]
        assert dataset[2].dtype == torch.long

    def test_example_dataset_rejects_flat_arrays(self):
        with pytest.raises(ValueError):
            ExampleDataset(np.arange(4))

    def test_loader_batches(self):
        loader = DataLoader(
            ExampleDataset(np.arange(10).reshape(5, 2)),
            batch_size=2,
            shuffle=True,
            generator=torch.Generator().manual_seed(0),
        )
        batches = list(loader)
        assert [tuple(b.shape) for b in batches] == [(2, 2), (2, 2), (1, 2)]
        rows = sorted(map(tuple, torch.cat(batches).tolist()))
        assert rows == [(0, 1), (2, 3), (4, 5), (6, 7), (8, 9)]


class TestHoldoutSplit:
    def test_holds_out_latest_events(self):
        records = [
            Interaction("a", "x", timestamp=3),
            Interaction("a", "y", timestamp=1),
            Interaction("a", "z", timestamp=2),
            Interaction("b", "x", timestamp=5),
        ]
        train, held_out = holdout_split(records)
        assert held_out == [records[0]]
        assert train == [records[1], records[2], records[3]]

    def test_keeps_at_least_one_training_event(self):
        records = [Interaction("a", "x"), Interaction("a", "y")]
        train, held_out = holdout_split(records, num_test_per_user=2)
        assert train == records
        assert held_out == []

    def test_only_positives_are_held_out(self):
        records = [
            Interaction("c", "p", rating=5.0, timestamp=1),
            Interaction("c", "q", rating=2.0, timestamp=2),
            Interaction("c", "r", rating=4.0, timestamp=0),
        ]
        train, held_out = holdout_split(records, positive_threshold=4.0)
        assert [r.item_id for r in held_out] == ["p"]
        assert [r.item_id for r in train] == ["q", "r"]

    def test_arrival_order_without_timestamps(self):
        records = [Interaction("a", "x"), Interaction("a", "y"), Interaction("a", "z")]
        _, held_out = holdout_split(records, num_test_per_user=2)
        assert [r.item_id for r in held_out] == ["y", "z"]

    def test_invalid_count(self):
        with pytest.raises(ValueError):
            holdout_split([], num_test_per_user=0)


def test_build_user_positives_skips_unknown_ids(scenario_interactions):
    mapper = build_indexers(scenario_interactions)
    records = [
        Interaction("u1", "i3"),
        Interaction("u1", "i4"),
        Interaction("u9", "i1"),
        Interaction("u2", "i99"),
    ]
    assert build_user_positives(records, mapper) == {0: {2, 3}}


def test_data_config_validation():
    assert DataConfig().tag_vocab_size == 200
    with pytest.raises(ValueError):
        DataConfig(min_sequence_length=1)
    with pytest.raises(ValueError):
        DataConfig(tag_vocab_size=-1)
