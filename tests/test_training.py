import math

import numpy as np
import pytest
import torch

from recsys_core.errors import DegenerateBatch, NumericalInstability, StopTraining
from recsys_core.model import ModelConfig, TwoTowerModel
from recsys_core.training import (
    ExperimentTracker,
    TrainingConfig,
    TwoTowerTrainer,
    bpr_loss,
    compute_popularity_baseline,
    compute_ranking_metrics,
    in_batch_softmax_loss,
    sample_negatives,
    sampled_bpr_loss,
)


def _model_for(graph, dim=16):
    return TwoTowerModel(graph.num_users, graph.num_items, ModelConfig(embedding_dim=dim))


class TestLosses:
    def test_in_batch_softmax_uniform_logits(self):
        user_emb = torch.zeros(4, 8)
        item_emb = torch.zeros(4, 8)
        loss = in_batch_softmax_loss(user_emb, item_emb)
        assert loss.item() == pytest.approx(math.log(4), rel=1e-5)

    def test_in_batch_softmax_rejects_single_row(self):
        with pytest.raises(DegenerateBatch) as exc:
            in_batch_softmax_loss(torch.randn(1, 4), torch.randn(1, 4))
        assert exc.value.batch_size == 1

    def test_bpr_at_equal_scores(self):
        u = torch.randn(3, 5)
        item = torch.randn(3, 5)
        assert bpr_loss(u, item, item).item() == pytest.approx(math.log(2), rel=1e-5)

    def test_sampled_bpr_shapes(self):
        loss = sampled_bpr_loss(torch.randn(4, 6), torch.randn(4, 6), torch.randn(4, 3, 6))
        assert loss.dim() == 0
        assert torch.isfinite(loss)


class TestNegativeSampling:
    def test_never_returns_the_positive(self, generator):
        positives = torch.randint(0, 3, (500,), generator=generator)
        negatives = sample_negatives(positives, 3, generator)
        assert negatives.shape == (500,)
        assert not torch.any(negatives == positives)
        assert negatives.min() >= 0 and negatives.max() < 3

    def test_multiple_negatives_respect_low_bound(self, generator):
        positives = torch.tensor([1, 2, 3, 4])
        negatives = sample_negatives(positives, 5, generator, num_negatives=7, low=1)
        assert negatives.shape == (4, 7)
        assert negatives.min() >= 1
        assert not torch.any(negatives == positives.view(-1, 1))

    def test_deterministic_with_seeded_generator(self):
        positives = torch.arange(10)
        a = sample_negatives(positives, 50, torch.Generator().manual_seed(3))
        b = sample_negatives(positives, 50, torch.Generator().manual_seed(3))
        assert torch.equal(a, b)

    def test_needs_two_candidates(self):
        with pytest.raises(ValueError):
            sample_negatives(torch.tensor([0]), 1)


class TestTwoTowerTrainer:
    def test_softmax_loss_decreases(self, cluster_graph):
        config = TrainingConfig(
            embedding_dim=16, batch_size=16, num_epochs=8, learning_rate=0.02, seed=0
        )
        with TwoTowerTrainer(_model_for(cluster_graph), config) as trainer:
            history = trainer.fit(cluster_graph.positive_pairs())

        losses = history.epoch_losses
        assert len(losses) == 8
        assert losses[4] < losses[0]
        assert losses[-1] < losses[0]

    def test_learns_cluster_structure(self, cluster_graph):
        config = TrainingConfig(
            embedding_dim=16, batch_size=16, num_epochs=20, learning_rate=0.05, seed=0
        )
        model = _model_for(cluster_graph)
        trainer = TwoTowerTrainer(model, config)
        trainer.fit(cluster_graph.positive_pairs())

        mapper = cluster_graph.id_mapper
        first = [mapper.item_index(i) for i in range(100, 110) if mapper.has_item(i)]
        second = [mapper.item_index(i) for i in range(200, 210) if mapper.has_item(i)]
        scores = model.score_all_items(torch.tensor([mapper.user_index(0)]))[0]
        assert scores[first].mean() > scores[second].mean()

    def test_bpr_runs(self, cluster_graph, generator):
        config = TrainingConfig(
            embedding_dim=8, loss_fn="bpr", batch_size=32, num_epochs=2, seed=0
        )
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 8), config, generator=generator)
        history = trainer.fit(cluster_graph.positive_pairs())
        assert history.num_steps == 2 * math.ceil(120 / 32)
        assert all(math.isfinite(loss) for loss in history.step_losses)

    def test_single_row_batch_is_skipped(self, scenario_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=2, num_epochs=2)
        trainer = TwoTowerTrainer(_model_for(scenario_graph, 4), config)
        history = trainer.fit(scenario_graph.positive_pairs())
        assert history.skipped_batches == 2
        assert history.num_steps == 4
        assert len(history.epoch_losses) == 2

    def test_max_training_pairs(self, cluster_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=10, num_epochs=1, max_training_pairs=30)
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 4), config)
        assert trainer.fit(cluster_graph.positive_pairs()).num_steps == 3

    def test_on_step_reports_progress(self, cluster_graph):
        reports = []
        config = TrainingConfig(embedding_dim=4, batch_size=40, num_epochs=2)
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 4), config)
        trainer.fit(cluster_graph.positive_pairs(), on_step=reports.append)

        assert [r.global_step for r in reports] == list(range(1, 7))
        assert [(r.epoch, r.step) for r in reports[:3]] == [(0, 1), (0, 2), (0, 3)]
        assert reports[0].steps_per_epoch == 3

    def test_stop_training_from_callback(self, cluster_graph):
        def stop_after_two(report):
            if report.global_step == 2:
                raise StopTraining()

        config = TrainingConfig(embedding_dim=4, batch_size=10, num_epochs=5)
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 4), config)
        history = trainer.fit(cluster_graph.positive_pairs(), on_step=stop_after_two)

        assert history.stopped_early
        assert history.num_steps == 2
        assert trainer.epochs_completed == 0

    def test_non_finite_loss_restores_last_epoch(self, cluster_graph):
        model = _model_for(cluster_graph, 8)

        def poison(report):
            if report.epoch == 1 and report.step == 1:
                with torch.no_grad():
                    model.user_table.fill_(float("nan"))

        config = TrainingConfig(embedding_dim=8, batch_size=20, num_epochs=3)
        trainer = TwoTowerTrainer(model, config)
        with pytest.raises(NumericalInstability) as exc:
            trainer.fit(cluster_graph.positive_pairs(), on_step=poison)

        assert exc.value.restored_epoch == 1
        assert exc.value.step == 8
        assert torch.isfinite(model.user_table).all()

    def test_each_epoch_visits_every_pair_once(self, cluster_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=16, num_epochs=2, seed=0)
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 4), config)
        batches = []
        compute_loss = trainer._compute_loss

        def recording(batch):
            batches.append(batch)
            return compute_loss(batch)

        trainer._compute_loss = recording
        trainer.fit(cluster_graph.positive_pairs())

        assert len(batches) == 16
        assert all(batch.dtype == torch.long for batch in batches)
        first, second = torch.cat(batches[:8]), torch.cat(batches[8:])
        expected = sorted(map(tuple, cluster_graph.positive_pairs().tolist()))
        assert sorted(map(tuple, first.tolist())) == expected
        assert sorted(map(tuple, second.tolist())) == expected
        assert not torch.equal(first, second)

    def test_empty_examples_are_rejected(self, scenario_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=2, num_epochs=1)
        trainer = TwoTowerTrainer(_model_for(scenario_graph, 4), config)
        with pytest.raises(ValueError):
            trainer.fit(np.empty((0, 2), dtype=np.int64))

    def test_validation_runs_on_schedule(self, cluster_graph):
        config = TrainingConfig(
            embedding_dim=4, batch_size=16, num_epochs=4, eval_every_n_epochs=3, eval_k_values=[5]
        )
        trainer = TwoTowerTrainer(
            _model_for(cluster_graph, 4),
            config,
            validation={0: {1}},
            validation_exclude={0: set(cluster_graph.history(0))},
        )
        logged = []
        trainer.tracker.log_metric = lambda name, value, step=None: logged.append((name, step))
        history = trainer.fit(cluster_graph.positive_pairs())

        assert [epoch for epoch, _ in history.validation_metrics] == [0, 2, 3]
        assert set(history.validation_metrics[0][1]) == {"recall@5", "precision@5", "ndcg@5"}
        assert ("val_ndcg_at_5", 2) in logged
        assert ("val_recall_at_5", 1) not in logged

    def test_no_validation_without_positives(self, cluster_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=40, num_epochs=1)
        trainer = TwoTowerTrainer(_model_for(cluster_graph, 4), config)
        assert trainer.fit(cluster_graph.positive_pairs()).validation_metrics == []

    def test_release(self, scenario_graph):
        config = TrainingConfig(embedding_dim=4, batch_size=2, num_epochs=1)
        with TwoTowerTrainer(_model_for(scenario_graph, 4), config) as trainer:
            trainer.fit(scenario_graph.positive_pairs())
        assert trainer.released
        with pytest.raises(RuntimeError):
            trainer.fit(scenario_graph.positive_pairs())

    def test_seeded_runs_are_reproducible(self, cluster_graph):
        def run():
            torch.manual_seed(0)
            config = TrainingConfig(embedding_dim=4, batch_size=16, num_epochs=2, seed=5)
            return TwoTowerTrainer(_model_for(cluster_graph, 4), config).fit(
                cluster_graph.positive_pairs()
            )

        assert run().step_losses == run().step_losses


def test_invalid_training_config():
    with pytest.raises(ValueError):
        TrainingConfig(loss_fn="hinge")
    with pytest.raises(ValueError):
        TrainingConfig(batch_size=0)
    with pytest.raises(ValueError):
        TrainingConfig(eval_k_values=[0])
    with pytest.raises(ValueError):
        TrainingConfig(eval_every_n_epochs=0)


class TestMetrics:
    def test_ranking_metrics_with_exclusion(self, scenario_graph):
        model = TwoTowerModel(3, 4, ModelConfig(embedding_dim=2))
        with torch.no_grad():
            model.user_table.copy_(torch.tensor([[1.0, 0.0]] * 3))
            model.item_table.copy_(torch.tensor([[4.0, 0.0], [3.0, 0.0], [2.0, 0.0], [1.0, 0.0]]))

        metrics = compute_ranking_metrics(
            model, {0: {3}, 1: {2}}, k_values=[1, 2], exclude={0: {0, 1}, 1: {0}}
        )
        # user 0 ranks [2, 3]; user 1 ranks [1, 2, 3]; both hit at rank 2
        assert metrics == pytest.approx(
            {
                "recall@1": 0.0,
                "recall@2": 1.0,
                "precision@1": 0.0,
                "precision@2": 0.5,
                "ndcg@1": 0.0,
                "ndcg@2": 1.0 / math.log2(3),
            }
        )

    def test_users_without_positives_are_skipped(self):
        model = TwoTowerModel(2, 3, ModelConfig(embedding_dim=2))
        assert compute_ranking_metrics(model, {0: set()}, k_values=[1]) == {
            "recall@1": 0.0,
            "precision@1": 0.0,
            "ndcg@1": 0.0,
        }

    def test_rejects_non_positive_k(self):
        model = TwoTowerModel(2, 3, ModelConfig(embedding_dim=2))
        with pytest.raises(ValueError):
            compute_ranking_metrics(model, {0: {1}}, k_values=[0])

    def test_popularity_baseline(self, scenario_graph):
        popularity = scenario_graph.item_popularity()
        assert popularity.tolist() == [1, 2, 1, 1]
        metrics = compute_popularity_baseline({2: {0}}, popularity, k_values=[1, 2], exclude={2: {3}})
        assert metrics["recall@1"] == 0.0
        assert metrics["recall@2"] == 1.0

    def test_ndcg_with_several_positives(self):
        # popularity order is [0, 1, 2, 3, 4]; hits at ranks 1 and 3
        metrics = compute_popularity_baseline({0: {0, 2}}, np.array([5, 4, 3, 2, 1]), k_values=[3])
        ideal = 1.0 + 1.0 / math.log2(3)
        assert metrics["recall@3"] == pytest.approx(1.0)
        assert metrics["precision@3"] == pytest.approx(2 / 3)
        assert metrics["ndcg@3"] == pytest.approx(1.5 / ideal)


class TestExperimentTracker:
    def test_disabled_tracker_is_a_no_op(self, monkeypatch):
        import mlflow

        def fail(*args, **kwargs):
            raise AssertionError("mlflow must not be called")

        monkeypatch.setattr(mlflow, "start_run", fail)
        monkeypatch.setattr(mlflow, "log_metric", fail)
        tracker = ExperimentTracker(None, "exp")
        assert not tracker.enabled
        tracker.start("run", {"a": 1})
        tracker.log_metric("loss", 0.5, step=0)
        tracker.end()

    def test_enabled_tracker_logs_run(self, monkeypatch):
        import mlflow

        calls = []
        monkeypatch.setattr(mlflow, "set_tracking_uri", lambda uri: calls.append(("uri", uri)))
        monkeypatch.setattr(mlflow, "set_experiment", lambda name: calls.append(("exp", name)))
        monkeypatch.setattr(mlflow, "start_run", lambda run_name: calls.append(("start", run_name)))
        monkeypatch.setattr(mlflow, "log_params", lambda params: calls.append(("params", params)))
        monkeypatch.setattr(
            mlflow, "log_metric", lambda name, value, step=None: calls.append((name, value, step))
        )
        monkeypatch.setattr(mlflow, "end_run", lambda status: calls.append(("end", status)))

        tracker = ExperimentTracker("file:///tmp/mlruns", "exp")
        tracker.start("run", {"a": 1})
        tracker.log_metric("loss", 0.5, step=2)
        tracker.end()

        assert calls == [
            ("uri", "file:///tmp/mlruns"),
            ("exp", "exp"),
            ("start", "run"),
            ("params", {"a": 1}),
            ("loss", 0.5, 2),
            ("end", "FINISHED"),
        ]
