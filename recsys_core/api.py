"""
Public entry points for host applications.

    id_mapper = build_indexers(interactions)
    trained = train(interactions, HyperParameters(epochs=10), on_step=report)
    items = recommend(user_id, trained, constraints=Constraints(excluded_items={7}))
    metrics = evaluate(trained, held_out)
    scores = personalized_pagerank(user_id, trained.graph)
"""

import logging
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Set

import numpy as np
import torch

from .config import HyperParameters
from .data import (
    Interaction,
    InteractionGraph,
    TagVocabulary,
    build_indexers,
    build_interaction_graph,
    build_user_positives,
)
from .errors import NumericalInstability
from .graph import personalized_pagerank
from .model import TwoTowerModel
from .sequence import SASRecScorer, SequenceTrainer, build_sequence_samples
from .serving import Constraints, RecommendedItem, Recommender, TrainedModel
from .training import (
    StepCallback,
    TwoTowerTrainer,
    compute_popularity_baseline,
    compute_ranking_metrics,
)

logger = logging.getLogger(__name__)

__all__ = [
    "build_indexers",
    "evaluate",
    "personalized_pagerank",
    "recommend",
    "train",
]


def train(
    interactions: List[Interaction],
    config: Optional[HyperParameters] = None,
    on_step: Optional[StepCallback] = None,
    item_tags: Optional[Mapping[Hashable, Iterable[str]]] = None,
    previous: Optional[TrainedModel] = None,
    generator: Optional[torch.Generator] = None,
    rng: Optional[np.random.Generator] = None,
    validation: Optional[Sequence[Interaction]] = None,
) -> TrainedModel:
    """
    Index interactions and train the retrieval model (and optional sequence scorer).

    Args:
        interactions: Interaction records in arrival order
        config: HyperParameters (default: HyperParameters())
        on_step: Called after every training step with a StepReport
        item_tags: Raw item id → tags; enables the deep item tower
        previous: A TrainedModel this run replaces; it is released first
        generator: torch random source for negative sampling
        rng: numpy random source for pair and sample subsetting
        validation: Held-out interactions evaluated after epochs with
            Recall@K, Precision@K and NDCG@K (default: no validation)

    Returns:
        TrainedModel owning the new tables

    Raises:
        NumericalInstability: If a loss becomes non-finite. The error's
            trained attribute holds a TrainedModel with the parameters
            restored from the last completed epoch, usable for recommend()
    """
    config = config or HyperParameters()
    data_config = config.data_config()
    if previous is not None:
        previous.release()

    if data_config.positive_threshold is not None:
        interactions = [r for r in interactions if r.rating >= data_config.positive_threshold]
    if not interactions:
        raise ValueError("Cannot train on an empty interaction stream")

    id_mapper = build_indexers(interactions)
    graph = build_interaction_graph(interactions, id_mapper)

    vocabulary, item_features = None, None
    if item_tags and data_config.tag_vocab_size > 0:
        vocabulary = TagVocabulary.build(item_tags, data_config.tag_vocab_size)
        if len(vocabulary):
            item_features = vocabulary.item_matrix(id_mapper, item_tags)
        else:
            logger.warning("No tags found; falling back to the baseline towers")
            vocabulary = None

    model = TwoTowerModel(
        num_users=id_mapper.num_users,
        num_items=id_mapper.num_items,
        config=config.model_config(len(vocabulary) if vocabulary else 0),
        item_features=item_features,
    )

    validation_positives = None
    if validation:
        validation_positives = build_user_positives(validation, id_mapper)

    trained = TrainedModel(
        id_mapper=id_mapper,
        graph=graph,
        model=model,
        tag_vocabulary=vocabulary,
    )
    trainer = TwoTowerTrainer(
        model,
        config.training_config(),
        generator,
        rng,
        validation=validation_positives,
        validation_exclude=_histories(graph, validation_positives),
    )
    try:
        with trainer:
            trainer.fit(graph.positive_pairs(), on_step)
    except NumericalInstability as e:
        e.trained = trained
        raise
    finally:
        trained.history = trainer.history

    if config.train_sequence:
        _train_sequence(trained, config, on_step, generator, rng)

    return trained


def _train_sequence(
    trained: TrainedModel,
    config: HyperParameters,
    on_step: Optional[StepCallback],
    generator: Optional[torch.Generator],
    rng: Optional[np.random.Generator],
) -> None:
    sequence_config = config.sequence_config()
    samples = build_sequence_samples(
        trained.graph,
        max_len=sequence_config.max_len,
        min_length=sequence_config.min_sequence_length,
        max_samples=sequence_config.max_samples,
        rng=rng,
    )
    if len(samples) == 0:
        logger.warning(
            f"No user has {sequence_config.min_sequence_length}+ events; "
            "skipping sequence scorer"
        )
        return

    scorer = SASRecScorer(trained.id_mapper.num_items, sequence_config)
    trainer = SequenceTrainer(scorer, sequence_config, generator, rng)
    try:
        with trainer:
            trainer.fit(samples, on_step)
    except NumericalInstability as e:
        e.trained = trained
        raise
    finally:
        trained.sequence_scorer = scorer
        trained.sequence_history = trainer.history


def recommend(
    user_id: Hashable,
    model: TrainedModel,
    constraints: Optional[Constraints] = None,
    k: Optional[int] = None,
    config: Optional[HyperParameters] = None,
) -> List[RecommendedItem]:
    """
    Top-K recommendations for one user.

    Args:
        user_id: Raw user id
        model: TrainedModel from train()
        constraints: Optional hard filters
        k: Number of items (default: config.top_k)
        config: HyperParameters controlling PPR blending (default: HyperParameters())

    Returns:
        At most k RecommendedItem, best first; history items never appear

    Raises:
        UnknownEntity: If user_id is not indexed
    """
    config = config or HyperParameters()
    recommender_config = config.recommender_config()
    if recommender_config.use_sequence and model.sequence_scorer is None:
        recommender_config.use_sequence = False

    recommender = Recommender.from_trained(
        model,
        config=recommender_config,
        ppr_config=config.ppr_config(),
    )
    return recommender.recommend(user_id, k=k, constraints=constraints)



def _histories(
    graph: InteractionGraph, user_positives: Optional[Dict[int, Set[int]]]
) -> Dict[int, Set[int]]:
    if not user_positives:
        return {}
    return {user_idx: set(graph.history(user_idx)) for user_idx in user_positives}


def evaluate(
    model: TrainedModel,
    held_out: Sequence[Interaction],
    k_values: Optional[List[int]] = None,
    config: Optional[HyperParameters] = None,
) -> Dict[str, Dict[str, float]]:
    """
    Ranking metrics of a trained model on held-out interactions.

    Items in each user's training history are never ranked, as in recommend().
    Held-out records with users or items unknown to the model are skipped.

    Args:
        model: TrainedModel from train()
        held_out: Interactions that were not trained on, e.g. from holdout_split()
        k_values: K values (default: config.eval_k_values)
        config: HyperParameters (default: HyperParameters())

    Returns:
        {"model": metrics, "popularity": metrics}, each with recall@k,
        precision@k and ndcg@k for every k

    Example:
        train_records, held_out = holdout_split(interactions)
        trained = train(train_records, config)
        metrics = evaluate(trained, held_out)
        print(metrics["model"]["ndcg@10"], metrics["popularity"]["ndcg@10"])
    """
    if model.released:
        raise ValueError("Cannot evaluate a released model")
    config = config or HyperParameters()
    k_values = k_values or list(config.eval_k_values)

    user_positives = build_user_positives(held_out, model.id_mapper)
    exclude = _histories(model.graph, user_positives)

    results = {
        "model": compute_ranking_metrics(
            model.model,
            user_positives,
            k_values=k_values,
            exclude=exclude,
            device=model.model.item_table.device,
        ),
        "popularity": compute_popularity_baseline(
            user_positives,
            model.graph.item_popularity(),
            k_values=k_values,
            exclude=exclude,
        ),
    }
    logger.info(f"Evaluated {len(user_positives):,} users at K={k_values}")
    return results
