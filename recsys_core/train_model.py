"""
CLI entry point for training and querying the retrieval core.

Usage:
    # Train with default hyper-parameters and show recommendations for a user
    python -m recsys_core.train_model --interactions ratings.csv --user 42

    # Train with custom hyper-parameters
    python -m recsys_core.train_model --interactions ratings.csv --loss bpr --epochs 10

    # Train with a YAML config, tags for the deep tower, and PPR blending
    python -m recsys_core.train_model --interactions ratings.csv --items items.csv \
        --config experiments/deep.yaml --use-ppr --user 42

    # Hold out each user's last positive, validate every epoch, report metrics
    python -m recsys_core.train_model --interactions ratings.csv --evaluate --holdout 2

The interactions CSV needs 'user_id' and 'item_id' columns; 'rating' and
'timestamp' are optional. The items CSV needs 'item_id' and 'tags', with
tags separated by '|'.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, List

import pandas as pd

from .api import evaluate, recommend, train
from .config import HyperParameters
from .data import holdout_split, interactions_from_dataframe

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_item_tags(items_path: Path) -> Dict[str, List[str]]:
    """Load item → tags from a CSV with 'item_id' and '|'-separated 'tags'."""
    items = pd.read_csv(items_path)
    return {
        item_id: [t for t in str(tags).split("|") if t.strip()]
        for item_id, tags in zip(items["item_id"].tolist(), items["tags"].fillna("").tolist())
    }


def _parse_user(raw: str, known_ids) -> object:
    """CSV ids are often integers; match the type pandas loaded them as."""
    if raw in known_ids:
        return raw
    try:
        as_int = int(raw)
    except ValueError:
        return raw
    return as_int


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Train Two-Tower retrieval (+ optional SASRec / PPR) and recommend"
    )

    # Inputs
    parser.add_argument(
        "--interactions",
        type=Path,
        required=True,
        help="CSV with user_id, item_id[, rating, timestamp]",
    )
    parser.add_argument(
        "--items",
        type=Path,
        default=None,
        help="CSV with item_id, tags ('|'-separated); enables the deep item tower",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML hyper-parameter file",
    )

    # Training hyperparameters
    parser.add_argument("--embedding-dim", type=int, default=None, help="Embedding dimension (default: 32)")
    parser.add_argument("--loss", choices=["softmax", "bpr"], default=None, help="Loss (default: softmax)")
    parser.add_argument("--batch-size", type=int, default=None, help="Batch size (default: 256)")
    parser.add_argument("--lr", type=float, default=None, help="Learning rate (default: 0.001)")
    parser.add_argument("--epochs", type=int, default=None, help="Number of epochs (default: 5)")
    parser.add_argument("--max-pairs", type=int, default=None, help="Cap on training pairs")
    parser.add_argument("--sequence", action="store_true", help="Also train the sequence scorer")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (default: 42)")

    # Evaluation
    parser.add_argument(
        "--evaluate",
        action="store_true",
        help="Hold out each user's most recent positives and report Recall/Precision/NDCG@K",
    )
    parser.add_argument(
        "--holdout", type=int, default=None, help="Positives held out per user (default: 1)"
    )

    # Recommendation
    parser.add_argument("--use-ppr", action="store_true", help="Blend Personalized PageRank")
    parser.add_argument("--top-k", type=int, default=None, help="Recommendations to show (default: 10)")
    parser.add_argument("--user", type=str, default=None, help="User id to recommend for")

    args = parser.parse_args()

    # Load base config
    if args.config:
        config = HyperParameters.from_yaml(args.config)
        logger.info(f"Loaded config from: {args.config}")
    else:
        config = HyperParameters()

    # Override with CLI arguments
    if args.embedding_dim is not None:
        config.embedding_dim = args.embedding_dim
    if args.loss is not None:
        config.loss_type = args.loss
    if args.batch_size is not None:
        config.batch_size = args.batch_size
    if args.lr is not None:
        config.learning_rate = args.lr
    if args.epochs is not None:
        config.epochs = args.epochs
    if args.max_pairs is not None:
        config.max_training_pairs = args.max_pairs
    if args.sequence:
        config.train_sequence = True
    if args.seed is not None:
        config.seed = args.seed
    if args.use_ppr:
        config.use_ppr = True
    if args.top_k is not None:
        config.top_k = args.top_k
    if args.holdout is not None:
        config.holdout_per_user = args.holdout

    # Load data
    frame = pd.read_csv(args.interactions)
    interactions = interactions_from_dataframe(frame, config.positive_threshold)
    logger.info(f"Loaded {len(interactions):,} interactions from {args.interactions}")
    item_tags = load_item_tags(args.items) if args.items else None

    held_out = None
    if args.evaluate:
        interactions, held_out = holdout_split(
            interactions, config.holdout_per_user, config.positive_threshold
        )

    # Train
    trained = train(interactions, config, item_tags=item_tags, validation=held_out)
    logger.info(f"Final epoch loss: {trained.history.final_loss}")

    # Evaluate
    if held_out is not None:
        results = evaluate(trained, held_out, config=config)
        logger.info("\nHeld-out metrics (model vs. popularity):")
        for metric, value in results["model"].items():
            logger.info(f"  {metric:<14} {value:.4f}  vs. {results['popularity'][metric]:.4f}")

    # Recommend
    if args.user is not None:
        user_id = _parse_user(args.user, trained.id_mapper.user_to_idx)
        items = recommend(user_id, trained, config=config)
        logger.info(f"\nTop {len(items)} for user {user_id}:")
        for item in items:
            logger.info(f"  {item.rank:>3}. {item.item_id}  ({item.score:.4f})")


if __name__ == "__main__":
    main()
