"""
Configuration for final top-K recommendation.
"""

from dataclasses import dataclass


@dataclass
class RecommenderConfig:
    """
    Configuration for combining scores into a top-K list.

    Attributes:
        top_k: Default number of recommendations (default: 10)

        use_ppr: Blend Personalized PageRank into the scores (default: False)
        blend_weight: Weight λ in score' = score + λ · ppr(item) (default: 0.15)

        use_sequence: Re-score a candidate pool with the sequence scorer
            (default: False); needs a trained sequence scorer
        candidate_pool_size: Unseen items kept from tower retrieval before
            sequence re-scoring (default: 200)
    """

    top_k: int = 10
    use_ppr: bool = False
    blend_weight: float = 0.15
    use_sequence: bool = False
    candidate_pool_size: int = 200

    def __post_init__(self):
        """Validate configuration."""
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        if self.candidate_pool_size < 1:
            raise ValueError("candidate_pool_size must be >= 1")
