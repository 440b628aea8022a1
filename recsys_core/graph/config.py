"""
Configuration for Personalized PageRank.
"""

from dataclasses import dataclass

PPR_MODES = ("bipartite", "covisitation")


@dataclass
class PPRConfig:
    """
    Configuration for Personalized PageRank power iteration.

    Attributes:
        alpha: Restart probability (default: 0.15)
        num_iterations: Fixed number of power iterations (default: 20)
        mode: Graph to walk on (default: "bipartite")
            "bipartite": user and item nodes, restart at the seed user node
            "covisitation": item nodes weighted by shared users, restart
                spread uniformly over the seed user's items
    """

    alpha: float = 0.15
    num_iterations: int = 20
    mode: str = "bipartite"

    def __post_init__(self):
        """Validate configuration."""
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        if self.num_iterations < 0:
            raise ValueError("num_iterations must be >= 0")
        if self.mode not in PPR_MODES:
            raise ValueError(f"mode must be one of {PPR_MODES}, got {self.mode!r}")
