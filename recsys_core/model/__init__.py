"""
Model module for Two-Tower candidate retrieval.

This module provides:
- Tower: Embedding tower with an optional hidden layer
- ContentItemTower: Item tower that fuses multi-hot tag features
- TwoTowerModel: Complete model with user and item towers
"""

from .config import BaselineVariant, DeepVariant, ModelConfig, TowerVariant
from .tower import ContentItemTower, Tower
from .two_tower import TwoTowerModel

__all__ = [
    "BaselineVariant",
    "ContentItemTower",
    "DeepVariant",
    "ModelConfig",
    "Tower",
    "TowerVariant",
    "TwoTowerModel",
]
