"""Utility helpers shared across the market maker (logging, metrics, state)."""

from .logger import setup_logger, get_child_logger
from .metrics import Metrics
from .state import StateStore

__all__ = [
    "setup_logger",
    "get_child_logger",
    "Metrics",
    "StateStore",
]
