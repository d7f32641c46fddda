"""Spatial layout: overlap solver and chain groups."""

from .chains import ChainGroup, ChainRegistry
from .solver import (
    GeometrySolver,
    SolverResult,
    clamp_rect,
    find_free_position,
    handle_for_point,
    resize_rect,
)

__all__ = [
    "ChainGroup",
    "ChainRegistry",
    "GeometrySolver",
    "SolverResult",
    "clamp_rect",
    "find_free_position",
    "handle_for_point",
    "resize_rect",
]
