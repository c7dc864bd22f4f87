"""Core computational modules for frontier construction."""

from mv_frontier.core.batch import BatchOptimizer, OptimizationResult
from mv_frontier.core.frontier import Frontier, FrontierGenerator, FrontierPoint, build_frontier
from mv_frontier.core.returns import AssetSeries, ReturnsMatrix, build_returns_matrix

__all__ = [
    "AssetSeries",
    "ReturnsMatrix",
    "build_returns_matrix",
    "BatchOptimizer",
    "OptimizationResult",
    "Frontier",
    "FrontierGenerator",
    "FrontierPoint",
    "build_frontier",
]
