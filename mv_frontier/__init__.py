"""
Mean-Variance Frontier Engine
=============================

Long-only efficient frontier construction from daily price histories.

Usage:
    from mv_frontier import build_returns_matrix, build_frontier, FrontierConfig
    from mv_frontier.visualization import plot_frontier

Classes:
    FrontierConfig - Run configuration
    ReturnsMatrix - Aligned daily returns
    BatchOptimizer - Parallel, order-preserving problem solver
    Frontier - Finalized frontier points

Functions:
    build_returns_matrix - Price histories to returns matrix
    build_problem - Portfolio problem descriptor
    build_frontier - Full frontier pipeline
    summarize_frontier - Best points, annualized
"""

from mv_frontier.config import TRADING_DAYS_PER_YEAR, FrontierConfig
from mv_frontier.core.batch import BatchOptimizer, OptimizationResult
from mv_frontier.core.frontier import Frontier, FrontierGenerator, FrontierPoint, build_frontier
from mv_frontier.core.metrics import FrontierSummary, summarize_frontier
from mv_frontier.core.problem import Objective, PortfolioProblem, build_problem
from mv_frontier.core.returns import AssetSeries, ReturnsMatrix, build_returns_matrix
from mv_frontier.core.solver import ScipySolver, SolveStatus
from mv_frontier.exceptions import (
    FrontierError,
    FrontierUnsolvableError,
    InsufficientDataError,
    InvalidConfigurationError,
    NoSolvedPointsError,
)

__version__ = "1.0.0"

__all__ = [
    "TRADING_DAYS_PER_YEAR",
    "FrontierConfig",
    "AssetSeries",
    "ReturnsMatrix",
    "build_returns_matrix",
    "Objective",
    "PortfolioProblem",
    "build_problem",
    "ScipySolver",
    "SolveStatus",
    "BatchOptimizer",
    "OptimizationResult",
    "Frontier",
    "FrontierPoint",
    "FrontierGenerator",
    "build_frontier",
    "FrontierSummary",
    "summarize_frontier",
    "FrontierError",
    "FrontierUnsolvableError",
    "InsufficientDataError",
    "InvalidConfigurationError",
    "NoSolvedPointsError",
]
