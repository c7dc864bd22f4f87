"""
Frontier Generator
==================

Traces the long-only efficient frontier:

1. Solve one ``maximize_mean`` problem. Its realized mean return is the
   upper end of the sweep (the fully concentrated portfolio).
2. Space ``n_points`` target returns evenly over
   ``[min_target_return, max_return_value]``, both ends included.
3. Solve one ``minimize_variance`` problem per target on the batch
   optimizer.
4. Attach realized risk, return and Sharpe ratio to every solved point.

The result is a ``Frontier``: an ordered, immutable collection of
``FrontierPoint`` records, one per target, solved or not.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from mv_frontier.config import FrontierConfig
from mv_frontier.core.batch import BatchOptimizer, OptimizationResult
from mv_frontier.core.metrics import apply_metrics, best_by_return, best_by_sharpe
from mv_frontier.core.problem import Objective, build_frontier_problems, build_problem
from mv_frontier.core.returns import ReturnsMatrix
from mv_frontier.core.solver import QuadraticSolver
from mv_frontier.exceptions import FrontierUnsolvableError, InvalidConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrontierPoint:
    """
    One target return on the frontier and what became of it.

    Attributes:
        target_return: Target daily return of the problem
        result: Optimization result for the target
        actual_risk: Realized daily standard deviation (NaN if unsolved)
        actual_return: Realized mean daily return (NaN if unsolved)
        actual_sharpe: actual_return / actual_risk (NaN if unsolved or zero risk)
    """

    target_return: float
    result: OptimizationResult
    actual_risk: float = math.nan
    actual_return: float = math.nan
    actual_sharpe: float = math.nan

    @property
    def solved(self) -> bool:
        return self.result.solved

    @property
    def weights(self) -> Optional[Tuple[float, ...]]:
        return self.result.weights


@dataclass(frozen=True)
class Frontier:
    """
    Finalized frontier, points ordered by ascending target return.

    Attributes:
        points: Frontier points
        assets: Asset identifiers (weight order)
        max_return_value: Realized return of the maximize_mean solution
        return_kind: 'simple' or 'log', as in the returns matrix
    """

    points: Tuple[FrontierPoint, ...]
    assets: Tuple[str, ...]
    max_return_value: float
    return_kind: str = 'simple'

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[FrontierPoint]:
        return iter(self.points)

    def __getitem__(self, index) -> FrontierPoint:
        return self.points[index]

    @property
    def target_returns(self) -> np.ndarray:
        return np.array([p.target_return for p in self.points])

    def solved_points(self) -> List[FrontierPoint]:
        """Solved points in target order."""
        return [p for p in self.points if p.solved]

    def best_by_sharpe(self) -> FrontierPoint:
        """Solved point with the highest finite Sharpe ratio."""
        return best_by_sharpe(self.points)

    def best_by_return(self) -> FrontierPoint:
        """Solved point with the highest realized return."""
        return best_by_return(self.points)

    def to_frame(self) -> pd.DataFrame:
        """
        Flatten the frontier into one row per point.

        Columns: target_return, status, actual_risk, actual_return,
        actual_sharpe, objective_value, then one weight column per asset
        (NaN for unsolved points).
        """
        rows = []
        for p in self.points:
            row = {
                'target_return': p.target_return,
                'status': p.result.status.value,
                'actual_risk': p.actual_risk,
                'actual_return': p.actual_return,
                'actual_sharpe': p.actual_sharpe,
                'objective_value': p.result.objective_value,
            }
            weights = p.weights if p.weights is not None else [math.nan] * len(self.assets)
            row.update(zip(self.assets, weights))
            rows.append(row)
        return pd.DataFrame(rows)


class FrontierGenerator:
    """
    Produces the ordered target-return sequence of a frontier.

    Args:
        returns_matrix: Shared returns matrix
        optimizer: Batch optimizer used for the bounding max-return solve
    """

    def __init__(self, returns_matrix: ReturnsMatrix, optimizer: BatchOptimizer):
        self.returns_matrix = returns_matrix
        self.optimizer = optimizer

    def solve_max_return(self) -> OptimizationResult:
        """Solve the maximize-mean problem that bounds the targets."""
        problem = build_problem(self.returns_matrix.assets, Objective.MAXIMIZE_MEAN)
        return self.optimizer.run([problem], parallelism=1)[0]

    def generate(
        self,
        n_points: int,
        min_target_return: float
    ) -> Tuple[float, np.ndarray]:
        """
        Solve the bounding problem and space the targets.

        Args:
            n_points: Number of targets (>= 2)
            min_target_return: Lower end of the sweep

        Returns:
            Tuple of (max_return_value, target_returns)

        Raises:
            InvalidConfigurationError: n_points < 2 or the range is empty
            FrontierUnsolvableError: The max-return problem was not solved
        """
        if n_points < 2:
            raise InvalidConfigurationError(f"n_points must be at least 2, got {n_points}")
        if not math.isfinite(min_target_return):
            raise InvalidConfigurationError("min_target_return must be finite")

        result = self.solve_max_return()
        if not result.solved:
            raise FrontierUnsolvableError(
                f"Maximum-return problem ended as {result.status.value}: {result.message}"
            )

        # realized mean of the cleaned weights, always attainable
        max_return_value = float(self.returns_matrix.mean_returns @ result.weights_array())
        if min_target_return >= max_return_value:
            raise InvalidConfigurationError(
                f"min_target_return {min_target_return:.6g} is not below the "
                f"maximum achievable return {max_return_value:.6g}"
            )

        targets = np.linspace(min_target_return, max_return_value, n_points)
        logger.info(
            f"Frontier targets: {n_points} points from {min_target_return:.6g} "
            f"to {max_return_value:.6g}"
        )
        return max_return_value, targets


def assemble_frontier(
    returns_matrix: ReturnsMatrix,
    target_returns: Sequence[float],
    results: Sequence[OptimizationResult],
    max_return_value: float,
    risk_epsilon: float
) -> Frontier:
    """Pair targets with results and run the metrics pass."""
    if len(target_returns) != len(results):
        raise ValueError(
            f"{len(target_returns)} targets but {len(results)} results"
        )
    points = [
        FrontierPoint(float(t), r)
        for t, r in zip(target_returns, results)
    ]
    points = apply_metrics(points, returns_matrix, risk_epsilon)
    return Frontier(
        points=tuple(points),
        assets=returns_matrix.assets,
        max_return_value=max_return_value,
        return_kind=returns_matrix.return_kind,
    )


def build_frontier(
    returns_matrix: ReturnsMatrix,
    config: Optional[FrontierConfig] = None,
    solver: Optional[QuadraticSolver] = None
) -> Frontier:
    """
    Run the whole frontier pipeline on a returns matrix.

    Args:
        returns_matrix: Aligned daily returns
        config: Run configuration (default: FrontierConfig())
        solver: Solver backend (default: ScipySolver built from config)

    Returns:
        Frontier with exactly ``config.n_points`` points
    """
    config = (config or FrontierConfig()).validate()

    optimizer = BatchOptimizer.from_config(returns_matrix, config, solver)
    generator = FrontierGenerator(returns_matrix, optimizer)
    max_return_value, targets = generator.generate(config.n_points, config.min_target_return)

    problems = build_frontier_problems(returns_matrix.assets, targets)
    results = optimizer.run(problems, parallelism=config.parallelism)

    frontier = assemble_frontier(
        returns_matrix, targets, results, max_return_value, config.risk_epsilon
    )
    n_solved = len(frontier.solved_points())
    if n_solved < len(frontier):
        logger.warning(f"{len(frontier) - n_solved} of {len(frontier)} frontier points not solved")
    return frontier
