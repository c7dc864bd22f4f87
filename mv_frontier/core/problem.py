"""
Portfolio Problems
==================

Builds the immutable problem descriptors handed to the batch optimizer
and turns them into the solver-facing quadratic program.

Every problem is long-only and fully invested:

    0 <= w_i <= 1          (no shorting, no leverage)
    sum(w) == 1

``minimize_variance`` problems add the target-return constraint

    mu^T w == target_return

and minimize w^T Sigma w. ``maximize_mean`` problems carry no target and
maximize mu^T w, which lands on the fully concentrated top-return asset.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from mv_frontier.exceptions import InvalidConfigurationError


class Objective(str, Enum):
    """What a portfolio problem optimizes."""

    MINIMIZE_VARIANCE = 'minimize_variance'
    MAXIMIZE_MEAN = 'maximize_mean'


@dataclass(frozen=True)
class PortfolioProblem:
    """
    One constrained portfolio optimization, by value.

    Attributes:
        assets: Asset identifiers in returns-matrix column order
        objective: Objective kind
        target_return: Required mean return (minimize_variance only)
    """

    assets: Tuple[str, ...]
    objective: Objective
    target_return: Optional[float] = None

    @property
    def n_assets(self) -> int:
        return len(self.assets)


@dataclass(frozen=True)
class ProblemFormulation:
    """
    Quadratic program in the form any QP/LP backend accepts.

        minimize    w^T P w + q^T w
        subject to  A_eq w == b_eq
                    lower <= w <= upper
    """

    quadratic: np.ndarray
    linear: np.ndarray
    eq_matrix: np.ndarray
    eq_vector: np.ndarray
    bounds: Tuple[Tuple[float, float], ...]

    @property
    def n_vars(self) -> int:
        return self.linear.shape[0]

    def objective(self, w: np.ndarray) -> float:
        """w'Pw + q'w"""
        return float(w @ self.quadratic @ w + self.linear @ w)

    def gradient(self, w: np.ndarray) -> np.ndarray:
        """Analytic gradient of ``objective``."""
        return 2.0 * (self.quadratic @ w) + self.linear

    def residual(self, w: np.ndarray) -> float:
        """Largest violation of the equality and bound constraints."""
        eq = np.max(np.abs(self.eq_matrix @ w - self.eq_vector)) if self.eq_vector.size else 0.0
        lower = np.array([b[0] for b in self.bounds])
        upper = np.array([b[1] for b in self.bounds])
        bound = max(np.max(lower - w), np.max(w - upper), 0.0)
        return float(max(eq, bound))


def build_problem(
    assets: Sequence[str],
    objective,
    target_return: Optional[float] = None
) -> PortfolioProblem:
    """
    Create a portfolio problem descriptor.

    Args:
        assets: Asset identifiers (must equal the returns-matrix columns)
        objective: Objective or its string value
        target_return: Required for minimize_variance, forbidden for maximize_mean

    Returns:
        PortfolioProblem

    Raises:
        InvalidConfigurationError: Bad objective, target or asset list
    """
    try:
        objective = Objective(objective)
    except ValueError:
        raise InvalidConfigurationError(f"Unknown objective: {objective}") from None

    assets = tuple(str(a) for a in assets)
    if not assets:
        raise InvalidConfigurationError("A problem needs at least one asset")
    if len(set(assets)) != len(assets):
        raise InvalidConfigurationError("Asset identifiers must be unique")

    if objective is Objective.MAXIMIZE_MEAN:
        if target_return is not None:
            raise InvalidConfigurationError("maximize_mean takes no target return")
        return PortfolioProblem(assets, objective)

    if target_return is None or not math.isfinite(target_return):
        raise InvalidConfigurationError(
            f"minimize_variance needs a finite target return, got {target_return}"
        )
    return PortfolioProblem(assets, objective, float(target_return))


def build_frontier_problems(
    assets: Sequence[str],
    target_returns: Sequence[float]
) -> List[PortfolioProblem]:
    """One minimize_variance problem per target, in target order."""
    return [
        build_problem(assets, Objective.MINIMIZE_VARIANCE, t)
        for t in target_returns
    ]


def formulate(
    problem: PortfolioProblem,
    mean_returns: np.ndarray,
    cov_matrix: np.ndarray
) -> ProblemFormulation:
    """
    Translate a problem into matrices for the solver backend.

    Args:
        problem: Problem descriptor
        mean_returns: Mean return per asset (problem asset order)
        cov_matrix: Covariance matrix (problem asset order)

    Returns:
        ProblemFormulation
    """
    n = problem.n_assets
    mean_returns = np.asarray(mean_returns, dtype=float)
    cov_matrix = np.asarray(cov_matrix, dtype=float)
    if mean_returns.shape != (n,) or cov_matrix.shape != (n, n):
        raise ValueError(
            f"Moments of shape {mean_returns.shape}/{cov_matrix.shape} do not "
            f"match {n} assets"
        )

    ones = np.ones(n)
    if problem.objective is Objective.MAXIMIZE_MEAN:
        quadratic = np.zeros((n, n))
        linear = -mean_returns
        eq_matrix = ones.reshape(1, n)
        eq_vector = np.array([1.0])
    else:
        quadratic = cov_matrix
        linear = np.zeros(n)
        eq_matrix = np.vstack([ones, mean_returns])
        eq_vector = np.array([1.0, problem.target_return])

    return ProblemFormulation(
        quadratic=quadratic,
        linear=linear,
        eq_matrix=eq_matrix,
        eq_vector=eq_vector,
        bounds=tuple((0.0, 1.0) for _ in range(n)),
    )
