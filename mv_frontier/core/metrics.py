"""
Frontier Metrics
================

Realized statistics for solved frontier points and best-point selection.

Risk and return are recomputed from the realized daily portfolio series
``R @ w`` rather than taken from the solver's own variance estimate:

    actual_return = mean(R @ w)
    actual_risk   = std(R @ w, ddof=1)
    actual_sharpe = actual_return / actual_risk      (risk-free rate = 0)

The Sharpe ratio is NaN when the risk is at or below ``risk_epsilon``,
so zero-variance portfolios never win the best-by-Sharpe selection.

Annualization (``periods`` = trading days per year):

    simple returns: (1 + r) ** periods - 1
    log returns:    exp(r * periods) - 1
    risk:           s * sqrt(periods)
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from mv_frontier.config import RISK_EPSILON, TRADING_DAYS_PER_YEAR
from mv_frontier.core.returns import ReturnsMatrix
from mv_frontier.exceptions import NoSolvedPointsError

if TYPE_CHECKING:
    from mv_frontier.core.frontier import Frontier, FrontierPoint

logger = logging.getLogger(__name__)


def sharpe_ratio(mean_return: float, risk: float, risk_epsilon: float = RISK_EPSILON) -> float:
    """Unannualized Sharpe ratio, NaN when risk is zero or undefined."""
    if not math.isfinite(risk) or risk <= risk_epsilon:
        return math.nan
    return mean_return / risk


def point_metrics(
    returns_matrix: ReturnsMatrix,
    weights: Sequence[float],
    risk_epsilon: float = RISK_EPSILON
) -> Tuple[float, float, float]:
    """
    Realized (risk, return, Sharpe) of a weight vector.

    Args:
        returns_matrix: Daily returns the weights apply to
        weights: Weights in returns-matrix column order
        risk_epsilon: Risk at or below which the Sharpe ratio is NaN

    Returns:
        Tuple of (actual_risk, actual_return, actual_sharpe)
    """
    series = returns_matrix.portfolio_returns(np.asarray(weights, dtype=float))
    actual_return = float(np.mean(series))
    actual_risk = float(np.std(series, ddof=1)) if series.size > 1 else math.nan
    return actual_risk, actual_return, sharpe_ratio(actual_return, actual_risk, risk_epsilon)


def apply_metrics(
    points: Iterable['FrontierPoint'],
    returns_matrix: ReturnsMatrix,
    risk_epsilon: float = RISK_EPSILON
) -> List['FrontierPoint']:
    """New points with realized metrics; unsolved points stay NaN."""
    updated = []
    for point in points:
        if not point.solved:
            updated.append(replace(
                point, actual_risk=math.nan, actual_return=math.nan, actual_sharpe=math.nan
            ))
            continue
        risk, ret, sharpe = point_metrics(returns_matrix, point.result.weights, risk_epsilon)
        updated.append(replace(
            point, actual_risk=risk, actual_return=ret, actual_sharpe=sharpe
        ))
    return updated


def _best(points: Iterable['FrontierPoint'], field: str) -> 'FrontierPoint':
    candidates = [
        p for p in points
        if p.solved and math.isfinite(getattr(p, field))
    ]
    if not candidates:
        raise NoSolvedPointsError(f"No solved point has a finite {field}")
    # highest value first, lowest target return breaks ties
    return min(candidates, key=lambda p: (-getattr(p, field), p.target_return))


def best_by_sharpe(points: Iterable['FrontierPoint']) -> 'FrontierPoint':
    """Solved point with the highest finite Sharpe ratio."""
    return _best(points, 'actual_sharpe')


def best_by_return(points: Iterable['FrontierPoint']) -> 'FrontierPoint':
    """Solved point with the highest realized mean return."""
    return _best(points, 'actual_return')


def annualize_return(
    daily_return: float,
    periods: int = TRADING_DAYS_PER_YEAR,
    return_kind: str = 'simple'
) -> float:
    """Compound a per-period return over ``periods`` periods."""
    if return_kind == 'log':
        return math.exp(daily_return * periods) - 1
    return (1 + daily_return) ** periods - 1


def annualize_risk(daily_risk: float, periods: int = TRADING_DAYS_PER_YEAR) -> float:
    """Scale a per-period standard deviation by sqrt(periods)."""
    return daily_risk * math.sqrt(periods)


@dataclass(frozen=True)
class AnnualizedPoint:
    """A frontier point with its annualized return and risk."""

    point: 'FrontierPoint'
    annual_return: float
    annual_risk: float

    @property
    def weights(self) -> Tuple[float, ...]:
        return self.point.result.weights


def annualize_point(
    point: 'FrontierPoint',
    periods: int = TRADING_DAYS_PER_YEAR,
    return_kind: str = 'simple'
) -> AnnualizedPoint:
    """Wrap a point with its annualized realized return and risk."""
    return AnnualizedPoint(
        point=point,
        annual_return=annualize_return(point.actual_return, periods, return_kind),
        annual_risk=annualize_risk(point.actual_risk, periods),
    )


@dataclass(frozen=True)
class FrontierSummary:
    """
    Best points of a finalized frontier, annualized.

    ``best_sharpe`` is None when every solved point has zero risk, since
    no Sharpe ratio is defined then. ``best_return`` is always set.
    """

    best_sharpe: Optional[AnnualizedPoint]
    best_return: AnnualizedPoint
    n_points: int
    n_solved: int


def summarize_frontier(
    frontier: 'Frontier',
    periods: int = TRADING_DAYS_PER_YEAR
) -> FrontierSummary:
    """
    Select and annualize the best-by-Sharpe and best-by-return points.

    The two selections are independent: a frontier of zero-risk points
    still has a best-by-return point.

    Raises:
        NoSolvedPointsError: No solved point has a finite realized return
    """
    points = list(frontier)
    best_return = annualize_point(best_by_return(points), periods, frontier.return_kind)
    try:
        best_sharpe = annualize_point(best_by_sharpe(points), periods, frontier.return_kind)
    except NoSolvedPointsError:
        logger.warning("No solved point has a defined Sharpe ratio; best-by-Sharpe is unset")
        best_sharpe = None
    return FrontierSummary(
        best_sharpe=best_sharpe,
        best_return=best_return,
        n_points=len(points),
        n_solved=sum(p.solved for p in points),
    )
