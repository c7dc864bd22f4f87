"""
Configuration for the Frontier Engine
=====================================

Every tunable of a frontier run lives on a single ``FrontierConfig``
instance that is created at startup and passed down the pipeline.
"""

import datetime as dt
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from mv_frontier.exceptions import InvalidConfigurationError

# Annualization convention (daily data)
TRADING_DAYS_PER_YEAR = 252

# Returns matrix construction
MIN_RETURN_ROWS = 30
MIN_ASSETS = 2
DEFAULT_PRICE_FIELD = 'adjusted'

# Realized risk at or below this makes the Sharpe ratio undefined
RISK_EPSILON = 1e-12

RETURN_KINDS = ('simple', 'log')
ALIGNMENT_POLICIES = ('dates', 'assets')
EXECUTORS = ('process', 'thread')


@dataclass(frozen=True)
class FrontierConfig:
    """
    Parameters of one frontier run.

    Attributes:
        n_points: Number of target returns on the frontier (>= 2)
        min_target_return: Lowest daily target return of the sweep
        parallelism: Worker count for the batch optimizer (<= 0 means auto)
        executor: 'process' or 'thread' worker pool
        unit_timeout: Seconds a batch unit may run before it is recorded
            as a solver error (None disables the deadline)
        max_retries: Extra attempts per problem after a solver error
        trading_days_per_year: Periods used for annualization
        return_kind: 'simple' or 'log' daily returns
        alignment: 'dates' drops incomplete dates, 'assets' drops late starters
        price_field: Price column read from each asset series
        history_cutoff: Assets whose history starts after this date are excluded
        max_start_lag_days: Start lag tolerated under the 'assets' policy
        min_assets: Minimum number of assets in the returns matrix
        min_rows: Minimum number of return rows in the returns matrix
        solver_max_iter: Iteration bound handed to the solver
        solver_ftol: Objective tolerance handed to the solver
        feasibility_tol: Largest constraint residual accepted as solved
        risk_epsilon: Risk at or below which the Sharpe ratio is undefined
    """

    n_points: int = 100
    min_target_return: float = 0.0001
    parallelism: int = 0
    executor: str = 'process'
    unit_timeout: Optional[float] = None
    max_retries: int = 0
    trading_days_per_year: int = TRADING_DAYS_PER_YEAR
    return_kind: str = 'simple'
    alignment: str = 'dates'
    price_field: str = DEFAULT_PRICE_FIELD
    history_cutoff: Optional[dt.date] = None
    max_start_lag_days: int = 30
    min_assets: int = MIN_ASSETS
    min_rows: int = MIN_RETURN_ROWS
    solver_max_iter: int = 500
    solver_ftol: float = 1e-12
    feasibility_tol: float = 1e-6
    risk_epsilon: float = RISK_EPSILON

    def validate(self) -> 'FrontierConfig':
        """
        Check every field and return self.

        Raises:
            InvalidConfigurationError: On the first malformed field
        """
        if self.n_points < 2:
            raise InvalidConfigurationError(
                f"n_points must be at least 2, got {self.n_points}"
            )
        if self.executor not in EXECUTORS:
            raise InvalidConfigurationError(
                f"Unknown executor: {self.executor}. Use one of {EXECUTORS}"
            )
        if self.return_kind not in RETURN_KINDS:
            raise InvalidConfigurationError(
                f"Unknown return kind: {self.return_kind}. Use one of {RETURN_KINDS}"
            )
        if self.alignment not in ALIGNMENT_POLICIES:
            raise InvalidConfigurationError(
                f"Unknown alignment policy: {self.alignment}. "
                f"Use one of {ALIGNMENT_POLICIES}"
            )
        if self.unit_timeout is not None and self.unit_timeout <= 0:
            raise InvalidConfigurationError("unit_timeout must be positive")
        if self.max_retries < 0:
            raise InvalidConfigurationError("max_retries cannot be negative")
        if self.trading_days_per_year <= 0:
            raise InvalidConfigurationError("trading_days_per_year must be positive")
        if self.min_assets < 2:
            raise InvalidConfigurationError("min_assets must be at least 2")
        if self.min_rows < 2:
            raise InvalidConfigurationError("min_rows must be at least 2")
        if self.max_start_lag_days < 0:
            raise InvalidConfigurationError("max_start_lag_days cannot be negative")
        if self.solver_max_iter < 1:
            raise InvalidConfigurationError("solver_max_iter must be at least 1")
        if self.feasibility_tol <= 0 or self.solver_ftol <= 0:
            raise InvalidConfigurationError("Solver tolerances must be positive")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view, used for run logging."""
        return asdict(self)
