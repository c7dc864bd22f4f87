"""
Batch Optimizer
===============

Runs many independent portfolio problems through a solver backend on a
fixed-size worker pool and hands the results back in input order.

Execution model:
1. The problem list is split into ``parallelism`` contiguous chunks of
   near-equal size. Each chunk is one unit of work.
2. Every unit is submitted to a ``multiprocessing`` pool (processes by
   default, a thread pool for solvers that declare themselves
   thread-safe).
3. ``run`` blocks until every unit has finished or the unit deadline has
   passed. Results are written back by index, so completion order never
   matters. After a timeout the pool is terminated, which kills worker
   processes that are still solving.

Failures stay local: a problem the solver cannot handle becomes an
``infeasible`` or ``solver_error`` result, a unit that crashes or times
out turns each of its problems into ``solver_error``. Nothing raised by
a single solve aborts the batch.

The returns moments (mean vector, covariance matrix) are the only data
shared between units and are never written after construction.
"""

import logging
import math
import multiprocessing as mp
import os
import time
from dataclasses import dataclass
from multiprocessing.pool import ThreadPool
from typing import List, Optional, Sequence, Tuple

import numpy as np

from mv_frontier.config import EXECUTORS
from mv_frontier.core.problem import Objective, PortfolioProblem, formulate
from mv_frontier.core.returns import ReturnsMatrix
from mv_frontier.core.solver import QuadraticSolver, ScipySolver, SolveStatus, SolverOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimizationResult:
    """
    Result of one portfolio problem.

    Attributes:
        problem: The problem that was solved (by value)
        status: solved, infeasible or solver_error
        weights: Weights in asset order, only when solved
        objective_value: Portfolio variance (minimize_variance) or mean
            return (maximize_mean) of the weights, NaN when not solved
        message: Solver or failure message
        attempts: Number of solve attempts used
    """

    problem: PortfolioProblem
    status: SolveStatus
    weights: Optional[Tuple[float, ...]] = None
    objective_value: float = math.nan
    message: str = ''
    attempts: int = 1

    @property
    def solved(self) -> bool:
        return self.status is SolveStatus.SOLVED

    def weights_array(self) -> Optional[np.ndarray]:
        if self.weights is None:
            return None
        return np.array(self.weights, dtype=float)


def starting_points(problem: PortfolioProblem, mean_returns: np.ndarray) -> List[np.ndarray]:
    """
    Deterministic initial weights, one per solve attempt.

    The first attempt always starts from equal weights. Retries start
    from a point that already satisfies the return constraint: a mix
    of the lowest- and highest-mean assets for target problems, the
    highest-mean asset alone for maximize_mean.
    """
    n = problem.n_assets
    uniform = np.ones(n) / n
    lo, hi = int(np.argmin(mean_returns)), int(np.argmax(mean_returns))

    anchor = np.zeros(n)
    if problem.objective is Objective.MAXIMIZE_MEAN:
        anchor[hi] = 1.0
    else:
        spread = mean_returns[hi] - mean_returns[lo]
        share = 1.0 if spread <= 0 else (problem.target_return - mean_returns[lo]) / spread
        share = min(max(share, 0.0), 1.0)
        anchor[lo] += 1.0 - share
        anchor[hi] += share

    return [uniform, anchor, 0.5 * (uniform + anchor)]


def solve_problem(
    problem: PortfolioProblem,
    mean_returns: np.ndarray,
    cov_matrix: np.ndarray,
    solver: QuadraticSolver,
    max_retries: int = 0
) -> OptimizationResult:
    """
    Solve one problem, retrying solver errors from other starting points.

    Infeasible outcomes are final and never retried.
    """
    formulation = formulate(problem, mean_returns, cov_matrix)
    starts = starting_points(problem, mean_returns)

    attempts = 0
    outcome = None
    for attempt in range(max_retries + 1):
        attempts += 1
        try:
            outcome = solver.solve(formulation, starts[attempt % len(starts)])
        except Exception as e:
            outcome = SolverOutcome(
                SolveStatus.SOLVER_ERROR,
                message=f"{type(e).__name__}: {e}"
            )
        if outcome.status is not SolveStatus.SOLVER_ERROR:
            break
        logger.debug(f"Attempt {attempts} failed for {problem}: {outcome.message}")

    if outcome.status is not SolveStatus.SOLVED:
        return OptimizationResult(
            problem, outcome.status, message=outcome.message, attempts=attempts
        )

    w = np.array(outcome.weights, dtype=float)
    if problem.objective is Objective.MAXIMIZE_MEAN:
        value = float(mean_returns @ w)
    else:
        value = float(w @ cov_matrix @ w)
    return OptimizationResult(
        problem, SolveStatus.SOLVED, weights=outcome.weights,
        objective_value=value, message=outcome.message, attempts=attempts
    )


def _solve_unit(
    mean_returns: np.ndarray,
    cov_matrix: np.ndarray,
    solver: QuadraticSolver,
    problems: Sequence[PortfolioProblem],
    max_retries: int
) -> List[OptimizationResult]:
    # Runs inside a worker; module level so process pools can pickle it.
    return [
        solve_problem(p, mean_returns, cov_matrix, solver, max_retries)
        for p in problems
    ]


def _failed_unit(problems: Sequence[PortfolioProblem], message: str) -> List[OptimizationResult]:
    return [
        OptimizationResult(p, SolveStatus.SOLVER_ERROR, message=message, attempts=0)
        for p in problems
    ]


def normalize_parallelism(parallelism: int, n_problems: int) -> int:
    """
    Clamp a requested worker count to [1, n_problems].

    Values <= 0 mean "auto": one worker per CPU, leaving one CPU free.
    """
    if parallelism is None or parallelism <= 0:
        parallelism = max(1, (os.cpu_count() or 1) - 1)
    return max(1, min(parallelism, n_problems))


def partition(n_problems: int, n_units: int) -> List[np.ndarray]:
    """Contiguous index chunks of near-equal size."""
    return [chunk for chunk in np.array_split(np.arange(n_problems), n_units) if chunk.size]


class BatchOptimizer:
    """
    Order-preserving parallel solver for independent portfolio problems.

    Args:
        returns_matrix: Shared, read-only returns matrix
        solver: Solver backend (default: ScipySolver())
        executor: 'process' or 'thread'
        unit_timeout: Seconds every unit may take, measured from submission;
            None waits indefinitely
        max_retries: Extra attempts per problem after a solver error

    Example:
        >>> optimizer = BatchOptimizer(matrix)
        >>> results = optimizer.run(problems, parallelism=4)
        >>> results[0].problem == problems[0]
        True
    """

    def __init__(
        self,
        returns_matrix: ReturnsMatrix,
        solver: Optional[QuadraticSolver] = None,
        executor: str = 'process',
        unit_timeout: Optional[float] = None,
        max_retries: int = 0
    ):
        if executor not in EXECUTORS:
            raise ValueError(f"Unknown executor: {executor}. Use one of {EXECUTORS}")
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")

        self.returns_matrix = returns_matrix
        self.solver = solver if solver is not None else ScipySolver()
        self.unit_timeout = unit_timeout
        self.max_retries = max_retries

        if executor == 'thread' and not getattr(self.solver, 'thread_safe', False):
            logger.warning(
                f"{type(self.solver).__name__} is not thread-safe; "
                f"using a process pool instead of threads"
            )
            executor = 'process'
        self.executor = executor

    @classmethod
    def from_config(cls, returns_matrix: ReturnsMatrix, config, solver=None) -> 'BatchOptimizer':
        """Create an optimizer (and default solver) from a FrontierConfig."""
        if solver is None:
            solver = ScipySolver(
                max_iter=config.solver_max_iter,
                ftol=config.solver_ftol,
                feasibility_tol=config.feasibility_tol
            )
        return cls(
            returns_matrix,
            solver=solver,
            executor=config.executor,
            unit_timeout=config.unit_timeout,
            max_retries=config.max_retries
        )

    def _check_assets(self, problems: Sequence[PortfolioProblem]):
        expected = self.returns_matrix.assets
        for i, problem in enumerate(problems):
            if problem.assets != expected:
                raise ValueError(
                    f"Problem {i} assets {list(problem.assets)} do not match "
                    f"returns matrix columns {list(expected)}"
                )

    def _make_pool(self, workers: int):
        """Fresh worker pool for one batch."""
        if self.executor == 'thread':
            return ThreadPool(processes=workers)
        return mp.Pool(processes=workers)

    def run(
        self,
        problems: Sequence[PortfolioProblem],
        parallelism: int = 0
    ) -> List[OptimizationResult]:
        """
        Solve every problem and block until all units are done.

        Args:
            problems: Problems to solve
            parallelism: Number of units/workers (normalized, never an error)

        Returns:
            One OptimizationResult per problem, result[i] for problems[i]
        """
        problems = list(problems)
        if not problems:
            return []
        self._check_assets(problems)

        workers = normalize_parallelism(parallelism, len(problems))
        chunks = partition(len(problems), workers)
        results: List[Optional[OptimizationResult]] = [None] * len(problems)

        logger.info(
            f"Solving {len(problems)} problem(s) in {len(chunks)} unit(s) "
            f"on a {self.executor} pool"
        )
        started = time.monotonic()
        deadline = None if self.unit_timeout is None else started + self.unit_timeout
        timed_out = False

        pool = self._make_pool(len(chunks))
        try:
            submitted = [
                (chunk, pool.apply_async(_solve_unit, (
                    self.returns_matrix.mean_returns,
                    self.returns_matrix.cov_matrix,
                    self.solver,
                    [problems[i] for i in chunk],
                    self.max_retries
                )))
                for chunk in chunks
            ]

            for chunk, pending in submitted:
                unit_problems = [problems[i] for i in chunk]
                wait = None if deadline is None else max(0.0, deadline - time.monotonic())
                try:
                    unit_results = pending.get(timeout=wait)
                except mp.TimeoutError:
                    timed_out = True
                    logger.warning(
                        f"Unit of {len(chunk)} problem(s) timed out after "
                        f"{self.unit_timeout}s"
                    )
                    unit_results = _failed_unit(
                        unit_problems, f"Timed out after {self.unit_timeout}s"
                    )
                except Exception as e:
                    logger.error(f"Unit of {len(chunk)} problem(s) failed: {e}")
                    unit_results = _failed_unit(unit_problems, f"{type(e).__name__}: {e}")

                for i, result in zip(chunk, unit_results):
                    results[i] = result
        finally:
            if timed_out:
                # Kills worker processes still running a unit. Thread workers
                # are daemons and are left to finish on their own.
                pool.terminate()
            else:
                pool.close()
                pool.join()

        n_solved = sum(r.solved for r in results)
        logger.info(
            f"Batch finished in {time.monotonic() - started:.2f}s: "
            f"{n_solved}/{len(results)} solved"
        )
        return results
