"""Tests for the order-preserving batch optimizer."""

import multiprocessing
import time

import numpy as np
import pytest

from mv_frontier.config import FrontierConfig
from mv_frontier.core.batch import (
    BatchOptimizer,
    normalize_parallelism,
    partition,
    solve_problem,
    starting_points,
)
from mv_frontier.core.problem import Objective, build_frontier_problems, build_problem
from mv_frontier.core.solver import QuadraticSolver, ScipySolver, SolveStatus, SolverOutcome

from conftest import MixSolver, StatusSolver


def _targets(matrix, n):
    mu = matrix.mean_returns
    return np.linspace(mu.min(), mu.max(), n + 2)[1:-1]


class FlakySolver(MixSolver):
    """Fails whenever it is started from equal weights."""

    def solve(self, formulation, x0=None):
        n = formulation.n_vars
        if x0 is None or np.allclose(x0, np.ones(n) / n):
            with self._lock:
                self.calls += 1
            return SolverOutcome(SolveStatus.SOLVER_ERROR, message="did not converge")
        return super().solve(formulation, x0)


class RaisingSolver(MixSolver):
    """Raises for targets above ``limit``."""

    def __init__(self, limit):
        super().__init__()
        self.limit = limit

    def solve(self, formulation, x0=None):
        if formulation.eq_vector.size > 1 and formulation.eq_vector[1] > self.limit:
            raise RuntimeError("backend crashed")
        return super().solve(formulation, x0)


class SlowSolver(MixSolver):
    def __init__(self, seconds):
        super().__init__()
        self.seconds = seconds

    def solve(self, formulation, x0=None):
        time.sleep(self.seconds)
        return super().solve(formulation, x0)


class SleepingSolver(QuadraticSolver):
    """Lock-free, so it can be pickled into worker processes."""

    def __init__(self, seconds):
        self.seconds = seconds

    def solve(self, formulation, x0=None):
        time.sleep(self.seconds)
        return SolverOutcome(SolveStatus.SOLVER_ERROR, message="woke up")


@pytest.mark.parametrize("parallelism", [1, 2, 3, 16])
def test_results_follow_input_order(sample_matrix, parallelism):
    # later targets finish first
    solver = MixSolver(delay=lambda share: 0.02 * (1.0 - share))
    optimizer = BatchOptimizer(sample_matrix, solver, executor="thread")
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 16))

    results = optimizer.run(problems, parallelism=parallelism)

    assert len(results) == len(problems)
    assert [r.problem for r in results] == problems
    assert all(r.solved for r in results)
    assert solver.calls == len(problems)


def test_process_pool_matches_any_parallelism(sample_matrix):
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 6))
    optimizer = BatchOptimizer(sample_matrix, ScipySolver(), executor="process")

    serial = optimizer.run(problems, parallelism=1)
    parallel = optimizer.run(problems, parallelism=3)

    assert [r.problem for r in parallel] == problems
    for a, b in zip(serial, parallel):
        assert a.status is b.status is SolveStatus.SOLVED
        assert np.allclose(a.weights, b.weights, atol=1e-12)


def test_empty_batch_returns_empty_list(sample_matrix, mix_solver):
    optimizer = BatchOptimizer(sample_matrix, mix_solver, executor="thread")
    assert optimizer.run([]) == []
    assert mix_solver.calls == 0


def test_objective_value_is_portfolio_variance(sample_matrix, mix_solver):
    optimizer = BatchOptimizer(sample_matrix, mix_solver, executor="thread")
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 3))

    for r in optimizer.run(problems, parallelism=2):
        w = r.weights_array()
        assert r.objective_value == pytest.approx(w @ sample_matrix.cov_matrix @ w)
        assert abs(w @ sample_matrix.mean_returns - r.problem.target_return) <= 1e-12


def test_infeasible_is_reported_and_not_retried(sample_matrix):
    solver = StatusSolver(SolveStatus.INFEASIBLE)
    optimizer = BatchOptimizer(sample_matrix, solver, executor="thread", max_retries=3)
    problems = build_frontier_problems(sample_matrix.assets, [0.5, 0.6])

    results = optimizer.run(problems, parallelism=2)

    assert [r.status for r in results] == [SolveStatus.INFEASIBLE] * 2
    assert all(r.weights is None and r.attempts == 1 for r in results)
    assert solver.calls == 2


def test_solver_errors_are_retried_from_other_starts(sample_matrix):
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 4))

    no_retry = BatchOptimizer(sample_matrix, FlakySolver(), executor="thread").run(problems, 2)
    with_retry = BatchOptimizer(
        sample_matrix, FlakySolver(), executor="thread", max_retries=1
    ).run(problems, 2)

    assert all(r.status is SolveStatus.SOLVER_ERROR for r in no_retry)
    assert all(r.attempts == 1 for r in no_retry)
    assert all(r.solved and r.attempts == 2 for r in with_retry)


def test_solver_exception_is_contained(sample_matrix):
    targets = _targets(sample_matrix, 6)
    solver = RaisingSolver(limit=targets[3])
    optimizer = BatchOptimizer(sample_matrix, solver, executor="thread")

    results = optimizer.run(build_frontier_problems(sample_matrix.assets, targets), 2)

    assert [r.solved for r in results] == [True] * 4 + [False] * 2
    assert all("RuntimeError" in r.message for r in results[4:])
    assert all(r.status is SolveStatus.SOLVER_ERROR for r in results[4:])


def test_unit_timeout_marks_unit_as_solver_error(sample_matrix):
    optimizer = BatchOptimizer(
        sample_matrix, SlowSolver(1.0), executor="thread", unit_timeout=0.1
    )
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 2))

    started = time.monotonic()
    results = optimizer.run(problems, parallelism=2)

    assert time.monotonic() - started < 0.9
    assert all(r.status is SolveStatus.SOLVER_ERROR for r in results)
    assert all("Timed out" in r.message for r in results)


def test_process_timeout_kills_stuck_workers(sample_matrix):
    optimizer = BatchOptimizer(
        sample_matrix, SleepingSolver(6.0), executor="process", unit_timeout=0.5
    )
    problems = build_frontier_problems(sample_matrix.assets, _targets(sample_matrix, 2))

    started = time.monotonic()
    results = optimizer.run(problems, parallelism=2)

    assert time.monotonic() - started < 4.0
    assert all(r.status is SolveStatus.SOLVER_ERROR for r in results)
    assert all("Timed out" in r.message for r in results)
    assert multiprocessing.active_children() == []


def test_thread_executor_requires_thread_safe_solver(sample_matrix):
    assert BatchOptimizer(sample_matrix, ScipySolver(), executor="thread").executor == "process"
    assert BatchOptimizer(sample_matrix, MixSolver(), executor="thread").executor == "thread"


def test_rejects_bad_arguments(sample_matrix, mix_solver):
    with pytest.raises(ValueError):
        BatchOptimizer(sample_matrix, mix_solver, executor="cluster")
    with pytest.raises(ValueError):
        BatchOptimizer(sample_matrix, mix_solver, max_retries=-1)

    optimizer = BatchOptimizer(sample_matrix, mix_solver, executor="thread")
    wrong = build_problem(("X", "Y"), Objective.MAXIMIZE_MEAN)
    with pytest.raises(ValueError, match="do not match"):
        optimizer.run([wrong])


def test_from_config_carries_solver_settings(sample_matrix):
    config = FrontierConfig(executor="thread", unit_timeout=5.0, max_retries=2,
                            solver_max_iter=50, feasibility_tol=1e-7)
    optimizer = BatchOptimizer.from_config(sample_matrix, config)

    assert isinstance(optimizer.solver, ScipySolver)
    assert optimizer.solver.max_iter == 50
    assert optimizer.solver.feasibility_tol == 1e-7
    assert optimizer.unit_timeout == 5.0
    assert optimizer.max_retries == 2
    # ScipySolver is not thread-safe
    assert optimizer.executor == "process"


def test_normalize_parallelism():
    assert normalize_parallelism(2, 10) == 2
    assert normalize_parallelism(10, 3) == 3
    assert normalize_parallelism(-1, 1) == 1
    assert 1 <= normalize_parallelism(0, 5) <= 5


def test_partition_is_contiguous_and_complete():
    chunks = partition(10, 3)

    assert [len(c) for c in chunks] == [4, 3, 3]
    assert np.concatenate(chunks).tolist() == list(range(10))
    assert len(partition(2, 5)) == 2


def test_starting_points_meet_the_target():
    mean = np.array([0.001, 0.003, 0.002])
    problem = build_problem(("A", "B", "C"), Objective.MINIMIZE_VARIANCE, 0.0025)

    starts = starting_points(problem, mean)

    assert np.allclose(starts[0], 1 / 3)
    assert starts[1] @ mean == pytest.approx(0.0025)
    for s in starts:
        assert s.sum() == pytest.approx(1.0)


def test_solve_problem_with_single_solver(sample_matrix):
    problem = build_problem(sample_matrix.assets, Objective.MAXIMIZE_MEAN)
    result = solve_problem(
        problem, sample_matrix.mean_returns, sample_matrix.cov_matrix, ScipySolver()
    )

    top = int(np.argmax(sample_matrix.mean_returns))
    assert result.solved
    assert result.weights[top] == pytest.approx(1.0, abs=1e-6)
    assert result.objective_value == pytest.approx(sample_matrix.mean_returns[top], abs=1e-8)
