"""Tests for problem descriptors and their QP formulation."""

import numpy as np
import pytest

from mv_frontier.core.problem import (
    Objective,
    build_frontier_problems,
    build_problem,
    formulate,
)
from mv_frontier.exceptions import InvalidConfigurationError

ASSETS = ("A", "B", "C")
MEAN = np.array([0.001, 0.002, 0.003])
COV = np.diag([0.01, 0.02, 0.03])


def test_minimize_variance_problem():
    problem = build_problem(list(ASSETS), "minimize_variance", 0.002)

    assert problem.objective is Objective.MINIMIZE_VARIANCE
    assert problem.assets == ASSETS
    assert problem.target_return == 0.002
    assert problem.n_assets == 3


def test_maximize_mean_problem_has_no_target():
    problem = build_problem(ASSETS, Objective.MAXIMIZE_MEAN)
    assert problem.target_return is None

    with pytest.raises(InvalidConfigurationError):
        build_problem(ASSETS, Objective.MAXIMIZE_MEAN, 0.001)


@pytest.mark.parametrize("target", [None, float("nan"), float("inf")])
def test_minimize_variance_needs_finite_target(target):
    with pytest.raises(InvalidConfigurationError):
        build_problem(ASSETS, Objective.MINIMIZE_VARIANCE, target)


def test_bad_objective_and_assets():
    with pytest.raises(InvalidConfigurationError):
        build_problem(ASSETS, "maximize_sharpe")
    with pytest.raises(InvalidConfigurationError):
        build_problem([], Objective.MAXIMIZE_MEAN)
    with pytest.raises(InvalidConfigurationError):
        build_problem(["A", "A"], Objective.MAXIMIZE_MEAN)


def test_problems_compare_by_value():
    assert build_problem(ASSETS, "minimize_variance", 0.002) == \
        build_problem(ASSETS, Objective.MINIMIZE_VARIANCE, 0.002)


def test_frontier_problems_keep_target_order():
    targets = [0.003, 0.001, 0.002]
    problems = build_frontier_problems(ASSETS, targets)
    assert [p.target_return for p in problems] == targets
    assert all(p.objective is Objective.MINIMIZE_VARIANCE for p in problems)


def test_formulate_minimize_variance():
    f = formulate(build_problem(ASSETS, "minimize_variance", 0.002), MEAN, COV)

    assert f.n_vars == 3
    assert np.array_equal(f.quadratic, COV)
    assert np.array_equal(f.linear, np.zeros(3))
    assert np.array_equal(f.eq_matrix, np.vstack([np.ones(3), MEAN]))
    assert np.array_equal(f.eq_vector, [1.0, 0.002])
    assert f.bounds == ((0.0, 1.0),) * 3

    w = np.array([0.5, 0.0, 0.5])
    assert f.objective(w) == pytest.approx(0.25 * 0.01 + 0.25 * 0.03)
    assert np.allclose(f.gradient(w), 2 * COV @ w)
    assert f.residual(w) == pytest.approx(0.0, abs=1e-15)


def test_formulate_maximize_mean():
    f = formulate(build_problem(ASSETS, "maximize_mean"), MEAN, COV)

    assert np.array_equal(f.quadratic, np.zeros((3, 3)))
    assert np.array_equal(f.linear, -MEAN)
    assert f.eq_vector.tolist() == [1.0]
    assert f.objective(np.array([0.0, 0.0, 1.0])) == pytest.approx(-0.003)


def test_residual_reports_worst_violation():
    f = formulate(build_problem(ASSETS, "minimize_variance", 0.002), MEAN, COV)
    assert f.residual(np.array([1.2, -0.2, 0.0])) == pytest.approx(0.2)


def test_formulate_rejects_mismatched_moments():
    problem = build_problem(ASSETS, "minimize_variance", 0.002)
    with pytest.raises(ValueError):
        formulate(problem, MEAN[:2], COV)
