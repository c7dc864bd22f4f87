"""Smoke tests for the plotting functions (Agg backend)."""

import dataclasses

import matplotlib.pyplot as plt
import pytest
from matplotlib.figure import Figure

from mv_frontier.config import FrontierConfig
from mv_frontier.core.batch import OptimizationResult
from mv_frontier.core.frontier import Frontier, FrontierPoint, build_frontier
from mv_frontier.core.metrics import summarize_frontier
from mv_frontier.core.solver import SolveStatus
from mv_frontier.visualization import plot_frontier, plot_frontier_weights, plot_portfolio_weights


@pytest.fixture
def frontier(sample_matrix, mix_solver):
    low = float(sample_matrix.mean_returns.min())
    config = FrontierConfig(n_points=8, min_target_return=low, executor="thread")
    return build_frontier(sample_matrix, config, solver=mix_solver)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_plot_frontier_saves_file(frontier, tmp_path):
    path = tmp_path / "frontier.png"

    fig = plot_frontier(frontier, summarize_frontier(frontier), save_path=str(path))

    assert isinstance(fig, Figure)
    assert path.exists()


def test_plot_frontier_daily_and_with_unsolved_points(frontier):
    failed = frontier[2].result
    failed = OptimizationResult(failed.problem, SolveStatus.INFEASIBLE)
    points = list(frontier.points)
    points[2] = FrontierPoint(points[2].target_return, failed)
    partial = Frontier(tuple(points), frontier.assets, frontier.max_return_value)

    fig = plot_frontier(partial, annualize=False)

    assert "1 unsolved" in fig.axes[0].get_title()
    assert "Daily" in fig.axes[0].get_xlabel()


def test_plot_frontier_weights(frontier, tmp_path):
    path = tmp_path / "weights.png"

    fig = plot_frontier_weights(frontier, save_path=str(path))

    assert isinstance(fig, Figure)
    assert path.exists()
    labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
    assert labels == list(frontier.assets)


def test_plot_portfolio_weights(frontier):
    best = frontier.best_by_sharpe()

    fig = plot_portfolio_weights(best.weights, frontier.assets, title="Best Sharpe")

    assert fig.axes[0].get_title() == "Best Sharpe"
    assert len(fig.axes[0].patches) == len(frontier.assets)


def test_plot_frontier_without_best_sharpe(frontier):
    summary = dataclasses.replace(summarize_frontier(frontier), best_sharpe=None)

    fig = plot_frontier(frontier, summary)

    labels = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
    assert "Best Return" in labels
    assert not any(label.startswith("Best Sharpe") for label in labels)
