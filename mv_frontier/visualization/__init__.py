"""Visualization modules for frontier results."""

from mv_frontier.visualization.plots import (
    plot_frontier,
    plot_frontier_weights,
    plot_portfolio_weights
)

__all__ = [
    "plot_frontier",
    "plot_frontier_weights",
    "plot_portfolio_weights",
]
