"""
Plotting Module for Frontier Results
====================================

Read-only consumers of a finalized ``Frontier``:
- the frontier itself on the risk-return plane, with the best-by-Sharpe
  and best-by-return points highlighted
- the allocation of every solved point as a stacked area chart
- a bar chart of a single weight vector

Unsolved points are skipped when drawing; they stay in the Frontier.
"""

from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from mv_frontier.config import TRADING_DAYS_PER_YEAR
from mv_frontier.core.frontier import Frontier
from mv_frontier.core.metrics import FrontierSummary, annualize_return, annualize_risk


def plot_frontier(
    frontier: Frontier,
    summary: Optional[FrontierSummary] = None,
    annualize: bool = True,
    periods: int = TRADING_DAYS_PER_YEAR,
    figsize: Tuple[int, int] = (12, 8),
    save_path: Optional[str] = None,
    title: str = "Efficient Frontier (long-only)"
) -> Figure:
    """
    Plot realized risk against realized return for every solved point.

    Args:
        frontier: Finalized frontier
        summary: Optional summary whose best points are highlighted
        annualize: If True, plot annualized values, else daily values
        periods: Trading days per year used for annualization
        figsize: Figure size (width, height)
        save_path: If provided, save the figure to this path
        title: Plot title

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    def to_axes(risk, ret):
        if annualize:
            return (annualize_risk(risk, periods) * 100,
                    annualize_return(ret, periods, frontier.return_kind) * 100)
        return risk * 100, ret * 100

    solved = frontier.solved_points()
    coords = np.array([to_axes(p.actual_risk, p.actual_return) for p in solved]).reshape(-1, 2)

    ax.plot(coords[:, 0], coords[:, 1], 'b-', linewidth=2, label='Efficient Frontier', zorder=2)
    ax.scatter(coords[:, 0], coords[:, 1], c='blue', s=12, zorder=3)

    if summary is not None and summary.best_sharpe is not None:
        x, y = to_axes(summary.best_sharpe.point.actual_risk, summary.best_sharpe.point.actual_return)
        ax.scatter([x], [y], c='gold', s=200, marker='D', edgecolors='black',
                   label=f"Best Sharpe ({summary.best_sharpe.point.actual_sharpe:.3f})",
                   zorder=6)
    if summary is not None:
        x, y = to_axes(summary.best_return.point.actual_risk, summary.best_return.point.actual_return)
        ax.scatter([x], [y], c='purple', s=200, marker='*', edgecolors='black',
                   label="Best Return", zorder=6)

    n_unsolved = len(frontier) - len(solved)
    if n_unsolved:
        title = f"{title} - {n_unsolved} unsolved point(s) omitted"

    period = 'Annualized' if annualize else 'Daily'
    ax.set_xlabel(f'{period} Risk (Standard Deviation) %', fontsize=12)
    ax.set_ylabel(f'{period} Return %', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(loc='upper left', fontsize=10)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')

    return fig


def plot_frontier_weights(
    frontier: Frontier,
    figsize: Tuple[int, int] = (12, 6),
    save_path: Optional[str] = None,
    title: str = "Optimal Allocation vs Target Return"
) -> Figure:
    """
    Stacked allocation of each solved point along the target return axis.

    Args:
        frontier: Finalized frontier
        figsize: Figure size
        save_path: Optional path to save figure
        title: Plot title

    Returns:
        matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    solved = frontier.solved_points()
    targets = np.array([p.target_return for p in solved]) * 100
    weights = np.array([p.weights for p in solved]).reshape(-1, len(frontier.assets))

    if len(solved):
        ax.stackplot(targets, weights.T * 100, labels=list(frontier.assets), alpha=0.85)

    ax.set_xlabel('Target Daily Return %', fontsize=12)
    ax.set_ylabel('Weight %', fontsize=12)
    ax.set_ylim(0, 100)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.legend(bbox_to_anchor=(1.02, 1), loc='upper left', fontsize=10)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')

    return fig


def plot_portfolio_weights(
    weights: Sequence[float],
    asset_names: Sequence[str],
    title: str = "Portfolio Weights",
    figsize: Tuple[int, int] = (10, 6),
    save_path: Optional[str] = None
) -> Figure:
    """
    Bar chart of one weight vector.

    Args:
        weights: Portfolio weights
        asset_names: Asset names in weight order
        title: Plot title
        figsize: Figure size
        save_path: Optional path to save figure

    Returns:
        matplotlib Figure object
    """
    weights = np.asarray(weights, dtype=float)
    fig, ax = plt.subplots(figsize=figsize)

    bars = ax.bar(list(asset_names), weights * 100, color='green', edgecolor='black')

    for bar, w in zip(bars, weights):
        ax.annotate(f'{w*100:.1f}%',
                    xy=(bar.get_x() + bar.get_width() / 2, bar.get_height()),
                    xytext=(0, 3),
                    textcoords='offset points',
                    ha='center', va='bottom',
                    fontsize=10, fontweight='bold')

    ax.set_xlabel('Assets', fontsize=12)
    ax.set_ylabel('Weight %', fontsize=12)
    ax.set_ylim(0, 110)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.grid(True, axis='y', alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')

    return fig
