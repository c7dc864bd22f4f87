"""Shared fixtures for the frontier engine tests."""

import threading
import time

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from mv_frontier.core.loader import FramePriceSource, collect_series, generate_sample_prices
from mv_frontier.core.returns import AssetSeries, ReturnsMatrix, build_returns_matrix
from mv_frontier.core.solver import QuadraticSolver, SolveStatus, SolverOutcome


def make_three_asset_returns(n_days: int = 100) -> pd.DataFrame:
    """
    A: constant 0.001/day, B: 0.002/day +/- 0.01 alternating noise,
    C: constant -0.0005/day.
    """
    dates = pd.bdate_range("2023-01-02", periods=n_days)
    noise = np.where(np.arange(n_days) % 2 == 0, 0.01, -0.01)
    return pd.DataFrame(
        {"A": np.full(n_days, 0.001), "B": 0.002 + noise, "C": np.full(n_days, -0.0005)},
        index=dates,
    )


def returns_to_series(returns: pd.DataFrame, start_price: float = 100.0):
    """Price histories whose simple returns reproduce ``returns``."""
    dates = pd.bdate_range(returns.index[0] - pd.offsets.BDay(1), periods=len(returns) + 1)
    series = []
    for asset in returns.columns:
        growth = np.concatenate([[1.0], np.cumprod(1.0 + returns[asset].to_numpy())])
        prices = pd.DataFrame({"adjusted": start_price * growth}, index=dates)
        series.append(AssetSeries(asset, prices))
    return series


def price_series(asset_id: str, dates, prices=None, field: str = "adjusted") -> AssetSeries:
    if prices is None:
        prices = 100.0 * np.cumprod(1.0 + 0.001 * np.sin(np.arange(len(dates)) + len(asset_id)))
    return AssetSeries(asset_id, pd.DataFrame({field: prices}, index=pd.DatetimeIndex(dates)))


class MixSolver(QuadraticSolver):
    """
    Thread-safe stand-in solver.

    maximize_mean -> all weight on the top asset; target problems -> the
    exact mix of lowest- and highest-mean assets that hits the target.
    """

    thread_safe = True

    def __init__(self, delay=None):
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def solve(self, formulation, x0=None):
        with self._lock:
            self.calls += 1
        n = formulation.n_vars
        w = np.zeros(n)
        if formulation.eq_vector.size == 1:
            w[int(np.argmin(formulation.linear))] = 1.0
        else:
            mu = formulation.eq_matrix[1]
            target = formulation.eq_vector[1]
            lo, hi = int(np.argmin(mu)), int(np.argmax(mu))
            share = float(np.clip((target - mu[lo]) / (mu[hi] - mu[lo]), 0.0, 1.0))
            w[lo] += 1.0 - share
            w[hi] += share
            if self.delay is not None:
                time.sleep(self.delay(share))
        return SolverOutcome(SolveStatus.SOLVED, tuple(float(v) for v in w), "ok")


class StatusSolver(QuadraticSolver):
    """Always answers with the same non-solved status."""

    thread_safe = True

    def __init__(self, status):
        self.status = status
        self.calls = 0
        self._lock = threading.Lock()

    def solve(self, formulation, x0=None):
        with self._lock:
            self.calls += 1
        return SolverOutcome(self.status, message=f"forced {self.status.value}")


@pytest.fixture
def three_asset_returns():
    return make_three_asset_returns()


@pytest.fixture
def three_asset_matrix(three_asset_returns):
    return ReturnsMatrix.from_frame(three_asset_returns)


@pytest.fixture(scope="session")
def sample_prices():
    return generate_sample_prices(n_assets=4, n_days=300, seed=7)


@pytest.fixture(scope="session")
def sample_matrix(sample_prices):
    return build_returns_matrix(collect_series(FramePriceSource(sample_prices), sample_prices.columns))


@pytest.fixture
def mix_solver():
    return MixSolver()
