"""
Returns Matrix Builder
======================

Turns per-asset price histories into the aligned daily returns matrix
that every optimization reads from.

Two alignment policies are supported:

- ``'dates'``  (per-date exclusion): inner join on date. A date missing
  for any retained asset is dropped for every asset.
- ``'assets'`` (per-asset exclusion): assets whose history starts more
  than ``max_start_lag_days`` after the earliest starter are dropped
  first, then the survivors are inner-joined.

Returns are computed on each asset's own price history and then
inner-joined on date. A row whose returns start from different dates
(the row right after a date one asset is missing) is dropped too, so
every entry of the matrix is a one-period return over the same
interval for every asset. Simple returns are the default;
the annualization in ``mv_frontier.core.metrics`` follows the
``return_kind`` recorded on the matrix.
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from mv_frontier.config import (
    ALIGNMENT_POLICIES,
    DEFAULT_PRICE_FIELD,
    MIN_ASSETS,
    MIN_RETURN_ROWS,
    RETURN_KINDS,
)
from mv_frontier.exceptions import InsufficientDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class AssetSeries:
    """
    Price history of one asset.

    Attributes:
        asset_id: Asset identifier (ticker)
        prices: Date-indexed table with one column per price field
            (e.g. 'adjusted', 'close'); dates strictly increasing
    """

    asset_id: str
    prices: pd.DataFrame = field(repr=False)

    def __post_init__(self):
        prices = self.prices
        if isinstance(prices, pd.Series):
            prices = prices.to_frame(name=prices.name or DEFAULT_PRICE_FIELD)
        prices = prices.copy()
        prices.index = pd.to_datetime(prices.index)
        if not (prices.index.is_monotonic_increasing and prices.index.is_unique):
            raise ValueError(
                f"Dates for asset '{self.asset_id}' must be strictly increasing"
            )
        object.__setattr__(self, 'prices', prices)

    @property
    def start(self) -> Optional[pd.Timestamp]:
        """First date of the history, or None when empty."""
        if self.prices.empty:
            return None
        return self.prices.index[0]


class ReturnsMatrix:
    """
    Read-only table of daily returns, rows = dates, columns = assets.

    The column order is the index convention of every weight vector
    downstream. Mean returns and the sample covariance matrix are
    computed once at construction.

    Attributes:
        frame (pd.DataFrame): Returns table (copy, do not mutate)
        assets (Tuple[str, ...]): Asset identifiers in column order
        values (np.ndarray): Non-writeable returns array (n_rows x n_assets)
        mean_returns (np.ndarray): Non-writeable mean daily return per asset
        cov_matrix (np.ndarray): Non-writeable sample covariance (ddof=1)
        return_kind (str): 'simple' or 'log'
        excluded (Dict[str, str]): Asset -> reason it was left out
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        return_kind: str = 'simple',
        excluded: Optional[Dict[str, str]] = None
    ):
        if return_kind not in RETURN_KINDS:
            raise ValueError(f"Unknown return kind: {return_kind}")
        if frame.shape[0] == 0 or frame.shape[1] == 0:
            raise InsufficientDataError("Returns matrix is empty")
        if not frame.columns.is_unique:
            raise ValueError("Asset identifiers must be unique")
        if not (frame.index.is_monotonic_increasing and frame.index.is_unique):
            raise ValueError("Return dates must be strictly increasing")

        values = frame.to_numpy(dtype=float, copy=True)
        if not np.all(np.isfinite(values)):
            raise ValueError("Returns matrix contains missing or non-finite cells")

        self.assets = tuple(str(c) for c in frame.columns)
        self.frame = pd.DataFrame(values.copy(), index=frame.index.copy(), columns=list(self.assets))
        self.return_kind = return_kind
        self.excluded = dict(excluded or {})

        self.values = values
        self.mean_returns = values.mean(axis=0)
        if values.shape[0] > 1:
            cov = np.cov(values, rowvar=False, ddof=1)
        else:
            cov = np.zeros((values.shape[1], values.shape[1]))
        self.cov_matrix = np.atleast_2d(cov)

        for arr in (self.values, self.mean_returns, self.cov_matrix):
            arr.flags.writeable = False

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, return_kind: str = 'simple') -> 'ReturnsMatrix':
        """Wrap an existing returns table (rows = dates, columns = assets)."""
        frame = frame.copy()
        frame.index = pd.to_datetime(frame.index)
        return cls(frame, return_kind=return_kind)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self.frame.index

    @property
    def n_assets(self) -> int:
        return len(self.assets)

    @property
    def n_rows(self) -> int:
        return self.values.shape[0]

    def portfolio_returns(self, weights: np.ndarray) -> np.ndarray:
        """Daily return series of a weighted portfolio (R @ w)."""
        weights = np.asarray(weights, dtype=float)
        if weights.shape != (self.n_assets,):
            raise ValueError(
                f"Weight vector of length {weights.shape} does not match "
                f"{self.n_assets} assets"
            )
        return self.values @ weights

    def __repr__(self):
        return (f"ReturnsMatrix(assets={list(self.assets)}, rows={self.n_rows}, "
                f"return_kind='{self.return_kind}')")


def _exclude(excluded: Dict[str, str], asset_id: str, reason: str):
    logger.warning(f"Excluding asset '{asset_id}': {reason}")
    excluded[asset_id] = reason


def build_returns_matrix(
    series: Iterable[AssetSeries],
    price_field: str = DEFAULT_PRICE_FIELD,
    history_cutoff: Optional[Union[dt.date, str]] = None,
    alignment: str = 'dates',
    return_kind: str = 'simple',
    max_start_lag_days: int = 30,
    min_assets: int = MIN_ASSETS,
    min_rows: int = MIN_RETURN_ROWS
) -> ReturnsMatrix:
    """
    Build the aligned daily returns matrix from raw price histories.

    Args:
        series: Asset price histories (column order follows this order)
        price_field: Price column to read from each series
        history_cutoff: Assets whose first date is later than this are excluded
        alignment: 'dates' (drop incomplete dates) or 'assets' (drop late starters)
        return_kind: 'simple' or 'log'
        max_start_lag_days: Calendar days a start may lag under 'assets'
        min_assets: Fewest assets allowed in the result
        min_rows: Fewest return rows allowed in the result

    Returns:
        ReturnsMatrix with every exclusion recorded in ``excluded``

    Raises:
        InsufficientDataError: Too few assets or rows remain
        ValueError: Duplicate assets, unknown policy or non-positive prices
    """
    if alignment not in ALIGNMENT_POLICIES:
        raise ValueError(f"Unknown alignment policy: {alignment}")
    if return_kind not in RETURN_KINDS:
        raise ValueError(f"Unknown return kind: {return_kind}")

    excluded: Dict[str, str] = {}
    prices: Dict[str, pd.Series] = {}

    for s in series:
        if s.asset_id in prices or s.asset_id in excluded:
            raise ValueError(f"Duplicate asset identifier: {s.asset_id}")
        if price_field not in s.prices.columns:
            _exclude(excluded, s.asset_id, f"price field '{price_field}' not available")
            continue
        column = pd.to_numeric(s.prices[price_field], errors='coerce').dropna()
        if column.empty:
            _exclude(excluded, s.asset_id, "no price history")
            continue
        prices[s.asset_id] = column

    if history_cutoff is not None:
        cutoff = pd.Timestamp(history_cutoff)
        for asset_id in list(prices):
            start = prices[asset_id].index[0]
            if start > cutoff:
                del prices[asset_id]
                _exclude(
                    excluded, asset_id,
                    f"history starts {start.date()}, after cutoff {cutoff.date()}"
                )

    if alignment == 'assets' and prices:
        earliest = min(p.index[0] for p in prices.values())
        max_lag = pd.Timedelta(days=max_start_lag_days)
        for asset_id in list(prices):
            start = prices[asset_id].index[0]
            if start - earliest > max_lag:
                del prices[asset_id]
                _exclude(
                    excluded, asset_id,
                    f"history starts {start.date()}, more than "
                    f"{max_start_lag_days} days after {earliest.date()}"
                )

    if len(prices) < min_assets:
        raise InsufficientDataError(
            f"Only {len(prices)} asset(s) remain after exclusions; "
            f"at least {min_assets} required (excluded: {sorted(excluded)})"
        )

    per_asset: Dict[str, pd.Series] = {}
    previous: Dict[str, pd.Series] = {}
    for asset_id, p in prices.items():
        if (p <= 0).any():
            raise ValueError("Prices must be strictly positive to compute returns")
        if return_kind == 'simple':
            per_asset[asset_id] = (p / p.shift(1) - 1).iloc[1:]
        else:
            per_asset[asset_id] = np.log(p / p.shift(1)).iloc[1:]
        # Date of the price each return starts from
        previous[asset_id] = pd.Series(p.index[:-1], index=p.index[1:])

    returns = pd.concat(per_asset, axis=1, join='inner').sort_index()
    starts = pd.concat(previous, axis=1, join='inner').reindex(returns.index)

    # A row right after a dropped date spans two days for some assets only
    spans_gap = starts.ne(starts.iloc[:, 0], axis=0).any(axis=1)
    if spans_gap.any():
        logger.info(f"Dropping {int(spans_gap.sum())} return row(s) that span a missing date")
        returns = returns.loc[~spans_gap]

    if len(returns) < min_rows:
        raise InsufficientDataError(
            f"Only {len(returns)} aligned return rows; at least {min_rows} required"
        )

    logger.info(
        f"Built returns matrix: {returns.shape[1]} assets x {returns.shape[0]} days "
        f"({returns.index[0].date()} to {returns.index[-1].date()}), "
        f"{len(excluded)} excluded"
    )
    return ReturnsMatrix(returns, return_kind=return_kind, excluded=excluded)


def returns_matrix_from_config(series: List[AssetSeries], config) -> ReturnsMatrix:
    """Build the returns matrix with the construction fields of a FrontierConfig."""
    return build_returns_matrix(
        series,
        price_field=config.price_field,
        history_cutoff=config.history_cutoff,
        alignment=config.alignment,
        return_kind=config.return_kind,
        max_start_lag_days=config.max_start_lag_days,
        min_assets=config.min_assets,
        min_rows=config.min_rows,
    )

