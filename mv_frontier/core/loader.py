"""
Price Data Sources
==================

This module supplies ``AssetSeries`` price histories to the returns
matrix builder. Three sources are available:

- CSV files, one ``<asset>.csv`` per asset in a directory
- Excel workbooks, one sheet per asset
- A wide in-memory DataFrame (dates x assets)

Column headers are normalized to snake case ("Adj Close" -> "adj_close")
and the common spellings of the adjusted close are mapped to the
``'adjusted'`` price field.

A source may fail for a single asset (missing file, missing sheet,
unreadable data). ``collect_series`` downgrades such failures to a
warning and skips the asset, so one bad ticker never stops the run.
"""

import datetime as dt
import warnings
from pathlib import Path
from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from mv_frontier.config import DEFAULT_PRICE_FIELD
from mv_frontier.core.returns import AssetSeries
from mv_frontier.exceptions import DataSourceError

COLUMN_ALIASES = {
    'adj_close': 'adjusted',
    'adjclose': 'adjusted',
    'adjusted_close': 'adjusted',
}

DateLike = Union[dt.date, str, None]


def normalize_name(name) -> str:
    """Snake-case one column header, mapping known aliases (e.g. adj_close)."""
    key = str(name).strip().lower().replace(' ', '_').replace('.', '_')
    return COLUMN_ALIASES.get(key, key)


def normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Snake-case column headers and apply COLUMN_ALIASES."""
    return frame.rename(columns={col: normalize_name(col) for col in frame.columns})


def _trim_start(frame: pd.DataFrame, start: DateLike) -> pd.DataFrame:
    if start is None:
        return frame
    return frame[frame.index >= pd.Timestamp(start)]


class PriceSource:
    """Base class: ``fetch`` one asset's price history."""

    def fetch(self, asset_id: str, start: DateLike = None) -> AssetSeries:
        """Price history of one asset from ``start`` on (all of it when None)."""
        raise NotImplementedError

    def _to_series(
        self,
        asset_id: str,
        frame: pd.DataFrame,
        date_column: str,
        start: DateLike
    ) -> AssetSeries:
        frame = normalize_columns(frame)
        date_key = normalize_name(date_column)
        if date_key not in frame.columns:
            raise DataSourceError(f"No '{date_column}' column for asset '{asset_id}'")

        dates = pd.to_datetime(frame.pop(date_key))
        frame.index = pd.DatetimeIndex(dates)
        frame = frame.apply(pd.to_numeric, errors='coerce').sort_index()
        frame = frame[~frame.index.duplicated(keep='last')]
        try:
            return AssetSeries(asset_id, _trim_start(frame, start))
        except ValueError as e:
            raise DataSourceError(str(e)) from e


class CsvPriceSource(PriceSource):
    """
    Reads ``<directory>/<asset_id>.csv``.

    Args:
        directory: Folder holding one CSV file per asset
        date_column: Name of the date column
    """

    def __init__(self, directory: Union[str, Path], date_column: str = 'Date'):
        self.directory = Path(directory)
        self.date_column = date_column

    def fetch(self, asset_id: str, start: DateLike = None) -> AssetSeries:
        path = self.directory / f"{asset_id}.csv"
        try:
            frame = pd.read_csv(path)
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise DataSourceError(f"Cannot read {path}: {e}") from e
        return self._to_series(asset_id, frame, self.date_column, start)


class ExcelPriceSource(PriceSource):
    """
    Reads one sheet per asset from an Excel workbook (openpyxl engine).

    Args:
        path: Workbook path
        date_column: Name of the date column on every sheet
    """

    def __init__(self, path: Union[str, Path], date_column: str = 'Date'):
        self.path = Path(path)
        self.date_column = date_column

    def sheet_names(self) -> List[str]:
        try:
            with pd.ExcelFile(self.path, engine='openpyxl') as book:
                return [str(s) for s in book.sheet_names]
        except (OSError, ValueError) as e:
            raise DataSourceError(f"Cannot open {self.path}: {e}") from e

    def fetch(self, asset_id: str, start: DateLike = None) -> AssetSeries:
        try:
            frame = pd.read_excel(self.path, sheet_name=asset_id, engine='openpyxl')
        except (OSError, ValueError, KeyError) as e:
            raise DataSourceError(f"Cannot read sheet '{asset_id}' of {self.path}: {e}") from e
        return self._to_series(asset_id, frame, self.date_column, start)


class FramePriceSource(PriceSource):
    """
    Serves assets from a wide price table (rows = dates, columns = assets).

    Args:
        frame: Wide price table
        field: Price field name given to the served column
    """

    def __init__(self, frame: pd.DataFrame, field: str = DEFAULT_PRICE_FIELD):
        self.frame = frame
        self.field = field

    def fetch(self, asset_id: str, start: DateLike = None) -> AssetSeries:
        if asset_id not in self.frame.columns:
            raise DataSourceError(f"Asset '{asset_id}' not in price table")
        column = self.frame[asset_id].dropna()
        prices = column.to_frame(name=self.field)
        prices.index = pd.to_datetime(prices.index)
        try:
            return AssetSeries(asset_id, _trim_start(prices.sort_index(), start))
        except ValueError as e:
            raise DataSourceError(str(e)) from e


def collect_series(
    source: PriceSource,
    asset_ids: Sequence[str],
    start: DateLike = None
) -> List[AssetSeries]:
    """
    Fetch every asset, skipping (with a warning) those the source cannot supply.

    Args:
        source: Price source
        asset_ids: Assets to fetch, in the desired column order
        start: Earliest date to keep

    Returns:
        AssetSeries for the assets that were fetched
    """
    collected = []
    for asset_id in asset_ids:
        try:
            series = source.fetch(asset_id, start)
        except DataSourceError as e:
            warnings.warn(f"Skipping asset '{asset_id}': {e}")
            continue
        if series.prices.empty:
            warnings.warn(f"Skipping asset '{asset_id}': no prices since {start}")
            continue
        collected.append(series)
    return collected


def generate_sample_prices(
    n_assets: int = 4,
    n_days: int = 504,
    seed: int = 42,
    start: str = '2022-01-03'
) -> pd.DataFrame:
    """
    Generate synthetic daily prices for demos and tests.

    Geometric random walks with increasing drift and volatility plus a
    shared market factor, on business days.

    Args:
        n_assets: Number of assets
        n_days: Number of price rows
        seed: Random seed for reproducibility
        start: First date

    Returns:
        Wide price table (rows = dates, columns = asset names)
    """
    rng = np.random.RandomState(seed)

    drifts = np.linspace(0.0002, 0.0009, n_assets)
    vols = np.linspace(0.008, 0.022, n_assets)
    market = rng.randn(n_days) * 0.006
    noise = rng.randn(n_days, n_assets) * vols
    daily = drifts + noise + market[:, None]
    daily[0] = 0.0

    if n_assets == 4:
        names = ['AAPL', 'AXP', 'BA', 'CAT']
    elif n_assets == 6:
        names = ['AAPL', 'AXP', 'BA', 'CAT', 'CSCO', 'CVX']
    else:
        names = [f'Stock_{i+1}' for i in range(n_assets)]

    dates = pd.bdate_range(start=start, periods=n_days)
    prices = 100.0 * np.cumprod(1.0 + daily, axis=0)
    return pd.DataFrame(prices, index=dates, columns=names)

