"""
Main Runner Script for Frontier Construction
============================================

This script runs the full frontier workflow:
1. Loading daily prices (CSV directory, Excel workbook or sample data)
2. Building the aligned returns matrix
3. Solving the bounding maximum-return portfolio
4. Solving one minimum-variance portfolio per target return
5. Reporting the best-by-Sharpe and best-by-return points
6. Saving the frontier table and plots

Usage:
    mvf-frontier                                   # Run with sample data
    mvf-frontier --csv-dir prices/ --assets A B C  # One CSV per asset
    mvf-frontier --excel prices.xlsx               # One sheet per asset
    mvf-frontier --n-points 200 --parallelism 4
"""

import argparse
import datetime as dt
import logging
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from mv_frontier.config import (
    ALIGNMENT_POLICIES,
    DEFAULT_PRICE_FIELD,
    EXECUTORS,
    RETURN_KINDS,
    FrontierConfig,
)
from mv_frontier.core.frontier import build_frontier
from mv_frontier.core.loader import (
    CsvPriceSource,
    ExcelPriceSource,
    FramePriceSource,
    collect_series,
    generate_sample_prices,
)
from mv_frontier.core.metrics import summarize_frontier
from mv_frontier.core.returns import AssetSeries, returns_matrix_from_config


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logger(
    script_name: str = "mv_frontier",
    log_dir: Optional[str] = None
) -> logging.Logger:
    """
    Sets up a logger that writes to both file and console.

    Handlers are attached to the ``mv_frontier`` package logger so the
    library modules' records land in the same file.

    Args:
        script_name: Name of the script (used in log filename)
        log_dir: Directory for log files (default: ./logs)

    Returns:
        Configured logger instance
    """
    log_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = dt.datetime.now().strftime("%Y_%m_%d_%H%M%S")
    log_filename = log_dir / f"log_{script_name}_{timestamp}.txt"

    logger = logging.getLogger("mv_frontier")
    logger.setLevel(logging.INFO)
    logger.propagate = False

    # Clear existing handlers (prevent duplicates)
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


# =============================================================================
# RUN TRACKING
# =============================================================================

class RunCheckpoint:
    """
    Tracks the steps of a frontier run for the log.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.steps_completed = []
        self.start_time = dt.datetime.now()
        self.current_step = None

    def start_step(self, step_name: str):
        self.current_step = step_name
        self.logger.info(f"[CHECKPOINT] Starting: {step_name}")

    def complete_step(self, step_name: str):
        self.steps_completed.append(step_name)
        self.logger.info(f"[CHECKPOINT] Completed: {step_name}")

    def log_final_report(self):
        elapsed = (dt.datetime.now() - self.start_time).total_seconds()
        self.logger.info("=" * 60)
        self.logger.info("  FRONTIER RUN COMPLETE")
        self.logger.info("=" * 60)
        self.logger.info(f"  Steps completed: {len(self.steps_completed)}")
        self.logger.info(f"  Total time: {elapsed:.2f} seconds")
        self.logger.info("=" * 60)


# =============================================================================
# MAIN ANALYSIS FUNCTIONS
# =============================================================================

def run_frontier_analysis(
    series: List[AssetSeries],
    config: FrontierConfig,
    save_plots: bool = True,
    output_dir: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> dict:
    """
    Run the frontier pipeline on loaded price histories.

    Args:
        series: Asset price histories
        config: Run configuration
        save_plots: If True, save plots to output_dir
        output_dir: Directory for the frontier table and plots (default: ./output)
        logger: Logger instance

    Returns:
        Dictionary with 'returns_matrix', 'frontier', 'summary' and
        'table_path'
    """
    if logger is None:
        logger = logging.getLogger("mv_frontier")

    output_dir = Path(output_dir) if output_dir else Path.cwd() / "output"
    output_dir.mkdir(parents=True, exist_ok=True)

    config = config.validate()
    checkpoint = RunCheckpoint(logger)

    logger.info("=" * 70)
    logger.info("  MEAN-VARIANCE FRONTIER")
    logger.info("=" * 70)
    logger.info(f"  Assets requested: {', '.join(s.asset_id for s in series)}")
    logger.info(f"  Frontier points: {config.n_points}")
    logger.info(f"  Minimum target return: {config.min_target_return:.6f}")
    logger.info(f"  Executor: {config.executor} (parallelism={config.parallelism})")
    logger.info("=" * 70)

    checkpoint.start_step("Build Returns Matrix")
    matrix = returns_matrix_from_config(series, config)
    for asset, reason in matrix.excluded.items():
        logger.warning(f"  Excluded {asset}: {reason}")
    logger.info(f"{'Asset':<12} {'Mean':>12} {'Std Dev':>12}")
    logger.info("-" * 40)
    for i, asset in enumerate(matrix.assets):
        std = matrix.cov_matrix[i, i] ** 0.5
        logger.info(f"{asset:<12} {matrix.mean_returns[i]*100:>11.4f}% {std*100:>11.4f}%")
    checkpoint.complete_step("Build Returns Matrix")

    checkpoint.start_step("Build Frontier")
    frontier = build_frontier(matrix, config)
    checkpoint.complete_step("Build Frontier")

    checkpoint.start_step("Summarize Frontier")
    summary = summarize_frontier(frontier, config.trading_days_per_year)
    logger.info(f"Solved points: {summary.n_solved}/{summary.n_points}")
    for label, best in (("Best Sharpe", summary.best_sharpe), ("Best Return", summary.best_return)):
        if best is None:
            logger.info(f"\n--- {label} Portfolio: none (every solved point has zero risk) ---")
            continue
        point = best.point
        logger.info(f"\n--- {label} Portfolio ---")
        logger.info(f"Target Return (daily): {point.target_return*100:.4f}%")
        logger.info(f"Annual Return: {best.annual_return*100:.2f}%")
        logger.info(f"Annual Risk: {best.annual_risk*100:.2f}%")
        logger.info(f"Sharpe Ratio (daily): {point.actual_sharpe:.4f}")
        logger.info("Weights:")
        for asset, w in zip(frontier.assets, point.weights):
            logger.info(f"  {asset}: {w*100:>8.2f}%")

    table_path = output_dir / "frontier.csv"
    frontier.to_frame().to_csv(table_path, index=False)
    logger.info(f"Saved: {table_path.name}")
    checkpoint.complete_step("Summarize Frontier")

    if save_plots:
        checkpoint.start_step("Generate Plots")
        # imported here so runs without plots never load matplotlib
        import matplotlib.pyplot as plt
        from mv_frontier.visualization import plot_frontier, plot_frontier_weights

        plot_frontier(frontier, summary, periods=config.trading_days_per_year,
                      save_path=str(output_dir / "efficient_frontier.png"))
        logger.info("Saved: efficient_frontier.png")
        plot_frontier_weights(frontier, save_path=str(output_dir / "frontier_weights.png"))
        logger.info("Saved: frontier_weights.png")
        plt.close('all')
        checkpoint.complete_step("Generate Plots")

    checkpoint.log_final_report()

    return {
        'returns_matrix': matrix,
        'frontier': frontier,
        'summary': summary,
        'table_path': table_path,
    }


def load_series(args: argparse.Namespace) -> List[AssetSeries]:
    """Load price histories for the CLI arguments."""
    if args.csv_dir:
        if not args.assets:
            raise ValueError("--assets is required with --csv-dir")
        source = CsvPriceSource(args.csv_dir, date_column=args.date_column)
        asset_ids = args.assets
    elif args.excel:
        source = ExcelPriceSource(args.excel, date_column=args.date_column)
        asset_ids = args.assets or source.sheet_names()
    else:
        prices = generate_sample_prices(args.sample_assets, seed=args.seed)
        source = FramePriceSource(prices, field=args.price_field)
        asset_ids = args.assets or list(prices.columns)
    return collect_series(source, asset_ids, start=args.start_date)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Long-only mean-variance efficient frontier',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mvf-frontier                                      # Run with sample data
  mvf-frontier --csv-dir prices --assets SPY TLT GLD
  mvf-frontier --excel prices.xlsx --n-points 500
  mvf-frontier --alignment assets --history-cutoff 2015-01-01
        """
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument('--csv-dir', type=str, help='Directory with one <asset>.csv per asset')
    source.add_argument('--excel', type=str, help='Excel workbook with one sheet per asset')

    parser.add_argument('--assets', nargs='+', help='Asset identifiers (default: all available)')
    parser.add_argument('--date-column', default='Date', help='Date column name (default: Date)')
    parser.add_argument('--price-field', default=DEFAULT_PRICE_FIELD,
                        help=f'Price field to use (default: {DEFAULT_PRICE_FIELD})')
    parser.add_argument('--start-date', type=str, help='Ignore prices before this date')
    parser.add_argument('--history-cutoff', type=dt.date.fromisoformat,
                        help='Exclude assets whose history starts after this date')
    parser.add_argument('--alignment', choices=ALIGNMENT_POLICIES, default='dates',
                        help='Drop incomplete dates or late-starting assets (default: dates)')
    parser.add_argument('--return-kind', choices=RETURN_KINDS, default='simple',
                        help='Daily return definition (default: simple)')
    parser.add_argument('--n-points', '-n', type=int, default=100,
                        help='Number of frontier points (default: 100)')
    parser.add_argument('--min-return', type=float, default=0.0001,
                        help='Minimum daily target return (default: 0.0001)')
    parser.add_argument('--parallelism', '-p', type=int, default=0,
                        help='Worker count, 0 = auto (default: 0)')
    parser.add_argument('--executor', choices=EXECUTORS, default='process',
                        help='Worker pool kind (default: process)')
    parser.add_argument('--unit-timeout', type=float, default=None,
                        help='Seconds before a batch unit is abandoned')
    parser.add_argument('--retries', type=int, default=0,
                        help='Extra solve attempts after a solver error (default: 0)')
    parser.add_argument('--sample-assets', type=int, default=4,
                        help='Number of sample assets without a data file (default: 4)')
    parser.add_argument('--seed', type=int, default=42, help='Sample data seed (default: 42)')
    parser.add_argument('--output-dir', type=str, help='Output directory (default: ./output)')
    parser.add_argument('--log-dir', type=str, help='Log directory (default: ./logs)')
    parser.add_argument('--no-plots', action='store_true', help='Disable plot generation')
    return parser


def config_from_args(args: argparse.Namespace) -> FrontierConfig:
    """Map parsed arguments onto a FrontierConfig."""
    return FrontierConfig(
        n_points=args.n_points,
        min_target_return=args.min_return,
        parallelism=args.parallelism,
        executor=args.executor,
        unit_timeout=args.unit_timeout,
        max_retries=args.retries,
        return_kind=args.return_kind,
        alignment=args.alignment,
        price_field=args.price_field,
        history_cutoff=args.history_cutoff,
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the frontier script."""
    args = build_parser().parse_args(argv)
    logger = setup_logger("frontier", args.log_dir)

    try:
        config = config_from_args(args).validate()
        if not (args.csv_dir or args.excel):
            logger.info("No data file specified. Using sample data...")
        series = load_series(args)
        run_frontier_analysis(
            series,
            config,
            save_plots=not args.no_plots,
            output_dir=args.output_dir,
            logger=logger
        )
        logger.info("Frontier run completed successfully!")
        return 0

    except Exception as e:
        logger.error(f"Frontier run failed: {e}")
        logger.error(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
