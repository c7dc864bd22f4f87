"""
CLI entry point for frontier construction.

Usage:
    python run_cli.py                                  # Run with sample data
    python run_cli.py --csv-dir prices --assets A B C  # One CSV per asset
    python run_cli.py --excel prices.xlsx              # One sheet per asset
    python run_cli.py --n-points 200 --parallelism 4

For installed package, use: mvf-frontier
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from mv_frontier.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
