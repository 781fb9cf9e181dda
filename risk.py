#!/usr/bin/env python3
"""
Quant Risk Engine - Launcher Script
Run this script to size positions and analyze portfolio risk.

Example usage:
    # Kelly position size for a 55% win rate with a 1.5:1 payoff
    python risk.py kelly --win-rate 0.55 --avg-win 1.5 --avg-loss 1.0

    # Simulate one year of a 10% / 20% vol portfolio
    python risk.py montecarlo --capital 100000 --expected-return 0.10 --volatility 0.20 --seed 7

    # Drawdown report for an equity curve
    python risk.py drawdown --csv equity.csv

    # Mean-variance and risk parity weights from daily returns
    python risk.py optimize --csv returns.csv --risk-tolerance 1.0
    python risk.py parity --csv returns.csv --method equal_risk_contribution
"""

import sys
import asyncio
from pathlib import Path

# Add the project directory to the Python path
project_dir = Path(__file__).resolve().parent
sys.path.insert(0, str(project_dir))

from quantrisk.utils.cli import main

if __name__ == "__main__":
    try:
        # On Windows, use a different event loop policy to avoid issues
        if sys.platform == 'win32':
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(0)
