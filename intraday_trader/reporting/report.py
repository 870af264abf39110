"""
Report generation utilities.

This module turns backtest results into human‑readable artefacts:
CSV files of trades, equity curve and intraday periods, a JSON summary
of performance metrics and a PNG chart of the equity curve.  The same
figures are also written to the log so a run can be judged without
opening the files.
"""

from __future__ import annotations

import os
import json
import logging
from dataclasses import asdict
from typing import Any, Dict
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.backtest_exec import BacktestResult
from .metrics import compute_metrics


logger = logging.getLogger(__name__)

RECENT_DAYS = 30


def trades_frame(result: BacktestResult) -> pd.DataFrame:
    rows = [
        {
            'timestamp_entry': t.entry_time.isoformat(),
            'timestamp_exit': t.exit_time.isoformat(),
            'symbol': t.symbol,
            'side': t.side.value,
            'quantity': t.quantity,
            'entry': t.entry_price,
            'exit': t.exit_price,
            'pnl': t.profit_loss,
            'fees': t.fees,
            'reason': t.reason.value,
        }
        for t in result.trade_log
    ]
    columns = ['timestamp_entry', 'timestamp_exit', 'symbol', 'side', 'quantity', 'entry', 'exit', 'pnl', 'fees', 'reason']
    return pd.DataFrame(rows, columns=columns)


def summary_dict(result: BacktestResult) -> Dict[str, Any]:
    summary = compute_metrics(result.trade_log, result.equity_curve, result.timezone)
    summary['symbol'] = result.symbol
    summary['open_position'] = result.open_position is not None
    return summary


def generate_backtest_report(result: BacktestResult, out_dir: str = "results") -> None:
    """Generate report files for a backtest run.

    Creates the output directory if it does not exist and writes the
    following files:

    - `trades.csv` – detailed list of trades
    - `equity_curve.csv` – account equity after each trade
    - `periods.csv` – performance by time of day
    - `summary.json` – performance metrics
    - `equity_curve.png` – line chart of the equity curve
    """
    os.makedirs(out_dir, exist_ok=True)

    trades_frame(result).to_csv(os.path.join(out_dir, 'trades.csv'), index=False)

    eq_data = [
        {
            'timestamp': pt.timestamp.isoformat(),
            'equity': pt.equity,
        }
        for pt in result.equity_curve
    ]
    df_eq = pd.DataFrame(eq_data, columns=['timestamp', 'equity'])
    df_eq.to_csv(os.path.join(out_dir, 'equity_curve.csv'), index=False)

    pd.DataFrame([asdict(p) for p in result.periods]).to_csv(os.path.join(out_dir, 'periods.csv'), index=False)

    summary_path = os.path.join(out_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(summary_dict(result), fh, indent=2, ensure_ascii=False)

    # Equity curve plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.plot(pd.to_datetime(df_eq['timestamp'], utc=True), df_eq['equity'], linewidth=1.5)
        ax.set_title(f'Equity Curve ({result.symbol})')
        ax.set_xlabel('Time')
        ax.set_ylabel('Equity')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, 'equity_curve.png'))
    plt.close(fig)
    logger.info("Backtest report written to %s", out_dir)


def log_backtest_summary(result: BacktestResult) -> None:
    """Log headline figures, the intraday period table and recent days."""
    summary = summary_dict(result)
    logger.info("=" * 60)
    logger.info("Backtest summary for %s", result.symbol)
    logger.info("Starting capital : %.2f", result.starting_capital)
    logger.info("Ending capital   : %.2f", result.ending_capital)
    logger.info("Total return     : %.2f%%", summary['total_return'] * 100)
    logger.info("Trades           : %d", summary['num_trades'])
    logger.info("Win rate         : %.2f%%", result.win_rate * 100)
    logger.info("Sharpe ratio     : %.2f", result.sharpe_ratio)
    logger.info("Max drawdown     : %.2f%%", result.max_drawdown * 100)
    logger.info("Fees paid        : %.2f", summary['total_fees'])
    if result.open_position is not None:
        logger.info("Open at end      : %s %d @ %.2f", result.open_position.side.value, result.open_position.quantity, result.open_position.entry_price)

    logger.info("Intraday period performance:")
    logger.info("%-14s %7s %9s %10s %12s", 'Period', 'Trades', 'Win rate', 'Avg P/L', 'Total P/L')
    for p in result.periods:
        logger.info("%-14s %7d %8.1f%% %10.2f %12.2f", p.period, p.trades, p.win_rate * 100, p.average_pnl, p.total_pnl)

    recent = result.daily[-RECENT_DAYS:]
    if recent:
        logger.info("Last %d trading days:", len(recent))
        logger.info("%-10s %7s %5s %12s", 'Date', 'Trades', 'Wins', 'P/L')
        for d in recent:
            logger.info("%-10s %7d %5d %12.2f", d.day.isoformat(), d.trades, d.wins, d.pnl)
    logger.info("=" * 60)
