"""
Post-trade performance analytics.

Computes the backtest report from the sequence of ``ClosedTrade`` objects and
the equity curve produced by the engine.  Drawdown is the only statistic that
is tracked while the run is in progress (``DrawdownTracker``); everything else
is computed once, at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from fxbacktest.backtester.models import ClosedTrade, Direction, EquityPoint, RunStatus
from fxbacktest.configuration import PROFIT_FACTOR_CAP


# ---------------------------------------------------------------------------
# Running drawdown
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class DrawdownTracker:
    """
    Running peak and peak-to-trough decline of equity and balance.

    Peaks never decrease and drawdowns are never negative.  Percentages are
    relative to the running peak.
    """
    max_equity: float
    max_balance: float
    max_drawdown_equity: float = 0.0
    max_drawdown_equity_percent: float = 0.0
    max_drawdown_balance: float = 0.0
    max_drawdown_balance_percent: float = 0.0

    @classmethod
    def starting_at(cls, balance: float) -> DrawdownTracker:
        return cls(max_equity=balance, max_balance=balance)

    def update(self, equity: float, balance: float) -> None:
        self.max_equity = max(self.max_equity, equity)
        self.max_balance = max(self.max_balance, balance)

        # absolute and percent maxima can come from different peaks
        dd_equity = self.max_equity - equity
        self.max_drawdown_equity = max(self.max_drawdown_equity, dd_equity)
        self.max_drawdown_equity_percent = max(
            self.max_drawdown_equity_percent, _percent_of(dd_equity, self.max_equity)
        )

        dd_balance = self.max_balance - balance
        self.max_drawdown_balance = max(self.max_drawdown_balance, dd_balance)
        self.max_drawdown_balance_percent = max(
            self.max_drawdown_balance_percent, _percent_of(dd_balance, self.max_balance)
        )


def _percent_of(value: float, base: float) -> float:
    return value / base * 100.0 if base > 0 else 0.0


# ---------------------------------------------------------------------------
# Results data class
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BacktestResults:
    """
    Complete backtest report.

    All money amounts are in account currency, pips are lot-weighted per
    trade.  Trades still open at the end of the data are listed in
    ``trades`` (reason ``open``) and counted in ``total_trades`` and
    ``open_trades``, but take no part in any win/loss statistic.

    Attributes
    ----------
    initial_balance, final_balance : float
    total_trades : int
        Every trade record, open ones included.
    winning_trades, losing_trades, open_trades : int
    win_rate : float
        ``winning / closed * 100`` (0-100 scale).
    total_pips : float
    max_drawdown_equity, max_drawdown_balance : float
        Largest peak-to-trough decline, absolute.
    max_drawdown_equity_percent, max_drawdown_balance_percent : float
        Same, as a percentage of the peak it was measured from.
    profit_factor : float
        ``gross_profit / gross_loss``; 999 with wins and no losses, 0 with
        neither.
    average_win, largest_win : float
    average_loss, largest_loss : float
        Positive magnitudes.
    gross_profit, gross_loss, net_profit : float
    long_trades, short_trades : int
    exit_reason_counts : dict[str, int]
    trades : tuple[ClosedTrade, ...]
    equity_curve : tuple[EquityPoint, ...]
    status : RunStatus
    ticks_processed : int
    signals_total, signals_opened, skipped_signals : int
    started_at, finished_at : datetime | None
    diagnostics : tuple[str, ...]
        Human-readable notes about the run (empty tick range, signals
        outside the tick range, trades left open).
    """
    initial_balance: float = 0.0
    final_balance: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    open_trades: int = 0
    win_rate: float = 0.0
    total_pips: float = 0.0
    max_drawdown_equity: float = 0.0
    max_drawdown_equity_percent: float = 0.0
    max_drawdown_balance: float = 0.0
    max_drawdown_balance_percent: float = 0.0
    profit_factor: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    net_profit: float = 0.0
    long_trades: int = 0
    short_trades: int = 0
    exit_reason_counts: Dict[str, int] = field(default_factory=dict)
    trades: Tuple[ClosedTrade, ...] = ()
    equity_curve: Tuple[EquityPoint, ...] = ()
    status: RunStatus = RunStatus.COMPLETED
    ticks_processed: int = 0
    signals_total: int = 0
    signals_opened: int = 0
    skipped_signals: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    diagnostics: Tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def closed_trades(self) -> int:
        return self.total_trades - self.open_trades

    # ------------------------------------------------------------------ #
    #  Pretty printing                                                    #
    # ------------------------------------------------------------------ #

    def summary(self) -> str:
        """Return a formatted multi-line summary string."""
        lines = [
            "=" * 60,
            "  SIGNAL BACKTEST REPORT",
            "=" * 60,
            f"  Status              : {self.status.value}",
            f"  Ticks Processed     : {self.ticks_processed}",
            f"  Signals Opened      : {self.signals_opened} / {self.signals_total}"
            f" (skipped {self.skipped_signals})",
            "-" * 60,
            f"  Total Trades        : {self.total_trades}",
            f"  Winning Trades      : {self.winning_trades}",
            f"  Losing Trades       : {self.losing_trades}",
            f"  Open Trades         : {self.open_trades}",
            f"  Win Rate            : {self.win_rate:.2f}%",
            f"  Total Pips          : {self.total_pips:>12.1f}",
            "-" * 60,
            f"  Initial Balance     : {self.initial_balance:>12.2f}",
            f"  Final Balance       : {self.final_balance:>12.2f}",
            f"  Gross Profit        : {self.gross_profit:>12.2f}",
            f"  Gross Loss          : {self.gross_loss:>12.2f}",
            f"  Net Profit          : {self.net_profit:>12.2f}",
            f"  Profit Factor       : {self.profit_factor:>12.2f}",
            f"  Average Win         : {self.average_win:>12.2f}",
            f"  Average Loss        : {self.average_loss:>12.2f}",
            f"  Largest Win         : {self.largest_win:>12.2f}",
            f"  Largest Loss        : {self.largest_loss:>12.2f}",
            "-" * 60,
            f"  Max DD Equity       : {self.max_drawdown_equity:>12.2f}"
            f" ({self.max_drawdown_equity_percent:.2f}%)",
            f"  Max DD Balance      : {self.max_drawdown_balance:>12.2f}"
            f" ({self.max_drawdown_balance_percent:.2f}%)",
            "-" * 60,
            f"  Long Trades         : {self.long_trades}",
            f"  Short Trades        : {self.short_trades}",
            "-" * 60,
            "  Exit Reasons:",
        ]
        for reason, count in sorted(self.exit_reason_counts.items()):
            lines.append(f"    {reason:<24s}: {count}")
        if self.diagnostics:
            lines.append("-" * 60)
            lines.append("  Diagnostics:")
            lines.extend(f"    {note}" for note in self.diagnostics)
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """Single-row DataFrame of the scalar statistics."""
        skip = ("trades", "equity_curve", "exit_reason_counts", "diagnostics", "status")
        d = {name: getattr(self, name) for name in self.__dataclass_fields__ if name not in skip}
        d["status"] = self.status.value
        d.update({f"exit_{k}": v for k, v in self.exit_reason_counts.items()})
        return pd.DataFrame([d])

    def trades_df(self) -> pd.DataFrame:
        """One row per trade record."""
        if not self.trades:
            return pd.DataFrame()
        return pd.DataFrame([t.to_dict() for t in self.trades])

    def equity_df(self) -> pd.DataFrame:
        """Equity curve indexed by time."""
        if not self.equity_curve:
            return pd.DataFrame(columns=["equity", "balance"])
        df = pd.DataFrame(
            {
                "time": [p.time for p in self.equity_curve],
                "equity": [p.equity for p in self.equity_curve],
                "balance": [p.balance for p in self.equity_curve],
            }
        )
        return df.set_index("time")


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------

def compute_results(
    trades: List[ClosedTrade],
    equity_curve: List[EquityPoint],
    initial_balance: float,
    final_balance: float,
    drawdown: DrawdownTracker,
    **run_info,
) -> BacktestResults:
    """
    Aggregate trade records into ``BacktestResults``.

    Parameters
    ----------
    trades : list[ClosedTrade]
        Every trade record of the run, open ones included.
    equity_curve : list[EquityPoint]
    initial_balance, final_balance : float
    drawdown : DrawdownTracker
        Final state of the running drawdown tracker.
    **run_info
        Run bookkeeping forwarded to the result (``status``,
        ``ticks_processed``, ``signals_total``, ``signals_opened``,
        ``skipped_signals``, ``started_at``, ``finished_at``,
        ``diagnostics``).

    Returns
    -------
    BacktestResults
    """
    closed = [t for t in trades if not t.is_open]
    profits = np.array([t.profit for t in closed], dtype=np.float64)
    pips = np.array([t.pips for t in trades], dtype=np.float64)

    winning_mask = profits > 0
    losing_mask  = profits < 0
    wins   = profits[winning_mask]
    losses = np.abs(profits[losing_mask])

    gross_profit = float(wins.sum()) if wins.size else 0.0
    gross_loss   = float(losses.sum()) if losses.size else 0.0

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = PROFIT_FACTOR_CAP
    else:
        profit_factor = 0.0

    exit_counts: Dict[str, int] = {}
    for t in trades:
        key = t.exit_reason.value
        exit_counts[key] = exit_counts.get(key, 0) + 1

    return BacktestResults(
        initial_balance=initial_balance,
        final_balance=final_balance,
        total_trades=len(trades),
        winning_trades=int(winning_mask.sum()),
        losing_trades=int(losing_mask.sum()),
        open_trades=len(trades) - len(closed),
        win_rate=float(winning_mask.sum()) / len(closed) * 100.0 if closed else 0.0,
        total_pips=float(pips.sum()) if pips.size else 0.0,
        max_drawdown_equity=drawdown.max_drawdown_equity,
        max_drawdown_equity_percent=drawdown.max_drawdown_equity_percent,
        max_drawdown_balance=drawdown.max_drawdown_balance,
        max_drawdown_balance_percent=drawdown.max_drawdown_balance_percent,
        profit_factor=profit_factor,
        average_win=float(wins.mean()) if wins.size else 0.0,
        average_loss=float(losses.mean()) if losses.size else 0.0,
        largest_win=float(wins.max()) if wins.size else 0.0,
        largest_loss=float(losses.max()) if losses.size else 0.0,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        net_profit=final_balance - initial_balance,
        long_trades=sum(1 for t in trades if t.direction == Direction.BUY),
        short_trades=sum(1 for t in trades if t.direction == Direction.SELL),
        exit_reason_counts=exit_counts,
        trades=tuple(trades),
        equity_curve=tuple(equity_curve),
        **run_info,
    )
