"""
Core backtesting engine: tick-by-tick signal replay.

Architecture
~~~~~~~~~~~~
The engine orchestrates signal scheduling, position entry, account
bookkeeping and result aggregation.  It is deliberately *not* a monolithic
function: each concern lives in its own module and the engine merely
coordinates them.

- ``TradeManager`` (``risk.py``) owns the open positions and their exit rules
- ``calculate_lot_size`` (``sizing.py``) sizes every entry
- ``compute_results`` (``metrics.py``) builds the final report

Streaming
~~~~~~~~~
Ticks are pulled one at a time from any iterable, so multi-gigabyte tick
files never have to fit in memory.  The loop stops as soon as every signal
has been opened and no position is left, and the tick iterator is closed on
every exit path.

Usage
-----
>>> from fxbacktest.backtester import BacktestEngine, StrategyConfig, RiskConfig
>>> engine = BacktestEngine(progress_bar=False)
>>> results = engine.run(ticks, signals, StrategyConfig(), RiskConfig(initial_balance=10_000))
>>> print(results.summary())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from fxbacktest.backtester.execution import FillSimulator, calculate_pips
from fxbacktest.backtester.metrics import BacktestResults, DrawdownTracker, compute_results
from fxbacktest.backtester.models import (
    BacktestProgress,
    CloseEvent,
    ClosedTrade,
    Direction,
    EquityPoint,
    ExitReason,
    OpenPosition,
    RiskConfig,
    RunStatus,
    Signal,
    StrategyConfig,
    Tick,
)
from fxbacktest.backtester.risk import TradeManager
from fxbacktest.backtester.sizing import calculate_lot_size
from fxbacktest.configuration import PROGRESS_INTERVAL
from fxbacktest.exceptions import EmptySignalsError, NoTimestampedSignalsError
from fxbacktest.timestamps import parse_signal_timestamp

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BacktestProgress], None]
CancelCheck = Callable[[], bool]


@dataclass(frozen=True, slots=True)
class ScheduledSignal:
    """A signal with its resolved direction and trigger time."""
    signal: Signal
    direction: Direction
    trigger_time: datetime


# ======================================================================== #
#  Engine                                                                  #
# ======================================================================== #

class BacktestEngine:
    """
    Tick-by-tick signal backtesting engine.

    Parameters
    ----------
    progress_interval : int
        Number of valid ticks between two progress callbacks.
    progress_bar : bool
        Show ``tqdm`` progress bar during the loop.
    fills : FillSimulator | None
        Quote-side rules shared with the trade manager.

    Examples
    --------
    >>> engine = BacktestEngine(progress_interval=50_000)
    >>> results = engine.run(
    ...     read_tick_file("EURUSD.csv", TickFormat()),
    ...     signals,
    ...     StrategyConfig(trailing_sl=True, trailing_pips=15),
    ...     RiskConfig(risk_type="fixed_lot", fixed_lot_size=0.1),
    ... )
    >>> results.summary()
    """

    def __init__(
        self,
        progress_interval: int = PROGRESS_INTERVAL,
        progress_bar: bool = True,
        fills: Optional[FillSimulator] = None,
    ) -> None:
        if progress_interval <= 0:
            raise ValueError("progress_interval must be a positive number of ticks")
        self.progress_interval = progress_interval
        self.progress_bar = progress_bar
        self.fills = fills or FillSimulator()

    # ------------------------------------------------------------------ #
    #  Signal validation & scheduling                                     #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _schedule_signals(signals: Sequence[Signal]) -> Tuple[List[ScheduledSignal], int]:
        """
        Resolve direction and trigger time of every signal.

        Returns the stable-sorted schedule and the number of excluded signals.

        Raises
        ------
        EmptySignalsError
            No signal given, or none with a valid direction.
        NoTimestampedSignalsError
            No signal carries a parseable timestamp.
        """
        if not signals:
            raise EmptySignalsError("No signals to backtest.")

        timestamped = []
        for signal in signals:
            trigger = parse_signal_timestamp(signal.timestamp)
            if trigger is not None:
                timestamped.append((signal, trigger))
        if not timestamped:
            raise NoTimestampedSignalsError(
                "No signals with timestamps found. Signals must include date/time for backtesting."
            )

        scheduled = []
        for signal, trigger in timestamped:
            direction = Direction.parse(signal.direction)
            if direction is None:
                logger.warning("Skipping signal %s: invalid direction %r", signal.id, signal.direction)
                continue
            scheduled.append(ScheduledSignal(signal, direction, trigger))
        if not scheduled:
            raise EmptySignalsError("No signal has a valid buy/sell direction.")

        skipped = len(signals) - len(scheduled)
        if skipped:
            logger.warning("Skipped %d signal(s) without a usable timestamp or direction", skipped)

        scheduled.sort(key=lambda s: s.trigger_time)
        return scheduled, skipped

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    def run(
        self,
        ticks: Iterable[Tick],
        signals: Sequence[Signal],
        strategy: Optional[StrategyConfig] = None,
        risk: Optional[RiskConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelCheck] = None,
    ) -> BacktestResults:
        """
        Execute the backtest.

        Parameters
        ----------
        ticks : Iterable[Tick]
            Chronological tick stream, consumed at most once.
        signals : Sequence[Signal]
            Signals to replay; order does not matter.
        strategy : StrategyConfig | None
            Exit rules; defaults to a single TP1 with the signal's stop.
        risk : RiskConfig | None
            Account and sizing settings.
        on_progress : callable | None
            Receives a ``BacktestProgress`` every ``progress_interval``
            ticks.  Exceptions raised by it are logged and ignored.
        cancel : callable | None
            Polled before every tick; returning ``True`` stops the run with
            status ``CANCELLED``.

        Returns
        -------
        BacktestResults

        Raises
        ------
        EmptySignalsError, NoTimestampedSignalsError
            Before any tick is read.
        """
        strategy = strategy or StrategyConfig()
        risk = risk or RiskConfig()

        scheduled, skipped = self._schedule_signals(signals)
        first_trigger = scheduled[0].trigger_time
        last_trigger = scheduled[-1].trigger_time
        logger.info(
            "Backtesting %d signal(s) from %s to %s",
            len(scheduled), first_trigger, last_trigger,
        )

        started_at = datetime.now()
        manager = TradeManager(strategy, self.fills)
        balance = risk.initial_balance
        drawdown = DrawdownTracker.starting_at(balance)
        trades: List[ClosedTrade] = []
        equity_curve: List[EquityPoint] = [EquityPoint(first_trigger, balance, balance)]

        status = RunStatus.COMPLETED
        tick_count = 0
        next_signal = 0
        first_tick: Optional[Tick] = None
        last_tick: Optional[Tick] = None

        iterator = iter(ticks)
        bar = tqdm(desc="Backtesting", unit="tick", disable=not self.progress_bar)
        try:
            for tick in iterator:
                if cancel is not None and cancel():
                    status = RunStatus.CANCELLED
                    logger.info("Backtest cancelled after %d ticks", tick_count)
                    break

                tick_count += 1
                bar.update(1)
                if first_tick is None:
                    first_tick = tick
                    logger.info("First tick: %s bid=%s ask=%s", tick.timestamp, tick.bid, tick.ask)
                last_tick = tick

                if on_progress is not None and tick_count % self.progress_interval == 0:
                    self._report_progress(
                        on_progress, BacktestProgress(tick_count, len(trades), len(manager)),
                    )

                # ---- Open every signal that is due ----
                while next_signal < len(scheduled) and tick.timestamp >= scheduled[next_signal].trigger_time:
                    self._open(manager, scheduled[next_signal], tick, risk, balance)
                    next_signal += 1

                # ---- Manage open positions ----
                for event in manager.on_tick(tick):
                    balance += event.fill.profit
                    drawdown.update(balance, balance)
                    equity_curve.append(EquityPoint(tick.timestamp, balance, balance))
                    if event.is_final:
                        trades.append(self._closed_trade(len(trades) + 1, event, balance))

                if next_signal >= len(scheduled) and len(manager) == 0:
                    logger.debug("All signals opened and closed, stopping at tick %d", tick_count)
                    break
        finally:
            bar.close()
            close = getattr(iterator, "close", None)
            if callable(close):
                close()

        end_time = last_tick.timestamp if last_tick is not None else None
        for position in manager.drain():
            trades.append(self._open_trade(len(trades) + 1, position, end_time, balance))

        diagnostics = self._diagnose(
            status, tick_count, first_tick, last_tick, first_trigger, last_trigger, next_signal, trades,
        )
        for note in diagnostics:
            logger.warning(note)

        results = compute_results(
            trades,
            equity_curve,
            initial_balance=risk.initial_balance,
            final_balance=balance,
            drawdown=drawdown,
            status=status,
            ticks_processed=tick_count,
            signals_total=len(signals),
            signals_opened=next_signal,
            skipped_signals=skipped,
            started_at=started_at,
            finished_at=datetime.now(),
            diagnostics=tuple(diagnostics),
        )
        logger.info(
            "Backtest %s: %d ticks, %d trades, final balance %.2f",
            status.value, tick_count, results.total_trades, results.final_balance,
        )
        return results

    # ------------------------------------------------------------------ #
    #  Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _open(
        self,
        manager: TradeManager,
        item: ScheduledSignal,
        tick: Tick,
        risk: RiskConfig,
        balance: float,
    ) -> OpenPosition:
        signal = item.signal
        entry = self.fills.fill_entry(tick, item.direction)
        if signal.stop_loss > 0:
            sl_pips = abs(calculate_pips(entry, signal.stop_loss, item.direction, signal.symbol))
        else:
            sl_pips = 0.0
        lots = calculate_lot_size(risk, balance, sl_pips)
        return manager.open_position(signal, item.direction, tick, lots)

    @staticmethod
    def _report_progress(callback: ProgressCallback, progress: BacktestProgress) -> None:
        try:
            callback(progress)
        except Exception:
            logger.warning("Progress callback failed", exc_info=True)

    def _closed_trade(self, trade_id: int, event: CloseEvent, balance: float) -> ClosedTrade:
        pos = event.position
        return ClosedTrade(
            trade_id=trade_id,
            signal_id=pos.signal.id,
            symbol=pos.symbol,
            direction=pos.direction,
            entry_price=pos.entry_price,
            entry_time=pos.entry_time,
            exit_price=event.fill.exit_price,
            exit_time=event.fill.exit_time,
            exit_reason=event.fill.reason,
            lot_size=pos.initial_lot_size,
            pips=pos.realized_weighted_pips,
            profit=pos.realized_profit,
            balance=balance,
            equity=balance,
            fills=tuple(pos.fills),
            max_favorable_pips=self._excursion(pos, pos.best_price),
            max_adverse_pips=max(0.0, -self._excursion(pos, pos.worst_price)),
        )

    def _open_trade(
        self,
        trade_id: int,
        pos: OpenPosition,
        end_time: Optional[datetime],
        balance: float,
    ) -> ClosedTrade:
        """Synthetic record for a position the tick data never closed."""
        return ClosedTrade(
            trade_id=trade_id,
            signal_id=pos.signal.id,
            symbol=pos.symbol,
            direction=pos.direction,
            entry_price=pos.entry_price,
            entry_time=pos.entry_time,
            exit_price=pos.entry_price,
            exit_time=end_time or pos.entry_time,
            exit_reason=ExitReason.OPEN,
            lot_size=pos.initial_lot_size,
            pips=0.0,
            profit=0.0,
            balance=balance,
            equity=balance,
            fills=tuple(pos.fills),
            max_favorable_pips=self._excursion(pos, pos.best_price),
            max_adverse_pips=max(0.0, -self._excursion(pos, pos.worst_price)),
        )

    @staticmethod
    def _excursion(pos: OpenPosition, price: float) -> float:
        return calculate_pips(pos.entry_price, price, pos.direction, pos.symbol)

    @staticmethod
    def _diagnose(
        status: RunStatus,
        tick_count: int,
        first_tick: Optional[Tick],
        last_tick: Optional[Tick],
        first_trigger: datetime,
        last_trigger: datetime,
        signals_opened: int,
        trades: List[ClosedTrade],
    ) -> List[str]:
        notes: List[str] = []
        if tick_count == 0:
            if status is RunStatus.COMPLETED:
                notes.append("No valid ticks were processed. Check the tick format settings.")
            return notes

        if status is RunStatus.COMPLETED and first_trigger > last_tick.timestamp:
            notes.append(
                f"All signals ({first_trigger}) are after the last tick ({last_tick.timestamp}); "
                "the tick data ends before the first signal."
            )
        if last_trigger < first_tick.timestamp:
            notes.append(
                f"All signals ({last_trigger}) are before the first tick ({first_tick.timestamp}); "
                "they were opened at the start of the tick data."
            )

        open_count = sum(1 for t in trades if t.is_open)
        if signals_opened and open_count == len(trades) and status is RunStatus.COMPLETED:
            notes.append(
                f"{open_count} trade(s) were opened but none closed before the tick data ended."
            )
        return notes


def run_backtest(
    ticks: Iterable[Tick],
    signals: Sequence[Signal],
    strategy: Optional[StrategyConfig] = None,
    risk: Optional[RiskConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelCheck] = None,
    progress_bar: bool = False,
) -> BacktestResults:
    """Functional shortcut for ``BacktestEngine(...).run(...)``."""
    engine = BacktestEngine(progress_bar=progress_bar)
    return engine.run(ticks, signals, strategy, risk, on_progress=on_progress, cancel=cancel)
