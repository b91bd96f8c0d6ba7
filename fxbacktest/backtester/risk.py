"""
Position-level trade management.

The ``TradeManager`` owns every open position.  It is called on every tick
and, for each position, updates the mutable ``OpenPosition`` (price extremes,
trailing-stop level, breakeven move) before checking exits:

1. running extremes of the mark price
2. trailing-stop ratchet
3. breakeven move
4. stop check (all remaining lots)
5. take-profit ladder, only when the stop did not fire

Every realised exit stage is returned as a ``CloseEvent``; the engine books
it against the account.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fxbacktest.backtester.execution import FillSimulator, calculate_pips, calculate_profit, pip_value
from fxbacktest.backtester.exits import TakeProfitLadder
from fxbacktest.backtester.models import (
    CloseEvent,
    Direction,
    ExitReason,
    OpenPosition,
    PartialFill,
    Signal,
    StrategyConfig,
    Tick,
)

logger = logging.getLogger(__name__)


class TradeManager:
    """
    Mechanical exit rules applied every tick while positions are live.

    Parameters
    ----------
    strategy : StrategyConfig
        Stop and take-profit rules shared by all positions.
    fills : FillSimulator | None
        Quote-side rules; a default simulator is used when omitted.

    Notes
    -----
    * Stops take precedence over take-profits on the same tick.
    * A stop fires on the mark price (bid for buys, ask for sells) and is
      filled at the stop price.
    * The trailing stop and the breakeven move only ever tighten the stop.
    """

    def __init__(self, strategy: StrategyConfig, fills: Optional[FillSimulator] = None) -> None:
        self.strategy = strategy
        self.fills = fills or FillSimulator()
        self.ladder = TakeProfitLadder(strategy)
        self._positions: Dict[int, OpenPosition] = {}
        self._next_key = 1

    # ------------------------------------------------------------------ #
    #  Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def open_positions(self) -> List[OpenPosition]:
        return list(self._positions.values())

    def __len__(self) -> int:
        return len(self._positions)

    def open_position(self, signal: Signal, direction: Direction, tick: Tick, lot_size: float) -> OpenPosition:
        """
        Open a position on ``tick`` for ``signal``.

        The entry fill crosses the spread.  A signal stop of 0 or below
        means the position starts without a stop.
        """
        entry = self.fills.fill_entry(tick, direction)
        position = OpenPosition(
            key=self._next_key,
            signal=signal,
            direction=direction,
            entry_price=entry,
            entry_time=tick.timestamp,
            current_stop=signal.stop_loss if signal.stop_loss > 0 else None,
            initial_lot_size=lot_size,
            remaining_lots=lot_size,
            highest_price=entry,
            lowest_price=entry,
        )
        self._positions[position.key] = position
        self._next_key += 1
        logger.debug(
            "Opened %s %s (%s) at %.5f, %.2f lots",
            direction.value, signal.symbol, signal.id, entry, lot_size,
        )
        return position

    def on_tick(self, tick: Tick) -> List[CloseEvent]:
        """Evaluate every open position against ``tick``; fully closed ones are removed."""
        events: List[CloseEvent] = []
        for key, position in list(self._positions.items()):
            event = self._evaluate(position, tick)
            if event is None:
                continue
            events.append(event)
            if event.is_final:
                del self._positions[key]
        return events

    def drain(self) -> List[OpenPosition]:
        """Remove and return every position that is still open."""
        positions = list(self._positions.values())
        self._positions.clear()
        return positions

    # ------------------------------------------------------------------ #
    #  Per-position evaluation                                            #
    # ------------------------------------------------------------------ #

    def _evaluate(self, pos: OpenPosition, tick: Tick) -> Optional[CloseEvent]:
        price = self.fills.mark_price(tick, pos.direction)

        pos.update_extremes(price)
        self._update_trailing_stop(pos)
        self._update_break_even(pos)

        if self._stop_triggered(pos, price):
            reason = ExitReason.TRAILING_STOP if self.strategy.trailing_enabled else ExitReason.STOP_LOSS
            return self._close(pos, tick, None, reason, pos.current_stop, pos.remaining_lots, True)

        hit = self.ladder.check(pos, price)
        if hit is None or hit.close_lots <= 0:
            return None
        return self._close(
            pos, tick, hit.level, ExitReason.for_level(hit.level), hit.price, hit.close_lots, hit.is_final,
        )

    # ------------------------------------------------------------------ #
    #  Dynamic stop updates                                               #
    # ------------------------------------------------------------------ #

    def _update_trailing_stop(self, pos: OpenPosition) -> None:
        if not self.strategy.trailing_enabled:
            return

        distance = self.strategy.trailing_pips * pip_value(pos.symbol)

        if pos.direction == Direction.BUY:
            candidate = pos.highest_price - distance
            if pos.current_stop is None or candidate > pos.current_stop:
                pos.current_stop = candidate
        else:
            candidate = pos.lowest_price + distance
            if pos.current_stop is None or candidate < pos.current_stop:
                pos.current_stop = candidate

    def _update_break_even(self, pos: OpenPosition) -> None:
        if not self.strategy.break_even_enabled:
            return

        after_tp = self.strategy.move_sl_after_tp
        after_pips = self.strategy.move_sl_after_pips
        triggered = after_tp is not None and len(pos.levels_hit) >= after_tp
        if not triggered and after_pips is not None:
            excursion = calculate_pips(pos.entry_price, pos.best_price, pos.direction, pos.symbol)
            triggered = excursion >= after_pips
        if not triggered:
            return

        if pos.direction == Direction.BUY:
            if pos.current_stop is None or pos.current_stop < pos.entry_price:
                pos.current_stop = pos.entry_price
        else:
            if pos.current_stop is None or pos.current_stop > pos.entry_price:
                pos.current_stop = pos.entry_price
        if not pos.break_even_triggered:
            pos.break_even_triggered = True
            logger.debug("Stop of %s moved to entry %.5f", pos.signal.id, pos.entry_price)

    # ------------------------------------------------------------------ #
    #  Exit helpers                                                       #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _stop_triggered(pos: OpenPosition, price: float) -> bool:
        if pos.current_stop is None:
            return False
        if pos.direction == Direction.BUY:
            return price <= pos.current_stop
        return price >= pos.current_stop

    @staticmethod
    def _close(
        pos: OpenPosition,
        tick: Tick,
        level: Optional[int],
        reason: ExitReason,
        exit_price: float,
        lots: float,
        is_final: bool,
    ) -> CloseEvent:
        pips = calculate_pips(pos.entry_price, exit_price, pos.direction, pos.symbol)
        fill = PartialFill(
            level=level,
            reason=reason,
            exit_price=exit_price,
            exit_time=tick.timestamp,
            lots=lots,
            pips=pips,
            profit=calculate_profit(pips, lots),
        )
        pos.record_fill(fill)
        if is_final:
            pos.remaining_lots = 0.0
        return CloseEvent(position=pos, fill=fill, is_final=is_final)
