"""
Multi-level take-profit ladder.

A signal carries up to four take-profit levels.  The ladder decides, on every
tick, whether the next un-hit active level has been reached and how much of
the position to close there:

- the last remaining active level, or any level at or above
  ``close_all_on_tp``, closes everything that is left;
- otherwise, with ``close_partials`` enabled, ``partial_close_percent`` of
  the *original* lot size is closed (capped at what remains);
- otherwise the level is only recorded as hit.

At most one level is processed per tick.  Levels are addressed by number,
never by the order of their prices.

Example
-------
>>> ladder = TakeProfitLadder(StrategyConfig(active_tps=(1, 2), close_partials=True,
...                                          partial_close_percent=50))
>>> hit = ladder.check(position, price=1.1050)
>>> hit.level, hit.close_lots, hit.is_final
(1, 0.1, False)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from fxbacktest.backtester.models import Direction, OpenPosition, Signal, StrategyConfig
from fxbacktest.configuration import LOT_EPSILON


@dataclass(frozen=True, slots=True)
class TakeProfitHit:
    """
    Outcome of a take-profit level being reached.

    Attributes
    ----------
    level : int
        Level number (1-4).
    price : float
        Level price, used as the fill price.
    close_lots : float
        Lots to close now; 0 when the level is only recorded.
    is_final : bool
        The position is fully closed by this hit.
    """
    level: int
    price: float
    close_lots: float
    is_final: bool


@dataclass(slots=True)
class TakeProfitLadder:
    """
    Take-profit rules of a ``StrategyConfig`` applied to open positions.

    ``check`` mutates ``position.levels_hit`` when a level is reached; the
    lots themselves are booked by the trade manager.
    """
    strategy: StrategyConfig

    def active_levels(self, signal: Signal) -> Tuple[int, ...]:
        """Traded levels the signal actually carries, ascending."""
        return tuple(
            level for level in self.strategy.traded_levels
            if signal.take_profit(level) is not None
        )

    def check(self, position: OpenPosition, price: float) -> Optional[TakeProfitHit]:
        levels = self.active_levels(position.signal)
        for level in levels:
            if level in position.levels_hit:
                continue
            target = position.signal.take_profit(level)
            if not self._reached(position.direction, price, target):
                continue

            position.levels_hit.add(level)
            return self._decide(position, levels, level, target)
        return None

    # ------------------------------------------------------------------ #
    #  Helpers                                                            #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _reached(direction: Direction, price: float, target: float) -> bool:
        if direction == Direction.BUY:
            return price >= target
        return price <= target

    def _decide(
        self,
        position: OpenPosition,
        levels: Tuple[int, ...],
        level: int,
        target: float,
    ) -> TakeProfitHit:
        remaining_levels = [lvl for lvl in levels if lvl not in position.levels_hit]
        close_all_at = self.strategy.close_all_on_tp

        if not remaining_levels or (close_all_at is not None and level >= close_all_at):
            return TakeProfitHit(level, target, position.remaining_lots, True)

        if not self.strategy.close_partials:
            return TakeProfitHit(level, target, 0.0, False)

        lots = position.initial_lot_size * self.strategy.partial_close_percent / 100.0
        lots = min(lots, position.remaining_lots)
        if position.remaining_lots - lots <= LOT_EPSILON:
            return TakeProfitHit(level, target, position.remaining_lots, True)
        return TakeProfitHit(level, target, lots, False)
