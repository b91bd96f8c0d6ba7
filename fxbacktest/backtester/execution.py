"""
Pricing and fill rules.

The execution layer sits between the tick stream and the trade manager.
Its job is to decide which side of the quote a fill happens on and to
convert price distances into pips and account currency.

Notes
-----
Spread crossing always works **against** the trader:

- BUY  entry → ask, positions are marked (and closed) at the bid
- SELL entry → bid, positions are marked (and closed) at the ask

Stop-loss and take-profit fills happen at the level price, not at the
quote that crossed it; gaps are not modelled.
"""

from __future__ import annotations

from dataclasses import dataclass

from fxbacktest.backtester.models import Direction, Tick
from fxbacktest.configuration import (
    GOLD_MARKERS,
    JPY_MARKERS,
    PIP_SIZE_DEFAULT,
    PIP_SIZE_GOLD,
    PIP_SIZE_JPY,
    PIP_VALUE_PER_LOT,
)


# ---------------------------------------------------------------------------
# Pip arithmetic
# ---------------------------------------------------------------------------

def pip_value(symbol: str) -> float:
    """
    Price size of one pip for ``symbol``.

    JPY pairs use 0.01, gold (``XAU*`` or ``GOLD``) 0.1 and everything
    else 0.0001.  Matching is a case-insensitive substring test.
    """
    upper = (symbol or "").upper()
    if any(marker in upper for marker in JPY_MARKERS):
        return PIP_SIZE_JPY
    if any(marker in upper for marker in GOLD_MARKERS):
        return PIP_SIZE_GOLD
    return PIP_SIZE_DEFAULT


def calculate_pips(entry_price: float, exit_price: float, direction: Direction, symbol: str) -> float:
    """Signed pip result of moving from ``entry_price`` to ``exit_price``."""
    diff = exit_price - entry_price if direction == Direction.BUY else entry_price - exit_price
    return diff / pip_value(symbol)


def calculate_profit(pips: float, lot_size: float) -> float:
    """Account-currency result at a flat 10 units per pip per lot."""
    return pips * PIP_VALUE_PER_LOT * lot_size


# ---------------------------------------------------------------------------
# Fill simulator
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FillSimulator:
    """
    Chooses the side of the quote every fill happens on.

    The simulator is stateless; one instance is shared by all positions.
    """

    def fill_entry(self, tick: Tick, direction: Direction) -> float:
        """Realised entry price: buys cross to the ask, sells to the bid."""
        return tick.ask if direction == Direction.BUY else tick.bid

    def mark_price(self, tick: Tick, direction: Direction) -> float:
        """Price an open position would be closed at on ``tick``."""
        return tick.bid if direction == Direction.BUY else tick.ask
