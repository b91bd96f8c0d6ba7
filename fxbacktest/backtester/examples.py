"""
Usage examples for ``backtester``.

Run this file directly to execute all examples on synthetic data::

    python -m fxbacktest.backtester.examples

Each function is self-contained and demonstrates a different capability.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Sequence

import numpy as np

from fxbacktest.backtester.engine import BacktestEngine
from fxbacktest.backtester.execution import pip_value
from fxbacktest.backtester.models import (
    Direction,
    RiskConfig,
    RiskType,
    Signal,
    StrategyConfig,
    Tick,
    TickFormat,
)
from fxbacktest.ticks import iter_ticks_from_content


# ======================================================================== #
#  Synthetic data generator                                                #
# ======================================================================== #

def generate_synthetic_ticks(
    n_ticks: int = 100_000,
    symbol: str = "EURUSD",
    start_price: float = 1.1000,
    spread_pips: float = 1.0,
    volatility_pips: float = 0.5,
    start: datetime = datetime(2024, 1, 2, 0, 0, 0),
    seed: int = 42,
) -> List[Tick]:
    """
    Generate a random-walk bid/ask tick stream, one tick per second.

    Prices move in whole tenths of a pip with a slight upward drift.
    """
    rng = np.random.default_rng(seed)
    pip = pip_value(symbol)

    steps = rng.normal(0.05, volatility_pips, size=n_ticks)
    bids = np.round(start_price + np.cumsum(steps) * pip, 6)
    asks = np.round(bids + spread_pips * pip, 6)

    return [
        Tick(start + timedelta(seconds=i), float(bids[i]), float(asks[i]))
        for i in range(n_ticks)
    ]


def generate_synthetic_signals(
    ticks: Sequence[Tick],
    n_signals: int = 50,
    symbol: str = "EURUSD",
    sl_pips: float = 20.0,
    tp_pips: Sequence[float] = (15.0, 30.0, 45.0),
    seed: int = 123,
) -> List[Signal]:
    """
    Generate random signals placed on existing tick timestamps.

    Levels are set from the bid of the trigger tick; timestamps use the
    ``YYYY.MM.DD HH:mm:ss`` layout of common signal exports.
    """
    rng = np.random.default_rng(seed)
    pip = pip_value(symbol)
    idx = np.sort(rng.choice(len(ticks), size=n_signals, replace=False))
    sides = rng.choice([Direction.BUY.value, Direction.SELL.value], size=n_signals)

    signals = []
    for n, (i, side) in enumerate(zip(idx, sides), start=1):
        tick = ticks[int(i)]
        direction = Direction(str(side))
        sign = 1.0 if direction is Direction.BUY else -1.0
        signals.append(
            Signal(
                id=f"sig-{n}",
                symbol=symbol,
                direction=direction,
                entry_price=tick.bid,
                stop_loss=round(tick.bid - sign * sl_pips * pip, 6),
                take_profits=tuple(round(tick.bid + sign * tp * pip, 6) for tp in tp_pips),
                timestamp=tick.timestamp.strftime("%Y.%m.%d %H:%M:%S"),
            )
        )
    return signals


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


# ======================================================================== #
#  Example 1: single take-profit                                           #
# ======================================================================== #

def example_single_tp() -> None:
    """Each signal's stop and first take-profit, 1 % risk per trade."""
    _banner("EXAMPLE 1: Single TP, percentage risk")

    ticks = generate_synthetic_ticks(n_ticks=200_000, seed=42)
    signals = generate_synthetic_signals(ticks, n_signals=100, seed=123)

    results = BacktestEngine().run(
        ticks,
        signals,
        StrategyConfig(use_multiple_tps=False),
        RiskConfig(initial_balance=10_000, risk_type=RiskType.PERCENTAGE, risk_percentage=1.0),
    )
    print(results.summary())
    print(results.trades_df().head(5).to_string(index=False))


# ======================================================================== #
#  Example 2: take-profit ladder with partial closes                       #
# ======================================================================== #

def example_partial_ladder() -> None:
    """
    Three take-profit levels, a third of the position closed at TP1 and TP2
    and the stop moved to entry once TP1 has been hit.
    """
    _banner("EXAMPLE 2: TP ladder, partial closes, breakeven after TP1")

    ticks = generate_synthetic_ticks(n_ticks=200_000, seed=7)
    signals = generate_synthetic_signals(ticks, n_signals=100, seed=8)

    strategy = StrategyConfig(
        use_multiple_tps=True,
        active_tps=(1, 2, 3),
        close_partials=True,
        partial_close_percent=33.0,
        move_sl_to_entry=True,
        move_sl_after_tp=1,
    )
    results = BacktestEngine().run(
        ticks, signals, strategy, RiskConfig(risk_type=RiskType.FIXED_LOT, fixed_lot_size=0.3),
    )
    print(results.summary())


# ======================================================================== #
#  Example 3: trailing stop                                                #
# ======================================================================== #

def example_trailing_stop() -> None:
    """15-pip trailing stop on top of the signal stop, rule-based sizing."""
    _banner("EXAMPLE 3: Trailing stop, rule-based sizing")

    ticks = generate_synthetic_ticks(n_ticks=200_000, seed=11)
    signals = generate_synthetic_signals(ticks, n_signals=80, seed=12)

    strategy = StrategyConfig(trailing_sl=True, trailing_pips=15.0, active_tps=(3,))
    risk = RiskConfig(risk_type=RiskType.RULE_BASED, rule_based_amount=1_000, rule_based_lot=0.01)
    results = BacktestEngine().run(ticks, signals, strategy, risk)
    print(results.summary())
    print(results.equity_df().tail(5).to_string())


# ======================================================================== #
#  Example 4: parsing a tick file                                          #
# ======================================================================== #

def example_tick_file() -> None:
    """Replay from delimited text, the way tick exports are usually read."""
    _banner("EXAMPLE 4: Semicolon-delimited tick text")

    ticks = generate_synthetic_ticks(n_ticks=20_000, seed=3)
    lines = ["Date;Time;Bid;Ask"]
    lines += [
        f"{t.timestamp:%d.%m.%Y};{t.timestamp:%H:%M:%S};{t.bid:.5f};{t.ask:.5f}" for t in ticks
    ]
    content = "\n".join(lines)

    fmt = TickFormat(delimiter=";", date_format="DD.MM.YYYY", has_header=True)
    signals = generate_synthetic_signals(ticks, n_signals=10, seed=4)
    results = BacktestEngine().run(iter_ticks_from_content(content, fmt), signals)
    print(results.summary())


def run_all_examples() -> None:
    example_single_tp()
    example_partial_ladder()
    example_trailing_stop()
    example_tick_file()
    print("\n\n All examples completed successfully.\n")


if __name__ == "__main__":
    run_all_examples()
