from datetime import datetime, timedelta

import pytest

from fxbacktest.backtester.models import Direction, Signal, StrategyConfig, Tick

START = datetime(2024, 3, 15, 10, 0, 0)


@pytest.fixture
def start_time():
    return START


@pytest.fixture
def make_ticks():
    """Build one tick per second from a list of bids (ask = bid + spread)."""
    def _make(bids, spread=0.0, start=START):
        return [
            Tick(start + timedelta(seconds=i), bid, round(bid + spread, 6))
            for i, bid in enumerate(bids)
        ]
    return _make


@pytest.fixture
def make_signal():
    """EURUSD buy at 1.1000, 50 pip stop, take-profits every 50 pips."""
    def _make(**overrides):
        fields = dict(
            id="s1",
            symbol="EURUSD",
            direction=Direction.BUY,
            entry_price=1.1000,
            stop_loss=1.0950,
            take_profits=(1.1050, 1.1100, 1.1150),
            timestamp="2024-03-15 10:00:00",
        )
        fields.update(overrides)
        return Signal(**fields)
    return _make


@pytest.fixture
def tracked_ticks():
    """Wrap a tick list in a generator that records how far it was consumed."""
    class Tracker:
        def __init__(self, ticks):
            self.ticks = ticks
            self.consumed = 0
            self.started = False
            self.closed = False

        def stream(self):
            self.started = True
            try:
                for tick in self.ticks:
                    self.consumed += 1
                    yield tick
            finally:
                self.closed = True

    return Tracker


@pytest.fixture
def single_tp():
    return StrategyConfig(use_multiple_tps=False)
