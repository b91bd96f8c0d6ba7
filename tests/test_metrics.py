from datetime import datetime, timedelta

import pytest

from fxbacktest.backtester.metrics import BacktestResults, DrawdownTracker, compute_results
from fxbacktest.backtester.models import ClosedTrade, Direction, EquityPoint, ExitReason, RunStatus

T0 = datetime(2024, 3, 15, 10, 0, 0)


def trade(trade_id, profit, pips, reason, direction=Direction.BUY):
    return ClosedTrade(
        trade_id=trade_id,
        signal_id=f"s{trade_id}",
        symbol="EURUSD",
        direction=direction,
        entry_price=1.1,
        entry_time=T0,
        exit_price=1.1,
        exit_time=T0 + timedelta(minutes=trade_id),
        exit_reason=reason,
        lot_size=0.1,
        pips=pips,
        profit=profit,
        balance=10_000 + profit,
        equity=10_000 + profit,
    )


@pytest.fixture
def trades():
    return [
        trade(1, 100.0, 100.0, ExitReason.TP1),
        trade(2, -50.0, -50.0, ExitReason.STOP_LOSS, Direction.SELL),
        trade(3, 200.0, 200.0, ExitReason.TP2),
        trade(4, 0.0, 0.0, ExitReason.OPEN, Direction.SELL),
    ]


def test_drawdown_tracker_is_peak_relative():
    tracker = DrawdownTracker.starting_at(10_000)
    for balance in (10_100, 9_900, 10_200, 10_150):
        tracker.update(balance, balance)
    assert tracker.max_balance == 10_200
    assert tracker.max_drawdown_balance == pytest.approx(200.0)
    assert tracker.max_drawdown_balance_percent == pytest.approx(200 / 10_100 * 100)
    assert tracker.max_drawdown_equity == pytest.approx(200.0)


def test_drawdown_percent_tracked_independently_of_amount():
    tracker = DrawdownTracker.starting_at(10_000)
    # 1_000 off 10_000 is 10%, the later 1_500 off 20_000 only 7.5%
    for value in (9_000, 20_000, 18_500):
        tracker.update(value, value)
    assert tracker.max_drawdown_balance == pytest.approx(1_500.0)
    assert tracker.max_drawdown_balance_percent == pytest.approx(10.0)
    assert tracker.max_drawdown_equity == pytest.approx(1_500.0)
    assert tracker.max_drawdown_equity_percent == pytest.approx(10.0)


def test_compute_results(trades):
    tracker = DrawdownTracker.starting_at(10_000)
    results = compute_results(
        trades, [EquityPoint(T0, 10_000, 10_000)], 10_000.0, 10_250.0, tracker,
        status=RunStatus.COMPLETED, ticks_processed=42,
    )
    assert results.total_trades == 4
    assert results.closed_trades == 3
    assert results.open_trades == 1
    assert results.winning_trades == 2
    assert results.losing_trades == 1
    assert results.win_rate == pytest.approx(200 / 3)
    assert results.total_pips == pytest.approx(250.0)
    assert results.gross_profit == pytest.approx(300.0)
    assert results.gross_loss == pytest.approx(50.0)
    assert results.net_profit == pytest.approx(250.0)
    assert results.profit_factor == pytest.approx(6.0)
    assert results.average_win == pytest.approx(150.0)
    assert results.largest_win == pytest.approx(200.0)
    assert results.average_loss == pytest.approx(50.0)
    assert results.largest_loss == pytest.approx(50.0)
    assert results.long_trades == 2 and results.short_trades == 2
    assert results.exit_reason_counts == {"tp1": 1, "sl": 1, "tp2": 1, "open": 1}
    assert results.ticks_processed == 42


def test_empty_results():
    results = compute_results([], [], 10_000.0, 10_000.0, DrawdownTracker.starting_at(10_000))
    assert results.total_trades == 0
    assert results.win_rate == 0.0
    assert results.profit_factor == 0.0
    assert results.average_win == 0.0 and results.largest_loss == 0.0


def test_only_open_trades_have_no_statistics():
    results = compute_results(
        [trade(1, 0.0, 0.0, ExitReason.OPEN)], [], 10_000.0, 10_000.0, DrawdownTracker.starting_at(10_000),
    )
    assert results.open_trades == 1
    assert results.win_rate == 0.0
    assert results.profit_factor == 0.0


def test_report_and_frames(trades):
    results = compute_results(
        trades,
        [EquityPoint(T0, 10_000, 10_000), EquityPoint(T0 + timedelta(minutes=1), 10_100, 10_100)],
        10_000.0,
        10_250.0,
        DrawdownTracker.starting_at(10_000),
        diagnostics=("1 trade(s) still open",),
    )
    text = results.summary()
    assert "SIGNAL BACKTEST REPORT" in text
    assert "Profit Factor" in text
    assert "1 trade(s) still open" in text

    row = results.to_dataframe()
    assert len(row) == 1
    assert row.loc[0, "total_trades"] == 4
    assert row.loc[0, "exit_tp1"] == 1
    assert row.loc[0, "status"] == "completed"

    trades_df = results.trades_df()
    assert list(trades_df["exit_reason"]) == ["tp1", "sl", "tp2", "open"]
    assert list(trades_df["direction"]) == ["buy", "sell", "buy", "sell"]

    equity = results.equity_df()
    assert list(equity.columns) == ["equity", "balance"]
    assert equity.index[0] == T0


def test_empty_frames():
    results = BacktestResults()
    assert results.trades_df().empty
    assert results.equity_df().empty
    assert results.is_complete
