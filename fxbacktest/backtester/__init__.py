"""
backtester: tick-by-tick forex signal backtesting engine.

Architecture
~~~~~~~~~~~~
- **models**:       Data classes, enums, and configuration objects (Tick, Signal, StrategyConfig, …)
- **execution**:    Pip arithmetic and quote-side fill rules
- **sizing**:       Position sizing (percentage, fixed lot, rule based)
- **exits**:        Multi-level take-profit ladder
- **risk**:         Trade manager (trailing stop, breakeven, stop, partial closes)
- **metrics**:      Drawdown tracking and the final report
- **engine**:       Streaming backtest loop
- **examples**:     Ready-to-run usage examples

Quick start
~~~~~~~~~~~
>>> from fxbacktest.backtester import BacktestEngine, StrategyConfig, RiskConfig
>>> engine = BacktestEngine()
>>> results = engine.run(ticks, signals, StrategyConfig(active_tps=(1, 2)), RiskConfig())
>>> print(results.summary())
"""

from fxbacktest.backtester.models import (
    Direction,
    ExitReason,
    RiskType,
    RunStatus,
    Tick,
    TickFormat,
    Signal,
    StrategyConfig,
    RiskConfig,
    PartialFill,
    OpenPosition,
    CloseEvent,
    ClosedTrade,
    EquityPoint,
    BacktestProgress,
)
from fxbacktest.backtester.execution import (
    FillSimulator,
    pip_value,
    calculate_pips,
    calculate_profit,
)
from fxbacktest.backtester.sizing import calculate_lot_size
from fxbacktest.backtester.exits import TakeProfitLadder, TakeProfitHit
from fxbacktest.backtester.risk import TradeManager
from fxbacktest.backtester.metrics import BacktestResults, DrawdownTracker, compute_results
from fxbacktest.backtester.engine import BacktestEngine, run_backtest

__all__ = [
    # Models
    "Direction",
    "ExitReason",
    "RiskType",
    "RunStatus",
    "Tick",
    "TickFormat",
    "Signal",
    "StrategyConfig",
    "RiskConfig",
    "PartialFill",
    "OpenPosition",
    "CloseEvent",
    "ClosedTrade",
    "EquityPoint",
    "BacktestProgress",
    # Execution
    "FillSimulator",
    "pip_value",
    "calculate_pips",
    "calculate_profit",
    # Sizing
    "calculate_lot_size",
    # Exits
    "TakeProfitLadder",
    "TakeProfitHit",
    # Risk
    "TradeManager",
    # Metrics
    "BacktestResults",
    "DrawdownTracker",
    "compute_results",
    # Engine
    "BacktestEngine",
    "run_backtest",
]
