import logging

from fxbacktest.timestamps import (
    parse_timestamp,
    parse_timestamp_smart,
    parse_signal_timestamp
)

from fxbacktest.ticks import (
    parse_tick,
    iter_ticks,
    iter_ticks_from_content,
    read_tick_file,
    open_tick_source,
    detect_tick_format,
    TickDataStore,
    TickDataset
)

from fxbacktest.backtester import (
    BacktestEngine,
    BacktestResults,
    run_backtest,
    Signal,
    Tick,
    TickFormat,
    StrategyConfig,
    RiskConfig
)

from fxbacktest.exceptions import (
    BacktestError,
    EmptySignalsError,
    NoTimestampedSignalsError,
    TickDataNotFound,
    InvalidTickFormat
)

from fxbacktest.configuration import (
    PIP_VALUE_PER_LOT,
    MIN_LOT_SIZE,
    PROGRESS_INTERVAL,
    PROFIT_FACTOR_CAP,
    SUPPORTED_DATE_FORMATS
)

logging.getLogger(__name__).addHandler(logging.NullHandler())
