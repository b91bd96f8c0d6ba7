"""
Exceptions thrown by fxbacktest package that are specific to this package only
"""


class BacktestError(Exception):
    """Base class for every error raised by the backtester"""
    pass

class EmptySignalsError(BacktestError):
    """Raised when a backtest is started without any signal to replay"""
    pass

class NoTimestampedSignalsError(BacktestError):
    """Raised when none of the signals carries a parseable trigger timestamp"""
    pass

class TickDataNotFound(BacktestError):
    """Raised when a tick dataset cannot be resolved from any known source"""
    pass

class InvalidTickFormat(BacktestError):
    """Raised when a tick format descriptor is not usable (negative column, empty delimiter)"""
    pass
