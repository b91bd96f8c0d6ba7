"""
Data models, enums, and type definitions for the signal backtester.

All value objects are intentionally kept immutable (frozen dataclasses / enums)
to prevent accidental mutation during the hot-loop.  ``OpenPosition`` is the
sole mutable structure: it tracks a *live* position and is updated in-place
by the trade manager on every tick.

Configuration objects (``TickFormat``, ``StrategyConfig``, ``RiskConfig``)
accept both snake_case keys and the camelCase keys used by JSON payloads in
their ``from_dict`` constructors.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from fxbacktest.configuration import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_PARTIAL_PERCENT,
    DEFAULT_TIME_FORMAT,
    MAX_TP_LEVELS,
)
from fxbacktest.exceptions import InvalidTickFormat


def _pick(data: Mapping[str, Any], key: str, alias: str, default: Any = None) -> Any:
    """Return ``data[key]`` or ``data[alias]``, skipping ``None`` values."""
    for name in (key, alias):
        value = data.get(name)
        if value is not None:
            return value
    return default


def _positive_or_none(value: Any) -> Any:
    """Zero and negative thresholds mean *disabled*."""
    if value is None:
        return None
    return value if value > 0 else None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Direction(str, enum.Enum):
    """Trade direction."""
    BUY  = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value: Any) -> Optional[Direction]:
        """Tolerant conversion; returns ``None`` for anything but buy/sell."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None

    @property
    def opposite(self) -> Direction:
        return Direction.SELL if self is Direction.BUY else Direction.BUY


class ExitReason(enum.Enum):
    """Why a position (or the last slice of it) was closed."""
    TP1           = "tp1"
    TP2           = "tp2"
    TP3           = "tp3"
    TP4           = "tp4"
    STOP_LOSS     = "sl"
    TRAILING_STOP = "trailing_sl"
    OPEN          = "open"

    @classmethod
    def for_level(cls, level: int) -> ExitReason:
        return cls(f"tp{level}")

    @property
    def is_take_profit(self) -> bool:
        return self.value.startswith("tp")


class RiskType(str, enum.Enum):
    """Position-sizing modes."""
    PERCENTAGE = "percentage"
    FIXED_LOT  = "fixed_lot"
    RULE_BASED = "rule_based"


class RunStatus(enum.Enum):
    """Terminal outcome of a backtest run."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Immutable value objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Tick:
    """
    Single bid/ask quote consumed by the engine.

    Attributes
    ----------
    timestamp : datetime
        Naive instant of the quote, in the tick file's own clock.
    bid : float
        Price a long position is closed at.
    ask : float
        Price a long position is opened at.
    """
    timestamp: datetime
    bid: float
    ask: float


@dataclass(frozen=True, slots=True)
class TickFormat:
    """
    Column layout of a delimited tick file.

    Attributes
    ----------
    delimiter : str
        Column separator.  ``"tab"`` and ``"space"`` are accepted aliases,
        the latter splitting on any run of whitespace.
    date_column, time_column, bid_column, ask_column : int
        Zero-based column positions.  When ``date_column == time_column``
        the field is expected to hold ``"<date> <time>"``.
    date_format : str
        One of ``configuration.SUPPORTED_DATE_FORMATS``; anything else is
        resolved by the heuristic signal-timestamp parser.
    time_format : str
        ``"HH:mm:ss"`` or ``"HH:mm:ss.SSS"``.
    has_header : bool
        Skip the first line of the source.
    """
    delimiter: str = ","
    date_column: int = 0
    time_column: int = 1
    bid_column: int = 2
    ask_column: int = 3
    date_format: str = DEFAULT_DATE_FORMAT
    time_format: str = DEFAULT_TIME_FORMAT
    has_header: bool = False

    def __post_init__(self) -> None:
        if not self.delimiter:
            raise InvalidTickFormat("Tick format delimiter must not be empty.")
        for name in ("date_column", "time_column", "bid_column", "ask_column"):
            if getattr(self, name) < 0:
                raise InvalidTickFormat(f"Tick format {name} must be >= 0.")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TickFormat:
        return cls(
            delimiter=str(_pick(data, "delimiter", "delimiter", ",")),
            date_column=int(_pick(data, "date_column", "dateColumn", 0)),
            time_column=int(_pick(data, "time_column", "timeColumn", 1)),
            bid_column=int(_pick(data, "bid_column", "bidColumn", 2)),
            ask_column=int(_pick(data, "ask_column", "askColumn", 3)),
            date_format=str(_pick(data, "date_format", "dateFormat", DEFAULT_DATE_FORMAT)),
            time_format=str(_pick(data, "time_format", "timeFormat", DEFAULT_TIME_FORMAT)),
            has_header=bool(_pick(data, "has_header", "hasHeader", False)),
        )


@dataclass(frozen=True, slots=True)
class Signal:
    """
    A parsed trade signal.

    ``take_profits[0]`` is TP1, ``take_profits[3]`` is TP4.  Levels are
    addressed by number, their prices need not be sorted.  ``entry_price``
    of 0 means *market*; the engine always fills at the quote of the
    trigger tick.
    """
    id: str
    symbol: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profits: Tuple[float, ...] = ()
    timestamp: Optional[str] = None
    raw_text: str = ""

    def __post_init__(self) -> None:
        levels = tuple(float(tp) if tp is not None else 0.0 for tp in self.take_profits)
        object.__setattr__(self, "take_profits", levels)

    def take_profit(self, level: int) -> Optional[float]:
        """Price of TP ``level`` (1-based), ``None`` if absent or not positive."""
        if level < 1 or level > len(self.take_profits):
            return None
        price = self.take_profits[level - 1]
        return price if price > 0 else None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Signal:
        direction = _pick(data, "direction", "direction", "")
        return cls(
            id=str(_pick(data, "id", "signalId", "")),
            symbol=str(_pick(data, "symbol", "symbol", "")),
            direction=Direction.parse(direction) or direction,
            entry_price=float(_pick(data, "entry_price", "entryPrice", 0.0)),
            stop_loss=float(_pick(data, "stop_loss", "stopLoss", 0.0)),
            take_profits=tuple(_pick(data, "take_profits", "takeProfits", ())),
            timestamp=_pick(data, "timestamp", "timestamp"),
            raw_text=str(_pick(data, "raw_text", "rawText", "")),
        )


@dataclass(frozen=True, slots=True)
class StrategyConfig:
    """
    Exit-rule configuration applied to every position.

    Attributes
    ----------
    move_sl_to_entry : bool
        Enable the breakeven move.
    move_sl_after_tp : int | None
        Breakeven once this many take-profit levels have been hit.
    move_sl_after_pips : float | None
        Breakeven once the position has been this many pips in profit.
    trailing_sl : bool
        Enable the trailing stop.
    trailing_pips : float | None
        Trailing distance behind the best price seen, in pips.
    use_multiple_tps : bool
        When ``False`` only TP1 is used.
    active_tps : tuple[int, ...]
        Take-profit levels (1-4) that are traded.
    close_partials : bool
        Close a slice of the position at every intermediate level.
    partial_close_percent : float
        Slice size, as a percentage of the *original* lot size.
    close_all_on_tp : int | None
        Close everything that remains at this level or any higher one.
    """
    move_sl_to_entry: bool = False
    move_sl_after_tp: Optional[int] = None
    move_sl_after_pips: Optional[float] = None
    trailing_sl: bool = False
    trailing_pips: Optional[float] = None
    use_multiple_tps: bool = True
    active_tps: Tuple[int, ...] = (1,)
    close_partials: bool = False
    partial_close_percent: float = DEFAULT_PARTIAL_PERCENT
    close_all_on_tp: Optional[int] = None

    def __post_init__(self) -> None:
        levels = sorted({int(level) for level in self.active_tps if 1 <= int(level) <= MAX_TP_LEVELS})
        object.__setattr__(self, "active_tps", tuple(levels))
        object.__setattr__(self, "move_sl_after_tp", _positive_or_none(self.move_sl_after_tp))
        object.__setattr__(self, "move_sl_after_pips", _positive_or_none(self.move_sl_after_pips))
        object.__setattr__(self, "trailing_pips", _positive_or_none(self.trailing_pips))
        object.__setattr__(self, "close_all_on_tp", _positive_or_none(self.close_all_on_tp))

    @property
    def trailing_enabled(self) -> bool:
        return self.trailing_sl and self.trailing_pips is not None

    @property
    def break_even_enabled(self) -> bool:
        return self.move_sl_to_entry and (
            self.move_sl_after_tp is not None or self.move_sl_after_pips is not None
        )

    @property
    def traded_levels(self) -> Tuple[int, ...]:
        if not self.use_multiple_tps:
            return (1,)
        return self.active_tps

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StrategyConfig:
        return cls(
            move_sl_to_entry=bool(_pick(data, "move_sl_to_entry", "moveSLToEntry", False)),
            move_sl_after_tp=_pick(data, "move_sl_after_tp", "moveSLAfterTP"),
            move_sl_after_pips=_pick(data, "move_sl_after_pips", "moveSLAfterPips"),
            trailing_sl=bool(_pick(data, "trailing_sl", "trailingSL", False)),
            trailing_pips=_pick(data, "trailing_pips", "trailingPips"),
            use_multiple_tps=bool(_pick(data, "use_multiple_tps", "useMultipleTPs", True)),
            active_tps=tuple(_pick(data, "active_tps", "activeTPs", (1,))),
            close_partials=bool(_pick(data, "close_partials", "closePartials", False)),
            partial_close_percent=float(
                _pick(data, "partial_close_percent", "partialClosePercent", DEFAULT_PARTIAL_PERCENT)
            ),
            close_all_on_tp=_pick(data, "close_all_on_tp", "closeAllOnTP"),
        )


@dataclass(frozen=True, slots=True)
class RiskConfig:
    """
    Account and position-sizing configuration.

    Only the parameters of the selected ``risk_type`` are read; missing ones
    fall back to the defaults in ``configuration``.
    """
    initial_balance: float = 10_000.0
    risk_type: str = RiskType.PERCENTAGE
    risk_percentage: Optional[float] = None
    fixed_lot_size: Optional[float] = None
    rule_based_amount: Optional[float] = None
    rule_based_lot: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RiskConfig:
        return cls(
            initial_balance=float(_pick(data, "initial_balance", "initialBalance", 10_000.0)),
            risk_type=str(_pick(data, "risk_type", "riskType", RiskType.PERCENTAGE.value)),
            risk_percentage=_pick(data, "risk_percentage", "riskPercentage"),
            fixed_lot_size=_pick(data, "fixed_lot_size", "fixedLotSize"),
            rule_based_amount=_pick(data, "rule_based_amount", "ruleBasedAmount"),
            rule_based_lot=_pick(data, "rule_based_lot", "ruleBasedLot"),
        )


@dataclass(frozen=True, slots=True)
class PartialFill:
    """
    One realised exit stage of a position.

    A position closed in one go has a single fill; a take-profit ladder with
    partial closes produces one fill per level reached.
    """
    level: Optional[int]
    reason: ExitReason
    exit_price: float
    exit_time: datetime
    lots: float
    pips: float
    profit: float


@dataclass(frozen=True, slots=True)
class EquityPoint:
    """Account snapshot, appended on every balance change."""
    time: datetime
    equity: float
    balance: float


@dataclass(frozen=True, slots=True)
class BacktestProgress:
    """Payload of the best-effort progress callback."""
    ticks_processed: int
    trades_completed: int
    open_trades: int


# ---------------------------------------------------------------------------
# Mutable position tracker
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class OpenPosition:
    """
    Mutable state of one *currently open* simulated position.

    The trade manager mutates ``current_stop``, the price extremes,
    ``levels_hit`` and the realised accumulators on every tick.
    ``current_stop`` is ``None`` when the signal carries no stop and neither
    the trailing stop nor the breakeven rule has set one yet.
    """
    key: int
    signal: Signal
    direction: Direction
    entry_price: float
    entry_time: datetime
    current_stop: Optional[float]
    initial_lot_size: float
    remaining_lots: float
    highest_price: float
    lowest_price: float
    levels_hit: Set[int] = field(default_factory=set)
    realized_profit: float = 0.0
    realized_weighted_pips: float = 0.0
    fills: List[PartialFill] = field(default_factory=list)
    break_even_triggered: bool = False
    ticks_in_trade: int = 0

    @property
    def symbol(self) -> str:
        return self.signal.symbol

    @property
    def best_price(self) -> float:
        """Most favourable mark price seen so far."""
        return self.highest_price if self.direction == Direction.BUY else self.lowest_price

    @property
    def worst_price(self) -> float:
        return self.lowest_price if self.direction == Direction.BUY else self.highest_price

    @property
    def lots_closed(self) -> float:
        return sum(f.lots for f in self.fills)

    def update_extremes(self, price: float) -> None:
        """Track running extremes of the mark price (called every tick while in-trade)."""
        self.ticks_in_trade += 1
        if price > self.highest_price:
            self.highest_price = price
        if price < self.lowest_price:
            self.lowest_price = price

    def record_fill(self, fill: PartialFill) -> None:
        """Book a realised exit stage."""
        self.fills.append(fill)
        self.remaining_lots -= fill.lots
        self.realized_profit += fill.profit
        self.realized_weighted_pips += fill.pips * (fill.lots / self.initial_lot_size)


@dataclass(frozen=True, slots=True)
class CloseEvent:
    """
    Emitted by the trade manager whenever lots are closed.

    ``is_final`` is ``True`` when the position left the open set with this
    fill; the engine then writes a ``ClosedTrade``.
    """
    position: OpenPosition
    fill: PartialFill
    is_final: bool


# ---------------------------------------------------------------------------
# Trade record (one per closed signal)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ClosedTrade:
    """
    Immutable record written once a position is fully closed (or reported
    as still ``open`` at the end of the data).

    ``pips`` is the lot-weighted sum over all fills and ``profit`` the plain
    sum of each fill's profit.  ``balance`` / ``equity`` are the account
    values right after the final fill.
    """
    trade_id: int
    signal_id: str
    symbol: str
    direction: Direction
    entry_price: float
    entry_time: datetime
    exit_price: float
    exit_time: datetime
    exit_reason: ExitReason
    lot_size: float
    pips: float
    profit: float
    balance: float
    equity: float
    fills: Tuple[PartialFill, ...] = ()
    max_favorable_pips: float = 0.0
    max_adverse_pips: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.exit_reason is ExitReason.OPEN

    @property
    def is_win(self) -> bool:
        return not self.is_open and self.profit > 0

    @property
    def is_loss(self) -> bool:
        return not self.is_open and self.profit < 0

    @property
    def lots_closed(self) -> float:
        return sum(f.lots for f in self.fills)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "signal_id": self.signal_id,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "entry_time": self.entry_time,
            "exit_price": self.exit_price,
            "exit_time": self.exit_time,
            "exit_reason": self.exit_reason.value,
            "lot_size": self.lot_size,
            "pips": self.pips,
            "profit": self.profit,
            "balance": self.balance,
            "equity": self.equity,
            "n_fills": len(self.fills),
            "max_favorable_pips": self.max_favorable_pips,
            "max_adverse_pips": self.max_adverse_pips,
        }
