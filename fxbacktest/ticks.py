"""
Tick data ingestion
===================

Lazy, line-by-line parsing of delimited bid/ask files.  Tick files routinely
run to tens of millions of lines, so every reader here is a generator and the
engine pulls ticks one at a time; a full file is never materialised.

Malformed lines (non-numeric prices, unparseable timestamps, too few columns)
are skipped silently.  A corrupt line never aborts a backtest.

Sources are resolved by :func:`open_tick_source` in a fixed order: inline
content, content held by the :class:`TickDataStore`, then the dataset's file
on disk.
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from fxbacktest.backtester.models import Tick, TickFormat
from fxbacktest.configuration import (
    DEFAULT_DATE_FORMAT,
    DEFAULT_TIME_FORMAT,
    DELIMITER_ALIASES,
    WHITESPACE_DELIMITER,
)
from fxbacktest.exceptions import TickDataNotFound
from fxbacktest.timestamps import parse_timestamp

logger = logging.getLogger(__name__)


def resolve_delimiter(delimiter: str) -> Optional[str]:
    """Map a delimiter alias to the separator ``str.split`` expects (``None`` = whitespace)."""
    if delimiter.strip().lower() == WHITESPACE_DELIMITER:
        return None
    return DELIMITER_ALIASES.get(delimiter.strip().lower(), delimiter)


def _parse_price(text: str) -> Optional[float]:
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_tick(line: str, tick_format: TickFormat) -> Optional[Tick]:
    """
    Parse one data line.

    Parameters
    ----------
    line : str
        Raw line, trailing newline allowed.
    tick_format : TickFormat
        Column layout.

    Returns
    -------
    Tick | None
        ``None`` for any line that cannot produce a valid quote.
    """
    columns = line.rstrip("\r\n").split(resolve_delimiter(tick_format.delimiter))

    def column(index: int) -> str:
        return columns[index].strip() if index < len(columns) else ""

    bid = _parse_price(column(tick_format.bid_column))
    ask = _parse_price(column(tick_format.ask_column))
    if bid is None or ask is None:
        return None

    date_str = column(tick_format.date_column)
    time_str = column(tick_format.time_column)
    if tick_format.date_column == tick_format.time_column:
        pieces = date_str.split(None, 1)
        date_str = pieces[0] if pieces else ""
        time_str = pieces[1] if len(pieces) > 1 else ""

    timestamp = parse_timestamp(date_str, time_str, tick_format.date_format, tick_format.time_format)
    if timestamp is None:
        return None
    return Tick(timestamp=timestamp, bid=bid, ask=ask)


def iter_ticks(lines: Iterable[str], tick_format: TickFormat) -> Iterator[Tick]:
    """Yield a ``Tick`` for every valid line of ``lines``, in source order."""
    skipped = 0
    for line_number, line in enumerate(lines, start=1):
        if line_number == 1 and tick_format.has_header:
            continue
        if not line.strip():
            continue
        tick = parse_tick(line, tick_format)
        if tick is None:
            skipped += 1
            continue
        yield tick
    if skipped:
        logger.debug("Skipped %d malformed tick line(s)", skipped)


def read_tick_file(path: str, tick_format: TickFormat, encoding: str = "utf-8") -> Iterator[Tick]:
    """
    Stream ticks from a file on disk.

    The file handle is released as soon as the generator is exhausted or
    closed, which the engine does when it stops early.
    """
    with open(path, "r", encoding=encoding, errors="replace", newline="") as fh:
        yield from iter_ticks(fh, tick_format)


def iter_ticks_from_content(content: str, tick_format: TickFormat) -> Iterator[Tick]:
    """Stream ticks from an in-memory string."""
    return iter_ticks(content.splitlines(), tick_format)


# ---------------------------------------------------------------------------
# Dataset registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TickDataset:
    """Metadata (and optionally the content) of a registered tick dataset."""
    dataset_id: str
    filename: str
    row_count: int
    sample_rows: Tuple[str, ...]
    uploaded_at: datetime
    content: Optional[str] = None
    file_path: Optional[str] = None


def _scan_file(path: str, sample_size: int) -> Tuple[int, Tuple[str, ...]]:
    rows = 0
    sample: List[str] = []
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as fh:
        for line in fh:
            if not line.strip():
                continue
            rows += 1
            if len(sample) < sample_size:
                sample.append(line.rstrip("\r\n"))
    return rows, tuple(sample)


class TickDataStore:
    """
    In-process registry of tick datasets.

    A dataset is registered either with its full content (small uploads) or
    with the path of a file on disk (large uploads that should be streamed).
    """

    def __init__(self) -> None:
        self._datasets: Dict[str, TickDataset] = {}

    def put(
        self,
        dataset_id: str,
        content: Optional[str] = None,
        file_path: Optional[str] = None,
        filename: str = "",
        sample_size: int = 5,
    ) -> TickDataset:
        if content is None and file_path is None:
            raise ValueError("A tick dataset needs either content or a file path")

        if content is not None:
            lines = [line for line in content.splitlines() if line.strip()]
            row_count, sample = len(lines), tuple(lines[:sample_size])
        else:
            if not os.path.exists(file_path):
                raise TickDataNotFound(f"Tick data file {file_path!r} does not exist")
            row_count, sample = _scan_file(file_path, sample_size)

        dataset = TickDataset(
            dataset_id=dataset_id,
            filename=filename or (os.path.basename(file_path) if file_path else dataset_id),
            row_count=row_count,
            sample_rows=sample,
            uploaded_at=datetime.now(),
            content=content,
            file_path=file_path,
        )
        self._datasets[dataset_id] = dataset
        logger.info("Registered tick dataset %s (%d rows)", dataset_id, row_count)
        return dataset

    def get(self, dataset_id: str) -> Optional[TickDataset]:
        return self._datasets.get(dataset_id)

    def get_file_path(self, dataset_id: str) -> Optional[str]:
        dataset = self._datasets.get(dataset_id)
        return dataset.file_path if dataset else None

    def remove(self, dataset_id: str) -> bool:
        return self._datasets.pop(dataset_id, None) is not None

    def __contains__(self, dataset_id: object) -> bool:
        return dataset_id in self._datasets

    def __len__(self) -> int:
        return len(self._datasets)


def open_tick_source(
    dataset_id: str,
    tick_format: TickFormat,
    store: Optional[TickDataStore] = None,
    content: Optional[str] = None,
) -> Iterator[Tick]:
    """
    Resolve a tick dataset to a lazy ``Tick`` stream.

    Raises
    ------
    TickDataNotFound
        When neither inline content, stored content nor an existing file is
        available for ``dataset_id``.
    """
    if content:
        logger.info("Using inline tick content for %s", dataset_id)
        return iter_ticks_from_content(content, tick_format)

    dataset = store.get(dataset_id) if store is not None else None
    if dataset is not None and dataset.content:
        logger.info("Using stored tick content for %s", dataset_id)
        return iter_ticks_from_content(dataset.content, tick_format)

    file_path = dataset.file_path if dataset is not None else None
    if file_path and os.path.exists(file_path):
        logger.info("Streaming ticks for %s from %s", dataset_id, file_path)
        return read_tick_file(file_path, tick_format)

    raise TickDataNotFound(
        f"Tick data {dataset_id!r} not found. Upload the tick data file before running a backtest."
    )


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------

_YEAR_FIRST  = re.compile(r"^\d{4}([-./])\d{1,2}\1\d{1,2}$")
_YEAR_LAST   = re.compile(r"^(\d{1,2})([-./])(\d{1,2})\2\d{2,4}$")
_COMPACT     = re.compile(r"^\d{8}$")
_FRACTIONAL  = re.compile(r"^\d{1,2}:\d{2}:\d{2}\.\d+$")


def _guess_date_format(token: str) -> str:
    match = _YEAR_FIRST.match(token)
    if match:
        sep = match.group(1)
        return f"YYYY{sep}MM{sep}DD"
    match = _YEAR_LAST.match(token)
    if match:
        sep = match.group(2)
        if int(match.group(3)) > 12 >= int(match.group(1)):
            return f"MM{sep}DD{sep}YYYY"
        return f"DD{sep}MM{sep}YYYY"
    if _COMPACT.match(token):
        return "YYYYMMDD"
    return DEFAULT_DATE_FORMAT


def detect_tick_format(sample_lines: Sequence[str]) -> TickFormat:
    """
    Guess the layout of a tick file from its first lines.

    The delimiter is the first of tab, semicolon, pipe and comma found in the
    first line.  Without any of them a line of four or more whitespace
    separated fields is read as whitespace delimited, anything else as
    comma delimited.  Columns are
    assumed to be date, time, bid, ask.  The first line is a header when its
    last column is not numeric.

    Raises
    ------
    ValueError
        If ``sample_lines`` holds no non-blank line.
    """
    lines = [line.rstrip("\r\n") for line in sample_lines if line.strip()]
    if not lines:
        raise ValueError("No sample lines provided")

    first = lines[0]
    for candidate in ("\t", ";", "|", ","):
        if candidate in first:
            delimiter = candidate
            break
    else:
        delimiter = WHITESPACE_DELIMITER if len(first.split()) >= 4 else ","

    separator = resolve_delimiter(delimiter)
    has_header = _parse_price(first.split(separator)[-1].strip()) is None

    data_line = lines[1] if has_header and len(lines) > 1 else first
    columns = [c.strip() for c in data_line.split(separator)]
    date_format = _guess_date_format(columns[0]) if columns else DEFAULT_DATE_FORMAT
    time_format = DEFAULT_TIME_FORMAT
    if len(columns) > 1 and _FRACTIONAL.match(columns[1]):
        time_format = "HH:mm:ss.SSS"

    return TickFormat(
        delimiter=delimiter,
        date_column=0,
        time_column=1,
        bid_column=2,
        ask_column=3,
        date_format=date_format,
        time_format=time_format,
        has_header=has_header,
    )
