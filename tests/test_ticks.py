from datetime import datetime

import pytest

from fxbacktest.backtester.models import Tick, TickFormat
from fxbacktest.exceptions import InvalidTickFormat, TickDataNotFound
from fxbacktest.ticks import (
    TickDataStore,
    detect_tick_format,
    iter_ticks,
    iter_ticks_from_content,
    open_tick_source,
    parse_tick,
    read_tick_file,
)

CSV = "\n".join(
    [
        "Date,Time,Bid,Ask",
        "2024-03-15,10:00:00,1.10000,1.10010",
        "2024-03-15,10:00:01,1.10005,1.10015",
        "",
        "2024-03-15,10:00:02,oops,1.10020",
        "2024-03-15,10:00:03,1.10020,1.10030",
    ]
)


def test_parse_tick_default_layout():
    tick = parse_tick("2024-03-15,10:00:00,1.10000,1.10010\n", TickFormat())
    assert tick == Tick(datetime(2024, 3, 15, 10, 0, 0), 1.1, 1.1001)


@pytest.mark.parametrize(
    "line",
    [
        "2024-03-15,10:00:00,abc,1.10010",
        "2024-03-15,10:00:00,nan,1.10010",
        "2024-03-15,10:00:00,1.10000,inf",
        "2024-03-15,10:00:00,1.10000",
        "2024-13-15,10:00:00,1.10000,1.10010",
        "",
    ],
)
def test_malformed_lines_are_dropped(line):
    assert parse_tick(line, TickFormat()) is None


def test_iter_ticks_skips_header_blank_and_bad_lines():
    ticks = list(iter_ticks_from_content(CSV, TickFormat(has_header=True)))
    assert [t.timestamp.second for t in ticks] == [0, 1, 3]
    assert ticks[-1].bid == pytest.approx(1.1002)


def test_header_line_is_dropped_as_malformed_without_flag():
    ticks = list(iter_ticks_from_content(CSV, TickFormat(has_header=False)))
    assert len(ticks) == 3


def test_iter_ticks_is_lazy():
    lines = iter(["2024-03-15,10:00:00,1.1,1.2", "2024-03-15,10:00:01,1.1,1.2"])
    stream = iter_ticks(lines, TickFormat())
    next(stream)
    assert next(lines) == "2024-03-15,10:00:01,1.1,1.2"


def test_tab_alias_and_custom_columns():
    fmt = TickFormat(
        delimiter="tab", date_column=2, time_column=3, bid_column=0, ask_column=1,
        date_format="DD.MM.YYYY",
    )
    tick = parse_tick("1.25000\t1.25020\t15.03.2024\t23:59:59", fmt)
    assert tick == Tick(datetime(2024, 3, 15, 23, 59, 59), 1.25, 1.2502)


def test_whitespace_alias():
    fmt = TickFormat(delimiter="space", date_format="YYYY.MM.DD")
    tick = parse_tick("2024.03.15   10:00:00  1.1  1.2", fmt)
    assert tick == Tick(datetime(2024, 3, 15, 10, 0, 0), 1.1, 1.2)


def test_combined_date_time_column():
    fmt = TickFormat(date_column=0, time_column=0, bid_column=1, ask_column=2)
    tick = parse_tick("2024-03-15 10:00:05,1.1,1.2", fmt)
    assert tick.timestamp == datetime(2024, 3, 15, 10, 0, 5)


@pytest.mark.parametrize(
    "kwargs",
    [{"delimiter": ""}, {"bid_column": -1}, {"date_column": -2}],
)
def test_invalid_format_rejected(kwargs):
    with pytest.raises(InvalidTickFormat):
        TickFormat(**kwargs)


def test_tick_format_from_camel_case():
    fmt = TickFormat.from_dict(
        {"delimiter": ";", "dateColumn": 1, "timeColumn": 2, "bidColumn": 3, "askColumn": 4,
         "dateFormat": "DD/MM/YYYY", "hasHeader": True}
    )
    assert fmt == TickFormat(";", 1, 2, 3, 4, "DD/MM/YYYY", "HH:mm:ss", True)


def test_read_tick_file(tmp_path):
    path = tmp_path / "ticks.csv"
    path.write_text(CSV)
    ticks = list(read_tick_file(str(path), TickFormat(has_header=True)))
    assert len(ticks) == 3


def test_read_tick_file_can_be_closed_early(tmp_path):
    path = tmp_path / "ticks.csv"
    path.write_text(CSV)
    stream = read_tick_file(str(path), TickFormat(has_header=True))
    assert next(stream).timestamp.second == 0
    stream.close()
    with pytest.raises(StopIteration):
        next(stream)


# ---------------------------------------------------------------------------
# Dataset registry and source resolution
# ---------------------------------------------------------------------------

def test_store_with_content():
    store = TickDataStore()
    dataset = store.put("eurusd", content=CSV, filename="eurusd.csv", sample_size=2)
    assert dataset.row_count == 5
    assert dataset.sample_rows == ("Date,Time,Bid,Ask", "2024-03-15,10:00:00,1.10000,1.10010")
    assert "eurusd" in store and len(store) == 1
    assert store.get("eurusd") is dataset
    assert store.get_file_path("eurusd") is None
    assert store.remove("eurusd") is True
    assert store.remove("eurusd") is False
    assert store.get("eurusd") is None


def test_store_with_file(tmp_path):
    path = tmp_path / "gbpusd.csv"
    path.write_text(CSV)
    store = TickDataStore()
    dataset = store.put("gbpusd", file_path=str(path))
    assert dataset.filename == "gbpusd.csv"
    assert dataset.row_count == 5
    assert dataset.content is None
    assert store.get_file_path("gbpusd") == str(path)


def test_store_rejects_missing_inputs(tmp_path):
    store = TickDataStore()
    with pytest.raises(ValueError):
        store.put("x")
    with pytest.raises(TickDataNotFound):
        store.put("x", file_path=str(tmp_path / "missing.csv"))


def test_open_tick_source_prefers_inline_content(tmp_path):
    path = tmp_path / "ticks.csv"
    path.write_text("2024-03-15,11:00:00,1.2,1.3\n")
    store = TickDataStore()
    store.put("d1", file_path=str(path))

    inline = "2024-03-15,09:00:00,1.0,1.1"
    ticks = list(open_tick_source("d1", TickFormat(), store=store, content=inline))
    assert [t.timestamp.hour for t in ticks] == [9]

    ticks = list(open_tick_source("d1", TickFormat(), store=store))
    assert [t.timestamp.hour for t in ticks] == [11]


def test_open_tick_source_uses_stored_content():
    store = TickDataStore()
    store.put("d1", content="2024-03-15,08:00:00,1.0,1.1")
    ticks = list(open_tick_source("d1", TickFormat(), store=store))
    assert ticks[0].timestamp.hour == 8


def test_open_tick_source_not_found(tmp_path):
    with pytest.raises(TickDataNotFound):
        open_tick_source("nope", TickFormat())

    path = tmp_path / "gone.csv"
    path.write_text("2024-03-15,08:00:00,1.0,1.1")
    store = TickDataStore()
    store.put("d1", file_path=str(path))
    path.unlink()
    with pytest.raises(TickDataNotFound):
        open_tick_source("d1", TickFormat(), store=store)


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------

def test_detect_tab_without_header():
    fmt = detect_tick_format(["2024-03-15\t10:00:00\t1.1\t1.2", "2024-03-15\t10:00:01\t1.1\t1.2"])
    assert fmt.delimiter == "\t"
    assert fmt.has_header is False
    assert fmt.date_format == "YYYY-MM-DD"


def test_detect_semicolon_with_header_and_day_first_dates():
    fmt = detect_tick_format(["Date;Time;Bid;Ask", "15.03.2024;10:00:00.125;1.1;1.2"])
    assert fmt.delimiter == ";"
    assert fmt.has_header is True
    assert fmt.date_format == "DD.MM.YYYY"
    assert fmt.time_format == "HH:mm:ss.SSS"


def test_detect_month_first_and_compact_dates():
    assert detect_tick_format(["03/15/2024,10:00:00,1.1,1.2"]).date_format == "MM/DD/YYYY"
    assert detect_tick_format(["20240315|10:00:00|1.1|1.2"]).date_format == "YYYYMMDD"


def test_detect_whitespace_and_comma_fallback():
    fmt = detect_tick_format(["2024.03.15 10:00:00 1.1 1.2"])
    assert fmt.delimiter == "space"
    assert fmt.date_format == "YYYY.MM.DD"
    assert detect_tick_format(["garbage"]).delimiter == ","


def test_detected_format_parses_its_sample():
    sample = ["Date;Time;Bid;Ask", "15.03.2024;10:00:00;1.1;1.2"]
    fmt = detect_tick_format(sample)
    ticks = list(iter_ticks(sample, fmt))
    assert ticks == [Tick(datetime(2024, 3, 15, 10, 0, 0), 1.1, 1.2)]


def test_detect_requires_sample():
    with pytest.raises(ValueError):
        detect_tick_format(["", "  "])


def test_oversized_timestamp_line_is_skipped():
    content = "\n".join(
        [
            "2024-03-15,10:00:00,1.10000,1.10010",
            "2024-03-15,99999999999999999999:00:00,1.10005,1.10015",
            "2024-03-15,10:00:02,1.10020,1.10030",
        ]
    )
    assert parse_tick("99999999999999999999-03-15,10:00:00,1.1,1.2", TickFormat()) is None
    ticks = list(iter_ticks_from_content(content, TickFormat()))
    assert [t.timestamp.second for t in ticks] == [0, 2]
