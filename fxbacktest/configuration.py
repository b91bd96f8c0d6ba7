# Typically, a backtest configuration for forex signal replay includes the following information:
#
#     - Pip sizes: the smallest standardised price increment of an instrument. Most pairs quote
#     four decimals (0.0001), JPY crosses quote two (0.01) and gold is measured in tenths (0.1).
#
#     - Pip value per lot: the account-currency value of a single pip for one standard lot.
#     The engine uses the retail convention of 10 dollars per pip per lot for every symbol,
#     no cross-rate conversion is modelled.
#
#     - Lot floors and defaults: brokers refuse orders below one micro lot (0.01), so the
#     position sizer never returns less than that.
#
#     - Timestamp fallbacks: tick files and signal exports use many date conventions. When a
#     component cannot be read the parser falls back to the values below instead of failing.


PIP_SIZE_DEFAULT       = 0.0001
PIP_SIZE_JPY           = 0.01
PIP_SIZE_GOLD          = 0.1
JPY_MARKERS            = ("JPY",)
GOLD_MARKERS           = ("XAU", "GOLD")

PIP_VALUE_PER_LOT      = 10.0
MIN_LOT_SIZE           = 0.01
DEFAULT_RISK_PERCENT   = 1.0
DEFAULT_RULE_AMOUNT    = 100.0
DEFAULT_RULE_LOT       = 0.01
LOT_EPSILON            = 1e-9

DEFAULT_PARTIAL_PERCENT = 25.0
MAX_TP_LEVELS          = 4

PROGRESS_INTERVAL      = 100_000
PROFIT_FACTOR_CAP      = 999.0

FALLBACK_YEAR          = 2024
FALLBACK_MONTH         = 1
FALLBACK_DAY           = 1
CENTURY_BASE           = 2000
DEFAULT_SIGNAL_TIME    = "00:00:00"

DELIMITER_ALIASES      = {"tab": "\t", "comma": ",", "semicolon": ";", "pipe": "|"}
WHITESPACE_DELIMITER   = "space"

SUPPORTED_DATE_FORMATS = ("YYYY-MM-DD",
                          "YYYY.MM.DD",
                          "YYYY/MM/DD",
                          "DD/MM/YYYY",
                          "DD.MM.YYYY",
                          "DD-MM-YYYY",
                          "MM/DD/YYYY",
                          "MM-DD-YYYY",
                          "YYYYMMDD")
DEFAULT_DATE_FORMAT    = "YYYY-MM-DD"
DEFAULT_TIME_FORMAT    = "HH:mm:ss"
