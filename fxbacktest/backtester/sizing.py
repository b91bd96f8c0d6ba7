"""
Position sizing.

``calculate_lot_size`` turns the account balance, the risk configuration and
the stop distance into a lot size, floored at one micro lot and rounded to
two decimals.
"""

from __future__ import annotations

import math

from fxbacktest.backtester.models import RiskConfig, RiskType
from fxbacktest.configuration import (
    DEFAULT_RISK_PERCENT,
    DEFAULT_RULE_AMOUNT,
    DEFAULT_RULE_LOT,
    MIN_LOT_SIZE,
    PIP_VALUE_PER_LOT,
)


def round_lots(value: float) -> float:
    """Round half-up to two decimals (0.125 → 0.13)."""
    return math.floor(value * 100 + 0.5) / 100


def calculate_lot_size(risk: RiskConfig, balance: float, stop_loss_pips: float) -> float:
    """
    Compute the lot size for a new position.

    Parameters
    ----------
    risk : RiskConfig
        Sizing mode and its parameters.
    balance : float
        Current account balance (realised P&L included).
    stop_loss_pips : float
        Absolute distance from the entry fill to the signal's stop, in pips.
        0 when the signal has no stop.

    Returns
    -------
    float
        Lot size, never below ``MIN_LOT_SIZE``.

    Notes
    -----
    - ``percentage``: risk ``balance * pct / 100`` over the stop distance.
      Without a stop distance the minimum lot is used.
    - ``fixed_lot``: the configured lot size.
    - ``rule_based``: ``rule_based_lot`` lots per whole ``rule_based_amount``
      of balance.
    - Unknown modes use the minimum lot.
    """
    risk_type = str(getattr(risk.risk_type, "value", risk.risk_type))

    if risk_type == RiskType.PERCENTAGE.value:
        if stop_loss_pips <= 0:
            return MIN_LOT_SIZE
        pct = risk.risk_percentage if risk.risk_percentage is not None else DEFAULT_RISK_PERCENT
        risk_amount = balance * pct / 100.0
        lots = risk_amount / (stop_loss_pips * PIP_VALUE_PER_LOT)
    elif risk_type == RiskType.FIXED_LOT.value:
        lots = risk.fixed_lot_size if risk.fixed_lot_size is not None else MIN_LOT_SIZE
    elif risk_type == RiskType.RULE_BASED.value:
        amount = risk.rule_based_amount or DEFAULT_RULE_AMOUNT
        lot = risk.rule_based_lot if risk.rule_based_lot is not None else DEFAULT_RULE_LOT
        lots = math.floor(balance / amount) * lot
    else:
        return MIN_LOT_SIZE

    return max(MIN_LOT_SIZE, round_lots(lots))
