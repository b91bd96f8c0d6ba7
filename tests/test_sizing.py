import pytest

from fxbacktest.backtester.models import RiskConfig, RiskType
from fxbacktest.backtester.sizing import calculate_lot_size, round_lots


def test_percentage_risk():
    risk = RiskConfig(risk_type=RiskType.PERCENTAGE, risk_percentage=1.0)
    assert calculate_lot_size(risk, 10_000, 50) == pytest.approx(0.20)


def test_percentage_defaults_to_one_percent():
    risk = RiskConfig(risk_type="percentage")
    assert calculate_lot_size(risk, 10_000, 25) == pytest.approx(0.40)


def test_percentage_without_stop_distance_uses_minimum():
    risk = RiskConfig(risk_percentage=5.0)
    assert calculate_lot_size(risk, 10_000, 0) == 0.01


def test_percentage_is_floored_at_micro_lot():
    risk = RiskConfig(risk_percentage=0.1)
    assert calculate_lot_size(risk, 1_000, 200) == 0.01


def test_rounding_is_half_up():
    assert round_lots(0.125) == pytest.approx(0.13)
    assert round_lots(0.124) == pytest.approx(0.12)
    # 100 / (80 * 10) = 0.125
    assert calculate_lot_size(RiskConfig(risk_percentage=1.0), 10_000, 80) == pytest.approx(0.13)


def test_fixed_lot():
    assert calculate_lot_size(RiskConfig(risk_type="fixed_lot", fixed_lot_size=0.5), 10_000, 30) == 0.5
    assert calculate_lot_size(RiskConfig(risk_type=RiskType.FIXED_LOT), 10_000, 30) == 0.01


def test_rule_based_counts_whole_blocks():
    risk = RiskConfig(risk_type="rule_based", rule_based_amount=1_000, rule_based_lot=0.1)
    assert calculate_lot_size(risk, 10_500, 30) == pytest.approx(1.0)


def test_rule_based_defaults():
    risk = RiskConfig(risk_type=RiskType.RULE_BASED)
    assert calculate_lot_size(risk, 10_000, 30) == pytest.approx(1.0)
    assert calculate_lot_size(risk, 50, 30) == 0.01


def test_unknown_mode_uses_minimum():
    assert calculate_lot_size(RiskConfig(risk_type="martingale"), 10_000, 30) == 0.01


def test_risk_config_from_camel_case():
    risk = RiskConfig.from_dict(
        {"initialBalance": 5000, "riskType": "fixed_lot", "fixedLotSize": 0.3}
    )
    assert risk.initial_balance == 5000.0
    assert calculate_lot_size(risk, risk.initial_balance, 10) == pytest.approx(0.3)
