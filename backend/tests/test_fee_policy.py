"""
backend/tests/test_fee_policy.py

Purpose:
    Hybrid fee rule: oracle-derived gas fee vs percentage-of-amount floor,
    treasury split and determinism.
"""

from decimal import Decimal

from conftest import ONE_UNIT, fee_config
from relayer.core.fees.fee_policy import compute_fee, gas_cost_lamports, percentage_fee
from relayer.core.structures.structures import GasEstimate


def test_oracle_fee_wins_over_percentage_floor():
    # 5000 lamports at 250 stable/SOL is 1250 base units, +20% markup = 1500
    gas = GasEstimate(units=0, unit_price=0, signature_fee=5000)

    fee = compute_fee(gas, Decimal("250"), 100_000, fee_config())

    assert fee.percentage_fee == 1000
    assert fee.oracle_fee == 1500
    assert fee.final_fee == 1500
    assert fee.winner == "oracle"


def test_percentage_fee_wins_for_large_amount():
    gas = GasEstimate(units=12_000, unit_price=1000, signature_fee=10_000)

    fee = compute_fee(gas, Decimal("250"), 5 * ONE_UNIT, fee_config())

    assert fee.gas_cost_lamports == 10_012
    assert fee.oracle_fee == 3004
    assert fee.percentage_fee == 5000
    assert fee.final_fee == 5000
    assert fee.winner == "percentage"


def test_percentage_fee_has_absolute_floor_and_rounds_up():
    config = fee_config()
    assert percentage_fee(1, config) == 1000
    assert percentage_fee(1_000_001, config) == 1001


def test_priority_fee_rounds_up_to_whole_lamports():
    assert gas_cost_lamports(GasEstimate(units=1, unit_price=1, signature_fee=0)) == 1
    assert gas_cost_lamports(GasEstimate(units=200_000, unit_price=1000, signature_fee=10_000)) == 10_200


def test_treasury_cut_is_floored_and_sponsor_keeps_remainder():
    gas = GasEstimate(units=0, unit_price=0, signature_fee=0)

    fee = compute_fee(gas, Decimal("250"), 1_501_000, fee_config(treasury_enabled=True))

    assert fee.final_fee == 1501
    assert fee.treasury_fee == 150
    assert fee.sponsor_fee == 1351


def test_no_treasury_cut_without_treasury():
    gas = GasEstimate(units=0, unit_price=0, signature_fee=0)

    fee = compute_fee(gas, Decimal("250"), 5 * ONE_UNIT, fee_config(treasury_enabled=False))

    assert fee.treasury_fee == 0
    assert fee.sponsor_fee == fee.final_fee


def test_identical_inputs_give_identical_breakdown():
    gas = GasEstimate(units=14_400, unit_price=1000, signature_fee=10_000)

    first = compute_fee(gas, Decimal("187.25"), 7_654_321, fee_config(treasury_enabled=True))
    second = compute_fee(gas, Decimal("187.25"), 7_654_321, fee_config(treasury_enabled=True))

    assert first == second
    assert first.to_plain_dict()["finalFee"] == first.final_fee
