import pytest

from planner.affordability import (
    AffordInputs,
    analyze_affordability,
    calculate_appreciation,
    calculate_financial_health,
    calculate_loan_amount,
    calculate_loan_details,
    calculate_property_roi,
    get_smart_suggestions,
)
from planner.loan import annuity_payment


def test_loan_amount_inverts_annuity():
    payment = annuity_payment(1_000_000_000, 8.5 / 100 / 12, 240)
    assert calculate_loan_amount(payment, 20, 8.5) == pytest.approx(1_000_000_000, abs=1)
    assert calculate_loan_amount(10_000_000, 1, 0) == 120_000_000
    assert calculate_loan_amount(0, 20, 8.5) == 0


def test_loan_details_defaults():
    d = calculate_loan_details(3_000_000_000, 1_000_000_000)
    assert d.loan_amount == 2_000_000_000
    assert (d.interest_rate, d.term_years) == (8.5, 20)
    assert d.total_amount == d.monthly_payment * 240
    assert d.total_interest > 0

    cash = calculate_loan_details(1_000_000_000, 1_000_000_000)
    assert cash.monthly_payment == 0


def test_affordability_bands():
    good = analyze_affordability(AffordInputs(100_000_000, 30_000_000, 20_000_000, 500_000_000))
    assert good.score == "excellent"
    assert good.debt_to_income_ratio == pytest.approx(0.2)
    assert good.monthly_leftover == 50_000_000
    assert good.max_affordable_price > 400_000_000

    bad = analyze_affordability(AffordInputs(100_000_000, 40_000_000, 60_000_000, 50_000_000))
    assert bad.score == "unaffordable"
    assert "This purchase exceeds safe borrowing limits" in bad.warnings
    assert "Very little buffer for unexpected expenses" in bad.warnings
    assert "Build emergency fund before purchase" in bad.recommendations


def test_other_debts_count_towards_dti():
    out = analyze_affordability(AffordInputs(100_000_000, 20_000_000, 30_000_000, 500_000_000, other_debts=15_000_000))
    assert out.score == "risky"


def test_financial_health():
    h = calculate_financial_health(50_000_000, 20_000_000, 120_000_000, 0)
    assert h.emergency_fund_months == 6
    assert h.savings_rate == pytest.approx(0.6)
    assert h.debt_to_asset_ratio == 0
    assert h.investment_capacity == 28_000_000


def test_property_roi():
    assert calculate_appreciation(1_000_000_000, 10, 2) == pytest.approx(1_210_000_000)
    roi = calculate_property_roi(3_000_000_000, 1_000_000_000, 15_000_000, 3_000_000, 5, 10)
    assert roi["total_cash_flow"] == 1_440_000_000
    assert roi["annualized_roi"] > 0
    with pytest.raises(ValueError):
        calculate_property_roi(3_000_000_000, 0, 15_000_000, 3_000_000, 5, 10)


def test_smart_suggestions():
    tips = get_smart_suggestions("down_payment", 300_000_000, {"purchase_price": 3_000_000_000})
    assert tips[-1] == "Current: 10.0% of purchase price"
    assert len(tips) == 2
    assert get_smart_suggestions("unknown", 1, {}) == []
