from datetime import date

import math
import pytest

from planner.loan import (
    InvestmentParams,
    LoanInputError,
    LoanParameters,
    PersonalFinances,
    RateChange,
    RateOffer,
    StressFactors,
    add_months,
    calculate_cash_flow_projections,
    calculate_financial_metrics,
    calculate_monthly_payment,
    calculate_prepayment_impact,
    calculate_vietnamese_loan_payment,
    generate_payment_schedule,
    optimize_loan_structure,
    round_vnd,
    stress_test_plan,
)


def test_round_and_add_months():
    assert round_vnd(2.5) == 3
    assert round_vnd(1.4) == 1
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


def test_zero_rate_loan():
    params = LoanParameters(principal=120_000_000, annual_rate=0, term_months=12)
    assert calculate_monthly_payment(params) == 10_000_000
    schedule = generate_payment_schedule(params)
    assert len(schedule) == 12
    assert all(s.payment == 10_000_000 and s.interest == 0 for s in schedule)
    assert schedule[-1].balance == 0


def test_schedule_amortizes_to_zero():
    params = LoanParameters(principal=1_000_000_000, annual_rate=8.5, term_months=240)
    schedule = generate_payment_schedule(params)
    assert len(schedule) == 240
    assert schedule[-1].balance == 0
    assert sum(s.principal for s in schedule) == 1_000_000_000
    assert schedule[-1].cumulative_interest == sum(s.interest for s in schedule)
    assert schedule[0].payment == calculate_monthly_payment(params)


def test_promotional_rate_switch():
    params = LoanParameters(
        principal=1_000_000_000, annual_rate=9.0, term_months=240,
        promotional_rate=6.0, promotional_period_months=12,
    )
    schedule = generate_payment_schedule(params)
    assert schedule[0].rate == 6.0
    assert schedule[11].rate == 6.0
    assert schedule[12].rate == 9.0
    assert schedule[12].payment > schedule[11].payment
    assert schedule[-1].balance == 0


def test_grace_period_is_interest_only():
    params = LoanParameters(principal=600_000_000, annual_rate=8.0, term_months=120, grace_period_months=6)
    schedule = generate_payment_schedule(params)
    for s in schedule[:6]:
        assert s.principal == 0
        assert s.payment == s.interest
    assert schedule[5].balance == 600_000_000
    assert schedule[6].principal > 0
    assert len(schedule) == 120
    assert schedule[-1].balance == 0


def test_rate_change_reamortizes():
    params = LoanParameters(principal=1_000_000_000, annual_rate=8.5, term_months=240)
    schedule = generate_payment_schedule(params, rate_changes=[RateChange(month=13, new_rate=10.0)])
    assert schedule[12].rate == 10.0
    assert schedule[-1].rate == 10.0
    assert schedule[12].payment > schedule[11].payment
    assert len(schedule) == 240
    assert schedule[-1].balance == 0


def test_prepayment_reduce_term_saves_months():
    params = LoanParameters(principal=1_000_000_000, annual_rate=8.5, term_months=240)
    impact = calculate_prepayment_impact(params, 200_000_000, 24, reduce_term=True, start_date=date(2024, 1, 1))
    assert impact.months_saved > 0
    assert impact.interest_saved > 0
    assert impact.new_schedule[-1].balance == 0
    assert impact.new_schedule[23].prepayment == 200_000_000
    assert impact.new_payoff_date == add_months(date(2024, 1, 1), len(impact.new_schedule))


def test_prepayment_keep_term_lowers_installment():
    params = LoanParameters(principal=1_000_000_000, annual_rate=8.5, term_months=240)
    original = generate_payment_schedule(params)
    impact = calculate_prepayment_impact(params, 200_000_000, 24, reduce_term=False)
    assert impact.months_saved == 0
    assert impact.interest_saved > 0
    assert impact.new_schedule[24].payment < original[24].payment


def test_prepayment_month_outside_term():
    params = LoanParameters(principal=1_000_000_000, annual_rate=8.5, term_months=240)
    with pytest.raises(LoanInputError):
        calculate_prepayment_impact(params, 100_000_000, 0)
    with pytest.raises(LoanInputError):
        calculate_prepayment_impact(params, 100_000_000, 241)


def test_invalid_parameters():
    with pytest.raises(LoanInputError):
        LoanParameters(principal=-1, annual_rate=8.0, term_months=12).validate()
    with pytest.raises(LoanInputError):
        LoanParameters(principal=100, annual_rate=8.0, term_months=0).validate()
    with pytest.raises(ValueError):
        generate_payment_schedule(LoanParameters(principal=100, annual_rate=8.0, term_months=12, grace_period_months=12))


def test_vietnamese_payment():
    plain = LoanParameters(principal=1_000_000_000, annual_rate=9.0, term_months=240)
    summary = calculate_vietnamese_loan_payment(plain)
    assert summary.promotional_payment == 0
    assert summary.regular_payment == calculate_monthly_payment(plain)

    promo = LoanParameters(
        principal=1_000_000_000, annual_rate=9.0, term_months=240,
        promotional_rate=6.0, promotional_period_months=24,
    )
    summary = calculate_vietnamese_loan_payment(promo)
    assert 0 < summary.promotional_payment < summary.regular_payment
    assert summary.total_interest > 0


def test_cash_flow_projection():
    params = LoanParameters(principal=120_000_000, annual_rate=0, term_months=12)
    rows = calculate_cash_flow_projections(params, PersonalFinances(50_000_000, 20_000_000), start_date=date(2024, 1, 1))
    assert len(rows) == 12
    assert rows[0].date == date(2024, 2, 1)
    assert rows[0].net_cash_flow == 20_000_000
    assert rows[-1].cumulative_cash_flow == 240_000_000
    assert rows[0].equity_position == -rows[0].remaining_balance


def test_metrics_without_income():
    params = LoanParameters(principal=500_000_000, annual_rate=8.0, term_months=120)
    m = calculate_financial_metrics(params, PersonalFinances(0, 10_000_000))
    assert math.isinf(m.debt_to_income_ratio)
    assert m.affordability_score == 1


def test_metrics_investment_roi():
    params = LoanParameters(principal=700_000_000, annual_rate=0, term_months=120)
    investment = InvestmentParams(
        expected_rental_income=15_000_000, property_expenses=2_000_000,
        appreciation_rate=5, initial_property_value=1_000_000_000,
    )
    m = calculate_financial_metrics(params, PersonalFinances(60_000_000, 20_000_000), investment)
    assert m.monthly_payment == 5_833_333
    assert m.roi == pytest.approx(28.67)
    assert m.payback_period == 42


def test_stress_test_risk_levels():
    params = LoanParameters(principal=2_000_000_000, annual_rate=8.5, term_months=240)
    severe = stress_test_plan(
        params, PersonalFinances(40_000_000, 15_000_000),
        StressFactors(interest_rate_increase=4, income_reduction=30, expense_increase=10),
    )
    assert severe.risk_level == "high"
    assert severe.stressed_scenario.debt_to_income_ratio > severe.base_scenario.debt_to_income_ratio
    assert severe.recommendations

    calm = stress_test_plan(params, PersonalFinances(200_000_000, 20_000_000), StressFactors())
    assert calm.risk_level == "low"
    assert calm.recommendations == []


def test_stress_test_rental_vacancy():
    params = LoanParameters(principal=2_000_000_000, annual_rate=8.5, term_months=240)
    investment = InvestmentParams(40_000_000, 2_000_000, 5, 3_000_000_000)
    result = stress_test_plan(
        params, PersonalFinances(80_000_000, 20_000_000), StressFactors(rental_vacancy=6), investment,
    )
    assert result.stressed_scenario.roi < result.base_scenario.roi


def test_optimize_loan_structure_ranks_offers():
    offers = [
        RateOffer("pricey", promotional_rate=7.5, regular_rate=9.5, term_years=20, min_down_payment_percent=20),
        RateOffer("cheap", promotional_rate=6.5, regular_rate=8.0, term_years=20, min_down_payment_percent=20),
    ]
    out = optimize_loan_structure(3_000_000_000, 1_000_000_000, 100_000_000, 30_000_000, offers)
    assert [r.bank for r in out] == ["cheap", "pricey"]
    assert out[0].loan_amount == 2_000_000_000
    assert out[0].total_cost < out[1].total_cost
    assert out[0].recommendation == "Rất phù hợp"
    assert "Lãi suất ưu đãi thấp 6.5%" in out[0].pros


def test_optimize_loan_structure_skips_cash_purchase():
    offers = [RateOffer("any", 6.5, 8.0, 20, 20)]
    assert optimize_loan_structure(3_000_000_000, 3_000_000_000, 100_000_000, 30_000_000, offers) == []


@pytest.mark.parametrize("params", [
    LoanParameters(principal=100_000_000, annual_rate=0, term_months=0),
    LoanParameters(principal=-100_000_000, annual_rate=8.0, term_months=120),
    LoanParameters(principal=100_000_000, annual_rate=8.0, term_months=120,
                   promotional_rate=6.0, promotional_period_months=121),
    LoanParameters(principal=100_000_000, annual_rate=-1.0, term_months=120),
])
def test_monthly_payment_rejects_invalid_loans(params):
    with pytest.raises(LoanInputError):
        calculate_monthly_payment(params)
