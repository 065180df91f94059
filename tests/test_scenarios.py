from datetime import date

import pytest

from planner.loan import InvestmentParams, LoanParameters, PersonalFinances, RateChange
from planner.scenarios import (
    ScenarioDefinition,
    ScenarioEngine,
    ScenarioParameters,
    results_to_dict,
)


def make_engine(investment=None):
    return ScenarioEngine(
        ScenarioDefinition(id="baseline", name="Kịch bản gốc", type="baseline", description="Kế hoạch hiện tại"),
        LoanParameters(principal=2_000_000_000, annual_rate=8.5, term_months=240),
        PersonalFinances(monthly_income=60_000_000, monthly_expenses=25_000_000),
        investment,
        start_date=date(2024, 1, 1),
    )


def test_baseline_is_cached_and_uncompared():
    engine = make_engine()
    base = engine.baseline_results()
    assert base is engine.baseline_results()
    assert base.comparison_to_baseline is None
    assert base.metrics.payoff_month == 240
    assert len(base.cash_flow_projections) == 240


def test_unknown_scenario_type():
    with pytest.raises(ValueError):
        ScenarioDefinition(id="x", name="x", type="wild", description="")


def test_predefined_scenarios():
    results = make_engine().generate_predefined_scenarios()
    assert [r.scenario.id for r in results] == [
        "optimistic", "pessimistic", "early_payoff", "market_crash", "career_growth",
    ]
    assert [r.scenario.type for r in results] == [
        "optimistic", "pessimistic", "alternative", "stress_test", "optimistic",
    ]
    assert all(r.comparison_to_baseline is not None for r in results)


def test_pessimistic_costs_more():
    engine = make_engine()
    pessimistic = engine.generate_predefined_scenarios()[1]
    base = engine.baseline_results()
    assert pessimistic.metrics.monthly_payment > base.metrics.monthly_payment
    assert pessimistic.comparison_to_baseline.monthly_savings < 0
    assert pessimistic.comparison_to_baseline.total_interest_difference < 0
    assert "Thị trường bất động sản suy thoái" in pessimistic.risk_factors


def test_early_payoff_shortens_loan():
    early = make_engine().generate_predefined_scenarios()[2]
    assert len(early.scenario.parameters.prepayments) == 10
    assert early.metrics.payoff_month < 240
    assert early.comparison_to_baseline.payoff_time_difference > 0
    assert early.comparison_to_baseline.total_interest_difference > 0
    assert early.cash_flow_projections[11].prepayment == 72_000_000


def test_career_growth_opportunity():
    career = make_engine().generate_predefined_scenarios()[4]
    assert "Triển vọng thăng tiến tốt, có thể vay thêm" in career.opportunities


def test_down_payment_changes_principal():
    engine = make_engine(InvestmentParams(20_000_000, 2_000_000, 5, 3_000_000_000))
    bigger_down = ScenarioDefinition(
        id="down", name="Trả trước nhiều hơn", type="alternative", description="",
        parameters=ScenarioParameters(down_payment=1_500_000_000),
    )
    result = engine.generate_scenario(bigger_down)
    assert result.comparison_to_baseline.monthly_savings > 0
    assert result.metrics.roi is not None


def test_rate_change_flows_into_projections():
    engine = make_engine()
    hike = ScenarioDefinition(
        id="hike", name="Lãi suất tăng", type="alternative", description="",
        parameters=ScenarioParameters(interest_rate_changes=[RateChange(month=25, new_rate=11.0)]),
    )
    rows = engine.generate_scenario(hike).cash_flow_projections
    assert rows[24].total_payment > rows[23].total_payment
    assert rows[-1].remaining_balance == 0


def test_summary_frame_and_export():
    engine = make_engine()
    results = [engine.baseline_results()] + engine.generate_predefined_scenarios()
    df = ScenarioEngine.summary_frame(results)
    assert list(df.index) == ["baseline", "optimistic", "pessimistic", "early_payoff", "market_crash", "career_growth"]
    assert df.loc["early_payoff", "payoff_month"] < df.loc["baseline", "payoff_month"]

    out = results_to_dict(results[0])
    assert out["start_date"] == "2024-01-01"
    assert out["cash_flow_projections"][0]["date"] == "2024-02-01"
    assert out["scenario"]["id"] == "baseline"


def test_payment_share_insight_uses_plan_income():
    engine = make_engine()
    # ~17.4M installment stays under 30% of the plan's 60M income
    pay_cut = ScenarioDefinition(
        id="pay_cut", name="Giảm lương", type="pessimistic", description="",
        parameters=ScenarioParameters(monthly_income_change=-15_000_000),
    )
    result = engine.generate_scenario(pay_cut)
    assert result.metrics.debt_to_income_ratio > 30
    assert not any(s.startswith("Trả góp hàng tháng chiếm") for s in result.key_insights)

    pricier = ScenarioDefinition(
        id="pricier", name="Lãi suất cao", type="alternative", description="",
        parameters=ScenarioParameters(interest_rate=12.0),
    )
    result = engine.generate_scenario(pricier)
    assert any(s.startswith("Trả góp hàng tháng chiếm") for s in result.key_insights)
