import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import List, Optional

import pandas as pd

from planner.loan import (
    CashFlowProjection,
    FinancialMetrics,
    InvestmentParams,
    LoanParameters,
    PersonalFinances,
    Prepayment,
    RateChange,
    calculate_cash_flow_projections,
    generate_payment_schedule,
    metrics_from_schedule,
)
from planner.policy import load_policy, threshold

logger = logging.getLogger(__name__)

SCENARIO_TYPES = ("baseline", "optimistic", "pessimistic", "alternative", "stress_test")
MARKET_TRENDS = ("bull", "bear", "stable")


@dataclass
class ScenarioParameters:
    # loan
    loan_amount: Optional[float] = None
    interest_rate: Optional[float] = None
    loan_term_years: Optional[int] = None
    down_payment: Optional[float] = None
    # income / expenses (absolute monthly deltas)
    monthly_income_change: float = 0.0
    monthly_expense_change: float = 0.0
    # investment
    rental_income_change: float = 0.0
    property_expense_change: float = 0.0
    appreciation_rate_change: float = 0.0   # percentage points
    # one-off events
    prepayments: List[Prepayment] = field(default_factory=list)
    interest_rate_changes: List[RateChange] = field(default_factory=list)
    # prepayments shorten the loan rather than lower the installment
    prepayment_reduces_term: bool = True


@dataclass
class ScenarioAssumptions:
    economic_growth: Optional[float] = None        # % p.a.
    inflation_rate: Optional[float] = None         # % p.a.
    property_market_trend: Optional[str] = None    # "bull" | "bear" | "stable"
    personal_career_growth: Optional[float] = None
    emergency_fund_months: Optional[int] = None
    additional_investments: Optional[bool] = None


@dataclass
class ScenarioDefinition:
    id: str
    name: str
    type: str
    description: str
    parameters: ScenarioParameters = field(default_factory=ScenarioParameters)
    assumptions: ScenarioAssumptions = field(default_factory=ScenarioAssumptions)

    def __post_init__(self):
        if self.type not in SCENARIO_TYPES:
            raise ValueError(f"unknown scenario type: {self.type!r}")


@dataclass
class ScenarioComparison:
    monthly_savings: float
    total_interest_difference: float
    payoff_time_difference: int      # months, positive = pays off earlier than baseline
    net_worth_difference: float
    affordability_score_difference: int


@dataclass
class ScenarioResults:
    scenario: ScenarioDefinition
    metrics: FinancialMetrics
    cash_flow_projections: List[CashFlowProjection]
    key_insights: List[str]
    risk_factors: List[str]
    opportunities: List[str]
    start_date: date
    comparison_to_baseline: Optional[ScenarioComparison] = None


class ScenarioEngine:
    """What-if projections of one loan plan against a baseline."""

    def __init__(
        self,
        baseline_scenario: ScenarioDefinition,
        base_loan_params: LoanParameters,
        base_personal_finances: PersonalFinances,
        base_investment_params: Optional[InvestmentParams] = None,
        start_date: Optional[date] = None,
    ):
        base_loan_params.validate()
        self.baseline_scenario = baseline_scenario
        self.base_loan_params = base_loan_params
        self.base_personal_finances = base_personal_finances
        self.base_investment_params = base_investment_params
        self.start_date = start_date or date.today()
        self._baseline: Optional[ScenarioResults] = None

        policy = load_policy()
        self.large_negative_cash_flow = threshold(policy, "large_negative_cash_flow_vnd", -5_000_000)
        self.strong_positive_cash_flow = threshold(policy, "strong_positive_cash_flow_vnd", 5_000_000)

    # ---- public API -------------------------------------------------------

    def generate_scenario(self, scenario: ScenarioDefinition) -> ScenarioResults:
        params = scenario.parameters
        loan = self._apply_loan_modifications(params)
        finances = self._apply_personal_finance_modifications(params)
        investment = self._apply_investment_modifications(params)

        schedule = generate_payment_schedule(
            loan, params.prepayments, params.interest_rate_changes, params.prepayment_reduces_term
        )
        metrics = metrics_from_schedule(loan, schedule, finances, investment, self.start_date)
        projections = calculate_cash_flow_projections(
            loan, finances, investment, self.start_date,
            prepayments=params.prepayments, rate_changes=params.interest_rate_changes,
            reduce_term=params.prepayment_reduces_term,
        )

        comparison = None
        if scenario.type != "baseline":
            comparison = self._compare_to_baseline(metrics, projections)

        logger.debug("scenario %s: payment=%s dti=%s", scenario.id, metrics.monthly_payment,
                     metrics.debt_to_income_ratio)
        return ScenarioResults(
            scenario=scenario,
            metrics=metrics,
            cash_flow_projections=projections,
            key_insights=self._generate_insights(scenario, metrics, projections),
            risk_factors=self._identify_risk_factors(scenario, metrics, projections),
            opportunities=self._identify_opportunities(scenario, metrics, projections),
            start_date=self.start_date,
            comparison_to_baseline=comparison,
        )

    def baseline_results(self) -> ScenarioResults:
        if self._baseline is None:
            baseline = self.baseline_scenario
            if baseline.type != "baseline":
                baseline = replace(baseline, type="baseline")
            # the baseline runs on the untouched base inputs
            self._baseline = self.generate_scenario(replace(baseline, parameters=ScenarioParameters()))
        return self._baseline

    def generate_predefined_scenarios(self) -> List[ScenarioResults]:
        scenarios = [
            self._create_optimistic_scenario(),
            self._create_pessimistic_scenario(),
            self._create_early_payoff_scenario(),
            self._create_market_crash_scenario(),
            self._create_career_growth_scenario(),
        ]
        return [self.generate_scenario(s) for s in scenarios]

    @staticmethod
    def summary_frame(results: List[ScenarioResults]) -> pd.DataFrame:
        rows = []
        for r in results:
            m = r.metrics
            c = r.comparison_to_baseline
            rows.append({
                "id": r.scenario.id,
                "name": r.scenario.name,
                "type": r.scenario.type,
                "monthly_payment": m.monthly_payment,
                "total_interest": m.total_interest,
                "payoff_month": m.payoff_month,
                "dti_pct": m.debt_to_income_ratio,
                "affordability": m.affordability_score,
                "roi_pct": m.roi,
                "final_equity": r.cash_flow_projections[-1].equity_position if r.cash_flow_projections else 0,
                "monthly_savings": c.monthly_savings if c else None,
                "interest_saved": c.total_interest_difference if c else None,
            })
        return pd.DataFrame(rows).set_index("id") if rows else pd.DataFrame()

    # ---- predefined scenarios ---------------------------------------------

    def _create_optimistic_scenario(self) -> ScenarioDefinition:
        inv = self.base_investment_params
        return ScenarioDefinition(
            id="optimistic",
            name="Kịch bản lạc quan",
            type="optimistic",
            description="Thu nhập tăng trưởng tốt, thị trường bất động sản phát triển mạnh",
            parameters=ScenarioParameters(
                monthly_income_change=self.base_personal_finances.monthly_income * 0.05,
                rental_income_change=inv.expected_rental_income * 0.1 if inv else 0.0,
                appreciation_rate_change=2,
            ),
            assumptions=ScenarioAssumptions(
                economic_growth=7, inflation_rate=3, property_market_trend="bull",
                personal_career_growth=8, emergency_fund_months=6, additional_investments=True,
            ),
        )

    def _create_pessimistic_scenario(self) -> ScenarioDefinition:
        inv = self.base_investment_params
        return ScenarioDefinition(
            id="pessimistic",
            name="Kịch bản bi quan",
            type="pessimistic",
            description="Suy thoái kinh tế, thu nhập giảm, lãi suất tăng",
            parameters=ScenarioParameters(
                monthly_income_change=-self.base_personal_finances.monthly_income * 0.15,
                monthly_expense_change=self.base_personal_finances.monthly_expenses * 0.1,
                interest_rate=self.base_loan_params.annual_rate + 2,
                rental_income_change=-inv.expected_rental_income * 0.2 if inv else 0.0,
                appreciation_rate_change=-3,
            ),
            assumptions=ScenarioAssumptions(
                economic_growth=-2, inflation_rate=6, property_market_trend="bear",
                personal_career_growth=-5, emergency_fund_months=12, additional_investments=False,
            ),
        )

    def _create_early_payoff_scenario(self) -> ScenarioDefinition:
        extra = self.base_personal_finances.monthly_income * 0.1
        # year-end lump sums for the first ten years
        prepayments = [Prepayment(month=year * 12, amount=extra * 12) for year in range(1, 11)]
        return ScenarioDefinition(
            id="early_payoff",
            name="Kịch bản trả nợ sớm",
            type="alternative",
            description="Trả thêm 10% thu nhập mỗi tháng và thưởng cuối năm",
            parameters=ScenarioParameters(prepayments=prepayments),
            assumptions=ScenarioAssumptions(
                economic_growth=5, inflation_rate=4, property_market_trend="stable",
                personal_career_growth=5, emergency_fund_months=8, additional_investments=False,
            ),
        )

    def _create_market_crash_scenario(self) -> ScenarioDefinition:
        inv = self.base_investment_params
        return ScenarioDefinition(
            id="market_crash",
            name="Kịch bản khủng hoảng",
            type="stress_test",
            description="Khủng hoảng tài chính, giá bất động sản giảm mạnh",
            parameters=ScenarioParameters(
                monthly_income_change=-self.base_personal_finances.monthly_income * 0.3,
                interest_rate=self.base_loan_params.annual_rate + 3,
                rental_income_change=-inv.expected_rental_income * 0.4 if inv else 0.0,
                appreciation_rate_change=-15,
            ),
            assumptions=ScenarioAssumptions(
                economic_growth=-5, inflation_rate=8, property_market_trend="bear",
                personal_career_growth=-20, emergency_fund_months=18, additional_investments=False,
            ),
        )

    def _create_career_growth_scenario(self) -> ScenarioDefinition:
        return ScenarioDefinition(
            id="career_growth",
            name="Kịch bản thăng tiến",
            type="optimistic",
            description="Thăng chức, thu nhập tăng đáng kể sau 3 năm",
            parameters=ScenarioParameters(
                monthly_income_change=self.base_personal_finances.monthly_income * 0.5,
                monthly_expense_change=self.base_personal_finances.monthly_expenses * 0.2,
            ),
            assumptions=ScenarioAssumptions(
                economic_growth=6, inflation_rate=4, property_market_trend="stable",
                personal_career_growth=15, emergency_fund_months=9, additional_investments=True,
            ),
        )

    # ---- modifications ----------------------------------------------------

    def _apply_loan_modifications(self, params: ScenarioParameters) -> LoanParameters:
        base = self.base_loan_params
        principal = base.principal
        if params.loan_amount is not None:
            principal = params.loan_amount
        elif params.down_payment is not None and self.base_investment_params:
            principal = max(0.0, self.base_investment_params.initial_property_value - params.down_payment)
        loan = replace(
            base,
            principal=principal,
            annual_rate=params.interest_rate if params.interest_rate is not None else base.annual_rate,
            term_months=params.loan_term_years * 12 if params.loan_term_years else base.term_months,
        )
        if loan.promotional_period_months > loan.term_months:
            loan = replace(loan, promotional_period_months=loan.term_months)
        return loan

    def _apply_personal_finance_modifications(self, params: ScenarioParameters) -> PersonalFinances:
        base = self.base_personal_finances
        return PersonalFinances(
            monthly_income=base.monthly_income + params.monthly_income_change,
            monthly_expenses=base.monthly_expenses + params.monthly_expense_change,
        )

    def _apply_investment_modifications(self, params: ScenarioParameters) -> Optional[InvestmentParams]:
        base = self.base_investment_params
        if not base:
            return None
        return replace(
            base,
            expected_rental_income=base.expected_rental_income + params.rental_income_change,
            property_expenses=base.property_expenses + params.property_expense_change,
            appreciation_rate=base.appreciation_rate + params.appreciation_rate_change,
        )

    # ---- narration --------------------------------------------------------

    def _generate_insights(self, scenario, metrics, projections) -> List[str]:
        insights = []

        # measured against the plan's own income, not the scenario's
        if metrics.monthly_payment > self.base_personal_finances.monthly_income * 0.3:
            insights.append(f"Trả góp hàng tháng chiếm {metrics.debt_to_income_ratio:.0f}% thu nhập")

        negative_months = sum(1 for p in projections if p.net_cash_flow < 0)
        if negative_months > 0:
            insights.append(f"{negative_months} tháng có dòng tiền âm trong kế hoạch")

        if metrics.affordability_score >= 8:
            insights.append("Khả năng chi trả rất tốt, có thể cân nhắc đầu tư thêm")
        elif metrics.affordability_score < 5:
            insights.append("Khả năng chi trả hạn chế, cần xem xét lại kế hoạch")

        if metrics.roi is not None:
            if metrics.roi > 8:
                insights.append(f"ROI {metrics.roi:g}% rất hấp dẫn so với lãi suất ngân hàng")
            elif metrics.roi < 5:
                insights.append(f"ROI {metrics.roi:g}% thấp, cân nhắc các kênh đầu tư khác")

        return insights

    def _identify_risk_factors(self, scenario, metrics, projections) -> List[str]:
        risks = []

        if metrics.debt_to_income_ratio > 40:
            risks.append("Tỷ lệ nợ trên thu nhập cao (>40%)")
        if metrics.affordability_score < 5:
            risks.append("Điểm khả năng chi trả thấp")
        if projections and min(p.net_cash_flow for p in projections) < self.large_negative_cash_flow:
            risks.append("Dòng tiền âm lớn trong một số tháng")
        if scenario.assumptions.property_market_trend == "bear":
            risks.append("Thị trường bất động sản suy thoái")

        return risks

    def _identify_opportunities(self, scenario, metrics, projections) -> List[str]:
        opportunities = []

        if metrics.affordability_score >= 8:
            opportunities.append("Có thể trả thêm để giảm lãi suất")

        positive = [p.net_cash_flow for p in projections if p.net_cash_flow > 0]
        if positive and sum(positive) / len(positive) > self.strong_positive_cash_flow:
            opportunities.append("Dòng tiền dương tốt, có thể đầu tư thêm")

        if metrics.roi is not None and metrics.roi > 10:
            opportunities.append("ROI cao, cân nhắc mở rộng danh mục đầu tư")

        growth = scenario.assumptions.personal_career_growth
        if growth is not None and growth > 10:
            opportunities.append("Triển vọng thăng tiến tốt, có thể vay thêm")

        return opportunities

    def _compare_to_baseline(self, metrics: FinancialMetrics, projections: List[CashFlowProjection]) -> ScenarioComparison:
        baseline = self.baseline_results()
        base_metrics = baseline.metrics
        base_equity = baseline.cash_flow_projections[-1].equity_position if baseline.cash_flow_projections else 0
        equity = projections[-1].equity_position if projections else 0
        return ScenarioComparison(
            monthly_savings=base_metrics.monthly_payment - metrics.monthly_payment,
            total_interest_difference=base_metrics.total_interest - metrics.total_interest,
            payoff_time_difference=base_metrics.payoff_month - metrics.payoff_month,
            net_worth_difference=equity - base_equity,
            affordability_score_difference=metrics.affordability_score - base_metrics.affordability_score,
        )


def results_to_dict(result: ScenarioResults) -> dict:
    """Plain-dict view (dates as ISO strings) for JSON export."""
    out = asdict(result)
    out["start_date"] = result.start_date.isoformat()
    out["metrics"]["payoff_date"] = result.metrics.payoff_date.isoformat()
    for p in out["cash_flow_projections"]:
        p["date"] = p["date"].isoformat()
    return out
