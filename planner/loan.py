import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from planner.policy import load_policy

logger = logging.getLogger(__name__)


class LoanInputError(ValueError):
    pass


def round_vnd(x: float) -> int:
    """Round half-up to whole dong."""
    return int(math.floor(x + 0.5))


def add_months(start: date, months: int) -> date:
    # DateOffset clamps to month end (31 Jan + 1 month -> 28/29 Feb)
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()


@dataclass
class LoanParameters:
    principal: float
    annual_rate: float          # % p.a.
    term_months: int
    grace_period_months: int = 0
    promotional_rate: Optional[float] = None
    promotional_period_months: int = 0

    @property
    def has_promotion(self) -> bool:
        return self.promotional_rate is not None and self.promotional_period_months > 0

    def validate(self) -> None:
        if self.principal < 0:
            raise LoanInputError("principal must not be negative")
        if self.term_months <= 0:
            raise LoanInputError("term_months must be positive")
        if self.annual_rate < 0 or (self.promotional_rate is not None and self.promotional_rate < 0):
            raise LoanInputError("interest rates must not be negative")
        if not 0 <= self.grace_period_months < self.term_months:
            raise LoanInputError("grace period must be shorter than the loan term")
        if not 0 <= self.promotional_period_months <= self.term_months:
            raise LoanInputError("promotional period cannot exceed the loan term")

    def rate_for_month(self, month: int, rate_changes: Sequence["RateChange"] = ()) -> float:
        rate = self.annual_rate
        if self.has_promotion and month <= self.promotional_period_months:
            rate = self.promotional_rate
        # explicit changes win over the promo window and persist afterwards
        for change in rate_changes:
            if change.month <= month:
                rate = change.new_rate
        return rate


@dataclass
class Prepayment:
    month: int
    amount: float


@dataclass
class RateChange:
    month: int
    new_rate: float


@dataclass
class PaymentScheduleItem:
    month: int
    payment: int
    principal: int
    interest: int
    balance: int
    cumulative_interest: int
    rate: float
    prepayment: int = 0


@dataclass
class PersonalFinances:
    monthly_income: float
    monthly_expenses: float


@dataclass
class InvestmentParams:
    expected_rental_income: float
    property_expenses: float
    appreciation_rate: float        # % p.a.
    initial_property_value: float


@dataclass
class CashFlowProjection:
    month: int
    date: date
    principal_payment: int
    interest_payment: int
    total_payment: int
    prepayment: int
    remaining_balance: int
    rental_income: float
    property_expenses: float
    net_cash_flow: int
    cumulative_cash_flow: int
    property_value: int
    equity_position: int
    rate: float = 0.0


@dataclass
class FinancialMetrics:
    monthly_payment: int
    total_interest: int
    total_payments: int
    payoff_date: date
    payoff_month: int
    debt_to_income_ratio: float     # percent
    affordability_score: int        # 1..10
    roi: Optional[float] = None
    payback_period: Optional[int] = None  # months


@dataclass
class LoanPaymentSummary:
    promotional_payment: int
    regular_payment: int
    total_interest: int


def annuity_payment(principal: float, monthly_rate: float, months: int) -> float:
    """Level monthly payment that amortizes 'principal' over 'months'."""
    if months <= 0:
        return principal
    if monthly_rate == 0:
        return principal / months
    f = (1 + monthly_rate) ** months
    return principal * monthly_rate * f / (f - 1)


def months_to_repay(balance: float, monthly_rate: float, payment: float) -> Optional[int]:
    """Number of level payments needed to clear 'balance'; None if the payment never gets there."""
    if balance <= 0:
        return 0
    if payment <= balance * monthly_rate or payment <= 0:
        return None
    if monthly_rate == 0:
        n = balance / payment
    else:
        n = -math.log(1 - monthly_rate * balance / payment) / math.log(1 + monthly_rate)
    return max(1, math.ceil(n - 1e-9))


def calculate_monthly_payment(params: LoanParameters) -> int:
    params.validate()
    if params.annual_rate == 0:
        return round_vnd(params.principal / params.term_months)
    return round_vnd(annuity_payment(params.principal, params.annual_rate / 100 / 12, params.term_months))


def calculate_remaining_balance(principal: float, monthly_rate: float, months_paid: int, monthly_payment: float) -> int:
    if monthly_rate == 0:
        return max(0, round_vnd(principal - monthly_payment * months_paid))
    f = (1 + monthly_rate) ** months_paid
    balance = principal * f - monthly_payment * (f - 1) / monthly_rate
    return max(0, round_vnd(balance))


def calculate_vietnamese_loan_payment(params: LoanParameters) -> LoanPaymentSummary:
    """Two-phase payment: promo rate first, then the regular rate on what is left."""
    params.validate()
    if not params.has_promotion:
        regular = calculate_monthly_payment(params)
        return LoanPaymentSummary(0, regular, round_vnd(regular * params.term_months - params.principal))

    promo_months = params.promotional_period_months
    promo_payment = calculate_monthly_payment(replace(params, annual_rate=params.promotional_rate))
    remaining = calculate_remaining_balance(
        params.principal, params.promotional_rate / 100 / 12, promo_months, promo_payment
    )
    remaining_months = params.term_months - promo_months
    if remaining_months == 0:
        regular = 0
        regular_interest = 0
    else:
        regular = calculate_monthly_payment(
            LoanParameters(principal=remaining, annual_rate=params.annual_rate, term_months=remaining_months)
        )
        regular_interest = regular * remaining_months - remaining
    promo_interest = promo_payment * promo_months - (params.principal - remaining)
    return LoanPaymentSummary(promo_payment, regular, round_vnd(promo_interest + regular_interest))


def _prepayment_by_month(prepayments: Iterable[Prepayment]) -> Dict[int, int]:
    extra: Dict[int, int] = {}
    for p in prepayments:
        if p.amount < 0:
            raise LoanInputError("prepayment amount must not be negative")
        extra[p.month] = extra.get(p.month, 0) + round_vnd(p.amount)
    return extra


def generate_payment_schedule(
    params: LoanParameters,
    prepayments: Iterable[Prepayment] = (),
    rate_changes: Iterable[RateChange] = (),
    reduce_term: bool = False,
) -> List[PaymentScheduleItem]:
    """
    Month-by-month amortization.

    The installment is re-amortized over the remaining horizon whenever the rate
    moves, on the first month after the grace period, and after a prepayment.
    With reduce_term the installment is kept after a prepayment and the horizon
    shrinks instead.
    """
    params.validate()
    changes = sorted(rate_changes, key=lambda c: c.month)
    extra = _prepayment_by_month(prepayments)

    schedule: List[PaymentScheduleItem] = []
    balance = round_vnd(params.principal)
    cumulative_interest = 0
    end_month = params.term_months
    payment = 0
    prev_rate = None
    reset = True

    for month in range(1, params.term_months + 1):
        if balance <= 0:
            break
        rate = params.rate_for_month(month, changes)
        monthly_rate = rate / 100 / 12
        interest = round_vnd(balance * monthly_rate)

        if month <= params.grace_period_months:
            principal_paid = 0
        else:
            if reset or rate != prev_rate:
                horizon = max(1, end_month - month + 1)
                payment = round_vnd(annuity_payment(balance, monthly_rate, horizon))
                reset = False
            if month >= end_month:
                principal_paid = balance
            else:
                principal_paid = min(balance, max(0, payment - interest))
        prev_rate = rate
        balance -= principal_paid

        prepaid = min(balance, extra.get(month, 0))
        if prepaid > 0:
            balance -= prepaid
            amortizing = month > params.grace_period_months
            n = months_to_repay(balance, monthly_rate, payment) if (reduce_term and amortizing) else None
            if n is not None:
                end_month = min(end_month, month + n)
            else:
                reset = True

        cumulative_interest += interest
        schedule.append(PaymentScheduleItem(
            month=month,
            payment=principal_paid + interest,
            principal=principal_paid,
            interest=interest,
            balance=balance,
            cumulative_interest=cumulative_interest,
            rate=rate,
            prepayment=prepaid,
        ))

    return schedule


def calculate_cash_flow_projections(
    params: LoanParameters,
    finances: PersonalFinances,
    investment: Optional[InvestmentParams] = None,
    start_date: Optional[date] = None,
    prepayments: Iterable[Prepayment] = (),
    rate_changes: Iterable[RateChange] = (),
    reduce_term: bool = False,
) -> List[CashFlowProjection]:
    schedule = generate_payment_schedule(params, prepayments, rate_changes, reduce_term)
    start = start_date or date.today()
    rental = investment.expected_rental_income if investment else 0
    prop_expenses = investment.property_expenses if investment else 0

    projections: List[CashFlowProjection] = []
    cumulative = 0.0
    for item in schedule:
        value = 0.0
        if investment:
            value = investment.initial_property_value * (1 + investment.appreciation_rate / 100 / 12) ** item.month
        net = (finances.monthly_income - finances.monthly_expenses
               - item.payment - item.prepayment + rental - prop_expenses)
        cumulative += net
        projections.append(CashFlowProjection(
            month=item.month,
            date=add_months(start, item.month),
            principal_payment=item.principal,
            interest_payment=item.interest,
            total_payment=item.payment,
            prepayment=item.prepayment,
            remaining_balance=item.balance,
            rental_income=rental,
            property_expenses=prop_expenses,
            net_cash_flow=round_vnd(net),
            cumulative_cash_flow=round_vnd(cumulative),
            property_value=round_vnd(value),
            equity_position=round_vnd(value - item.balance),
            rate=item.rate,
        ))
    return projections


def affordability_score(monthly_payment: float, monthly_income: float, monthly_expenses: float) -> int:
    """1..10 score from the share of disposable income taken by the installment."""
    net_income = monthly_income - monthly_expenses
    if net_income <= 0:
        return 1
    ratio = monthly_payment / net_income
    if ratio > 0.8:
        return 1
    if ratio > 0.6:
        return 3
    if ratio > 0.4:
        return 5
    if ratio > 0.3:
        return 7
    if ratio > 0.2:
        return 8
    return 10


def regular_payment(schedule: Sequence[PaymentScheduleItem], params: LoanParameters) -> int:
    """Installment of the first month past grace and promo periods."""
    if not schedule:
        return 0
    promo = params.promotional_period_months if params.has_promotion else 0
    first_regular = max(params.grace_period_months, promo) + 1
    return schedule[min(first_regular, len(schedule)) - 1].payment


def metrics_from_schedule(
    params: LoanParameters,
    schedule: Sequence[PaymentScheduleItem],
    finances: PersonalFinances,
    investment: Optional[InvestmentParams] = None,
    start_date: Optional[date] = None,
) -> FinancialMetrics:
    start = start_date or date.today()
    monthly_payment = regular_payment(schedule, params)
    total_interest = schedule[-1].cumulative_interest if schedule else 0

    if finances.monthly_income > 0:
        dti = round(monthly_payment / finances.monthly_income * 100, 2)
    else:
        dti = math.inf

    roi = None
    payback = None
    if investment:
        down_payment = investment.initial_property_value - params.principal
        net_annual = (investment.expected_rental_income - investment.property_expenses) * 12 - monthly_payment * 12
        if down_payment > 0:
            roi = round(net_annual / down_payment * 100, 2)
            if net_annual > 0:
                payback = round_vnd(down_payment / (net_annual / 12))

    return FinancialMetrics(
        monthly_payment=monthly_payment,
        total_interest=total_interest,
        total_payments=round_vnd(params.principal) + total_interest,
        payoff_date=add_months(start, len(schedule)),
        payoff_month=len(schedule),
        debt_to_income_ratio=dti,
        affordability_score=affordability_score(monthly_payment, finances.monthly_income, finances.monthly_expenses),
        roi=roi,
        payback_period=payback,
    )


def calculate_financial_metrics(
    params: LoanParameters,
    finances: PersonalFinances,
    investment: Optional[InvestmentParams] = None,
    start_date: Optional[date] = None,
    prepayments: Iterable[Prepayment] = (),
    rate_changes: Iterable[RateChange] = (),
    reduce_term: bool = False,
) -> FinancialMetrics:
    schedule = generate_payment_schedule(params, prepayments, rate_changes, reduce_term)
    return metrics_from_schedule(params, schedule, finances, investment, start_date)


@dataclass
class PrepaymentImpact:
    new_schedule: List[PaymentScheduleItem]
    interest_saved: int
    months_saved: int
    new_payoff_date: date


def calculate_prepayment_impact(
    params: LoanParameters,
    prepayment_amount: float,
    prepayment_month: int,
    reduce_term: bool = True,
    start_date: Optional[date] = None,
) -> PrepaymentImpact:
    if not 1 <= prepayment_month <= params.term_months:
        raise LoanInputError("prepayment month must fall inside the loan term")
    original = generate_payment_schedule(params)
    new_schedule = generate_payment_schedule(
        params, prepayments=[Prepayment(prepayment_month, prepayment_amount)], reduce_term=reduce_term
    )
    original_interest = original[-1].cumulative_interest if original else 0
    new_interest = new_schedule[-1].cumulative_interest if new_schedule else 0
    logger.debug("prepayment of %s at month %s saves %s interest", prepayment_amount, prepayment_month,
                 original_interest - new_interest)
    return PrepaymentImpact(
        new_schedule=new_schedule,
        interest_saved=original_interest - new_interest,
        months_saved=len(original) - len(new_schedule),
        new_payoff_date=add_months(start_date or date.today(), len(new_schedule)),
    )


@dataclass
class StressFactors:
    interest_rate_increase: float = 0.0   # percentage points
    income_reduction: float = 0.0         # %
    expense_increase: float = 0.0         # %
    rental_vacancy: float = 0.0           # months per year


@dataclass
class StressTestResult:
    base_scenario: FinancialMetrics
    stressed_scenario: FinancialMetrics
    risk_level: str                       # "low" | "medium" | "high"
    recommendations: List[str] = field(default_factory=list)


def stress_test_plan(
    params: LoanParameters,
    finances: PersonalFinances,
    factors: StressFactors,
    investment: Optional[InvestmentParams] = None,
    start_date: Optional[date] = None,
) -> StressTestResult:
    base = calculate_financial_metrics(params, finances, investment, start_date)

    stressed_params = replace(params, annual_rate=params.annual_rate + factors.interest_rate_increase)
    stressed_finances = PersonalFinances(
        monthly_income=finances.monthly_income * (1 - factors.income_reduction / 100),
        monthly_expenses=finances.monthly_expenses * (1 + factors.expense_increase / 100),
    )
    stressed_investment = None
    if investment:
        occupancy = max(0.0, 1 - factors.rental_vacancy / 12)
        stressed_investment = replace(investment, expected_rental_income=investment.expected_rental_income * occupancy)
    stressed = calculate_financial_metrics(stressed_params, stressed_finances, stressed_investment, start_date)

    risk_level = "low"
    recommendations: List[str] = []
    if stressed.debt_to_income_ratio > 50:
        risk_level = "high"
        recommendations.append("Tỷ lệ nợ trên thu nhập quá cao trong điều kiện căng thẳng")
        recommendations.append("Cân nhắc giảm số tiền vay hoặc tăng thu nhập")
    elif stressed.debt_to_income_ratio > 35:
        risk_level = "medium"
        recommendations.append("Cần có kế hoạch dự phòng cho các tình huống khó khăn")

    if stressed.affordability_score < 5:
        risk_level = "high" if risk_level == "high" else "medium"
        recommendations.append("Cần tăng cường dự trữ khẩn cấp")

    return StressTestResult(base, stressed, risk_level, recommendations)


@dataclass
class RateOffer:
    bank: str
    promotional_rate: float
    regular_rate: float
    term_years: int
    min_down_payment_percent: float


@dataclass
class LoanRecommendation:
    bank: str
    recommendation: str
    loan_amount: float
    down_payment: float
    monthly_payment: int
    total_cost: int
    affordability_score: int
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)


def optimize_loan_structure(
    property_price: float,
    available_down_payment: float,
    monthly_income: float,
    monthly_expenses: float,
    offers: Iterable[RateOffer],
) -> List[LoanRecommendation]:
    """Rank bank offers by affordability, then by total cost."""
    policy = load_policy()
    promo_months = int(policy.get("offer_promotional_months", 24))
    finances = PersonalFinances(monthly_income, monthly_expenses)

    out: List[LoanRecommendation] = []
    for offer in offers:
        min_down = property_price * offer.min_down_payment_percent / 100
        down_payment = max(min_down, available_down_payment)
        loan_amount = property_price - down_payment
        if loan_amount <= 0:
            continue  # nothing to borrow

        term_months = offer.term_years * 12
        params = LoanParameters(
            principal=loan_amount,
            annual_rate=offer.regular_rate,
            term_months=term_months,
            promotional_rate=offer.promotional_rate,
            promotional_period_months=min(promo_months, term_months),
        )
        summary = calculate_vietnamese_loan_payment(params)
        metrics = calculate_financial_metrics(params, finances)

        pros: List[str] = []
        cons: List[str] = []
        if offer.promotional_rate < 8:
            pros.append(f"Lãi suất ưu đãi thấp {offer.promotional_rate:g}%")
        if metrics.debt_to_income_ratio < 30:
            pros.append("Tỷ lệ nợ trên thu nhập an toàn")
        elif metrics.debt_to_income_ratio > 40:
            cons.append("Tỷ lệ nợ trên thu nhập cao")
        if metrics.affordability_score >= 7:
            pros.append("Khả năng chi trả tốt")
        elif metrics.affordability_score < 5:
            cons.append("Khả năng chi trả hạn chế")
        if offer.term_years <= 20:
            pros.append("Thời gian vay ngắn, tiết kiệm lãi")
        else:
            cons.append("Thời gian vay dài")

        if metrics.affordability_score >= 8 and metrics.debt_to_income_ratio < 30:
            label = "Rất phù hợp"
        elif metrics.affordability_score < 5 or metrics.debt_to_income_ratio > 50:
            label = "Không khuyến nghị"
        elif metrics.affordability_score < 7 or metrics.debt_to_income_ratio > 40:
            label = "Cần cân nhắc"
        else:
            label = "Phù hợp"

        out.append(LoanRecommendation(
            bank=offer.bank,
            recommendation=label,
            loan_amount=loan_amount,
            down_payment=down_payment,
            monthly_payment=summary.regular_payment,
            total_cost=round_vnd(loan_amount + summary.total_interest),
            affordability_score=metrics.affordability_score,
            pros=pros,
            cons=cons,
        ))

    return sorted(out, key=lambda r: (-r.affordability_score, r.total_cost))
