from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from planner.formatting import format_vnd
from planner.loan import annuity_payment, round_vnd
from planner.policy import load_policy


def calculate_loan_amount(monthly_payment: float, term_years: int, annual_rate: float) -> int:
    """Solve principal from a target monthly payment."""
    if monthly_payment <= 0 or term_years <= 0 or annual_rate < 0:
        return 0
    months = term_years * 12
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        return round_vnd(monthly_payment * months)
    f = (1 + monthly_rate) ** months
    return round_vnd(monthly_payment * (f - 1) / (monthly_rate * f))


@dataclass
class LoanDetails:
    loan_amount: float
    interest_rate: float
    term_years: int
    monthly_payment: int
    total_interest: int
    total_amount: int


def calculate_loan_details(
    purchase_price: float,
    down_payment: float,
    interest_rate: Optional[float] = None,
    term_years: Optional[int] = None,
) -> LoanDetails:
    policy = load_policy()
    rate = interest_rate if interest_rate is not None else float(policy.get("default_rate_pa", 8.5))
    years = term_years if term_years is not None else int(policy.get("default_term_years", 20))

    loan_amount = max(0.0, purchase_price - down_payment)
    if loan_amount > 0 and years > 0:
        monthly = round_vnd(annuity_payment(loan_amount, rate / 100 / 12, years * 12))
    else:
        monthly = 0
    total = monthly * years * 12
    return LoanDetails(
        loan_amount=loan_amount,
        interest_rate=rate,
        term_years=years,
        monthly_payment=monthly,
        total_interest=round_vnd(total - loan_amount),
        total_amount=total,
    )


@dataclass
class AffordInputs:
    monthly_income: float
    monthly_expenses: float
    monthly_payment: float
    current_savings: float
    other_debts: float = 0.0


@dataclass
class AffordabilityAnalysis:
    score: str                 # "excellent" | "good" | "acceptable" | "risky" | "unaffordable"
    debt_to_income_ratio: float
    monthly_leftover: float
    max_affordable_price: int
    recommendations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def analyze_affordability(inputs: AffordInputs) -> AffordabilityAnalysis:
    policy = load_policy()
    dti_cap = float(policy.get("dti_cap", 0.30))
    default_rate = float(policy.get("default_rate_pa", 8.5))
    default_years = int(policy.get("default_term_years", 20))

    total_debt = inputs.monthly_payment + inputs.other_debts
    dti = total_debt / inputs.monthly_income if inputs.monthly_income > 0 else float("inf")
    leftover = inputs.monthly_income - inputs.monthly_expenses - total_debt

    # 1) Price ceiling: loan the DTI cap supports + 80% of savings (20% kept as buffer)
    max_payment = inputs.monthly_income * dti_cap - inputs.other_debts
    max_loan = calculate_loan_amount(max_payment, default_years, default_rate) if max_payment > 0 else 0
    max_price = round_vnd(max_loan + inputs.current_savings * 0.8)

    recommendations: List[str] = []
    warnings: List[str] = []

    # 2) Score bands
    if dti <= 0.28:
        score = "excellent"
        recommendations.append("Excellent financial position for this purchase")
        recommendations.append("Consider investing surplus income for better returns")
    elif dti <= 0.33:
        score = "good"
        recommendations.append("Good financial position with manageable payments")
        recommendations.append("Maintain emergency fund of 3-6 months expenses")
    elif dti <= 0.40:
        score = "acceptable"
        recommendations.append("Acceptable but tight budget - monitor expenses carefully")
        warnings.append("Consider increasing income or reducing other debts")
    elif dti <= 0.50:
        score = "risky"
        warnings.append("High debt-to-income ratio - consider lower purchase price")
        warnings.append("Banks may require additional documentation or higher down payment")
    else:
        score = "unaffordable"
        warnings.append("This purchase exceeds safe borrowing limits")
        warnings.append(f"Maximum recommended price: {format_vnd(max_price)}")

    # 3) Buffers
    if leftover < inputs.monthly_expenses * 0.1:
        warnings.append("Very little buffer for unexpected expenses")
    if inputs.current_savings < inputs.monthly_expenses * 3:
        recommendations.append("Build emergency fund before purchase")

    return AffordabilityAnalysis(
        score=score,
        debt_to_income_ratio=dti,
        monthly_leftover=leftover,
        max_affordable_price=max_price,
        recommendations=recommendations,
        warnings=warnings,
    )


@dataclass
class FinancialHealthIndicators:
    emergency_fund_months: float
    savings_rate: float
    debt_to_asset_ratio: float
    liquidity_ratio: float
    investment_capacity: float


def calculate_financial_health(
    monthly_income: float,
    monthly_expenses: float,
    current_savings: float,
    other_debts: float,
    assets: float = 0.0,
) -> FinancialHealthIndicators:
    monthly_savings = max(0.0, monthly_income - monthly_expenses)
    liquid_months = current_savings / max(monthly_expenses, 1)
    holdings = current_savings + assets
    return FinancialHealthIndicators(
        emergency_fund_months=liquid_months,
        savings_rate=monthly_savings / monthly_income if monthly_income > 0 else 0.0,
        debt_to_asset_ratio=other_debts / holdings if holdings > 0 else 1.0,
        liquidity_ratio=liquid_months,
        investment_capacity=max(0.0, monthly_savings - monthly_expenses * 0.1),
    )


def calculate_appreciation(initial_value: float, annual_rate: float, years: float) -> float:
    return initial_value * (1 + annual_rate / 100) ** years


def calculate_property_roi(
    purchase_price: float,
    down_payment: float,
    monthly_rent: float,
    monthly_expenses: float,
    appreciation_rate: float,
    years: int,
) -> Dict[str, float]:
    if down_payment <= 0 or years <= 0:
        raise ValueError("down_payment and years must be positive")
    total_cash_flow = (monthly_rent - monthly_expenses) * 12 * years
    capital_gains = calculate_appreciation(purchase_price, appreciation_rate, years) - purchase_price
    total_return = total_cash_flow + capital_gains
    growth = 1 + total_return / down_payment
    # a total loss or worse has no real annualized rate
    annualized = growth ** (1 / years) - 1 if growth > 0 else -1.0
    return {
        "total_cash_flow": total_cash_flow,
        "capital_gains": capital_gains,
        "total_return": total_return,
        "annualized_roi": annualized,
    }


def get_smart_suggestions(field_name: str, current_value: float, context: Dict[str, Any]) -> List[str]:
    """Inline hints for plan form fields."""
    price = context.get("purchase_price")
    income = context.get("monthly_income")
    suggestions: List[str] = []

    if field_name == "down_payment" and price:
        pct = current_value / price * 100
        if pct < 20:
            suggestions.append(f"Consider 20% ({format_vnd(price * 0.2, short=True)}) to lower the loan amount")
        if pct > 50:
            suggestions.append("High down payment - consider investment opportunities for excess cash")
        suggestions.append(f"Current: {pct:.1f}% of purchase price")
    elif field_name == "additional_costs" and price:
        suggestions.append("Typical range: 5-10% of purchase price")
        suggestions.append(f"Recommended: {format_vnd(price * 0.07, short=True)}")
    elif field_name == "expected_rental_income" and price and context.get("plan_type") == "investment":
        # ~6% gross yield is typical in major VN cities
        suggestions.append(f"Market average: {format_vnd(price * 0.06 / 12, short=True)}/month")
        suggestions.append("Gross yield: 5-8% annually typical in major cities")
    elif field_name == "monthly_expenses" and income:
        suggestions.append("Recommended: 40-60% of income")
        suggestions.append(f"Target: {format_vnd(income * 0.5, short=True)}/month")

    return suggestions
