from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from planner.formatting import format_vnd
from planner.loan import LoanParameters, add_months, calculate_prepayment_impact
from planner.policy import load_policy, threshold

EVENT_TYPES = (
    "loan_signing", "property_handover", "first_payment", "rate_change", "prepayment",
    "milestone", "crisis_event", "opportunity", "loan_completion",
)
CRISIS_TYPES = ("payment_delay", "restructure", "default")

FIRST_PAYMENT_DAY = 15


# Basic working-day helper (Sat/Sun off; VN public holidays not modelled)
def next_working_day(d: date) -> date:
    nd = d + timedelta(days=1)
    while nd.weekday() >= 5:  # 5=Sat,6=Sun
        nd += timedelta(days=1)
    return nd


def on_working_day(d: date) -> date:
    return d if d.weekday() < 5 else next_working_day(d)


@dataclass
class TimelineEvent:
    id: str
    type: str
    name: str
    description: str
    scheduled_date: date
    month: int
    financial_impact: Optional[float] = None
    payment_change: Optional[float] = None
    balance_after_event: Optional[float] = None
    status: str = "scheduled"
    icon_name: str = "dollar"
    color_code: str = "#3B82F6"
    priority: int = 5
    event_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TimelineScenario:
    id: str
    name: str
    type: str
    events: List[TimelineEvent]
    total_duration: int
    total_interest: int
    monthly_savings: Optional[float]
    risk_level: str


@dataclass
class TimelineGeneratorParams:
    loan_amount: float
    loan_term_months: int
    promotional_period_months: int = 0
    start_date: Optional[date] = None


def _by_month(events: List[TimelineEvent]) -> List[TimelineEvent]:
    return sorted(events, key=lambda e: e.month)


def generate_timeline_events(params: TimelineGeneratorParams) -> List[TimelineEvent]:
    start = params.start_date or date.today()
    events = []

    # 1) Contract + loan signing
    events.append(TimelineEvent(
        id="loan-signing", type="loan_signing",
        name="Ký HĐMB", description="Ký hợp đồng mua bán và hợp đồng vay",
        scheduled_date=start, month=0, financial_impact=-params.loan_amount,
        icon_name="home", color_code="#10B981", priority=9,
        event_data={"loan_amount": params.loan_amount, "contract_signed": True},
    ))

    # 2) Handover, usually a month after signing
    handover = add_months(start, 1)
    events.append(TimelineEvent(
        id="property-handover", type="property_handover",
        name="Nhận nhà", description="Bàn giao nhà và bắt đầu trả góp",
        scheduled_date=handover, month=1,
        icon_name="key", color_code="#F59E0B", priority=8,
        event_data={"first_payment_due": True},
    ))

    # 3) First installment mid-month, moved off weekends
    first_payment = on_working_day(handover.replace(day=FIRST_PAYMENT_DAY))
    events.append(TimelineEvent(
        id="first-payment", type="first_payment",
        name="Trả góp đầu tiên", description="Kỳ trả góp đầu tiên với lãi suất ưu đãi",
        scheduled_date=first_payment, month=1,
        icon_name="dollar", color_code="#3B82F6", priority=7,
    ))

    # 4) Promo rate ends
    if params.promotional_period_months > 0:
        events.append(TimelineEvent(
            id="promotional-end", type="rate_change",
            name="Hết lãi suất ưu đãi", description="Chuyển sang lãi suất thông thường",
            scheduled_date=add_months(start, params.promotional_period_months),
            month=params.promotional_period_months,
            icon_name="alert", color_code="#EF4444", priority=8,
            event_data={"rate_change": True, "new_rate_type": "regular"},
        ))

    # 5) Halfway
    midterm = params.loan_term_months // 2
    events.append(TimelineEvent(
        id="midterm-milestone", type="milestone",
        name="Nửa chặng đường", description="Đã hoàn thành 50% thời gian vay",
        scheduled_date=add_months(start, midterm), month=midterm,
        icon_name="trend_up", color_code="#8B5CF6", priority=5,
    ))

    # 6) Paid off
    events.append(TimelineEvent(
        id="loan-completion", type="loan_completion",
        name="Trả hết nợ", description="Hoàn thành nghĩa vụ trả nợ",
        scheduled_date=add_months(start, params.loan_term_months), month=params.loan_term_months,
        balance_after_event=0, icon_name="target", color_code="#10B981", priority=10,
        event_data={"loan_completed": True, "celebration_event": True},
    ))

    return _by_month(events)


def generate_timeline_from_scenario(result, start_date: Optional[date] = None) -> List[TimelineEvent]:
    """Derive milestone events from a ScenarioResults' cash-flow projections."""
    policy = load_policy()
    min_change = threshold(policy, "payment_change_vnd", 1_000_000)
    scenario = result.scenario
    projections = result.cash_flow_projections
    start = start_date or result.start_date

    events = [TimelineEvent(
        id="loan-start", type="loan_signing",
        name="Bắt đầu vay", description=scenario.description,
        scheduled_date=start, month=0,
        icon_name="home", color_code="#10B981", priority=9,
    )]

    for i, p in enumerate(projections):
        prev = projections[i - 1] if i > 0 else None
        paid_off = p.remaining_balance == 0 and (prev is None or prev.remaining_balance > 0)

        if p.prepayment > 0:
            events.append(TimelineEvent(
                id=f"prepayment-{p.month}", type="prepayment",
                name="Trả thêm", description=f"Trả thêm {format_vnd(p.prepayment)}",
                scheduled_date=add_months(start, p.month), month=p.month,
                financial_impact=-p.prepayment, balance_after_event=p.remaining_balance,
                icon_name="dollar", color_code="#10B981", priority=7,
                event_data={"prepayment_amount": p.prepayment},
            ))

        # only rate moves count; the closing remainder and post-prepayment drops do not
        rate_moved = prev is not None and p.rate != prev.rate
        if rate_moved and not paid_off and abs(p.total_payment - prev.total_payment) > min_change:
            change = p.total_payment - prev.total_payment
            events.append(TimelineEvent(
                id=f"payment-change-{p.month}", type="rate_change",
                name="Thay đổi kỳ trả",
                description=f"Thay đổi từ {format_vnd(prev.total_payment)} thành {format_vnd(p.total_payment)}",
                scheduled_date=add_months(start, p.month), month=p.month,
                payment_change=change, balance_after_event=p.remaining_balance,
                icon_name="alert" if change > 0 else "dollar",
                color_code="#EF4444" if change > 0 else "#10B981",
                priority=7,
            ))

        if paid_off:
            events.append(TimelineEvent(
                id="loan-completion", type="loan_completion",
                name="Trả hết nợ", description="Hoàn thành nghĩa vụ trả nợ",
                scheduled_date=add_months(start, p.month), month=p.month,
                balance_after_event=0, icon_name="target", color_code="#10B981", priority=10,
            ))

    if scenario.type in ("pessimistic", "stress_test"):
        crisis_month = int(len(projections) * 0.3)
        events.append(TimelineEvent(
            id="crisis-event", type="crisis_event",
            name="Khó khăn tài chính", description="Tình huống khó khăn trong kịch bản bi quan",
            scheduled_date=add_months(start, crisis_month), month=crisis_month,
            icon_name="alert", color_code="#EF4444", priority=9,
            event_data={"crisis_type": scenario.type, "needs_action": True},
        ))

    if scenario.type == "optimistic":
        opportunity_month = int(len(projections) * 0.4)
        events.append(TimelineEvent(
            id="opportunity-event", type="opportunity",
            name="Cơ hội đầu tư", description="Cơ hội mở rộng danh mục trong kịch bản lạc quan",
            scheduled_date=add_months(start, opportunity_month), month=opportunity_month,
            icon_name="trend_up", color_code="#3B82F6", priority=6,
        ))

    return _by_month(events)


def convert_scenario_to_timeline(result, start_date: Optional[date] = None) -> TimelineScenario:
    events = generate_timeline_from_scenario(result, start_date)
    metrics = result.metrics

    risk_level = "low"
    if metrics.debt_to_income_ratio > 40:
        risk_level = "high"
    elif metrics.debt_to_income_ratio > 30 or metrics.affordability_score < 6:
        risk_level = "medium"

    if result.scenario.type in ("stress_test", "pessimistic"):
        risk_level = "high"
    elif result.scenario.type == "optimistic":
        risk_level = "low"

    comparison = result.comparison_to_baseline
    return TimelineScenario(
        id=result.scenario.id,
        name=result.scenario.name,
        type=result.scenario.type,
        events=events,
        total_duration=max(e.month for e in events),
        total_interest=metrics.total_interest,
        monthly_savings=comparison.monthly_savings if comparison else None,
        risk_level=risk_level,
    )


def generate_crisis_timeline(
    base_events: List[TimelineEvent],
    crisis_month: int,
    crisis_type: str,
    start_date: Optional[date] = None,
) -> List[TimelineEvent]:
    if crisis_type not in CRISIS_TYPES:
        raise ValueError(f"unknown crisis type: {crisis_type!r}")
    start = start_date or date.today()
    events = list(base_events)

    if crisis_type == "payment_delay":
        for i in range(3):
            missed = crisis_month + i
            events.append(TimelineEvent(
                id=f"missed-payment-{missed}", type="crisis_event",
                name=f"Trễ thanh toán T+{missed}", description="Không thể thanh toán đúng hạn",
                scheduled_date=add_months(start, missed), month=missed,
                icon_name="alert", color_code="#EF4444", priority=9,
                event_data={"missed_payment": True, "penalty_applied": True},
            ))
    elif crisis_type == "restructure":
        month = crisis_month + 3
        events.append(TimelineEvent(
            id="loan-restructure", type="milestone",
            name="Tái cấu trúc khoản vay", description="Đàm phán lại điều kiện vay với ngân hàng",
            scheduled_date=add_months(start, month), month=month,
            icon_name="settings", color_code="#F59E0B", priority=8,
            event_data={"restructured": True, "new_terms": True},
        ))
    else:
        month = crisis_month + 6
        events.append(TimelineEvent(
            id="loan-default", type="crisis_event",
            name="Vỡ nợ", description="Không thể tiếp tục trả nợ - nguy cơ tịch thu tài sản",
            scheduled_date=add_months(start, month), month=month,
            icon_name="alert", color_code="#DC2626", priority=10,
            event_data={"defaulted": True, "foreclosure_risk": True},
        ))

    return _by_month(events)


def add_prepayment_event(
    events: List[TimelineEvent],
    month: int,
    amount: float,
    start_date: Optional[date] = None,
) -> List[TimelineEvent]:
    start = start_date or date.today()
    kept = [e for e in events if not (e.month == month and e.type == "prepayment")]
    kept.append(TimelineEvent(
        id=f"prepayment-{month}", type="prepayment",
        name="Trả thêm", description=f"Trả thêm {format_vnd(amount)}",
        scheduled_date=add_months(start, month), month=month,
        financial_impact=-amount, icon_name="dollar", color_code="#10B981", priority=6,
        event_data={"prepayment_amount": amount},
    ))
    return _by_month(kept)


@dataclass
class TimelineCompression:
    compressed_events: List[TimelineEvent]
    months_saved: int


def calculate_timeline_compression(
    original_events: List[TimelineEvent],
    prepayment_month: int,
    prepayment_amount: float,
    remaining_balance: float,
    loan: Optional[LoanParameters] = None,
) -> TimelineCompression:
    """
    Pull later events forward by the months a prepayment saves.

    With 'loan' the saving comes from the amortization engine; without it a rough
    rule is used: 80% of the prepayment counts as interest saved, one month per 10M VND.
    """
    if loan is not None:
        impact = calculate_prepayment_impact(loan, prepayment_amount, prepayment_month, reduce_term=True)
        months_saved = max(0, impact.months_saved)
    else:
        amount = min(prepayment_amount, remaining_balance) if remaining_balance > 0 else prepayment_amount
        months_saved = int(amount * 0.8 // 10_000_000)

    compressed = [
        replace(e, month=max(prepayment_month + 1, e.month - months_saved)) if e.month > prepayment_month else e
        for e in original_events
    ]
    return TimelineCompression(compressed, months_saved)
