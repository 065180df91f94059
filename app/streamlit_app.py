import pandas as pd
import streamlit as st
from datetime import date

from advice.answer import synthesize_advice
from planner.affordability import AffordInputs, analyze_affordability
from planner.bank_rates import LOAN_TYPES, bank_rate_to_loan_params, get_default_rates, get_optimal_bank_rate
from planner.budgets import BUDGET_METHODS, calculate_budget_allocation, format_budget_summary
from planner.formatting import format_vi_date, format_vnd, parse_vnd
from planner.loan import (
    InvestmentParams,
    LoanParameters,
    PersonalFinances,
    StressFactors,
    calculate_prepayment_impact,
    generate_payment_schedule,
    stress_test_plan,
)
from planner.readiness import ReadinessInputs, readiness_score
from planner.scenarios import ScenarioDefinition, ScenarioEngine
from planner.sql_utils import DB_PATH
from planner.timeline import (
    CRISIS_TYPES,
    TimelineGeneratorParams,
    convert_scenario_to_timeline,
    generate_crisis_timeline,
    generate_timeline_events,
)

st.set_page_config(page_title="Kế hoạch vay mua nhà", layout="wide")
st.title("🏠 Kế hoạch vay mua nhà")

if DB_PATH.exists():
    st.caption(f"Lãi suất ngân hàng: {DB_PATH}")
else:
    st.caption("Lãi suất ngân hàng: chưa có DB, chạy `python db/init_duckdb.py`, đang dùng lãi suất mặc định")


with st.sidebar:
    st.header("Khoản vay")
    loan_type = st.selectbox("Loại vay", LOAN_TYPES)
    price = parse_vnd(st.text_input("Giá nhà", "3 tỷ"))
    down_payment = parse_vnd(st.text_input("Trả trước", "900 triệu"))
    term_years = st.slider("Thời hạn (năm)", 5, 35, 20)
    grace_months = st.number_input("Ân hạn nợ gốc (tháng)", min_value=0, max_value=60, value=0)

    st.divider()
    st.header("Tài chính cá nhân")
    income = parse_vnd(st.text_input("Thu nhập / tháng", "60 triệu"))
    expenses = parse_vnd(st.text_input("Chi tiêu / tháng", "25 triệu"))
    savings = parse_vnd(st.text_input("Tiết kiệm hiện có", "300 triệu"))

    st.divider()
    st.header("Đầu tư cho thuê")
    is_investment = st.checkbox("Nhà để cho thuê", value=False)
    rent = parse_vnd(st.text_input("Tiền thuê / tháng", "15 triệu"))
    property_costs = parse_vnd(st.text_input("Chi phí nhà / tháng", "2 triệu"))
    appreciation = st.number_input("Tăng giá nhà % / năm", min_value=-20.0, max_value=30.0, value=5.0, step=0.5)

principal = max(0, price - down_payment)
term_months = term_years * 12


@st.cache_data(ttl=3600)
def lookup_rates(amount, months, kind):
    return get_optimal_bank_rate(amount, months, kind)


optimal = lookup_rates(principal, term_months, loan_type) if DB_PATH.exists() else None
if optimal:
    loan = bank_rate_to_loan_params(optimal.best_rate, principal, term_months)
    rate_source = f"{optimal.best_rate.bank_name} ({optimal.best_rate.interest_rate:g}%)"
else:
    defaults = get_default_rates(loan_type)
    loan = LoanParameters(
        principal=principal,
        annual_rate=defaults.annual_rate,
        term_months=term_months,
        promotional_rate=defaults.promotional_rate,
        promotional_period_months=min(defaults.promotional_period_months, term_months),
    )
    rate_source = f"mặc định thị trường ({defaults.annual_rate:g}%)"
if grace_months and grace_months < term_months:
    loan.grace_period_months = int(grace_months)

finances = PersonalFinances(income, expenses)
investment = InvestmentParams(rent, property_costs, appreciation, price) if is_investment else None

tabs = st.tabs(["Tổng quan", "Lịch trả nợ", "Kịch bản", "Dòng thời gian", "Ngân hàng", "Sẵn sàng", "Ngân sách"])

with tabs[0]:
    st.subheader("Khả năng chi trả")
    st.caption(f"Lãi suất áp dụng: {rate_source}")
    if principal <= 0:
        st.info("Không cần vay với số tiền trả trước này.")
    else:
        schedule = generate_payment_schedule(loan)
        first = schedule[0].payment if schedule else 0
        aff = analyze_affordability(AffordInputs(income, expenses, first, savings))
        c1, c2, c3, c4 = st.columns(4)
        with c1:
            st.metric("Số tiền vay", format_vnd(principal, short=True))
        with c2:
            st.metric("Trả góp tháng đầu", format_vnd(first))
        with c3:
            st.metric("Tổng lãi", format_vnd(schedule[-1].cumulative_interest, short=True))
        with c4:
            st.metric("Đánh giá", aff.score)
        for w in aff.warnings:
            st.warning(w)
        for r in aff.recommendations:
            st.write(f"- {r}")

        st.divider()
        st.write("**Kiểm tra sức chịu đựng**")
        s1, s2, s3 = st.columns(3)
        with s1:
            rate_up = st.slider("Lãi suất tăng (điểm %)", 0.0, 6.0, 2.0, 0.5)
        with s2:
            income_down = st.slider("Thu nhập giảm (%)", 0, 50, 20)
        with s3:
            expense_up = st.slider("Chi tiêu tăng (%)", 0, 50, 10)
        stress = stress_test_plan(loan, finances, StressFactors(rate_up, income_down, expense_up), investment)
        st.write(f"Mức rủi ro: **{stress.risk_level}**, DTI khi căng thẳng {stress.stressed_scenario.debt_to_income_ratio:.1f}%")
        for r in stress.recommendations:
            st.write(f"- {r}")

with tabs[1]:
    st.subheader("Lịch trả nợ")
    if principal > 0:
        schedule = generate_payment_schedule(loan)
        df = pd.DataFrame([s.__dict__ for s in schedule]).set_index("month")
        st.line_chart(df[["principal", "interest"]])
        st.dataframe(df, use_container_width=True)

        st.divider()
        st.write("**Trả nợ trước hạn**")
        p1, p2, p3 = st.columns(3)
        with p1:
            pre_amount = parse_vnd(st.text_input("Số tiền trả thêm", "200 triệu"))
        with p2:
            pre_month = st.number_input("Tháng", min_value=1, max_value=term_months, value=min(24, term_months))
        with p3:
            reduce_term = st.radio("Cách giảm", ["Giảm thời hạn", "Giảm kỳ trả"], horizontal=True) == "Giảm thời hạn"
        if st.button("Tính tác động"):
            impact = calculate_prepayment_impact(loan, pre_amount, int(pre_month), reduce_term=reduce_term)
            st.write(f"- Tiết kiệm lãi: **{format_vnd(impact.interest_saved)}**")
            st.write(f"- Rút ngắn: **{impact.months_saved} tháng** (tất toán {format_vi_date(impact.new_payoff_date)})")

with tabs[2]:
    st.subheader("So sánh kịch bản")
    if principal > 0:
        engine = ScenarioEngine(
            ScenarioDefinition(id="baseline", name="Kịch bản gốc", type="baseline",
                               description="Kế hoạch hiện tại"),
            loan, finances, investment,
        )
        results = [engine.baseline_results()] + engine.generate_predefined_scenarios()
        st.dataframe(ScenarioEngine.summary_frame(results), use_container_width=True)

        chosen = st.selectbox("Chi tiết kịch bản", [r.scenario.name for r in results])
        result = next(r for r in results if r.scenario.name == chosen)
        cf = pd.DataFrame([p.__dict__ for p in result.cash_flow_projections]).set_index("date")
        st.line_chart(cf[["remaining_balance", "equity_position"]])
        if st.button("Tư vấn cho kịch bản này"):
            st.markdown(synthesize_advice(result)["answer_markdown"])

with tabs[3]:
    st.subheader("Dòng thời gian")
    start = st.date_input("Ngày ký hợp đồng", value=date.today())
    events = generate_timeline_events(TimelineGeneratorParams(
        loan_amount=principal,
        loan_term_months=term_months,
        promotional_period_months=loan.promotional_period_months if loan.has_promotion else 0,
        start_date=start,
    ))
    crisis = st.selectbox("Mô phỏng khủng hoảng", ["(không)"] + list(CRISIS_TYPES))
    if crisis != "(không)":
        crisis_month = st.slider("Tháng xảy ra", 1, term_months, min(36, term_months))
        events = generate_crisis_timeline(events, crisis_month, crisis, start_date=start)
    for e in events:
        st.write(f"- **{format_vi_date(e.scheduled_date)}** (T+{e.month}): {e.name} - {e.description}")

    if principal > 0:
        st.divider()
        engine = ScenarioEngine(
            ScenarioDefinition(id="baseline", name="Kịch bản gốc", type="baseline", description="Kế hoạch hiện tại"),
            loan, finances, investment, start_date=start,
        )
        for r in engine.generate_predefined_scenarios():
            ts = convert_scenario_to_timeline(r)
            with st.expander(f"{ts.name}: rủi ro {ts.risk_level}, {ts.total_duration} tháng"):
                for e in ts.events:
                    st.write(f"- T+{e.month}: {e.name} - {e.description}")

with tabs[4]:
    st.subheader("Lãi suất ngân hàng")
    if optimal:
        st.metric("Lãi suất tốt nhất", f"{optimal.best_rate.interest_rate:g}%", help=optimal.best_rate.bank_name)
        st.caption(f"Trung bình thị trường: {optimal.market_average:.2f}%")
        for rec in optimal.recommendations:
            saving = f", tiết kiệm {format_vnd(rec.savings)}" if rec.savings else ""
            st.write(f"- {rec.rate.bank_name}: {rec.reason}{saving}")
    else:
        st.info("Chưa có dữ liệu lãi suất phù hợp; đang dùng lãi suất mặc định.")

with tabs[5]:
    st.subheader("Mức độ sẵn sàng")
    compared = st.checkbox("Tôi đã so sánh lãi suất của ít nhất 3 ngân hàng", value=False)
    first_payment = generate_payment_schedule(loan)[0].payment if principal > 0 else 0
    r = readiness_score(ReadinessInputs(
        monthly_income=income,
        monthly_expenses=expenses,
        current_savings=savings,
        down_payment=down_payment,
        property_price=price,
        monthly_payment=first_payment,
        compared_bank_rates=compared,
    ))
    st.metric("Sẵn sàng", f"{r['percent']}%", help=r["status"])
    for label, ok in r["checks"].items():
        st.write(("✅ " if ok else "⬜️ ") + label)

with tabs[6]:
    st.subheader("Ngân sách hàng tháng")
    method = st.radio("Phương pháp", list(BUDGET_METHODS), horizontal=True,
                      format_func=lambda k: BUDGET_METHODS[k].name)
    allocation = calculate_budget_allocation(method, income)
    summary = pd.DataFrame(format_budget_summary(method, allocation, income)).set_index("group")
    summary["amount"] = summary["amount"].map(format_vnd)
    st.dataframe(summary[["name", "amount", "percentage"]], use_container_width=True)

st.write("")
st.caption("Số liệu mang tính tham khảo. Vui lòng xác nhận điều kiện vay với ngân hàng trước khi ký hợp đồng.")
