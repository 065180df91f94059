from dataclasses import dataclass
from typing import Any, Dict

from planner.policy import load_policy


@dataclass
class ReadinessInputs:
    monthly_income: float
    monthly_expenses: float
    current_savings: float
    down_payment: float
    property_price: float
    monthly_payment: float
    compared_bank_rates: bool


def readiness_score(inp: ReadinessInputs) -> Dict[str, Any]:
    dti_cap = float(load_policy().get("dti_cap", 0.30))
    dti_ok = inp.monthly_income > 0 and inp.monthly_payment / inp.monthly_income <= dti_cap
    checks = {
        "Quỹ dự phòng ≥ 6 tháng chi tiêu": inp.current_savings >= inp.monthly_expenses * 6,
        "Trả trước ≥ 30% giá nhà": inp.property_price > 0 and inp.down_payment >= inp.property_price * 0.3,
        f"Trả góp ≤ {dti_cap:.0%} thu nhập": dti_ok,
        "Đã so sánh lãi suất ngân hàng": inp.compared_bank_rates,
    }
    total = len(checks)
    done = sum(1 for v in checks.values() if v)
    pct = round((done / total) * 100) if total else 0
    status = ("Sẵn sàng" if pct >= 75 else "Gần sẵn sàng" if pct >= 50 else "Cần chuẩn bị thêm")
    return {"percent": pct, "status": status, "checks": checks}
