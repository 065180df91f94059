from planner.readiness import ReadinessInputs, readiness_score


def make_inputs(**overrides):
    values = dict(
        monthly_income=60_000_000,
        monthly_expenses=20_000_000,
        current_savings=150_000_000,
        down_payment=1_000_000_000,
        property_price=3_000_000_000,
        monthly_payment=15_000_000,
        compared_bank_rates=True,
    )
    values.update(overrides)
    return ReadinessInputs(**values)


def test_fully_ready():
    r = readiness_score(make_inputs())
    assert r["percent"] == 100
    assert r["status"] == "Sẵn sàng"
    assert all(r["checks"].values())


def test_partially_ready():
    r = readiness_score(make_inputs(compared_bank_rates=False, current_savings=10_000_000))
    assert r["percent"] == 50
    assert r["status"] == "Gần sẵn sàng"


def test_not_ready():
    r = readiness_score(make_inputs(
        compared_bank_rates=False, current_savings=0, down_payment=0, monthly_payment=40_000_000,
    ))
    assert r["percent"] == 0
    assert r["status"] == "Cần chuẩn bị thêm"
