import pytest

from planner.budgets import (
    UnknownBudgetMethod,
    calculate_budget_allocation,
    calculate_category_budgets,
    format_budget_summary,
    get_budget_method_config,
    get_default_category_mapping,
    validate_category_mapping,
)


def test_fifty_thirty_twenty():
    alloc = calculate_budget_allocation("50_30_20", 40_000_000)
    assert alloc == {"needs": 20_000_000, "wants": 12_000_000, "savings": 8_000_000}


def test_six_jars_sum_to_income():
    alloc = calculate_budget_allocation("6_jars", 20_000_000)
    assert len(alloc) == 6
    assert sum(alloc.values()) == pytest.approx(20_000_000)
    assert alloc["necessities"] == pytest.approx(11_000_000)


def test_unknown_method():
    with pytest.raises(UnknownBudgetMethod):
        get_budget_method_config("envelopes")
    with pytest.raises(KeyError):
        calculate_budget_allocation("envelopes", 1)


def test_category_budgets_split_evenly():
    mapping = {"food": "needs", "rent": "needs", "movies": "wants"}
    assert validate_category_mapping("50_30_20", mapping)
    assert not validate_category_mapping("50_30_20", {"food": "necessities"})
    budgets = calculate_category_budgets("50_30_20", 40_000_000, mapping)
    assert budgets == {"food": 10_000_000, "rent": 10_000_000, "movies": 12_000_000}


def test_default_category_mapping():
    categories = [
        {"id": "c1", "category_key": "food_dining"},
        {"id": "c2", "category_key": "entertainment"},
        {"id": "c3", "category_key": "investment"},
        {"id": "c4", "name_vi": "Khác"},
    ]
    mapping = get_default_category_mapping("50_30_20", categories)
    assert mapping == {"c1": "needs", "c2": "wants", "c3": "savings", "c4": "needs"}
    assert get_default_category_mapping("6_jars", categories) == {}


def test_budget_summary():
    alloc = calculate_budget_allocation("50_30_20", 40_000_000)
    rows = format_budget_summary("50_30_20", alloc, 40_000_000)
    assert [r["group"] for r in rows] == ["needs", "wants", "savings"]
    assert rows[0]["percentage"] == pytest.approx(50)
    assert format_budget_summary("50_30_20", alloc, 0)[0]["percentage"] == 0
