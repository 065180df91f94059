from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping


class UnknownBudgetMethod(KeyError):
    pass


@dataclass
class BudgetGroup:
    key: str
    name: str
    percentage: float
    description: str
    color: str
    examples: List[str] = field(default_factory=list)


@dataclass
class BudgetMethodConfig:
    name: str
    key: str
    description: str
    groups: List[BudgetGroup]

    def allocate(self, income: float) -> Dict[str, float]:
        return {g.key: income * g.percentage / 100 for g in self.groups}


FIFTY_THIRTY_TWENTY = BudgetMethodConfig(
    name="50/30/20 Rule",
    key="50_30_20",
    description="Simple budgeting rule: 50% needs, 30% wants, 20% savings",
    groups=[
        BudgetGroup("needs", "Needs (50%)", 50, "Essential expenses you cannot avoid", "#ef4444",
                    ["Housing (rent/mortgage)", "Utilities", "Transportation", "Groceries", "Insurance",
                     "Minimum debt payments"]),
        BudgetGroup("wants", "Wants (30%)", 30, "Lifestyle choices and entertainment", "#f59e0b",
                    ["Dining out", "Entertainment", "Hobbies", "Shopping", "Subscriptions", "Travel"]),
        BudgetGroup("savings", "Savings & Debt (20%)", 20, "Savings and extra debt payments", "#10b981",
                    ["Emergency fund", "Retirement savings", "Investment", "Extra debt payments", "Future goals"]),
    ],
)

SIX_JARS = BudgetMethodConfig(
    name="6 Jars Method",
    key="6_jars",
    description="T. Harv Eker's wealth building system with 6 allocation jars",
    groups=[
        BudgetGroup("necessities", "Necessities (55%)", 55, "Essential living expenses", "#ef4444",
                    ["Housing", "Food", "Transportation", "Utilities"]),
        BudgetGroup("education", "Education (10%)", 10, "Learning and skill development", "#3b82f6",
                    ["Books", "Courses", "Seminars", "Training"]),
        BudgetGroup("ltss", "Long-term Savings (10%)", 10, "Long-term wealth building", "#10b981",
                    ["Retirement", "Investments", "Property"]),
        BudgetGroup("play", "Play (10%)", 10, "Fun and entertainment", "#f59e0b",
                    ["Entertainment", "Hobbies", "Dining out"]),
        BudgetGroup("financial_freedom", "Financial Freedom (10%)", 10, "Passive income investments", "#8b5cf6",
                    ["Stocks", "Real Estate", "Business investments"]),
        BudgetGroup("give", "Give (5%)", 5, "Charitable giving and helping others", "#ec4899",
                    ["Charity", "Donations", "Helping family/friends"]),
    ],
)

BUDGET_METHODS: Dict[str, BudgetMethodConfig] = {
    FIFTY_THIRTY_TWENTY.key: FIFTY_THIRTY_TWENTY,
    SIX_JARS.key: SIX_JARS,
}

# keyword -> 50/30/20 group, matched against category_key or name
_KEYWORDS_50_30_20 = (
    ("needs", ("food", "housing", "transport", "utilities", "healthcare", "insurance")),
    ("wants", ("entertainment", "dining", "shopping", "travel", "hobbies")),
    ("savings", ("investment", "savings", "debt")),
)


def get_budget_method_config(method: str) -> BudgetMethodConfig:
    try:
        return BUDGET_METHODS[method]
    except KeyError:
        raise UnknownBudgetMethod(f"Unknown budget method: {method}") from None


def calculate_budget_allocation(method: str, income: float) -> Dict[str, float]:
    return get_budget_method_config(method).allocate(income)


def validate_category_mapping(method: str, mapping: Mapping[str, str]) -> bool:
    valid = {g.key for g in get_budget_method_config(method).groups}
    return all(group in valid for group in mapping.values())


def calculate_category_budgets(method: str, income: float, category_mapping: Mapping[str, str]) -> Dict[str, float]:
    """Split each group's allocation evenly across the categories mapped to it."""
    allocation = calculate_budget_allocation(method, income)
    grouped: Dict[str, List[str]] = {}
    for category_id, group in category_mapping.items():
        grouped.setdefault(group, []).append(category_id)

    budgets: Dict[str, float] = {}
    for group, ids in grouped.items():
        share = allocation.get(group, 0.0) / len(ids)
        for category_id in ids:
            budgets[category_id] = share
    return budgets


def get_default_category_mapping(method: str, categories: Iterable[Mapping[str, str]]) -> Dict[str, str]:
    get_budget_method_config(method)
    mapping: Dict[str, str] = {}
    if method != "50_30_20":
        return mapping

    for category in categories:
        key = (category.get("category_key") or category.get("name_vi") or "").lower()
        group = next((g for g, words in _KEYWORDS_50_30_20 if any(w in key for w in words)), "needs")
        mapping[category["id"]] = group
    return mapping


def format_budget_summary(method: str, allocation: Mapping[str, float], total_income: float) -> List[Dict]:
    config = get_budget_method_config(method)
    return [
        {
            "group": g.key,
            "name": g.name,
            "amount": allocation.get(g.key, 0.0),
            "percentage": allocation.get(g.key, 0.0) / total_income * 100 if total_income else 0.0,
            "color": g.color,
        }
        for g in config.groups
    ]
