"""
Client-side views over wallets and transactions that were already fetched.

Nothing here persists; records come in as dataclasses and go out as lists or
pandas frames ready for display.
"""
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Iterable, List, Mapping, Optional, Sequence

import pandas as pd

TRANSACTION_TYPES = ("expense", "income", "transfer")
WALLET_TYPES = ("cash", "bank_account", "e_wallet", "credit_card", "savings")


@dataclass
class Wallet:
    id: str
    name: str
    wallet_type: str
    balance: float
    currency: str = "VND"
    is_active: bool = True


@dataclass
class Transaction:
    id: str
    wallet_id: str
    transaction_type: str       # "expense" | "income" | "transfer"
    amount: float
    transaction_date: date
    category_id: Optional[str] = None
    description: str = ""
    merchant: Optional[str] = None
    transfer_to_wallet_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class TransactionFilter:
    types: Sequence[str] = ()
    wallet_ids: Sequence[str] = ()
    category_ids: Sequence[str] = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    search: str = ""


def _matches(t: Transaction, f: TransactionFilter) -> bool:
    if f.types and t.transaction_type not in f.types:
        return False
    if f.wallet_ids and t.wallet_id not in f.wallet_ids and t.transfer_to_wallet_id not in f.wallet_ids:
        return False
    if f.category_ids and t.category_id not in f.category_ids:
        return False
    if f.start_date and t.transaction_date < f.start_date:
        return False
    if f.end_date and t.transaction_date > f.end_date:
        return False
    if f.min_amount is not None and t.amount < f.min_amount:
        return False
    if f.max_amount is not None and t.amount > f.max_amount:
        return False
    if f.search:
        needle = f.search.lower()
        haystack = " ".join([t.description or "", t.merchant or "", *t.tags]).lower()
        if needle not in haystack:
            return False
    return True


def filter_transactions(transactions: Iterable[Transaction], criteria: TransactionFilter) -> List[Transaction]:
    return [t for t in transactions if _matches(t, criteria)]


_SORT_KEYS = {
    "date": lambda t: (t.transaction_date, t.id),
    "amount": lambda t: (t.amount, t.id),
    "description": lambda t: ((t.description or "").lower(), t.id),
}


def sort_transactions(transactions: Iterable[Transaction], by: str = "date", descending: bool = True) -> List[Transaction]:
    if by not in _SORT_KEYS:
        raise ValueError(f"cannot sort transactions by {by!r}")
    return sorted(transactions, key=_SORT_KEYS[by], reverse=descending)


def transactions_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    rows = [asdict(t) for t in transactions]
    df = pd.DataFrame(rows, columns=[f for f in Transaction.__dataclass_fields__])
    if not df.empty:
        df["transaction_date"] = pd.to_datetime(df["transaction_date"])
    return df


def summarize_by_category(transactions: Iterable[Transaction], transaction_type: str = "expense") -> pd.DataFrame:
    """Total, count and share per category, largest first."""
    df = transactions_frame(transactions)
    cols = ["total", "count", "share"]
    if df.empty:
        return pd.DataFrame(columns=cols)
    df = df[df["transaction_type"] == transaction_type].copy()
    if df.empty:
        return pd.DataFrame(columns=cols)
    df["category_id"] = df["category_id"].fillna("uncategorized")
    out = df.groupby("category_id")["amount"].agg(total="sum", count="count")
    out["share"] = out["total"] / out["total"].sum()
    return out.sort_values("total", ascending=False)


def monthly_cash_flow(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Income, expense and net per calendar month; transfers are internal and left out."""
    df = transactions_frame(transactions)
    if df.empty:
        return pd.DataFrame(columns=["income", "expense", "net"])
    df = df[df["transaction_type"].isin(["income", "expense"])].copy()
    if df.empty:
        return pd.DataFrame(columns=["income", "expense", "net"])
    df["month"] = df["transaction_date"].dt.to_period("M")
    out = df.pivot_table(index="month", columns="transaction_type", values="amount", aggfunc="sum", fill_value=0)
    out = out.reindex(columns=["income", "expense"], fill_value=0)
    out["net"] = out["income"] - out["expense"]
    out.columns.name = None
    return out


def total_balance(wallets: Iterable[Wallet], include_inactive: bool = False, currency: str = "VND") -> float:
    return sum(w.balance for w in wallets if w.currency == currency and (include_inactive or w.is_active))


def budget_progress(
    budgets: Mapping[str, float],
    transactions: Iterable[Transaction],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[dict]:
    spent_frame = summarize_by_category(
        filter_transactions(transactions, TransactionFilter(types=("expense",), start_date=start_date, end_date=end_date))
    )
    out = []
    for category_id, budget in budgets.items():
        spent = float(spent_frame["total"].get(category_id, 0.0)) if not spent_frame.empty else 0.0
        pct = spent / budget * 100 if budget > 0 else (100.0 if spent > 0 else 0.0)
        if pct > 100:
            status = "over"
        elif pct >= 80:
            status = "warning"
        else:
            status = "on_track"
        out.append({
            "category_id": category_id,
            "budget": budget,
            "spent": spent,
            "remaining": budget - spent,
            "percent_used": round(pct, 1),
            "status": status,
        })
    return out
