import logging
from dataclasses import dataclass, field
from typing import List, Optional

import duckdb
import pandas as pd

from planner.loan import LoanParameters, annuity_payment, round_vnd
from planner.policy import load_policy, threshold
from planner.sql_utils import duckdb_conn

logger = logging.getLogger(__name__)

LOAN_TYPES = ("home_purchase", "investment", "upgrade", "refinance")
OPTIONAL_COLUMNS = (
    "promotional_rate", "promotional_period_months", "max_ltv_ratio", "processing_fee",
    "min_loan_amount", "max_loan_amount", "min_term_months", "max_term_months",
)

_FALLBACK_RATES = {
    "home_purchase": {"regular": 8.5, "promotional": 7.2},
    "investment": {"regular": 9.0, "promotional": 7.8},
    "upgrade": {"regular": 8.2, "promotional": 6.9},
    "refinance": {"regular": 8.0, "promotional": 6.5},
}

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS banks (
      id INTEGER PRIMARY KEY,
      bank_code TEXT,
      bank_name TEXT,
      bank_name_en TEXT,
      is_active BOOLEAN
    );
    CREATE TABLE IF NOT EXISTS bank_interest_rates (
      id INTEGER,
      bank_id INTEGER,
      loan_type TEXT,
      interest_rate DOUBLE,
      promotional_rate DOUBLE,
      promotional_period_months INTEGER,
      max_ltv_ratio DOUBLE,
      processing_fee DOUBLE,
      min_loan_amount DOUBLE,
      max_loan_amount DOUBLE,
      min_term_months INTEGER,
      max_term_months INTEGER,
      is_active BOOLEAN
    );
"""

MATCH_SQL = """
    SELECT r.bank_id, b.bank_name, b.bank_code, r.interest_rate,
           r.promotional_rate, r.promotional_period_months, r.max_ltv_ratio,
           r.processing_fee, r.min_loan_amount, r.max_loan_amount,
           r.min_term_months, r.max_term_months
    FROM bank_interest_rates r
    JOIN banks b ON b.id = r.bank_id
    WHERE r.loan_type = ?
      AND r.is_active AND b.is_active
      AND r.min_loan_amount <= ? AND r.max_loan_amount >= ?
      AND r.min_term_months <= ? AND r.max_term_months >= ?
    ORDER BY r.interest_rate ASC
"""


@dataclass
class BankRateOption:
    bank_id: str
    bank_name: str
    bank_code: str
    interest_rate: float
    promotional_rate: Optional[float] = None
    promotional_period_months: Optional[int] = None
    max_ltv_ratio: Optional[float] = None
    processing_fee: Optional[float] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    min_term_months: Optional[int] = None
    max_term_months: Optional[int] = None


@dataclass
class RateRecommendation:
    rate: BankRateOption
    reason: str
    savings: Optional[int] = None


@dataclass
class OptimalRateResult:
    best_rate: BankRateOption
    alternative_rates: List[BankRateOption]
    market_average: float
    recommendations: List[RateRecommendation] = field(default_factory=list)


def load_bank_rates(con, df: pd.DataFrame) -> int:
    """Full refresh of banks + bank_interest_rates from a flat rates frame (one row per bank/loan type)."""
    df = df.copy()
    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = None
    if "bank_name_en" not in df.columns:
        df["bank_name_en"] = df["bank_name"]
    if "is_active" not in df.columns:
        df["is_active"] = True
    for col in ("interest_rate", "promotional_rate", "max_ltv_ratio", "processing_fee",
                "min_loan_amount", "max_loan_amount"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    for col in ("promotional_period_months", "min_term_months", "max_term_months"):
        df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
    df["min_loan_amount"] = df["min_loan_amount"].fillna(0)
    df["max_loan_amount"] = df["max_loan_amount"].fillna(float("inf"))
    df["min_term_months"] = df["min_term_months"].fillna(1)
    df["max_term_months"] = df["max_term_months"].fillna(600)
    df["is_active"] = df["is_active"].astype(str).str.lower().isin(["true", "1", "yes"])

    banks = df[["bank_code", "bank_name", "bank_name_en"]].drop_duplicates("bank_code").reset_index(drop=True)
    banks.insert(0, "id", range(1, len(banks) + 1))
    banks["is_active"] = True
    rates = df.merge(banks[["id", "bank_code"]].rename(columns={"id": "bank_id"}), on="bank_code")
    rates.insert(0, "id", range(1, len(rates) + 1))

    con.execute(SCHEMA_SQL)
    con.execute("DELETE FROM bank_interest_rates;")
    con.execute("DELETE FROM banks;")
    con.register("banks_in", banks)
    con.register("rates_in", rates)
    con.execute("INSERT INTO banks SELECT id, bank_code, bank_name, bank_name_en, is_active FROM banks_in;")
    con.execute("""
        INSERT INTO bank_interest_rates
        SELECT id, bank_id, loan_type, interest_rate, promotional_rate, promotional_period_months,
               max_ltv_ratio, processing_fee, min_loan_amount, max_loan_amount,
               min_term_months, max_term_months, is_active
        FROM rates_in;
    """)
    con.unregister("banks_in")
    con.unregister("rates_in")
    return len(rates)


def _opt(v):
    # NULL / NaN / 0 columns mean "not offered"
    if v is None or pd.isna(v) or v == 0:
        return None
    return v


def _row_to_option(row) -> BankRateOption:
    (bank_id, bank_name, bank_code, rate, promo, promo_months, ltv, fee,
     min_amt, max_amt, min_term, max_term) = row
    return BankRateOption(
        bank_id=str(bank_id),
        bank_name=bank_name,
        bank_code=bank_code,
        interest_rate=float(rate),
        promotional_rate=_opt(promo),
        promotional_period_months=int(promo_months) if _opt(promo_months) else None,
        max_ltv_ratio=_opt(ltv),
        processing_fee=None if fee is None or pd.isna(fee) else float(fee),
        min_amount=_opt(min_amt),
        max_amount=_opt(max_amt),
        min_term_months=_opt(min_term),
        max_term_months=_opt(max_term),
    )


def get_optimal_bank_rate(loan_amount: float, term_months: int, loan_type: str, con=None) -> Optional[OptimalRateResult]:
    """Cheapest active offer for the loan plus alternatives and recommendations; None when nothing matches."""
    own_con = con is None
    try:
        if own_con:
            con = duckdb_conn(read_only=True)
        rows = con.execute(MATCH_SQL, [loan_type, loan_amount, loan_amount, term_months, term_months]).fetchall()
    except duckdb.Error as e:
        logger.error("bank rate lookup failed: %s", e)
        return None
    finally:
        if own_con and con is not None:
            con.close()

    if not rows:
        logger.warning("no bank rates for %s / %s VND / %s months, using defaults", loan_type, loan_amount, term_months)
        return None

    options = [_row_to_option(r) for r in rows]
    return OptimalRateResult(
        best_rate=options[0],
        alternative_rates=options[1:4],
        market_average=sum(o.interest_rate for o in options) / len(options),
        recommendations=generate_recommendations(options, loan_amount, term_months),
    )


def get_default_rates(loan_type: str) -> LoanParameters:
    """Market defaults from policy when no bank data is available; principal is left for the caller."""
    policy = load_policy()
    table = policy.get("default_rates") or _FALLBACK_RATES
    rates = table.get(loan_type) or table.get("home_purchase") or _FALLBACK_RATES["home_purchase"]
    return LoanParameters(
        principal=0,
        annual_rate=float(rates["regular"]),
        term_months=int(policy.get("default_term_months", 240)),
        promotional_rate=float(rates["promotional"]),
        promotional_period_months=int(policy.get("default_promotional_months", 12)),
    )


def bank_rate_to_loan_params(bank_rate: BankRateOption, principal: float, term_months: int = 240) -> LoanParameters:
    promo_months = bank_rate.promotional_period_months or 0
    return LoanParameters(
        principal=principal,
        annual_rate=bank_rate.interest_rate,
        term_months=term_months,
        promotional_rate=bank_rate.promotional_rate,
        promotional_period_months=min(promo_months, term_months),
    )


def calculate_savings(lower_rate: float, higher_rate: float, principal: float, term_months: int) -> int:
    lower = annuity_payment(principal, lower_rate / 100 / 12, term_months)
    higher = annuity_payment(principal, higher_rate / 100 / 12, term_months)
    return round_vnd((higher - lower) * term_months)


def calculate_promotional_savings(rate: BankRateOption, principal: float, term_months: int) -> int:
    if not rate.promotional_rate or not rate.promotional_period_months:
        return 0
    regular = annuity_payment(principal, rate.interest_rate / 100 / 12, term_months)
    promo = annuity_payment(principal, rate.promotional_rate / 100 / 12, term_months)
    return round_vnd((regular - promo) * rate.promotional_period_months)


def generate_recommendations(rates: List[BankRateOption], loan_amount: float, term_months: int) -> List[RateRecommendation]:
    if not rates:
        return []
    low_fee = threshold(load_policy(), "low_processing_fee_vnd", 1_000_000)
    best, worst = rates[0], rates[-1]
    out = [RateRecommendation(
        rate=best,
        reason=f"Lowest interest rate at {best.interest_rate:g}%",
        savings=calculate_savings(best.interest_rate, worst.interest_rate, loan_amount, term_months),
    )]

    promo = next((r for r in rates if r.promotional_rate and r.promotional_period_months), None)
    if promo:
        out.append(RateRecommendation(
            rate=promo,
            reason=f"Best promotional rate: {promo.promotional_rate:g}% for {promo.promotional_period_months} months",
            savings=calculate_promotional_savings(promo, loan_amount, term_months),
        ))

    cheap = next((r for r in rates if (r.processing_fee or 0) < low_fee), None)
    if cheap:
        out.append(RateRecommendation(
            rate=cheap,
            reason=f"Low processing fees: {(cheap.processing_fee or 0):,.0f} VND",
        ))

    return out[:3]
