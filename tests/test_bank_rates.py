from pathlib import Path

import duckdb
import pandas as pd
import pytest

from planner.bank_rates import (
    BankRateOption,
    bank_rate_to_loan_params,
    calculate_savings,
    get_default_rates,
    get_optimal_bank_rate,
    load_bank_rates,
)

RATES_CSV = Path(__file__).resolve().parent.parent / "data" / "bank_rates.csv"


@pytest.fixture
def con():
    c = duckdb.connect()
    load_bank_rates(c, pd.read_csv(RATES_CSV))
    yield c
    c.close()


def test_load_bank_rates(con):
    assert con.execute("SELECT COUNT(*) FROM bank_interest_rates").fetchone()[0] == 7
    assert con.execute("SELECT COUNT(*) FROM banks").fetchone()[0] == 6
    # reload is a full refresh, not an append
    assert load_bank_rates(con, pd.read_csv(RATES_CSV)) == 7
    assert con.execute("SELECT COUNT(*) FROM bank_interest_rates").fetchone()[0] == 7


def test_optimal_rate_for_home_purchase(con):
    result = get_optimal_bank_rate(2_000_000_000, 240, "home_purchase", con=con)
    assert result.best_rate.bank_code == "TCB"
    assert result.best_rate.promotional_rate is None
    assert [r.bank_code for r in result.alternative_rates] == ["ACB", "VCB", "CTG"]
    assert result.market_average == pytest.approx(8.5)

    recs = result.recommendations
    assert [r.rate.bank_code for r in recs] == ["TCB", "ACB", "VCB"]
    assert recs[0].savings > 0
    assert recs[1].reason == "Best promotional rate: 7.5% for 12 months"
    assert recs[2].savings is None


def test_amount_and_term_bounds(con):
    long_term = get_optimal_bank_rate(2_000_000_000, 420, "home_purchase", con=con)
    assert long_term.best_rate.bank_code == "TCB"
    assert long_term.alternative_rates == []

    large = get_optimal_bank_rate(25_000_000_000, 240, "home_purchase", con=con)
    assert large.best_rate.bank_code == "TCB"


def test_no_match_returns_none(con):
    assert get_optimal_bank_rate(2_000_000_000, 240, "upgrade", con=con) is None


def test_missing_tables_return_none():
    c = duckdb.connect()
    assert get_optimal_bank_rate(2_000_000_000, 240, "home_purchase", con=c) is None
    c.close()


def test_default_rates():
    home = get_default_rates("home_purchase")
    assert (home.annual_rate, home.promotional_rate) == (8.5, 7.2)
    assert home.term_months == 240
    assert home.promotional_period_months == 12
    assert get_default_rates("refinance").annual_rate == 8.0
    assert get_default_rates("boat").annual_rate == 8.5


def test_bank_rate_to_loan_params_clamps_promo():
    option = BankRateOption("1", "BIDV", "BIDV", 8.7, promotional_rate=7.0, promotional_period_months=24)
    params = bank_rate_to_loan_params(option, 500_000_000, term_months=12)
    assert params.promotional_period_months == 12
    assert params.has_promotion
    params.validate()


def test_calculate_savings():
    assert calculate_savings(8.0, 8.0, 1_000_000_000, 240) == 0
    assert calculate_savings(8.0, 9.0, 1_000_000_000, 240) > 0
