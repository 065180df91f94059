import sys, pathlib
import pandas as pd

from planner.bank_rates import load_bank_rates
from planner.sql_utils import DB_PATH, duckdb_conn

DATA_CSV = pathlib.Path("data/bank_rates.csv")


def main():
    if len(sys.argv) > 1:
        csv_path = pathlib.Path(sys.argv[1])
    else:
        csv_path = DATA_CSV
    if not csv_path.exists():
        raise SystemExit(f"CSV not found: {csv_path}. Place the bank rates sheet under data/.")

    df = pd.read_csv(csv_path)
    missing = {"bank_code", "bank_name", "loan_type", "interest_rate"} - set(df.columns)
    if missing:
        raise SystemExit(f"CSV is missing columns: {', '.join(sorted(missing))}")
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb_conn()
    n = load_bank_rates(con, df)
    banks = con.execute("SELECT COUNT(*) FROM banks").fetchone()[0]
    con.close()

    print(f"Loaded {n} rate rows for {banks} banks into {DB_PATH}")


if __name__ == "__main__":
    main()
