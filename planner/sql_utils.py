import os
from pathlib import Path

import duckdb

DB_PATH = Path(os.getenv("HOMEPLAN_DB", "db/homeplan.duckdb"))


def duckdb_conn(path=None, read_only=False):
    return duckdb.connect(Path(path or DB_PATH).as_posix(), read_only=read_only)
