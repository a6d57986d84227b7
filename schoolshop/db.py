# schoolshop/db.py
from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool


def create_pool(conninfo: str, min_size: int = 1, max_size: int = 10) -> ConnectionPool:
    return ConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        kwargs={"autocommit": False},  # transactions are managed by the store
        open=False,
    )


@contextmanager
def get_conn(pool: ConnectionPool):
    with pool.connection() as conn:
        yield conn


@contextmanager
def _run(conn, sql, params=None, row_factory=None):
    # params=None keeps psycopg on the simple query protocol (multi-statement scripts)
    with conn.cursor(row_factory=row_factory) as cur:
        cur.execute(sql, params)
        yield cur


def fetch_all(conn, sql, params=None) -> list[dict]:
    with _run(conn, sql, params, dict_row) as cur:
        return cur.fetchall()


def fetch_one(conn, sql, params=None) -> dict | None:
    with _run(conn, sql, params, dict_row) as cur:
        return cur.fetchone()


def execute(conn, sql, params=None) -> int:
    with _run(conn, sql, params) as cur:
        return cur.rowcount


def execute_many(conn, sql, params_seq) -> None:
    with conn.cursor() as cur:
        cur.executemany(sql, params_seq)
