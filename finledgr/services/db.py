"""Lightweight SQLite helper."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Any, List, Tuple


class DB:
    def __init__(self, sqlite_path: str = "state.sqlite3") -> None:
        self.sqlite_path = sqlite_path

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.sqlite_path)
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        finally:
            conn.close()

    def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Run a write statement and return the affected row count."""
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            conn.commit()
            return cur.rowcount

    def executescript(self, script: str) -> None:
        with self.connect() as conn:
            conn.executescript(script)
            conn.commit()

    def fetchall_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> List[dict]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            columns = [col[0] for col in cur.description]
            return [dict(zip(columns, row)) for row in cur.fetchall()]

    def fetchone_dict(self, sql: str, params: Tuple[Any, ...] = ()) -> dict | None:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(sql, params)
            row = cur.fetchone()
            if not row:
                return None
            columns = [col[0] for col in cur.description]
            return dict(zip(columns, row))
