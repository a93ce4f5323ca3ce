"""
Pattern stores for learned categorization patterns.

The learning code only talks to the ``PatternStore`` protocol. Two
implementations ship with the package:
- InMemoryPatternStore: dict-backed, for tests and embedding
- SQLitePatternStore: SQLite tables, blocking calls run on a worker thread
"""
from __future__ import annotations

import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

import anyio.to_thread

from finledgr.models.patterns import CategorizationPattern, CategoryRef, CategoryType
from finledgr.services.db import DB
from finledgr.services.errors import PatternConflictError, PatternNotFoundError, PatternStoreError


DB_PATH = os.getenv("FINLEDGR_STATE_DB", os.path.join(os.getcwd(), "state.sqlite3"))

INSERT_FIELDS = (
    "user_id", "pattern", "category_id", "match_count", "confidence_score",
    "last_matched", "created_at", "updated_at",
)
UPDATE_FIELDS = (
    "pattern", "category_id", "match_count", "confidence_score",
    "last_matched", "updated_at",
)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_fields(fields: Dict[str, Any], allowed: tuple, operation: str) -> None:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise PatternStoreError(operation, f"unknown fields: {', '.join(sorted(unknown))}")


class PatternStore(Protocol):
    async def find_pattern(self, user_id: str, pattern: str) -> Optional[CategorizationPattern]:
        ...

    async def get_pattern(self, pattern_id: str) -> Optional[CategorizationPattern]:
        ...

    async def insert_pattern(self, fields: Dict[str, Any]) -> CategorizationPattern:
        ...

    async def update_pattern(self, pattern_id: str, fields: Dict[str, Any]) -> CategorizationPattern:
        ...

    async def delete_pattern(self, pattern_id: str) -> None:
        ...

    async def list_patterns(
        self, user_id: str, category_type: Optional[CategoryType] = None
    ) -> List[CategorizationPattern]:
        ...


def _sort_key(p: CategorizationPattern):
    return (-p.confidence_score, -p.match_count)


class InMemoryPatternStore:
    """Dict-backed store. Rows are copied in and out so callers can't mutate state."""

    def __init__(self) -> None:
        self.patterns: Dict[str, CategorizationPattern] = {}
        self.categories: Dict[str, CategoryRef] = {}

    async def save_category(self, category: CategoryRef) -> CategoryRef:
        self.categories[category.id] = category
        return category

    def _with_category(self, row: CategorizationPattern) -> CategorizationPattern:
        return row.model_copy(update={"category": self.categories.get(row.category_id)})

    def _lookup(self, user_id: str, pattern: str) -> Optional[CategorizationPattern]:
        for row in self.patterns.values():
            if row.user_id == user_id and row.pattern == pattern:
                return row
        return None

    async def find_pattern(self, user_id: str, pattern: str) -> Optional[CategorizationPattern]:
        row = self._lookup(user_id, pattern)
        return self._with_category(row) if row else None

    async def get_pattern(self, pattern_id: str) -> Optional[CategorizationPattern]:
        row = self.patterns.get(pattern_id)
        return self._with_category(row) if row else None

    async def insert_pattern(self, fields: Dict[str, Any]) -> CategorizationPattern:
        _check_fields(fields, INSERT_FIELDS, "insert")
        if self._lookup(fields["user_id"], fields["pattern"]):
            raise PatternConflictError(fields["pattern"])
        row = CategorizationPattern(id=uuid.uuid4().hex, **fields)
        self.patterns[row.id] = row
        return self._with_category(row)

    async def update_pattern(self, pattern_id: str, fields: Dict[str, Any]) -> CategorizationPattern:
        _check_fields(fields, UPDATE_FIELDS, "update")
        row = self.patterns.get(pattern_id)
        if row is None:
            raise PatternNotFoundError(pattern_id)
        if "pattern" in fields:
            clash = self._lookup(row.user_id, fields["pattern"])
            if clash is not None and clash.id != pattern_id:
                raise PatternConflictError(fields["pattern"])
        updated = CategorizationPattern(**{**row.model_dump(exclude={"category"}), **fields})
        self.patterns[pattern_id] = updated
        return self._with_category(updated)

    async def delete_pattern(self, pattern_id: str) -> None:
        self.patterns.pop(pattern_id, None)

    async def list_patterns(
        self, user_id: str, category_type: Optional[CategoryType] = None
    ) -> List[CategorizationPattern]:
        rows = [self._with_category(r) for r in self.patterns.values() if r.user_id == user_id]
        if category_type is not None:
            rows = [r for r in rows if r.category and r.category.type == category_type]
        return sorted(rows, key=_sort_key)


_PATTERN_COLUMNS = """
    p.id, p.user_id, p.pattern, p.category_id, p.match_count, p.confidence_score,
    p.last_matched, p.created_at, p.updated_at,
    c.name AS category_name, c.type AS category_type, c.color AS category_color
"""


class SQLitePatternStore:
    """SQLite-backed store. Each call opens its own connection on a worker thread."""

    def __init__(self, db_path: str = DB_PATH) -> None:
        self.db = DB(sqlite_path=db_path)
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        self.db.executescript(
            """
            CREATE TABLE IF NOT EXISTS fl_categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                color TEXT
            );

            CREATE TABLE IF NOT EXISTS fl_categorization_patterns (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                pattern TEXT NOT NULL,
                category_id TEXT NOT NULL,
                match_count INTEGER NOT NULL DEFAULT 0,
                confidence_score INTEGER NOT NULL DEFAULT 50,
                last_matched TEXT,
                created_at TEXT,
                updated_at TEXT,
                UNIQUE(user_id, pattern)
            );

            CREATE INDEX IF NOT EXISTS idx_fl_patterns_user
                ON fl_categorization_patterns(user_id);
            """
        )

    @contextmanager
    def _unique_pattern(self, fields: Dict[str, Any]):
        try:
            yield
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc) and "pattern" in fields:
                raise PatternConflictError(fields["pattern"]) from exc
            raise

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await anyio.to_thread.run_sync(func, *args)
        except sqlite3.Error as exc:
            raise PatternStoreError(operation, str(exc)) from exc

    @staticmethod
    def _to_pattern(row: dict) -> CategorizationPattern:
        category = None
        if row.get("category_name") is not None:
            category = CategoryRef(
                id=row["category_id"],
                name=row["category_name"],
                type=CategoryType(row["category_type"]),
                color=row["category_color"],
            )
        return CategorizationPattern(
            id=row["id"],
            user_id=row["user_id"],
            pattern=row["pattern"],
            category_id=row["category_id"],
            match_count=row["match_count"] or 0,
            confidence_score=row["confidence_score"],
            last_matched=row["last_matched"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            category=category,
        )

    @staticmethod
    def _to_db(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    # Categories are owned by the surrounding app; this lets it keep the
    # denormalized view in sync.
    async def save_category(self, category: CategoryRef) -> CategoryRef:
        await self._run(
            "save_category",
            self.db.execute,
            """
            INSERT INTO fl_categories (id, name, type, color)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                type=excluded.type,
                color=excluded.color
            """,
            (category.id, category.name, category.type.value, category.color),
        )
        return category

    def _select_one(self, where: str, params: tuple) -> Optional[CategorizationPattern]:
        row = self.db.fetchone_dict(
            f"""
            SELECT {_PATTERN_COLUMNS}
            FROM fl_categorization_patterns p
            LEFT JOIN fl_categories c ON c.id = p.category_id
            WHERE {where}
            """,
            params,
        )
        return self._to_pattern(row) if row else None

    async def find_pattern(self, user_id: str, pattern: str) -> Optional[CategorizationPattern]:
        return await self._run(
            "find", self._select_one, "p.user_id = ? AND p.pattern = ?", (user_id, pattern)
        )

    async def get_pattern(self, pattern_id: str) -> Optional[CategorizationPattern]:
        return await self._run("get", self._select_one, "p.id = ?", (pattern_id,))

    def _insert_sync(self, pattern_id: str, fields: Dict[str, Any]) -> Optional[CategorizationPattern]:
        columns = ["id", *fields.keys()]
        with self._unique_pattern(fields):
            self.db.execute(
                f"""
                INSERT INTO fl_categorization_patterns ({", ".join(columns)})
                VALUES ({", ".join("?" for _ in columns)})
                """,
                (pattern_id, *(self._to_db(v) for v in fields.values())),
            )
        return self._select_one("p.id = ?", (pattern_id,))

    async def insert_pattern(self, fields: Dict[str, Any]) -> CategorizationPattern:
        _check_fields(fields, INSERT_FIELDS, "insert")
        return await self._run("insert", self._insert_sync, uuid.uuid4().hex, dict(fields))

    def _update_sync(self, pattern_id: str, fields: Dict[str, Any]) -> Optional[CategorizationPattern]:
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            with self._unique_pattern(fields):
                self.db.execute(
                    f"UPDATE fl_categorization_patterns SET {assignments} WHERE id = ?",
                    (*(self._to_db(v) for v in fields.values()), pattern_id),
                )
        return self._select_one("p.id = ?", (pattern_id,))

    async def update_pattern(self, pattern_id: str, fields: Dict[str, Any]) -> CategorizationPattern:
        _check_fields(fields, UPDATE_FIELDS, "update")
        updated = await self._run("update", self._update_sync, pattern_id, dict(fields))
        if updated is None:
            raise PatternNotFoundError(pattern_id)
        return updated

    async def delete_pattern(self, pattern_id: str) -> None:
        await self._run(
            "delete",
            self.db.execute,
            "DELETE FROM fl_categorization_patterns WHERE id = ?",
            (pattern_id,),
        )

    async def list_patterns(
        self, user_id: str, category_type: Optional[CategoryType] = None
    ) -> List[CategorizationPattern]:
        sql = f"""
            SELECT {_PATTERN_COLUMNS}
            FROM fl_categorization_patterns p
            LEFT JOIN fl_categories c ON c.id = p.category_id
            WHERE p.user_id = ?
        """
        params: tuple = (user_id,)
        if category_type is not None:
            sql += " AND c.type = ?"
            params += (CategoryType(category_type).value,)
        sql += " ORDER BY p.confidence_score DESC, p.match_count DESC"

        rows = await self._run("list", self.db.fetchall_dict, sql, params)
        return [self._to_pattern(row) for row in rows]
