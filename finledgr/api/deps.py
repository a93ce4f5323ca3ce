"""FastAPI dependencies for the pattern engine."""
from typing import Optional

from fastapi import Header

from finledgr.services.errors import MissingUserContextError
from finledgr.services.pattern_store import PatternStore, SQLitePatternStore

_store: Optional[PatternStore] = None


def get_pattern_store() -> PatternStore:
    global _store
    if _store is None:
        _store = SQLitePatternStore()
    return _store


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User id is set by the authenticating proxy in front of the app."""
    if not x_user_id:
        raise MissingUserContextError("request")
    return x_user_id
