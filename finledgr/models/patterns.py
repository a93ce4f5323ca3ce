"""Categorization pattern models."""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import ConfigDict, Field

from finledgr.models.base import FLBaseModel


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENDITURE = "expenditure"
    CAPITAL = "capital"


class CategoryRef(FLBaseModel):
    """Denormalized view of the category a pattern points at."""

    id: str
    name: str
    type: CategoryType
    color: Optional[str] = None


class Pattern(FLBaseModel):
    """
    A categorization rule as seen by the matcher.

    Pattern text is a regex source, so surrounding whitespace is kept.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    id: str
    pattern: str = Field(..., min_length=1)
    category_id: str
    confidence_score: int = Field(default=50, ge=0, le=100)
    category: Optional[CategoryRef] = None


class CategorizationPattern(Pattern):
    """Stored pattern row, scoped to a user."""

    user_id: str
    match_count: int = Field(default=0, ge=0)
    last_matched: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PatternMatch(FLBaseModel):
    category_id: str
    confidence: float = Field(..., ge=0, le=1)
    pattern_id: Optional[str] = None
    category: Optional[CategoryRef] = None


class CategorizedTransaction(FLBaseModel):
    """A transaction the user has already assigned a category to."""

    id: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[CategoryRef] = None


class AppliedSuggestion(FLBaseModel):
    """A suggestion the user applied to a transaction in bulk."""

    transaction_id: str
    category_id: str
    pattern_id: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)


class TopPattern(FLBaseModel):
    pattern: str
    category_name: str
    confidence: int
    match_count: int


class LearningResult(FLBaseModel):
    success: bool = True
    patterns_created: int = 0
    patterns_updated: int = 0
    patterns_skipped: int = 0
    total_transactions: int = 0
    top_patterns: List[TopPattern] = Field(default_factory=list)
    error: Optional[str] = None
