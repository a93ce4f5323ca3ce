from finledgr.models.base import FLBaseModel
from finledgr.models.patterns import (
    AppliedSuggestion,
    CategorizationPattern,
    CategorizedTransaction,
    CategoryRef,
    CategoryType,
    LearningResult,
    Pattern,
    PatternMatch,
    TopPattern,
)

__all__ = [
    "AppliedSuggestion",
    "CategorizationPattern",
    "CategorizedTransaction",
    "CategoryRef",
    "CategoryType",
    "FLBaseModel",
    "LearningResult",
    "Pattern",
    "PatternMatch",
    "TopPattern",
]
