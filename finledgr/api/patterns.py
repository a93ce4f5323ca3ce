"""Categorization pattern endpoints.

Exposes the pattern engine to transaction entry and import screens:
- List and manage learned patterns
- Suggest categories for a description
- Learn from categorizations, one at a time or from history
- Record accepted/rejected suggestions
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from finledgr.api.deps import get_pattern_store, get_user_id
from finledgr.models.patterns import (
    AppliedSuggestion,
    CategorizationPattern,
    CategorizedTransaction,
    CategoryType,
    LearningResult,
    PatternMatch,
)
from finledgr.services import pattern_admin
from finledgr.services.history_learning import learn_from_history
from finledgr.services.pattern_learning import (
    accept_suggestion,
    apply_bulk_suggestions,
    get_suggestions_for_transaction,
    learn_from_categorization,
    reject_suggestion,
)
from finledgr.services.pattern_store import PatternStore

router = APIRouter(prefix="/patterns", tags=["patterns"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class AddPatternRequest(BaseModel):
    pattern: str = Field(..., min_length=1)
    category_id: str
    confidence_score: Optional[int] = None


class UpdatePatternRequest(BaseModel):
    pattern: Optional[str] = None
    category_id: Optional[str] = None
    confidence_score: Optional[int] = None
    match_count: Optional[int] = Field(default=None, ge=0)


class SuggestRequest(BaseModel):
    description: str
    amount: float = 0.0
    max_suggestions: int = Field(default=5, ge=0)


class CategorizeRequest(BaseModel):
    """A manual categorization to learn from."""
    description: str
    category_id: str


class LearnHistoryRequest(BaseModel):
    transactions: List[CategorizedTransaction]


class AcceptSuggestionRequest(BaseModel):
    description: str
    category_id: str
    pattern_id: Optional[str] = None


class RejectSuggestionRequest(BaseModel):
    pattern_id: Optional[str] = None


class BulkSuggestionsRequest(BaseModel):
    suggestions: List[AppliedSuggestion]
    min_confidence: Optional[float] = None


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.get("", response_model=List[CategorizationPattern])
async def list_patterns(
    category_id: Optional[str] = None,
    category_type: Optional[CategoryType] = None,
    min_confidence: Optional[int] = None,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    """Get the user's patterns, most trusted first."""
    patterns = await store.list_patterns(user_id, category_type)
    if category_id:
        patterns = pattern_admin.patterns_for_category(patterns, category_id)
    if min_confidence is not None:
        patterns = pattern_admin.patterns_by_confidence(patterns, min_confidence)
    return patterns


@router.post("", response_model=CategorizationPattern, status_code=201)
async def add_pattern(
    request: AddPatternRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    return await pattern_admin.add_pattern(
        user_id, request.pattern, request.category_id, store, request.confidence_score
    )


@router.patch("/{pattern_id}", response_model=CategorizationPattern)
async def update_pattern(
    pattern_id: str,
    request: UpdatePatternRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    return await pattern_admin.update_pattern(
        user_id, pattern_id, store, **request.model_dump(exclude_none=True)
    )


@router.delete("/{pattern_id}")
async def delete_pattern(
    pattern_id: str,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    await pattern_admin.delete_pattern(user_id, pattern_id, store)
    return {"status": "deleted", "pattern_id": pattern_id}


@router.post("/suggest")
async def suggest(
    request: SuggestRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
) -> Dict[str, Any]:
    """
    Suggest categories for a transaction description.

    Returns up to ``max_suggestions`` matches, highest confidence first.
    """
    suggestions: List[PatternMatch] = await get_suggestions_for_transaction(
        request.description, request.amount, user_id, store, request.max_suggestions
    )
    return {
        "has_suggestion": bool(suggestions),
        "suggestions": [s.model_dump() for s in suggestions],
    }


@router.post("/categorize")
async def categorize(
    request: CategorizeRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    """Learn from a manual categorization."""
    await learn_from_categorization(request.description, request.category_id, user_id, store)
    return {"status": "learned", "category_id": request.category_id}


@router.post("/learn", response_model=LearningResult)
async def learn(
    request: LearnHistoryRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    """Learn patterns from already-categorized transactions."""
    return await learn_from_history(request.transactions, user_id, store)


@router.post("/suggestions/accept")
async def accept(
    request: AcceptSuggestionRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    await accept_suggestion(
        request.description, request.category_id, user_id, store, request.pattern_id
    )
    return {"status": "accepted", "category_id": request.category_id}


@router.post("/suggestions/reject")
async def reject(
    request: RejectSuggestionRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    await reject_suggestion(request.pattern_id, user_id, store)
    return {"status": "rejected", "pattern_id": request.pattern_id}


@router.post("/suggestions/bulk")
async def bulk(
    request: BulkSuggestionsRequest,
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    applied = await apply_bulk_suggestions(
        request.suggestions, user_id, store, request.min_confidence
    )
    return {"status": "applied", "applied": applied}


@router.post("/cleanup")
async def cleanup(
    user_id: str = Depends(get_user_id),
    store: PatternStore = Depends(get_pattern_store),
):
    """Remove stopword patterns and add word boundaries to bare words."""
    return await pattern_admin.cleanup_generic_patterns(user_id, store)
