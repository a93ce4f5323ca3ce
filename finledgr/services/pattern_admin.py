"""Administrative operations on stored categorization patterns."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from finledgr.core.config import get_config
from finledgr.models.patterns import CategorizationPattern, Pattern
from finledgr.services.errors import InvalidPatternError, PatternConflictError
from finledgr.services.pattern_learning import owned_pattern, require_user
from finledgr.services.pattern_matcher import enforce_word_boundaries
from finledgr.services.pattern_store import PatternStore, utcnow

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=Pattern)

_BARE_WORD = re.compile(r"^\w+$")


def validate_pattern(pattern: str) -> str:
    """Raise InvalidPatternError unless the pattern compiles."""
    try:
        re.compile(pattern)
    except re.error as exc:
        raise InvalidPatternError(pattern, str(exc)) from exc
    return pattern


async def add_pattern(
    user_id: str,
    pattern: str,
    category_id: str,
    store: PatternStore,
    confidence_score: Optional[int] = None,
) -> CategorizationPattern:
    """Add a hand-written pattern for a user."""
    require_user(user_id, "add_pattern")
    config = get_config()
    validate_pattern(pattern)

    score = config.manual_confidence if confidence_score is None else confidence_score
    now = utcnow()
    return await store.insert_pattern({
        "user_id": user_id,
        "pattern": pattern,
        "category_id": category_id,
        "match_count": 0,
        "confidence_score": config.clamp(score),
        "last_matched": now,
        "created_at": now,
        "updated_at": now,
    })


async def update_pattern(
    user_id: str,
    pattern_id: str,
    store: PatternStore,
    **fields: Any,
) -> CategorizationPattern:
    """
    Edit a stored pattern.

    Accepts pattern, category_id, confidence_score and match_count. None
    values are ignored.
    """
    require_user(user_id, "update_pattern")
    await owned_pattern(store, user_id, pattern_id)

    changes: Dict[str, Any] = {
        k: v for k, v in fields.items()
        if k in ("pattern", "category_id", "confidence_score", "match_count") and v is not None
    }
    if "pattern" in changes:
        validate_pattern(changes["pattern"])
        clash = await store.find_pattern(user_id, changes["pattern"])
        if clash is not None and clash.id != pattern_id:
            raise PatternConflictError(changes["pattern"])
    if "confidence_score" in changes:
        changes["confidence_score"] = get_config().clamp(changes["confidence_score"])
    changes["updated_at"] = utcnow()

    return await store.update_pattern(pattern_id, changes)


async def delete_pattern(user_id: str, pattern_id: str, store: PatternStore) -> None:
    require_user(user_id, "delete_pattern")
    await owned_pattern(store, user_id, pattern_id)
    await store.delete_pattern(pattern_id)


async def adjust_confidence_score(
    user_id: str,
    pattern_id: str,
    adjustment: int,
    store: PatternStore,
) -> CategorizationPattern:
    """Shift a pattern's confidence by ``adjustment``, kept within bounds."""
    require_user(user_id, "adjust_confidence_score")
    pattern = await owned_pattern(store, user_id, pattern_id)
    return await store.update_pattern(pattern_id, {
        "confidence_score": get_config().clamp(pattern.confidence_score + adjustment),
        "updated_at": utcnow(),
    })


def patterns_for_category(patterns: Sequence[P], category_id: str) -> List[P]:
    return [p for p in patterns if p.category_id == category_id]


def patterns_by_confidence(
    patterns: Sequence[P],
    min_confidence: int,
    max_confidence: int = 100,
) -> List[P]:
    return [p for p in patterns if min_confidence <= p.confidence_score <= max_confidence]


async def cleanup_generic_patterns(user_id: str, store: PatternStore) -> Dict[str, int]:
    """
    Tidy patterns learned before stopwords and word boundaries existed.

    Bare stopword patterns are deleted. Bare words shorter than the minimum
    token length are rewritten to their word-bounded form, unless that form is
    already stored. Longer bare words are what the extractor emits for
    capitalized names, so they are left alone.
    """
    require_user(user_id, "cleanup_generic_patterns")
    config = get_config()
    stopwords = config.stopwords

    deleted = 0
    rewritten = 0
    for pattern in await store.list_patterns(user_id):
        text = pattern.pattern
        if text.lower() in stopwords:
            await store.delete_pattern(pattern.id)
            deleted += 1
            continue

        if not _BARE_WORD.match(text) or len(text) >= config.min_token_length:
            continue

        bounded = enforce_word_boundaries(text)
        if await store.find_pattern(user_id, bounded):
            logger.info("Dropping %r, %r already exists", text, bounded)
            await store.delete_pattern(pattern.id)
            deleted += 1
            continue

        await store.update_pattern(pattern.id, {"pattern": bounded, "updated_at": utcnow()})
        rewritten += 1

    logger.info("Pattern cleanup for %s: %d deleted, %d rewritten", user_id, deleted, rewritten)
    return {"deleted": deleted, "rewritten": rewritten}
