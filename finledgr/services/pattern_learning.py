"""
Pattern Learning Service

Learns categorization patterns from user decisions:
- A categorization creates patterns for unseen description fragments
- Repeating a categorization reinforces the matching patterns (+5)
- Categorizing to a different category decays them (-5)
- Accepted/rejected suggestions adjust the pattern that produced them

Confidence always stays within [10, 100]. A pattern's category is never
reassigned here; only its confidence erodes under conflicting evidence.

All storage goes through an injected PatternStore. Store calls are awaited
one after another, and a failure on one candidate pattern is logged without
stopping the rest.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from finledgr.core.config import get_config
from finledgr.models.patterns import AppliedSuggestion, CategorizationPattern, PatternMatch
from finledgr.services.errors import MissingUserContextError, PatternNotFoundError
from finledgr.services.pattern_matcher import (
    extract_patterns_from_description,
    generate_suggestions,
)
from finledgr.services.pattern_store import PatternStore, utcnow

logger = logging.getLogger(__name__)


def require_user(user_id: Optional[str], operation: str) -> str:
    if not user_id:
        raise MissingUserContextError(operation)
    return user_id


async def learn_from_categorization(
    description: str,
    category_id: str,
    user_id: str,
    store: PatternStore,
) -> None:
    """
    Learn patterns from a user's categorization of a transaction.

    Only the first few extracted patterns are considered (3 by default), the
    most specific ones given the extractor's ordering.
    """
    require_user(user_id, "learn_from_categorization")
    config = get_config()

    candidates = extract_patterns_from_description(description)[: config.max_learned_patterns]
    now = utcnow()

    for pattern in candidates:
        try:
            existing = await store.find_pattern(user_id, pattern)

            if existing is None:
                await store.insert_pattern({
                    "user_id": user_id,
                    "pattern": pattern,
                    "category_id": category_id,
                    "match_count": 1,
                    "confidence_score": config.initial_confidence,
                    "last_matched": now,
                    "created_at": now,
                    "updated_at": now,
                })
                logger.debug("Created pattern %r -> %s", pattern, category_id)

            elif existing.category_id == category_id:
                await store.update_pattern(existing.id, {
                    "match_count": existing.match_count + 1,
                    "confidence_score": config.clamp(existing.confidence_score + config.reinforce_step),
                    "last_matched": now,
                    "updated_at": now,
                })
                logger.debug("Reinforced pattern %r -> %s", pattern, category_id)

            else:
                await store.update_pattern(existing.id, {
                    "confidence_score": config.clamp(existing.confidence_score - config.decay_step),
                    "updated_at": now,
                })
                logger.debug(
                    "Decayed pattern %r (bound to %s, categorized as %s)",
                    pattern, existing.category_id, category_id,
                )
        except Exception as exc:
            logger.error("Error processing pattern %r: %s", pattern, exc)


async def owned_pattern(store: PatternStore, user_id: str, pattern_id: str) -> CategorizationPattern:
    pattern = await store.get_pattern(pattern_id)
    if pattern is None or pattern.user_id != user_id:
        raise PatternNotFoundError(pattern_id)
    return pattern


async def get_suggestions_for_transaction(
    description: str,
    amount: float,
    user_id: str,
    store: PatternStore,
    max_suggestions: Optional[int] = None,
) -> List[PatternMatch]:
    """Suggest categories from the user's stored patterns, best first."""
    require_user(user_id, "get_suggestions_for_transaction")
    limit = get_config().max_suggestions if max_suggestions is None else max_suggestions

    try:
        patterns = await store.list_patterns(user_id)
    except Exception as exc:
        logger.error("Error getting suggestions: %s", exc)
        return []

    return generate_suggestions(description, amount, patterns, limit)


async def accept_suggestion(
    description: str,
    category_id: str,
    user_id: str,
    store: PatternStore,
    pattern_id: Optional[str] = None,
) -> None:
    """
    Record that the user applied a category to a transaction.

    If a stored pattern produced the suggestion it gets the credit; otherwise
    the categorization is learned like a manual one.
    """
    require_user(user_id, "accept_suggestion")
    config = get_config()

    if not pattern_id:
        await learn_from_categorization(description, category_id, user_id, store)
        return

    pattern = await owned_pattern(store, user_id, pattern_id)
    now = utcnow()
    await store.update_pattern(pattern.id, {
        "match_count": pattern.match_count + 1,
        "confidence_score": config.clamp(pattern.confidence_score + config.reinforce_step),
        "last_matched": now,
        "updated_at": now,
    })


async def reject_suggestion(
    pattern_id: Optional[str],
    user_id: str,
    store: PatternStore,
) -> None:
    """Lower the confidence of the pattern behind a rejected suggestion."""
    require_user(user_id, "reject_suggestion")
    if not pattern_id:
        return

    config = get_config()
    pattern = await owned_pattern(store, user_id, pattern_id)
    await store.update_pattern(pattern.id, {
        "confidence_score": config.clamp(pattern.confidence_score - config.decay_step),
        "updated_at": utcnow(),
    })


async def apply_bulk_suggestions(
    suggestions: Iterable[AppliedSuggestion],
    user_id: str,
    store: PatternStore,
    min_confidence: Optional[float] = None,
) -> int:
    """
    Credit the patterns behind suggestions applied in bulk.

    Suggestions below ``min_confidence`` are ignored. Each pattern gets a
    smaller boost (+2) than an individually accepted suggestion.

    Returns:
        Number of suggestions applied
    """
    require_user(user_id, "apply_bulk_suggestions")
    config = get_config()
    threshold = config.bulk_min_confidence if min_confidence is None else min_confidence

    applied = 0
    for suggestion in suggestions:
        if suggestion.confidence is not None and suggestion.confidence < threshold:
            continue
        try:
            if suggestion.pattern_id:
                pattern = await owned_pattern(store, user_id, suggestion.pattern_id)
                now = utcnow()
                await store.update_pattern(pattern.id, {
                    "match_count": pattern.match_count + 1,
                    "confidence_score": config.clamp(pattern.confidence_score + config.bulk_step),
                    "last_matched": now,
                    "updated_at": now,
                })
            applied += 1
        except Exception as exc:
            logger.error(
                "Error applying suggestion for transaction %s: %s",
                suggestion.transaction_id, exc,
            )

    return applied
