"""
Learn categorization patterns from transaction history.

Transactions are grouped by normalized description and category. Only
descriptions seen at least twice with the same category become patterns,
and their starting confidence grows with how often they were seen:
min(50 + count * 10, 100).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from finledgr.core.config import get_config
from finledgr.models.patterns import CategorizedTransaction, LearningResult, TopPattern
from finledgr.services.logging import log_learning_run
from finledgr.services.pattern_learning import require_user
from finledgr.services.pattern_matcher import extract_patterns_from_description, normalize_text
from finledgr.services.pattern_store import PatternStore, utcnow

logger = logging.getLogger(__name__)


@dataclass
class PatternGroup:
    description: str
    category_id: str
    category_name: str
    count: int = 0
    transaction_ids: List[str] = field(default_factory=list)


def group_transactions(transactions: Iterable[CategorizedTransaction]) -> Dict[str, PatternGroup]:
    """Group categorized transactions by normalized description + category."""
    config = get_config()
    groups: Dict[str, PatternGroup] = {}

    for txn in transactions:
        description = (txn.description or "").strip()
        if len(description) < config.history_min_description_length:
            continue
        if not txn.category_id:
            continue

        normalized = normalize_text(description)
        key = f"{normalized}|{txn.category_id}"
        group = groups.get(key)
        if group is None:
            group = groups[key] = PatternGroup(
                description=normalized,
                category_id=txn.category_id,
                category_name=txn.category.name if txn.category else txn.category_id,
            )
        group.count += 1
        group.transaction_ids.append(txn.id)

    return groups


async def top_patterns(user_id: str, store: PatternStore) -> List[TopPattern]:
    limit = get_config().top_patterns_limit
    patterns = await store.list_patterns(user_id)
    best = sorted(patterns, key=lambda p: (-p.confidence_score, -p.match_count))[:limit]
    return [
        TopPattern(
            pattern=p.pattern,
            category_name=p.category.name if p.category else "Unknown",
            confidence=p.confidence_score,
            match_count=p.match_count,
        )
        for p in best
    ]


async def learn_from_history(
    transactions: Iterable[CategorizedTransaction],
    user_id: str,
    store: PatternStore,
) -> LearningResult:
    """
    Create or strengthen patterns from already-categorized transactions.

    A pattern already bound to a different category is a conflict and is left
    alone. Store failures skip that one pattern.
    """
    require_user(user_id, "learn_from_history")
    config = get_config()

    transactions = list(transactions)
    if not transactions:
        return LearningResult(
            error="No transactions found with categories. Import and categorize transactions first.",
        )

    groups = group_transactions(transactions)
    logger.info(
        "Learning from %d transactions in %d groups (%d repeated)",
        len(transactions), len(groups),
        sum(1 for g in groups.values() if g.count >= config.history_min_occurrences),
    )

    result = LearningResult(total_transactions=len(transactions))
    now = utcnow()

    for group in groups.values():
        if group.count < config.history_min_occurrences:
            result.patterns_skipped += 1
            continue

        candidates = extract_patterns_from_description(group.description)
        for pattern in candidates[: config.max_learned_patterns]:
            try:
                re.compile(pattern)
            except re.error:
                logger.warning("Skipping invalid pattern: %s", pattern)
                result.patterns_skipped += 1
                continue

            try:
                existing = await store.find_pattern(user_id, pattern)

                if existing is None:
                    await store.insert_pattern({
                        "user_id": user_id,
                        "pattern": pattern,
                        "category_id": group.category_id,
                        "match_count": group.count,
                        "confidence_score": config.clamp(
                            config.history_base_confidence + group.count * config.history_step
                        ),
                        "last_matched": now,
                        "created_at": now,
                        "updated_at": now,
                    })
                    result.patterns_created += 1
                    logger.debug("Created pattern %r -> %s", pattern, group.category_name)

                elif existing.category_id == group.category_id:
                    await store.update_pattern(existing.id, {
                        "match_count": existing.match_count + group.count,
                        "confidence_score": config.clamp(existing.confidence_score + config.history_step),
                        "last_matched": now,
                        "updated_at": now,
                    })
                    result.patterns_updated += 1
                    logger.debug("Updated pattern %r -> %s", pattern, group.category_name)

                else:
                    logger.info(
                        "Conflict: pattern %r exists for a different category (%s vs %s)",
                        pattern, existing.category_id, group.category_id,
                    )
                    result.patterns_skipped += 1
            except Exception as exc:
                logger.error("Error saving pattern %r: %s", pattern, exc)
                result.patterns_skipped += 1

    result.top_patterns = await top_patterns(user_id, store)

    log_learning_run(
        user_id=user_id,
        created=result.patterns_created,
        updated=result.patterns_updated,
        skipped=result.patterns_skipped,
        total_transactions=result.total_transactions,
    )
    return result
