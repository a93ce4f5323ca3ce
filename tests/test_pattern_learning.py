"""
Tests for the confidence learner and suggestion feedback.

Uses the in-memory store; async code is driven with asyncio.run.
"""

import asyncio

import pytest

from finledgr.models.patterns import AppliedSuggestion, CategoryRef, CategoryType
from finledgr.services.errors import MissingUserContextError, PatternNotFoundError, PatternStoreError
from finledgr.services.pattern_learning import (
    accept_suggestion,
    apply_bulk_suggestions,
    get_suggestions_for_transaction,
    learn_from_categorization,
    reject_suggestion,
)
from finledgr.services.pattern_store import InMemoryPatternStore


AMAZON = "Amazon Marketplace Payment"
AMAZON_PATTERNS = [r"\bamazon\b", r"\bmarketplace\b", r"amazon\s+marketplace"]


def learn(store, description=AMAZON, category_id="shopping", user_id="user-1"):
    asyncio.run(learn_from_categorization(description, category_id, user_id, store))


def stored(store, user_id="user-1"):
    return {p.pattern: p for p in asyncio.run(store.list_patterns(user_id))}


class _FailingStore(InMemoryPatternStore):
    """Raises on selected patterns to simulate storage errors."""

    def __init__(self, fail_find=(), fail_insert=()):
        super().__init__()
        self.fail_find = set(fail_find)
        self.fail_insert = set(fail_insert)
        self.find_calls = []

    async def find_pattern(self, user_id, pattern):
        self.find_calls.append(pattern)
        if pattern in self.fail_find:
            raise PatternStoreError("find", "connection reset")
        return await super().find_pattern(user_id, pattern)

    async def insert_pattern(self, fields):
        if fields["pattern"] in self.fail_insert:
            raise PatternStoreError("insert", "disk full")
        return await super().insert_pattern(fields)


class TestLearnFromCategorization:
    """Create / reinforce / decay lifecycle of learned patterns."""

    def setup_method(self):
        self.store = InMemoryPatternStore()

    def test_creates_patterns_for_new_description(self):
        learn(self.store)
        patterns = stored(self.store)

        assert sorted(patterns) == sorted(AMAZON_PATTERNS)
        for p in patterns.values():
            assert p.confidence_score == 60
            assert p.match_count == 1
            assert p.category_id == "shopping"
            assert p.user_id == "user-1"
            assert p.created_at is not None
            assert p.last_matched is not None

    def test_at_most_three_patterns(self):
        learn(self.store, description="Deliveroo Takeaway Restaurant Order London")
        assert len(stored(self.store)) == 3

    def test_repeat_reinforces(self):
        learn(self.store)
        learn(self.store)

        for p in stored(self.store).values():
            assert p.confidence_score == 65
            assert p.match_count == 2

    def test_conflict_decays_without_rebinding(self):
        learn(self.store, category_id="shopping")
        learn(self.store, category_id="office")

        for p in stored(self.store).values():
            assert p.confidence_score == 55
            assert p.category_id == "shopping"
            assert p.match_count == 1

    def test_confidence_ceiling(self):
        for _ in range(15):
            learn(self.store)
        for p in stored(self.store).values():
            assert p.confidence_score == 100
            assert p.match_count == 15

    def test_confidence_floor(self):
        learn(self.store, category_id="shopping")
        for _ in range(20):
            learn(self.store, category_id="office")
        for p in stored(self.store).values():
            assert p.confidence_score == 10
            assert p.category_id == "shopping"

    def test_patterns_are_scoped_per_user(self):
        learn(self.store, user_id="user-1")
        learn(self.store, user_id="user-2", category_id="office")

        assert all(p.confidence_score == 60 for p in stored(self.store, "user-1").values())
        user2 = stored(self.store, "user-2")
        assert len(user2) == 3
        assert all(p.category_id == "office" for p in user2.values())

    def test_nothing_to_learn(self):
        learn(self.store, description="to the atm")
        assert stored(self.store) == {}

    def test_missing_user_fails_fast(self):
        with pytest.raises(MissingUserContextError):
            learn(self.store, user_id="")
        with pytest.raises(MissingUserContextError):
            learn(self.store, user_id=None)

    def test_store_read_failure_skips_only_that_candidate(self):
        store = _FailingStore(fail_find={r"\bamazon\b"})
        learn(store)

        assert store.find_calls == AMAZON_PATTERNS
        assert sorted(stored(store)) == sorted(AMAZON_PATTERNS[1:])

    def test_store_write_failure_skips_only_that_candidate(self):
        store = _FailingStore(fail_insert={r"\bmarketplace\b"})
        learn(store)

        assert sorted(stored(store)) == sorted([AMAZON_PATTERNS[0], AMAZON_PATTERNS[2]])


class TestSuggestionFeedback:
    """Accepting, rejecting and bulk-applying suggestions."""

    def setup_method(self):
        self.store = InMemoryPatternStore()
        asyncio.run(self.store.save_category(
            CategoryRef(id="shopping", name="Shopping", type=CategoryType.EXPENDITURE, color="#f97316")
        ))
        learn(self.store)
        self.amazon = stored(self.store)[r"\bamazon\b"]

    def test_suggestions_for_transaction(self):
        suggestions = asyncio.run(
            get_suggestions_for_transaction("AMAZON MARKETPLACE", 9.99, "user-1", self.store)
        )
        assert len(suggestions) == 3
        assert all(s.category_id == "shopping" for s in suggestions)
        assert suggestions[0].category.name == "Shopping"

    def test_suggestions_respect_limit(self):
        suggestions = asyncio.run(
            get_suggestions_for_transaction("AMAZON MARKETPLACE", 9.99, "user-1", self.store, 1)
        )
        assert len(suggestions) == 1

    def test_suggestions_for_other_user_are_empty(self):
        suggestions = asyncio.run(
            get_suggestions_for_transaction("AMAZON MARKETPLACE", 9.99, "user-2", self.store)
        )
        assert suggestions == []

    def test_suggestions_survive_store_failure(self):
        class _Broken(InMemoryPatternStore):
            async def list_patterns(self, user_id, category_type=None):
                raise PatternStoreError("list", "timeout")

        assert asyncio.run(get_suggestions_for_transaction("AMAZON", 1.0, "user-1", _Broken())) == []

    def test_accept_with_pattern_reinforces_it(self):
        asyncio.run(accept_suggestion(AMAZON, "shopping", "user-1", self.store, self.amazon.id))
        updated = stored(self.store)

        assert updated[r"\bamazon\b"].confidence_score == 65
        assert updated[r"\bamazon\b"].match_count == 2
        assert updated[r"\bmarketplace\b"].confidence_score == 60

    def test_accept_without_pattern_learns(self):
        asyncio.run(accept_suggestion("Deliveroo Order", "takeaway", "user-1", self.store))
        patterns = stored(self.store)

        assert patterns[r"\bdeliveroo\b"].category_id == "takeaway"
        assert patterns[r"\bamazon\b"].confidence_score == 60

    def test_reject_decays(self):
        asyncio.run(reject_suggestion(self.amazon.id, "user-1", self.store))
        assert stored(self.store)[r"\bamazon\b"].confidence_score == 55

    def test_reject_without_pattern_is_noop(self):
        asyncio.run(reject_suggestion(None, "user-1", self.store))
        assert stored(self.store)[r"\bamazon\b"].confidence_score == 60

    def test_reject_floor(self):
        for _ in range(20):
            asyncio.run(reject_suggestion(self.amazon.id, "user-1", self.store))
        assert stored(self.store)[r"\bamazon\b"].confidence_score == 10

    def test_foreign_pattern_not_found(self):
        with pytest.raises(PatternNotFoundError):
            asyncio.run(reject_suggestion(self.amazon.id, "user-2", self.store))
        with pytest.raises(PatternNotFoundError):
            asyncio.run(accept_suggestion(AMAZON, "shopping", "user-1", self.store, "missing"))

    def test_bulk_apply(self):
        marketplace = stored(self.store)[r"\bmarketplace\b"]
        suggestions = [
            AppliedSuggestion(transaction_id="t1", category_id="shopping", pattern_id=self.amazon.id, confidence=0.9),
            AppliedSuggestion(transaction_id="t2", category_id="shopping", pattern_id=marketplace.id, confidence=0.5),
            AppliedSuggestion(transaction_id="t3", category_id="shopping", pattern_id="missing"),
            AppliedSuggestion(transaction_id="t4", category_id="shopping"),
        ]
        applied = asyncio.run(apply_bulk_suggestions(suggestions, "user-1", self.store))
        patterns = stored(self.store)

        assert applied == 2
        assert patterns[r"\bamazon\b"].confidence_score == 62
        assert patterns[r"\bamazon\b"].match_count == 2
        assert patterns[r"\bmarketplace\b"].confidence_score == 60

    def test_bulk_apply_custom_threshold(self):
        suggestions = [
            AppliedSuggestion(transaction_id="t1", category_id="shopping", pattern_id=self.amazon.id, confidence=0.5),
        ]
        applied = asyncio.run(apply_bulk_suggestions(suggestions, "user-1", self.store, min_confidence=0.4))
        assert applied == 1


class TestOutOfRangeScores:
    """Rows administered outside the engine can sit below the floor."""

    def setup_method(self):
        self.store = InMemoryPatternStore()
        self.low = asyncio.run(self.store.insert_pattern({
            "user_id": "user-1",
            "pattern": r"\bamazon\b",
            "category_id": "shopping",
            "match_count": 1,
            "confidence_score": 3,
        }))

    def score(self):
        return asyncio.run(self.store.get_pattern(self.low.id)).confidence_score

    def test_reinforce_lifts_to_floor(self):
        learn(self.store, description="Amazon")
        assert self.score() == 10

    def test_decay_lifts_to_floor(self):
        learn(self.store, description="Amazon", category_id="office")
        assert self.score() == 10

    def test_accept_lifts_to_floor(self):
        asyncio.run(accept_suggestion("Amazon", "shopping", "user-1", self.store, self.low.id))
        assert self.score() == 10

    def test_reject_lifts_to_floor(self):
        asyncio.run(reject_suggestion(self.low.id, "user-1", self.store))
        assert self.score() == 10

    def test_bulk_lifts_to_floor(self):
        suggestion = AppliedSuggestion(transaction_id="t1", category_id="shopping", pattern_id=self.low.id)
        asyncio.run(apply_bulk_suggestions([suggestion], "user-1", self.store))
        assert self.score() == 10
