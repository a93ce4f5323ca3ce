"""
Tests for manual pattern management and cleanup.
"""

import asyncio

import pytest

from finledgr.services import pattern_admin
from finledgr.services.errors import InvalidPatternError, MissingUserContextError, PatternNotFoundError
from finledgr.services.pattern_store import InMemoryPatternStore


def run(coro):
    return asyncio.run(coro)


class TestManualPatterns:

    def setup_method(self):
        self.store = InMemoryPatternStore()

    def test_add_pattern_defaults(self):
        p = run(pattern_admin.add_pattern("user-1", r"royal\s+mail", "postage", self.store))

        assert p.confidence_score == 50
        assert p.match_count == 0
        assert p.category_id == "postage"
        assert p.user_id == "user-1"

    def test_add_pattern_clamps_confidence(self):
        high = run(pattern_admin.add_pattern("user-1", "aaa", "x", self.store, confidence_score=250))
        low = run(pattern_admin.add_pattern("user-1", "bbb", "x", self.store, confidence_score=-4))
        assert high.confidence_score == 100
        assert low.confidence_score == 10

    def test_add_invalid_pattern(self):
        with pytest.raises(InvalidPatternError) as exc:
            run(pattern_admin.add_pattern("user-1", "(unclosed", "x", self.store))
        assert exc.value.context == {"pattern": "(unclosed"}
        assert self.store.patterns == {}

    def test_add_requires_user(self):
        with pytest.raises(MissingUserContextError):
            run(pattern_admin.add_pattern("", "tesco", "groceries", self.store))

    def test_update_pattern(self):
        p = run(pattern_admin.add_pattern("user-1", "tesco", "groceries", self.store))
        updated = run(pattern_admin.update_pattern(
            "user-1", p.id, self.store,
            pattern=r"\btesco\b", confidence_score=120, category_id=None,
        ))

        assert updated.pattern == r"\btesco\b"
        assert updated.confidence_score == 100
        assert updated.category_id == "groceries"

    def test_update_rejects_invalid_regex(self):
        p = run(pattern_admin.add_pattern("user-1", "tesco", "groceries", self.store))
        with pytest.raises(InvalidPatternError):
            run(pattern_admin.update_pattern("user-1", p.id, self.store, pattern="[abc"))
        assert run(self.store.get_pattern(p.id)).pattern == "tesco"

    def test_delete_pattern(self):
        p = run(pattern_admin.add_pattern("user-1", "tesco", "groceries", self.store))
        run(pattern_admin.delete_pattern("user-1", p.id, self.store))
        assert run(self.store.get_pattern(p.id)) is None

    def test_foreign_pattern_is_not_found(self):
        p = run(pattern_admin.add_pattern("user-1", "tesco", "groceries", self.store))
        with pytest.raises(PatternNotFoundError):
            run(pattern_admin.delete_pattern("user-2", p.id, self.store))
        with pytest.raises(PatternNotFoundError):
            run(pattern_admin.update_pattern("user-2", p.id, self.store, confidence_score=90))
        assert run(self.store.get_pattern(p.id)) is not None

    @pytest.mark.parametrize("start,adjustment,expected", [
        (50, 20, 70),
        (95, 20, 100),
        (20, -50, 10),
    ])
    def test_adjust_confidence(self, start, adjustment, expected):
        p = run(pattern_admin.add_pattern("user-1", "tesco", "groceries", self.store, start))
        adjusted = run(pattern_admin.adjust_confidence_score("user-1", p.id, adjustment, self.store))
        assert adjusted.confidence_score == expected


class TestFilters:

    def setup_method(self):
        store = InMemoryPatternStore()
        for pattern, category, score in [
            ("tesco", "groceries", 90), ("aldi", "groceries", 40), ("shell", "fuel", 70),
        ]:
            run(pattern_admin.add_pattern("user-1", pattern, category, store, score))
        self.patterns = run(store.list_patterns("user-1"))

    def test_patterns_for_category(self):
        found = pattern_admin.patterns_for_category(self.patterns, "groceries")
        assert [p.pattern for p in found] == ["tesco", "aldi"]

    def test_patterns_by_confidence(self):
        assert [p.pattern for p in pattern_admin.patterns_by_confidence(self.patterns, 60)] == ["tesco", "shell"]
        assert [p.pattern for p in pattern_admin.patterns_by_confidence(self.patterns, 0, 50)] == ["aldi"]


class TestCleanup:

    def test_cleanup_generic_patterns(self):
        store = InMemoryPatternStore()
        for pattern in ["Payment", "post", "wool", r"\bwool\b", r"tesco\s+stores"]:
            run(pattern_admin.add_pattern("user-1", pattern, "misc", store))

        result = run(pattern_admin.cleanup_generic_patterns("user-1", store))
        remaining = sorted(p.pattern for p in run(store.list_patterns("user-1")))

        assert result == {"deleted": 2, "rewritten": 1}
        assert remaining == sorted([r"\bpost\b", r"\bwool\b", r"tesco\s+stores"])

    def test_cleanup_leaves_other_users_alone(self):
        store = InMemoryPatternStore()
        run(pattern_admin.add_pattern("user-2", "payment", "misc", store))

        assert run(pattern_admin.cleanup_generic_patterns("user-1", store)) == {"deleted": 0, "rewritten": 0}
        assert len(run(store.list_patterns("user-2"))) == 1

    def test_cleanup_keeps_capitalized_name_patterns(self):
        store = InMemoryPatternStore()
        for pattern in ["Tesco", "Sainsbury", "shop"]:
            run(pattern_admin.add_pattern("user-1", pattern, "groceries", store))

        first = run(pattern_admin.cleanup_generic_patterns("user-1", store))
        second = run(pattern_admin.cleanup_generic_patterns("user-1", store))
        remaining = sorted(p.pattern for p in run(store.list_patterns("user-1")))

        assert first == {"deleted": 0, "rewritten": 1}
        assert second == {"deleted": 0, "rewritten": 0}
        assert remaining == sorted(["Tesco", "Sainsbury", r"\bshop\b"])
