"""
Pattern Matching for Transaction Categorization

Pure functions, no I/O:
- normalize_text: canonical comparison form of a description
- extract_patterns_from_description: candidate regex fragments for learning
- match_patterns / find_best_match / generate_suggestions: score a
  description against a user's stored patterns

Stored patterns are regex sources matched case-insensitively against the
normalized description. Single bare words get word boundaries so that
"post" never matches "postage".
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence

from finledgr.core.config import get_config
from finledgr.models.patterns import Pattern, PatternMatch

logger = logging.getLogger(__name__)


_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-z]+\b")
_REGEX_OPERATORS = re.compile(r"[\\.*+?^${}()|\[\]\s]")

WORD_GAP = r"\s+"


def _strip_punctuation(text: str) -> str:
    return _WHITESPACE.sub(" ", _NON_WORD.sub("", text)).strip()


def normalize_text(text: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    return _strip_punctuation((text or "").lower())


def _word_pattern(word: str) -> str:
    return rf"\b{re.escape(word)}\b"


def extract_patterns_from_description(
    description: str,
    stopwords: Optional[Iterable[str]] = None,
) -> List[str]:
    r"""
    Derive candidate patterns from a transaction description.

    Order matters, strongest first: single words, adjacent pairs, the first
    three words, then a pattern built from capitalized words (merchant names).

    Example:
        "Amazon Marketplace Payment" gives \bamazon\b, \bmarketplace\b,
        amazon\s+marketplace and Amazon\s+Marketplace\s+Payment
        ("payment" is a stopword, so there is no three-word phrase).
    """
    config = get_config()
    stop = config.stopwords if stopwords is None else frozenset(w.lower() for w in stopwords)

    words = [
        word for word in normalize_text(description).split()
        if len(word) >= config.min_token_length and word not in stop
    ]
    escaped = [re.escape(word) for word in words]

    patterns = [_word_pattern(word) for word in words]

    for first, second in zip(escaped, escaped[1:]):
        patterns.append(f"{first}{WORD_GAP}{second}")

    if len(escaped) >= 3:
        patterns.append(WORD_GAP.join(escaped[:3]))

    # Merchant names keep their casing, so scan before lowercasing
    capitalized = _CAPITALIZED_WORD.findall(_strip_punctuation(description or ""))
    if capitalized:
        patterns.append(WORD_GAP.join(capitalized))

    return patterns


def enforce_word_boundaries(pattern: str) -> str:
    """
    Wrap a single bare word in word boundaries.

    Anything with regex operators or whitespace is a compound expression and
    is returned unchanged.
    """
    if _REGEX_OPERATORS.search(pattern):
        return pattern
    return rf"\b{pattern}\b"


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a stored pattern the way the matcher uses it. Raises re.error."""
    return re.compile(enforce_word_boundaries(pattern), re.IGNORECASE)


def test_pattern(pattern: str, description: str) -> bool:
    """Check whether one pattern matches a description."""
    try:
        regex = compile_pattern(pattern)
    except re.error as exc:
        logger.error("Invalid pattern regex: %s (%s)", pattern, exc)
        return False
    return bool(regex.search(normalize_text(description)))


def match_patterns(description: str, patterns: Sequence[Pattern]) -> List[PatternMatch]:
    """
    Match a description against a set of patterns.

    Patterns that fail to compile are logged and skipped.
    """
    normalized = normalize_text(description)
    matches: List[PatternMatch] = []

    for pattern in patterns:
        try:
            regex = compile_pattern(pattern.pattern)
        except re.error as exc:
            logger.error("Invalid pattern regex: %s (%s)", pattern.pattern, exc)
            continue

        if regex.search(normalized):
            matches.append(
                PatternMatch(
                    category_id=pattern.category_id,
                    confidence=pattern.confidence_score / 100,
                    pattern_id=pattern.id,
                    category=pattern.category,
                )
            )

    return matches


def _by_confidence(matches: List[PatternMatch]) -> List[PatternMatch]:
    # sorted() is stable, equal confidences keep pattern order
    return sorted(matches, key=lambda m: m.confidence, reverse=True)


def find_best_match(description: str, patterns: Sequence[Pattern]) -> Optional[PatternMatch]:
    """Find the highest-confidence matching pattern, or None."""
    matches = match_patterns(description, patterns)
    if not matches:
        return None
    return _by_confidence(matches)[0]


def generate_suggestions(
    description: str,
    amount: float,
    patterns: Sequence[Pattern],
    max_suggestions: int = 5,
) -> List[PatternMatch]:
    """
    Generate category suggestions for a transaction, best first.

    ``amount`` is accepted so callers can pass the whole transaction; ranking
    currently depends only on pattern confidence.
    """
    if max_suggestions <= 0:
        return []
    return _by_confidence(match_patterns(description, patterns))[:max_suggestions]
