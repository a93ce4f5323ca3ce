"""
Pattern Engine Configuration

Settings for:
- Stopwords (tokens never used as patterns)
- Confidence learning steps and bounds
- Bulk history learning thresholds

Defaults can be overridden with environment variables:
- FINLEDGR_STOPWORDS: comma separated list, replaces the default stopwords
- FINLEDGR_CONFIG_FILE: path to a JSON file with any of the fields below
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


# High-frequency, low-information tokens. Short ones are already dropped by
# the minimum token length but stay listed so cleanup can recognise them.
DEFAULT_STOPWORDS: FrozenSet[str] = frozenset({
    "main", "plus", "good", "user", "from", "with", "your", "have", "been",
    "this", "that", "will", "more", "some", "than", "them", "very", "when",
    "what", "make", "like", "time", "just", "know", "take", "come", "could",
    "over", "such", "after", "also", "back", "into", "year", "only", "other",
    "then", "first", "last", "long", "great", "little", "right", "still",
    "find", "here", "thing", "many", "well", "transfer", "verified", "payment",
    "reference", "completed",
})


@dataclass(frozen=True)
class PatternEngineConfig:
    """
    Tuning knobs for extraction and confidence learning.

    Confidence values are integers on the 0-100 scale used by stored patterns.
    """
    stopwords: FrozenSet[str] = field(default_factory=lambda: DEFAULT_STOPWORDS)
    min_token_length: int = 5
    max_learned_patterns: int = 3

    initial_confidence: int = 60
    reinforce_step: int = 5
    decay_step: int = 5
    confidence_floor: int = 10
    confidence_ceiling: int = 100

    # Learning from history
    history_min_occurrences: int = 2
    history_min_description_length: int = 4
    history_base_confidence: int = 50
    history_step: int = 10
    top_patterns_limit: int = 10

    # Suggestions
    max_suggestions: int = 5
    bulk_step: int = 2
    bulk_min_confidence: float = 0.8
    manual_confidence: int = 50

    def __post_init__(self):
        if not (0 <= self.confidence_floor <= self.confidence_ceiling <= 100):
            raise ValueError("Confidence bounds must be: 0 <= floor <= ceiling <= 100")
        if not (self.confidence_floor <= self.initial_confidence <= self.confidence_ceiling):
            raise ValueError("initial_confidence must lie within the confidence bounds")
        if self.min_token_length < 1 or self.max_learned_patterns < 1:
            raise ValueError("min_token_length and max_learned_patterns must be positive")

    def clamp(self, score: int) -> int:
        return max(self.confidence_floor, min(self.confidence_ceiling, score))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["stopwords"] = sorted(self.stopwords)
        return data


def _parse_stopwords(raw: Any) -> FrozenSet[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    return frozenset(str(word).strip().lower() for word in raw if str(word).strip())


def load_config(config_path: Optional[str] = None) -> PatternEngineConfig:
    """Build a config from defaults, an optional JSON file and the environment."""
    overrides: Dict[str, Any] = {}

    path = config_path or os.getenv("FINLEDGR_CONFIG_FILE")
    if path:
        p = Path(path)
        if p.exists():
            with p.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            if isinstance(raw, dict):
                overrides.update(raw)
        else:
            logger.warning("Config file %s not found, using defaults", path)

    env_stopwords = os.getenv("FINLEDGR_STOPWORDS")
    if env_stopwords:
        overrides["stopwords"] = env_stopwords

    if "stopwords" in overrides:
        overrides["stopwords"] = _parse_stopwords(overrides["stopwords"])

    known = PatternEngineConfig.__dataclass_fields__.keys()
    unknown = set(overrides) - set(known)
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

    return PatternEngineConfig(**{k: v for k, v in overrides.items() if k in known})


_config: Optional[PatternEngineConfig] = None


def get_config() -> PatternEngineConfig:
    """Get the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[PatternEngineConfig] = None, **changes: Any) -> PatternEngineConfig:
    """Swap the process-wide config. Keyword changes are applied on top."""
    global _config
    base = config or get_config()
    _config = replace(base, **changes) if changes else base
    return _config


def reset_config() -> None:
    global _config
    _config = None
