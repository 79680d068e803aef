"""
Confidence thresholds for fragment matching.

Every cutoff the matcher and applier use lives here as a named value so it
can be tuned from configuration and tested on its own:
- EXACT_CONFIDENCE: byte-for-byte match (1.0)
- NORMALIZED_CONFIDENCE: whitespace-normalized match (0.9)
- CASE_INSENSITIVE_CONFIDENCE: whitespace-normalized, case-folded match (0.85)
- SIMILARITY_THRESHOLD: minimum ratio for a similarity window (0.8)
- MIN_CONFIDENCE: floor applied when selecting among candidates (0.7)
- CONFIRMATION_THRESHOLD: below this a match must be surfaced (0.9)

Action levels (mirrors how a caller decides what to do with a match):
- auto_apply: confidence >= confirmation threshold and no issues
- confirm: usable, but the caller should surface it for approval
- reject: below the selection floor
"""

from dataclasses import dataclass, fields
from typing import Dict, Optional

from .base import MatchCandidate

EXACT_CONFIDENCE = 1.0
NORMALIZED_CONFIDENCE = 0.9
CASE_INSENSITIVE_CONFIDENCE = 0.85
SIMILARITY_THRESHOLD = 0.8
MIN_CONFIDENCE = 0.7
CONFIRMATION_THRESHOLD = 0.9

# Similarity matches below this ratio carry a "significant differences" issue
SIMILARITY_ISSUE_THRESHOLD = 0.95

# Radius (in lines) of the exact search around a line hint
NEAR_HINT_RADIUS = 5


@dataclass
class MatchThresholds:
    """
    Tunable cutoffs for one matcher instance.

    All values are 0.0-1.0 except near_hint_radius (lines).
    """
    normalized_confidence: float = NORMALIZED_CONFIDENCE
    case_insensitive_confidence: float = CASE_INSENSITIVE_CONFIDENCE
    similarity_threshold: float = SIMILARITY_THRESHOLD
    min_confidence: float = MIN_CONFIDENCE
    confirmation_threshold: float = CONFIRMATION_THRESHOLD
    similarity_issue_threshold: float = SIMILARITY_ISSUE_THRESHOLD
    near_hint_radius: int = NEAR_HINT_RADIUS
    case_insensitive: bool = True

    def __post_init__(self):
        """Validate that all ratios are in range and strictly below exact."""
        for f in fields(self):
            if f.name in ('near_hint_radius', 'case_insensitive'):
                continue
            value = getattr(self, f.name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{f.name} must be between 0.0 and 1.0, got {value}")

        if self.normalized_confidence >= EXACT_CONFIDENCE:
            raise ValueError(
                f"normalized_confidence must be below {EXACT_CONFIDENCE}, "
                f"got {self.normalized_confidence}"
            )
        if self.case_insensitive_confidence > self.normalized_confidence:
            raise ValueError(
                "case_insensitive_confidence must not exceed normalized_confidence"
            )
        if self.near_hint_radius < 0:
            raise ValueError(f"near_hint_radius must be non-negative, got {self.near_hint_radius}")

    @classmethod
    def from_config(cls, config: Dict) -> 'MatchThresholds':
        """
        Build thresholds from the 'matching' section of a config dict.

        Missing keys fall back to the module defaults.
        """
        matching = config.get('matching', {}) or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in matching.items() if k in known})


def requires_confirmation(
    match: MatchCandidate,
    thresholds: Optional[MatchThresholds] = None
) -> bool:
    """
    Decide whether a match should be surfaced instead of applied silently.

    A match needs confirmation when its confidence is below the
    confirmation threshold or when it carries any diagnostic issue.

    Args:
        match: Located candidate
        thresholds: Optional overrides

    Returns:
        True if the caller should ask before applying
    """
    t = thresholds or MatchThresholds()
    return match.confidence < t.confirmation_threshold or len(match.issues) > 0


def get_action_threshold(
    match: MatchCandidate,
    thresholds: Optional[MatchThresholds] = None
) -> str:
    """
    Classify a match into an action level.

    Args:
        match: Located candidate
        thresholds: Optional overrides

    Returns:
        "auto_apply", "confirm" or "reject"

    Example:
        >>> m = MatchCandidate(0, 0, 0.92, MatchStrategy.SIMILARITY, "x", ["differs"])
        >>> get_action_threshold(m)
        'confirm'
    """
    t = thresholds or MatchThresholds()

    if match.confidence < t.min_confidence:
        return "reject"
    if requires_confirmation(match, t):
        return "confirm"
    return "auto_apply"


def describe_confidence(confidence: float, thresholds: Optional[MatchThresholds] = None) -> str:
    """Human label for a confidence value: 'high', 'medium' or 'low'."""
    t = thresholds or MatchThresholds()
    if confidence >= t.confirmation_threshold:
        return "high"
    if confidence >= t.similarity_threshold:
        return "medium"
    return "low"
