"""Rule-based priority scoring.

Every analyzed feedback item gets a priority from four point contributions:

- keywords (40/30/20): first match across the critical, high and medium tiers
- sentiment (30/10/0): negative, neutral, positive or unknown
- volume (5 per similar item in the batch, capped at 20)
- urgency (10): any urgency word in the text

The total maps to a band (>=60 critical, >=40 high, >=20 medium, else low)
and a short rationale naming the contributions that applied. Everything here
is pure: no I/O, no randomness, no clock.
"""
from typing import Optional, Tuple

from config import config
from schemas import PriorityConfig, PriorityFactors, PriorityResult

CRITICAL_KEYWORD_POINTS = 40
HIGH_KEYWORD_POINTS = 30
MEDIUM_KEYWORD_POINTS = 20
NEGATIVE_SENTIMENT_POINTS = 30
NEUTRAL_SENTIMENT_POINTS = 10
URGENCY_POINTS = 10

CRITICAL_THRESHOLD = 60
HIGH_THRESHOLD = 40
MEDIUM_THRESHOLD = 20

LOW_PRIORITY_REASON = "Standard priority"
GENERIC_REASON = "Priority factors combined"

_SENTIMENT_POINTS = {
    "negative": NEGATIVE_SENTIMENT_POINTS,
    "neutral": NEUTRAL_SENTIMENT_POINTS,
    "positive": 0,
}


def match_keyword(text: str, keyword_config: PriorityConfig) -> Tuple[str, int]:
    """Find the first keyword present in text, checking tiers in severity order.

    Args:
        text: Lower-cased title and body
        keyword_config: Keyword tiers

    Returns:
        (matched keyword, points); ("", 0) when nothing matches
    """
    tiers = (
        (keyword_config.critical_keywords, CRITICAL_KEYWORD_POINTS),
        (keyword_config.high_keywords, HIGH_KEYWORD_POINTS),
        (keyword_config.medium_keywords, MEDIUM_KEYWORD_POINTS),
    )
    for keywords, points in tiers:
        for keyword in keywords:
            if keyword and keyword.lower() in text:
                return keyword, points
    return "", 0


def sentiment_points(label: Optional[str]) -> int:
    """Fixed contribution of an externally computed polarity label."""
    return _SENTIMENT_POINTS.get(label, 0)


def volume_points(similar_count: Optional[int]) -> int:
    """Contribution of similar items in the same batch (0 when unknown)."""
    if similar_count is None:
        return 0
    return min(config.VOLUME_SCORE_CAP, similar_count * config.VOLUME_POINTS_PER_SIMILAR)


def urgency_points(text: str) -> int:
    for word in config.URGENCY_WORDS:
        if word in text:
            return URGENCY_POINTS
    return 0


def priority_for_score(total_score: int) -> str:
    """Map a total score to its band; lower bounds are inclusive."""
    if total_score >= CRITICAL_THRESHOLD:
        return "critical"
    if total_score >= HIGH_THRESHOLD:
        return "high"
    if total_score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def build_reason(factors: PriorityFactors, keyword_match: str) -> str:
    """Explain a non-low priority from the factors that contributed."""
    parts = []
    if factors.keyword_score > 0:
        parts.append(f'keyword "{keyword_match}"')
    if factors.sentiment_score >= NEGATIVE_SENTIMENT_POINTS:
        parts.append("negative sentiment")
    if factors.volume_score > 0:
        parts.append(f"{factors.volume_score // config.VOLUME_POINTS_PER_SIMILAR} similar issues")
    if factors.urgency_score > 0:
        parts.append("urgency detected")
    return " + ".join(parts) or GENERIC_REASON


def classify(
    title: str,
    body: str = "",
    keyword_config: Optional[PriorityConfig] = None,
    sentiment_label: Optional[str] = None,
    similar_count: Optional[int] = None
) -> PriorityResult:
    """Score a feedback item and assign its priority.

    Args:
        title: Feedback title
        body: Feedback body (may be empty)
        keyword_config: Keyword tiers (defaults from config)
        sentiment_label: negative, neutral or positive; None if unavailable
        similar_count: Number of similar items in the batch; None if unknown

    Returns:
        PriorityResult with priority, reason and factor breakdown
    """
    keyword_config = keyword_config or PriorityConfig()
    text = f"{title} {body or ''}".lower()

    keyword_match, keyword_score = match_keyword(text, keyword_config)
    factors = PriorityFactors(
        keyword_score=keyword_score,
        sentiment_score=sentiment_points(sentiment_label),
        volume_score=volume_points(similar_count),
        urgency_score=urgency_points(text),
    )

    priority = priority_for_score(factors.total_score)
    if priority == "low":
        reason = LOW_PRIORITY_REASON
    else:
        reason = build_reason(factors, keyword_match)

    return PriorityResult(priority=priority, reason=reason, factors=factors)
