"""Templated recommendations and headline summary from issue statistics."""
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from schemas import InsightData, IssueData, QuickSummary, QuickSummaryMetric

RELATED_SAMPLE = 5
DOMINANT_CATEGORY_MIN = 3
NEGATIVE_RATIO_THRESHOLD = 0.5
NEGATIVE_MIN_ISSUES = 5


def percent(part: int, total: int) -> int:
    """Percentage rounded half up."""
    return int(part * 100 / total + 0.5) if total else 0


def plural(count: int, word: str) -> str:
    return f"{word}s" if count > 1 else word


def _top_category(issues: Sequence[IssueData]) -> Optional[Tuple[str, List[IssueData]]]:
    """Largest category other than "other"; first seen wins a tie."""
    by_category: Dict[str, List[IssueData]] = {}
    for issue in issues:
        by_category.setdefault(issue.category or "other", []).append(issue)

    ranked = sorted(
        ((category, members) for category, members in by_category.items() if category != "other"),
        key=lambda item: len(item[1]),
        reverse=True
    )
    return ranked[0] if ranked else None


def generate_insights(issues: Sequence[IssueData]) -> List[InsightData]:
    """Derive insights from the full issue set of a session.

    Each rule is independent and emits nothing when its trigger is false.
    """
    if not issues:
        return []

    insights = []
    total = len(issues)
    by_priority = Counter(issue.priority for issue in issues)

    urgent = [issue for issue in issues if issue.priority in ("critical", "high")]
    if urgent:
        insights.append(InsightData(
            id="insight_urgent",
            type="quick_win",
            title=f"{len(urgent)} urgent issues need attention",
            description=(f"You have {by_priority['critical']} critical and "
                         f"{by_priority['high']} high priority issues."),
            action="Review and triage these issues first.",
            impact="high",
            effort="low",
            related_issue_ids=[issue.id for issue in urgent[:RELATED_SAMPLE]],
            category="priority"
        ))

    top = _top_category(issues)
    if top and len(top[1]) >= DOMINANT_CATEGORY_MIN:
        category, members = top
        insights.append(InsightData(
            id="insight_category",
            type="strategic",
            title=f"{category} issues are most common ({percent(len(members), total)}%)",
            description=f"{len(members)} of {total} issues are related to {category}.",
            action=f"Consider prioritizing {category} improvements in your roadmap.",
            impact="medium",
            effort="medium",
            related_issue_ids=[issue.id for issue in members[:RELATED_SAMPLE]],
            category=category
        ))

    negative = [issue for issue in issues if issue.sentiment_label == "negative"]
    negative_ratio = len(negative) / total
    if negative_ratio > NEGATIVE_RATIO_THRESHOLD and total >= NEGATIVE_MIN_ISSUES:
        insights.append(InsightData(
            id="insight_sentiment",
            type="investigate",
            title=f"High negative sentiment ({percent(len(negative), total)}%)",
            description="Most feedback expresses frustration or dissatisfaction.",
            action="Focus on addressing pain points before adding new features.",
            impact="high",
            effort="medium",
            related_issue_ids=[issue.id for issue in negative[:RELATED_SAMPLE]],
            category="sentiment"
        ))

    return insights


def quick_summary(issues: Sequence[IssueData]) -> QuickSummary:
    """Headline, key metrics and a recommendation, without any AI call."""
    if not issues:
        return QuickSummary(
            headline="No feedback analyzed yet",
            recommendation="Import and analyze feedback to get started."
        )

    total = len(issues)
    by_priority = Counter(issue.priority for issue in issues)
    by_sentiment = Counter(issue.sentiment_label for issue in issues)
    top = _top_category(issues)
    critical, high = by_priority["critical"], by_priority["high"]

    metrics = [QuickSummaryMetric(label="Total", value=str(total))]
    if critical or high:
        metrics.append(QuickSummaryMetric(label="Priority", value=f"{critical} crit, {high} high"))
    else:
        metrics.append(QuickSummaryMetric(
            label="Priority", value=f"{by_priority['medium']} med, {by_priority['low']} low"
        ))
    if top:
        count = len(top[1])
        metrics.append(QuickSummaryMetric(label=top[0], value=f"{count} ({percent(count, total)}%)"))
    else:
        metrics.append(QuickSummaryMetric(
            label="Sentiment",
            value=f"{by_sentiment['negative']} neg, {by_sentiment['positive']} pos"
        ))

    if critical:
        headline = f"{critical} critical {plural(critical, 'issue')} require immediate attention"
    elif high:
        headline = f"{high} high priority {plural(high, 'issue')} to review"
    elif top and len(top[1]) >= total * 0.3:
        headline = f"{top[0]} is the dominant theme ({percent(len(top[1]), total)}%)"
    else:
        headline = f"{total} feedback items analyzed"

    if critical:
        recommendation = f"Start with the {critical} critical {plural(critical, 'issue')}."
    elif high:
        recommendation = f"Triage the {high} high priority {plural(high, 'item')}."
    elif top:
        recommendation = f"Focus on {top[0]} improvements."
    elif by_sentiment["negative"] > total / 2:
        recommendation = "Address negative feedback to improve satisfaction."
    else:
        recommendation = "Review and categorize items for better insights."

    return QuickSummary(headline=headline, metrics=metrics, recommendation=recommendation)
