"""Group issues into themes by category."""
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

from schemas import CategorySummary, IssueData, ThemeGroup, ThemeLabel

logger = logging.getLogger(__name__)

MIN_THEME_SIZE = 2
CATCH_ALL_SAMPLE = 10
SAMPLE_TITLES = 3


def aggregate_sentiment(issues: Sequence[IssueData]) -> str:
    """Majority label among members; any tie for the top count is neutral."""
    counts = Counter(issue.sentiment_label for issue in issues)
    ranked = [counts.get(label, 0) for label in ("negative", "neutral", "positive")]
    top = max(ranked)
    if top == 0 or ranked.count(top) > 1:
        return "neutral"
    return ("negative", "neutral", "positive")[ranked.index(top)]


def aggregate_priority(issues: Sequence[IssueData]) -> str:
    """Escalate to the most severe member: critical, then high, else medium."""
    priorities = {issue.priority for issue in issues}
    if "critical" in priorities:
        return "critical"
    if "high" in priorities:
        return "high"
    return "medium"


def group_by_category(issues: Sequence[IssueData]) -> Dict[str, List[IssueData]]:
    groups: Dict[str, List[IssueData]] = {}
    for issue in issues:
        groups.setdefault(issue.category or "other", []).append(issue)
    return groups


def qualifying_groups(issues: Sequence[IssueData]) -> Dict[str, List[IssueData]]:
    """Categories with enough members to form a theme, largest first."""
    groups = group_by_category(issues)
    ordered = sorted(
        ((category, members) for category, members in groups.items() if len(members) >= MIN_THEME_SIZE),
        key=lambda item: (-len(item[1]), item[0])
    )
    return dict(ordered)


def summarize_categories(groups: Dict[str, List[IssueData]]) -> List[CategorySummary]:
    return [
        CategorySummary(
            category=category,
            count=len(members),
            sample_titles=[issue.title for issue in members[:SAMPLE_TITLES]]
        )
        for category, members in groups.items()
    ]


def build_themes(
    groups: Dict[str, List[IssueData]],
    labels: Optional[Dict[str, ThemeLabel]] = None
) -> List[ThemeGroup]:
    """Build theme groups, using external labels where present."""
    labels = labels or {}
    themes = []
    for category, members in groups.items():
        label = labels.get(category)
        themes.append(ThemeGroup(
            id=f"theme_{category}",
            category=category,
            label=label.label if label else category.capitalize(),
            description=(label.description if label and label.description
                         else f"{len(members)} {category} issues"),
            issue_count=len(members),
            issues=list(members),
            sentiment=aggregate_sentiment(members),
            priority=aggregate_priority(members)
        ))
    return themes


def catch_all_theme(issues: Sequence[IssueData]) -> ThemeGroup:
    sample = list(issues[:CATCH_ALL_SAMPLE])
    return ThemeGroup(
        id="theme_all",
        category="all",
        label="All Feedback",
        description=f"{len(issues)} items imported",
        issue_count=len(issues),
        issues=sample,
        sentiment=aggregate_sentiment(sample),
        priority=aggregate_priority(sample)
    )


async def analyze_themes(issues: Sequence[IssueData], labeler=None) -> List[ThemeGroup]:
    """Group issues into themes.

    Args:
        issues: Current issues of a session
        labeler: Optional object with ``async label_themes(summaries)``
            returning labels keyed by category, or None on failure

    Returns:
        Theme groups; a single catch-all group when no category has at
        least two members
    """
    if not issues:
        return []

    groups = qualifying_groups(issues)
    if not groups:
        return [catch_all_theme(issues)]

    labels = None
    if labeler is not None:
        try:
            labels = await labeler.label_themes(summarize_categories(groups))
        except Exception as e:
            logger.error(f"Theme labeling failed: {e}")
            labels = None

    return build_themes(groups, labels)
