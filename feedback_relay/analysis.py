"""Batch analysis: sentiment, priority, summary and category per feedback item."""
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence

from ai_analyzer import AIAnalyzer
from cache import SummaryCache
from config import config
from priority import classify
from schemas import FeedbackRecord, IssueData, PriorityConfig, PriorityResult, SentimentResult, SummaryResult
from sentiment_analyzer import SentimentAnalyzer
from similarity import SimilarityIndex

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

ANALYSIS_FAILED_REASON = "Analysis failed"


def issue_id_for(feedback_id: str) -> str:
    return f"issue_{feedback_id}"


class Throttle:
    """Fixed pause between items to stay under external rate limits."""

    def __init__(self, delay_seconds: Optional[float] = None):
        self.delay_seconds = config.ANALYSIS_DELAY_SECONDS if delay_seconds is None else delay_seconds

    async def wait(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


def build_issue(
    feedback: FeedbackRecord,
    summary: SummaryResult,
    sentiment: SentimentResult,
    result: PriorityResult
) -> IssueData:
    return IssueData(
        id=issue_id_for(feedback.id),
        session_id=feedback.session_id,
        feedback_id=feedback.id,
        title=feedback.title,
        summary=summary.summary,
        category=summary.category,
        priority=result.priority,
        priority_reason=result.reason,
        sentiment_score=sentiment.score,
        sentiment_label=sentiment.label,
        source=feedback.source,
        source_url=feedback.url,
        author=feedback.author,
        created_at=feedback.created_at
    )


def fallback_issue(feedback: FeedbackRecord) -> IssueData:
    """Usable issue for an item whose analysis failed."""
    return IssueData(
        id=issue_id_for(feedback.id),
        session_id=feedback.session_id,
        feedback_id=feedback.id,
        title=feedback.title,
        summary=(feedback.body or "")[:200] or feedback.title,
        category="other",
        priority="low",
        priority_reason=ANALYSIS_FAILED_REASON,
        sentiment_score=0.0,
        sentiment_label="neutral",
        source=feedback.source,
        source_url=feedback.url,
        author=feedback.author,
        created_at=feedback.created_at
    )


class FeedbackAnalyzer:
    """Turns unanalyzed feedback into issues.

    Capabilities are injected so tests can substitute deterministic stubs:
    ``sentiment`` needs ``async polarity(text) -> SentimentResult`` and
    ``summarizer`` needs ``available`` plus
    ``async summarize(title, body) -> SummaryResult``.
    """

    def __init__(
        self,
        summarizer=None,
        sentiment=None,
        cache: Optional[SummaryCache] = None,
        throttle: Optional[Throttle] = None,
        concurrency: Optional[int] = None
    ):
        self.summarizer = summarizer if summarizer is not None else AIAnalyzer()
        self.sentiment = sentiment if sentiment is not None else SentimentAnalyzer()
        self.cache = cache if cache is not None else SummaryCache()
        self.throttle = throttle if throttle is not None else Throttle()
        self.concurrency = max(1, concurrency or config.ANALYSIS_CONCURRENCY)

    async def _summarize(self, feedback: FeedbackRecord) -> SummaryResult:
        if not self.summarizer.available:
            return SummaryResult(summary=feedback.title, category="other", parsed=False)

        cached = self.cache.get(feedback.title, feedback.body)
        if cached:
            return cached

        summary = await self.summarizer.summarize(feedback.title, feedback.body)
        self.cache.set(feedback.title, feedback.body, summary)
        return summary

    async def analyze_item(
        self,
        feedback: FeedbackRecord,
        keyword_config: Optional[PriorityConfig] = None,
        similar_count: Optional[int] = None
    ) -> IssueData:
        """Analyze one feedback item.

        Raises:
            AIProviderError: If the summarization call fails
        """
        sentiment = await self.sentiment.polarity(f"{feedback.title} {feedback.body or ''}")

        result = classify(
            feedback.title,
            feedback.body,
            keyword_config,
            sentiment.label,
            similar_count
        )

        summary = await self._summarize(feedback)
        return build_issue(feedback, summary, sentiment, result)

    async def analyze_batch(
        self,
        feedback_items: Sequence[FeedbackRecord],
        keyword_config: Optional[PriorityConfig] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> List[IssueData]:
        """Analyze a batch of feedback items.

        Similarity is computed over the whole batch before any item is
        scored. A failing item is replaced by a low-priority fallback issue
        and the batch continues.

        Args:
            feedback_items: Items to analyze
            keyword_config: Keyword tiers (defaults from config)
            on_progress: Called with (completed, total) after each item

        Returns:
            Issues in the same order as feedback_items
        """
        total = len(feedback_items)
        if total == 0:
            return []

        index = SimilarityIndex.build(feedback_items)
        semaphore = asyncio.Semaphore(self.concurrency)
        issues: List[Optional[IssueData]] = [None] * total
        completed = 0

        async def run(position: int, feedback: FeedbackRecord) -> None:
            nonlocal completed
            async with semaphore:
                if position > 0:
                    await self.throttle.wait()
                try:
                    issues[position] = await self.analyze_item(
                        feedback, keyword_config, index.count_at(position)
                    )
                except Exception as e:
                    logger.error(f"Failed to analyze feedback {feedback.id}: {e}")
                    issues[position] = fallback_issue(feedback)

                completed += 1
                if on_progress:
                    on_progress(completed, total)

        await asyncio.gather(*(run(i, feedback) for i, feedback in enumerate(feedback_items)))

        logger.info(f"Analyzed {total} feedback items")
        return issues


def rescore_issues(
    feedback_items: Sequence[FeedbackRecord],
    issues: Sequence[IssueData],
    keyword_config: Optional[PriorityConfig] = None
) -> List[IssueData]:
    """Recompute priorities with the current keyword tiers.

    Stored sentiment labels are reused and similarity is recomputed across
    all given feedback. Overridden issues are left alone.

    Returns:
        Updated copies of the issues whose priority or reason changed
    """
    index = SimilarityIndex.build(feedback_items)
    feedback_by_id: Dict[str, FeedbackRecord] = {f.id: f for f in feedback_items}

    changed = []
    for issue in issues:
        feedback = feedback_by_id.get(issue.feedback_id)
        if issue.priority_override or feedback is None:
            continue

        result = classify(
            feedback.title,
            feedback.body,
            keyword_config,
            issue.sentiment_label,
            index.count_for(feedback.id)
        )
        if result.priority != issue.priority or result.reason != issue.priority_reason:
            changed.append(issue.model_copy(update={
                "priority": result.priority,
                "priority_reason": result.reason
            }))

    return changed
