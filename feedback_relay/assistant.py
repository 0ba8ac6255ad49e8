"""Conversational questions about analyzed issues."""
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from ai_analyzer import AIProviderError
from schemas import ChatMessage, IssueData

logger = logging.getLogger(__name__)

NO_DATA_ANSWER = "No feedback has been analyzed yet. Import and analyze some feedback first."
SAMPLE_SIZE = 15
HISTORY_SIZE = 4

SCORING_EXPLANATION = (
    "Priority is computed using a multi-factor scoring system (0-100 points): "
    "Keywords (40pts) - matches like \"crash\", \"broken\", \"security\" boost priority. "
    "Sentiment (30pts) - negative tone adds weight. "
    "Volume (20pts) - similar issues in the same import increase priority. "
    "Urgency words (10pts) - \"urgent\", \"asap\", \"blocking\". "
    "60+ points is critical, 40+ high, 20+ medium, everything else low. "
    "Categories and summaries come from an AI model; sentiment from a DistilBERT classifier."
)


def issue_stats(issues: Sequence[IssueData]) -> Dict[str, Any]:
    by_category = Counter(issue.category or "other" for issue in issues)
    by_priority = Counter(issue.priority for issue in issues)
    by_sentiment = Counter(issue.sentiment_label for issue in issues)
    return {
        "total": len(issues),
        "by_priority": {p: by_priority[p] for p in ("critical", "high", "medium", "low")},
        "by_sentiment": {s: by_sentiment[s] for s in ("negative", "neutral", "positive")},
        "by_category": dict(by_category),
    }


def _mentions(question: str, *words: str) -> bool:
    return any(word in question for word in words)


def fallback_answer(question: str, stats: Dict[str, Any], sample: Sequence[IssueData]) -> str:
    """Rule-based answer used when the AI provider is unavailable."""
    q = question.lower()
    by_priority = stats["by_priority"]
    by_sentiment = stats["by_sentiment"]
    categories = sorted(stats["by_category"].items(), key=lambda item: item[1], reverse=True)

    if _mentions(q, "top", "priority", "prioritize", "urgent"):
        critical, high = by_priority["critical"], by_priority["high"]
        if critical + high > 0:
            top = [i for i in sample if i.priority in ("critical", "high")][:3]
            titles = ", ".join(f'"{i.title}"' for i in top)
            return (f"You have {critical} critical and {high} high priority issues. "
                    f"Top ones: {titles}. Focus on these first.")
        return (f"No critical or high priority issues found. "
                f"Your {stats['total']} issues are mostly medium/low priority.")

    if _mentions(q, "summary", "summarize", "overview"):
        if by_sentiment["negative"] > by_sentiment["positive"]:
            tone = "mostly negative"
        elif by_sentiment["positive"] > by_sentiment["negative"]:
            tone = "mostly positive"
        else:
            tone = "mixed"
        parts = [f"{stats['total']} issues analyzed. Sentiment is {tone}."]
        if categories:
            parts.append(f"Most common category: {categories[0][0]} ({categories[0][1]} issues).")
        parts.append(f"{by_priority['critical']} critical, {by_priority['high']} high priority.")
        return " ".join(parts)

    if _mentions(q, "pattern", "common", "theme", "trend"):
        if categories:
            listed = ", ".join(f"{category} ({count})" for category, count in categories[:3])
            answer = f"Common patterns: {listed}."
            if by_sentiment["negative"] > stats["total"] / 2:
                answer += " High negative sentiment suggests user frustration."
            return answer
        return "No clear patterns identified yet. Need more feedback to detect trends."

    if _mentions(q, "how", "computed", "work", "rationale", "algorithm", "calculate"):
        return SCORING_EXPLANATION

    return (f"Based on {stats['total']} issues: {by_priority['critical']} critical, "
            f"{by_priority['high']} high, {by_priority['medium']} medium priority. "
            "Ask about \"top issues\", \"summary\", \"patterns\", or \"how it works\" for more details.")


def build_chat_prompt(
    question: str,
    stats: Dict[str, Any],
    sample: Sequence[IssueData],
    history: Sequence[ChatMessage]
) -> str:
    by_priority = stats["by_priority"]
    by_sentiment = stats["by_sentiment"]
    category_list = ", ".join(f"{k}: {v}" for k, v in stats["by_category"].items())
    issue_list = "\n".join(f"{n}. [{i.priority}] {i.title}" for n, i in enumerate(sample, start=1))

    prompt = f"""You are an AI assistant helping a Product Manager analyze user feedback.

DATA:
- Total: {stats['total']} issues
- Priority: {by_priority['critical']} critical, {by_priority['high']} high, {by_priority['medium']} medium, {by_priority['low']} low
- Sentiment: {by_sentiment['negative']} negative, {by_sentiment['neutral']} neutral, {by_sentiment['positive']} positive
- Categories: {category_list}

SAMPLE ISSUES:
{issue_list}

Answer concisely based on this data. Be specific and actionable."""

    recent = "\n".join(
        f"{'User' if m.role == 'user' else 'Assistant'}: {m.content}" for m in history[-HISTORY_SIZE:]
    )
    if recent:
        prompt += f"\n\nPrevious:\n{recent}"
    return prompt + f"\n\nUser: {question}\n\nAssistant:"


async def answer_question(
    question: str,
    issues: Sequence[IssueData],
    history: Optional[List[ChatMessage]] = None,
    ai=None
) -> str:
    """Answer a question about the issue set.

    Args:
        question: User question
        issues: All issues of the session
        history: Prior messages; only the most recent few are sent
        ai: Object with ``available`` and ``async answer(prompt)``; None
            means rule-based answers only

    Returns:
        Answer text, never empty
    """
    if not issues:
        return NO_DATA_ANSWER

    stats = issue_stats(issues)
    sample = list(issues[:SAMPLE_SIZE])

    if ai is None or not ai.available:
        return fallback_answer(question, stats, sample)

    try:
        answer = await ai.answer(build_chat_prompt(question, stats, sample, history or []))
    except AIProviderError as e:
        logger.warning(f"Chat failed: {e}. Using rule-based answer")
        return fallback_answer(question, stats, sample)

    return answer.strip() or fallback_answer(question, stats, sample)
