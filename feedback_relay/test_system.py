#!/usr/bin/env python3
"""
This file consolidates the analysis tests:
- Priority scoring (keywords, sentiment, volume, urgency, bands)
- Batch similarity counting
- Batch analysis with stub capabilities (order, progress, fallbacks, cache)
- Theme grouping and insight generation
- AI response parsing and the rule-based chat fallback
"""
import asyncio
import json
import time
from types import SimpleNamespace

import pytest
import torch

import sentiment_analyzer
from config import config
from schemas import (
    ChatMessage, FeedbackRecord, IssueData, PriorityConfig, SentimentResult, SummaryResult, ThemeLabel
)
from priority import classify, match_keyword, priority_for_score, sentiment_points, volume_points
from similarity import SimilarityIndex, tokenize
from analysis import ANALYSIS_FAILED_REASON, FeedbackAnalyzer, Throttle, rescore_issues
from ai_analyzer import AIAnalyzer, AIProviderError, extract_json
from sentiment_analyzer import SentimentAnalyzer
from cache import SummaryCache
from themes import aggregate_priority, aggregate_sentiment, analyze_themes
from insights import generate_insights, percent, quick_summary
from assistant import NO_DATA_ANSWER, SCORING_EXPLANATION, answer_question, fallback_answer, issue_stats
from export import issues_to_csv, issues_to_json


# ============================================================================
# HELPERS
# ============================================================================

def make_feedback(fid, title, body="", created_at="2024-01-01T00:00:00+00:00"):
    return FeedbackRecord(
        id=fid,
        session_id="s1",
        source="csv",
        source_id=fid,
        title=title,
        body=body,
        created_at=created_at
    )


def make_issue(iid, category="bug", priority="low", sentiment="neutral", title=None):
    return IssueData(
        id=iid,
        session_id="s1",
        feedback_id=f"fb_{iid}",
        title=title or f"Issue {iid}",
        summary="",
        category=category,
        priority=priority,
        sentiment_label=sentiment,
        source="csv",
        created_at="2024-01-01T00:00:00+00:00"
    )


class StubSentiment:
    """Keyword-driven polarity."""

    async def polarity(self, text):
        text = text.lower()
        if "love" in text:
            return SentimentResult(label="positive", score=0.9)
        if "terrible" in text:
            return SentimentResult(label="negative", score=-0.9)
        return SentimentResult(label="neutral", score=0.0)


class StubSummarizer:
    """Deterministic summaries; titles containing "explode" fail."""

    def __init__(self, available=True):
        self.available = available
        self.calls = []

    async def summarize(self, title, body):
        self.calls.append(title)
        if "explode" in title.lower():
            raise AIProviderError("provider down")
        return SummaryResult(summary=f"Summary of {title}", category="bug")


def make_analyzer(summarizer=None, concurrency=1):
    return FeedbackAnalyzer(
        summarizer=summarizer or StubSummarizer(),
        sentiment=StubSentiment(),
        cache=SummaryCache(),
        throttle=Throttle(0),
        concurrency=concurrency
    )


class SlowCompletions:
    """Completion endpoint that never answers in time."""

    async def create(self, **kwargs):
        await asyncio.sleep(5)


def make_slow_ai(monkeypatch):
    monkeypatch.setattr(config, "AI_PROVIDER_ENABLED", True)
    ai = AIAnalyzer()
    ai.client = SimpleNamespace(chat=SimpleNamespace(completions=SlowCompletions()))
    ai.timeout = 0.05
    return ai


# ============================================================================
# UNIT TESTS - PRIORITY SCORING
# ============================================================================

class TestKeywordMatching:
    """Tests for tiered keyword matching."""

    def test_critical_tier_wins_regardless_of_position(self):
        """A critical keyword beats an earlier high keyword in the text."""
        keyword, points = match_keyword("app crash exposes a security hole", PriorityConfig())

        assert keyword == "security"
        assert points == 40

    def test_high_tier_match(self):
        keyword, points = match_keyword("export is broken", PriorityConfig())

        assert keyword == "broken"
        assert points == 30

    def test_medium_tier_match(self):
        keyword, points = match_keyword("search is slow", PriorityConfig())

        assert keyword == "slow"
        assert points == 20

    def test_no_match(self):
        assert match_keyword("thanks for the update", PriorityConfig()) == ("", 0)

    def test_custom_tiers(self):
        custom = PriorityConfig(critical_keywords=["typo"], high_keywords=[], medium_keywords=[])

        assert match_keyword("minor typo in docs", custom) == ("typo", 40)


class TestPriorityClassification:
    """Tests for the four-factor priority scorer."""

    def test_end_to_end_critical(self):
        """All four factors contribute and the rationale names each one."""
        result = classify(
            "App crashes on login - URGENT",
            "this is a security issue, data loss occurred",
            PriorityConfig(),
            sentiment_label="negative",
            similar_count=3
        )

        assert result.factors.keyword_score == 40
        assert result.factors.sentiment_score == 30
        assert result.factors.volume_score == 15
        assert result.factors.urgency_score == 10
        assert result.factors.total_score == 95
        assert result.priority == "critical"
        assert result.reason == 'keyword "security" + negative sentiment + 3 similar issues + urgency detected'

    def test_nothing_matches_is_low(self):
        result = classify("Minor typo in docs", "")

        assert result.factors.total_score == 0
        assert result.priority == "low"
        assert result.reason == "Standard priority"

    def test_deterministic(self):
        first = classify("Checkout broken", "please fix asap", None, "negative", 2)
        second = classify("Checkout broken", "please fix asap", None, "negative", 2)

        assert first == second

    def test_total_is_sum_of_factors(self):
        result = classify("Search is slow", "", None, "neutral", 1)
        factors = result.factors

        assert factors.total_score == (
            factors.keyword_score + factors.sentiment_score + factors.volume_score + factors.urgency_score
        )
        assert factors.total_score == 35
        assert result.priority == "medium"

    def test_urgency_word_scores_alongside_keyword(self):
        """The word urgent is both a high keyword and an urgency word; both count."""
        result = classify("urgent", "")

        assert result.factors.keyword_score == 30
        assert result.factors.urgency_score == 10
        assert result.priority == "high"

    def test_reason_without_keyword(self):
        result = classify("Not happy", "", None, "negative", 2)

        assert result.priority == "high"
        assert result.reason == "negative sentiment + 2 similar issues"

    @pytest.mark.parametrize("score,expected", [
        (100, "critical"), (60, "critical"), (59, "high"), (40, "high"),
        (39, "medium"), (20, "medium"), (19, "low"), (0, "low"),
    ])
    def test_band_boundaries(self, score, expected):
        assert priority_for_score(score) == expected

    @pytest.mark.parametrize("label,points", [
        ("negative", 30), ("neutral", 10), ("positive", 0), (None, 0),
    ])
    def test_sentiment_points(self, label, points):
        assert sentiment_points(label) == points

    @pytest.mark.parametrize("similar,points", [
        (None, 0), (0, 0), (1, 5), (2, 10), (3, 15), (4, 20), (5, 20), (12, 20),
    ])
    def test_volume_points(self, similar, points):
        assert volume_points(similar) == points


# ============================================================================
# UNIT TESTS - SIMILARITY
# ============================================================================

class TestSimilarity:
    """Tests for lexical near-duplicate counting."""

    def test_tokenize_drops_short_words(self):
        assert tokenize("The login page is broken") == frozenset({"login", "broken"})

    def test_three_shared_tokens_are_similar(self):
        records = [
            make_feedback("a", "Login button broken everywhere"),
            make_feedback("b", "Login button broken today"),
            make_feedback("c", "Login button works"),
        ]

        index = SimilarityIndex.build(records)

        assert [index.count_at(i) for i in range(3)] == [1, 1, 0]
        assert index.count_for("a") == index.count_for("b") == 1
        assert index.count_for("missing") == 0

    def test_item_never_counts_itself(self):
        index = SimilarityIndex.build([make_feedback("a", "Login button broken everywhere")])

        assert index.count_at(0) == 0


# ============================================================================
# UNIT TESTS - BATCH ANALYSIS
# ============================================================================

class TestFeedbackAnalyzer:
    """Tests for batch analysis with stub capabilities."""

    async def test_results_follow_input_order(self):
        items = [make_feedback(f"f{i}", f"Feedback number {i}") for i in range(5)]

        issues = await make_analyzer(concurrency=3).analyze_batch(items)

        assert [issue.feedback_id for issue in issues] == [f"f{i}" for i in range(5)]
        assert all(issue.id == f"issue_f{i}" for i, issue in enumerate(issues))

    async def test_progress_reported_per_item(self):
        items = [make_feedback(f"f{i}", f"Feedback number {i}") for i in range(3)]
        calls = []

        await make_analyzer().analyze_batch(items, on_progress=lambda done, total: calls.append((done, total)))

        assert calls == [(1, 3), (2, 3), (3, 3)]

    async def test_empty_batch(self):
        assert await make_analyzer().analyze_batch([]) == []

    async def test_failed_item_gets_fallback_and_batch_continues(self):
        items = [
            make_feedback("ok", "Export is broken"),
            make_feedback("bad", "Explode on save", "The editor explodes whenever I save a file"),
        ]

        issues = await make_analyzer().analyze_batch(items)

        assert issues[0].summary == "Summary of Export is broken"
        assert issues[0].category == "bug"
        assert issues[1].priority == "low"
        assert issues[1].priority_reason == ANALYSIS_FAILED_REASON
        assert issues[1].category == "other"
        assert issues[1].sentiment_label == "neutral"
        assert issues[1].summary == "The editor explodes whenever I save a file"

    async def test_similarity_feeds_volume_score(self):
        items = [
            make_feedback("a", "Login button broken everywhere"),
            make_feedback("b", "Login button broken today"),
        ]

        issues = await make_analyzer().analyze_batch(items)

        # broken (30) + neutral (10) + one similar (5)
        assert issues[0].priority == "high"
        assert issues[0].priority_reason == 'keyword "broken" + 1 similar issues'

    async def test_sentiment_drives_priority(self):
        items = [make_feedback("a", "Terrible checkout experience", "This is broken")]

        issues = await make_analyzer().analyze_batch(items)

        assert issues[0].sentiment_label == "negative"
        assert issues[0].sentiment_score == -0.9
        assert issues[0].priority == "critical"

    async def test_unavailable_summarizer_uses_title(self):
        summarizer = StubSummarizer(available=False)
        items = [make_feedback("a", "Search is slow", "Takes ten seconds")]

        issues = await make_analyzer(summarizer).analyze_batch(items)

        assert summarizer.calls == []
        assert issues[0].summary == "Search is slow"
        assert issues[0].category == "other"
        assert issues[0].priority == "medium"

    async def test_cache_avoids_repeat_calls(self):
        summarizer = StubSummarizer()
        analyzer = make_analyzer(summarizer)
        items = [make_feedback("a", "Export is broken"), make_feedback("b", "Search is slow")]

        await analyzer.analyze_batch(items)
        await analyzer.analyze_batch(items)

        assert summarizer.calls == ["Export is broken", "Search is slow"]
        assert analyzer.cache.get_stats()["hits"] == 2

    async def test_provider_timeout_gets_fallback(self, monkeypatch):
        items = [make_feedback("slow", "Export is broken", "Nothing downloads")]

        issues = await make_analyzer(make_slow_ai(monkeypatch)).analyze_batch(items)

        assert issues[0].priority == "low"
        assert issues[0].priority_reason == ANALYSIS_FAILED_REASON
        assert issues[0].category == "other"
        assert issues[0].summary == "Nothing downloads"

    def test_rescore_applies_new_keywords_and_skips_overrides(self):
        feedback = [make_feedback("a", "Minor typo in docs"), make_feedback("b", "Another typo here")]
        issues = [
            make_issue("issue_a", priority="low").model_copy(update={"feedback_id": "a"}),
            make_issue("issue_b", priority="low").model_copy(
                update={"feedback_id": "b", "priority_override": True}
            ),
        ]
        custom = PriorityConfig(critical_keywords=["typo"])

        changed = rescore_issues(feedback, issues, custom)

        assert [issue.id for issue in changed] == ["issue_a"]
        assert changed[0].priority == "high"
        assert changed[0].priority_reason == 'keyword "typo"'

    def test_rescore_counts_similarity_across_all_feedback(self):
        """Items analyzed in separate batches become similar once rescored together."""
        feedback = [
            make_feedback("a", "Login button broken everywhere"),
            make_feedback("b", "Login button broken today"),
        ]
        issues = [
            make_issue(f"issue_{f.id}", priority="high").model_copy(
                update={"feedback_id": f.id, "priority_reason": 'keyword "broken"'}
            )
            for f in feedback
        ]

        changed = rescore_issues(feedback, issues, PriorityConfig())

        assert [issue.id for issue in changed] == ["issue_a", "issue_b"]
        assert all(issue.priority == "high" for issue in changed)
        assert all(issue.priority_reason == 'keyword "broken" + 1 similar issues' for issue in changed)


# ============================================================================
# UNIT TESTS - THEMES
# ============================================================================

class FailingLabeler:
    async def label_themes(self, summaries):
        raise RuntimeError("labeler down")


class StaticLabeler:
    def __init__(self):
        self.seen = None

    async def label_themes(self, summaries):
        self.seen = summaries
        return {"bug": ThemeLabel(category="bug", label="Things That Break", description="Crashes and errors")}


class TestThemes:
    """Tests for category grouping and aggregate labels."""

    def test_priority_escalates_to_most_severe(self):
        issues = [make_issue("1", priority="low"), make_issue("2", priority="critical")]

        assert aggregate_priority(issues) == "critical"
        assert aggregate_priority([make_issue("3", priority="low")]) == "medium"

    def test_sentiment_majority_and_tie(self):
        majority = [make_issue("1", sentiment="negative"), make_issue("2", sentiment="negative"),
                    make_issue("3", sentiment="positive")]
        tie = [make_issue("1", sentiment="negative"), make_issue("2", sentiment="positive")]

        assert aggregate_sentiment(majority) == "negative"
        assert aggregate_sentiment(tie) == "neutral"

    async def test_groups_exclude_singletons(self):
        issues = [make_issue("1", "bug"), make_issue("2", "bug"), make_issue("3", "ux"),
                  make_issue("4", "feature"), make_issue("5", "feature"), make_issue("6", "feature")]

        themes = await analyze_themes(issues)

        assert [theme.category for theme in themes] == ["feature", "bug"]
        assert themes[0].label == "Feature"
        assert themes[0].description == "3 feature issues"
        assert themes[0].issue_count == 3

    async def test_catch_all_when_no_group_qualifies(self):
        issues = [make_issue("1", "bug"), make_issue("2", "ux")]

        themes = await analyze_themes(issues)

        assert len(themes) == 1
        assert themes[0].id == "theme_all"
        assert themes[0].label == "All Feedback"
        assert themes[0].issue_count == 2

    async def test_no_issues_no_themes(self):
        assert await analyze_themes([]) == []

    async def test_labeler_failure_falls_back(self):
        issues = [make_issue("1", "bug"), make_issue("2", "bug")]

        themes = await analyze_themes(issues, labeler=FailingLabeler())

        assert themes[0].label == "Bug"

    async def test_labeler_labels_used(self):
        labeler = StaticLabeler()
        issues = [make_issue("1", "bug", title="Crash on save"), make_issue("2", "bug")]

        themes = await analyze_themes(issues, labeler=labeler)

        assert themes[0].label == "Things That Break"
        assert themes[0].description == "Crashes and errors"
        assert labeler.seen[0].sample_titles == ["Crash on save", "Issue 2"]


# ============================================================================
# UNIT TESTS - INSIGHTS AND SUMMARY
# ============================================================================

class TestInsights:
    """Tests for templated insight rules."""

    def test_percent_rounds_half_up(self):
        assert percent(1, 8) == 13
        assert percent(1, 3) == 33
        assert percent(0, 0) == 0

    def test_no_issues_no_insights(self):
        assert generate_insights([]) == []

    def test_all_three_rules(self):
        issues = [
            make_issue("1", "bug", "critical", "negative"),
            make_issue("2", "bug", "high", "negative"),
            make_issue("3", "bug", "low", "negative"),
            make_issue("4", "ux", "low", "neutral"),
            make_issue("5", "other", "low", "positive"),
        ]

        insights = {insight.id: insight for insight in generate_insights(issues)}

        assert insights["insight_urgent"].title == "2 urgent issues need attention"
        assert insights["insight_urgent"].related_issue_ids == ["1", "2"]
        assert insights["insight_category"].title == "bug issues are most common (60%)"
        assert insights["insight_sentiment"].title == "High negative sentiment (60%)"
        assert insights["insight_sentiment"].impact == "high"

    def test_negative_ratio_of_exactly_half_does_not_trigger(self):
        issues = [make_issue(str(i), "other", "low", "negative" if i < 3 else "neutral") for i in range(6)]

        assert [insight.id for insight in generate_insights(issues)] == []

    def test_negative_sentiment_needs_five_issues(self):
        issues = [make_issue(str(i), "other", "low", "negative") for i in range(4)]

        assert generate_insights(issues) == []

    def test_other_category_never_dominant(self):
        issues = [make_issue(str(i), "other") for i in range(4)]

        assert all(insight.id != "insight_category" for insight in generate_insights(issues))

    def test_quick_summary_empty(self):
        summary = quick_summary([])

        assert summary.headline == "No feedback analyzed yet"
        assert summary.metrics == []

    def test_quick_summary_critical_headline(self):
        issues = [make_issue("1", priority="critical"), make_issue("2", priority="critical"),
                  make_issue("3", priority="low")]

        summary = quick_summary(issues)

        assert summary.headline == "2 critical issues require immediate attention"
        assert summary.recommendation == "Start with the 2 critical issues."
        assert summary.metrics[0].value == "3"

    def test_quick_summary_dominant_category(self):
        issues = [make_issue("1", "ux"), make_issue("2", "ux"), make_issue("3", "other")]

        summary = quick_summary(issues)

        assert summary.headline == "ux is the dominant theme (67%)"
        assert summary.recommendation == "Focus on ux improvements."


# ============================================================================
# UNIT TESTS - AI RESPONSE PARSING
# ============================================================================

class TestAIResponseParsing:
    """Tests for AI response parsing and validation."""

    def test_parse_valid_summary(self):
        analyzer = AIAnalyzer()
        result = analyzer._parse_summary_response('{"summary": "Login fails", "category": "Bug"}', "t")

        assert result.summary == "Login fails"
        assert result.category == "bug"
        assert result.parsed is True

    def test_parse_summary_with_markdown_wrapper(self):
        analyzer = AIAnalyzer()
        response = '```json\n{"summary": "Slow search", "category": "performance"}\n```'

        result = analyzer._parse_summary_response(response, "t")

        assert result.category == "performance"

    def test_unknown_category_becomes_other(self):
        analyzer = AIAnalyzer()
        result = analyzer._parse_summary_response('{"summary": "x", "category": "billing"}', "t")

        assert result.category == "other"

    def test_unparseable_summary_uses_title(self):
        analyzer = AIAnalyzer()
        result = analyzer._parse_summary_response("I cannot help with that", "Original title")

        assert result.summary == "Original title"
        assert result.category == "other"
        assert result.parsed is False

    def test_parse_theme_labels(self):
        analyzer = AIAnalyzer()
        response = ('Here you go: {"themes": [{"category": "bug", "label": "Login Problems", '
                    '"description": "Users cannot sign in"}]}')

        labels = analyzer._parse_theme_response(response)

        assert labels["bug"].label == "Login Problems"
        assert labels["bug"].description == "Users cannot sign in"

    def test_theme_response_without_themes(self):
        assert AIAnalyzer()._parse_theme_response('{"labels": []}') is None

    def test_extract_json_with_extra_text(self):
        assert extract_json('result: {"a": 1} done') == {"a": 1}
        assert extract_json("no json here") is None

    async def test_unconfigured_provider(self):
        """Without an API key the analyzer is unavailable and raises."""
        analyzer = AIAnalyzer()

        assert analyzer.available is False
        with pytest.raises(AIProviderError):
            await analyzer.summarize("title", "body")
        assert await analyzer.label_themes([]) is None

    async def test_slow_provider_times_out(self, monkeypatch):
        ai = make_slow_ai(monkeypatch)

        with pytest.raises(AIProviderError, match="timeout"):
            await ai.summarize("title", "body")


# ============================================================================
# UNIT TESTS - SENTIMENT AND CACHE
# ============================================================================

class TestSentimentAnalyzer:
    """The sentiment capability never raises."""

    async def test_disabled_model_is_neutral(self):
        analyzer = SentimentAnalyzer()

        result = await analyzer.polarity("This product is terrible")

        assert analyzer.available is False
        assert result.label == "neutral"
        assert result.score == 0.0

    async def test_model_load_failure_is_neutral(self, monkeypatch):
        def missing_model(name):
            raise OSError(f"{name} not found")

        monkeypatch.setattr(sentiment_analyzer, "AutoTokenizer", SimpleNamespace(from_pretrained=missing_model))
        analyzer = SentimentAnalyzer()
        analyzer.enabled = True

        result = await analyzer.polarity("This product is terrible")

        assert result == SentimentResult(label="neutral", score=0.0)
        assert analyzer._load_failed is True
        assert analyzer.available is False

    async def test_inference_error_is_neutral(self, monkeypatch):
        analyzer = SentimentAnalyzer()

        def broken_predict(text):
            raise RuntimeError("CUDA out of memory")

        monkeypatch.setattr(analyzer, "_predict", broken_predict)

        assert await analyzer.polarity("This product is terrible") == SentimentResult(label="neutral", score=0.0)

    async def test_input_truncated_to_max_chars(self, monkeypatch):
        analyzer = SentimentAnalyzer(max_chars=10)
        seen = []

        def recording_predict(text):
            seen.append(text)
            return SentimentResult(label="neutral", score=0.0)

        monkeypatch.setattr(analyzer, "_predict", recording_predict)
        await analyzer.polarity("x" * 50)

        assert seen == ["x" * 10]

    async def test_model_loaded_once_under_concurrent_calls(self, monkeypatch):
        loads = []

        class FakeModel:
            config = SimpleNamespace(id2label={0: "NEGATIVE", 1: "POSITIVE"})

            def eval(self):
                return self

            def __call__(self, **inputs):
                return SimpleNamespace(logits=torch.tensor([[0.0, 2.0]]))

        def load_tokenizer(name):
            loads.append(name)
            time.sleep(0.05)
            return lambda text, **kwargs: {}

        monkeypatch.setattr(sentiment_analyzer, "AutoTokenizer", SimpleNamespace(from_pretrained=load_tokenizer))
        monkeypatch.setattr(
            sentiment_analyzer,
            "AutoModelForSequenceClassification",
            SimpleNamespace(from_pretrained=lambda name: FakeModel())
        )
        analyzer = SentimentAnalyzer()
        analyzer.enabled = True

        results = await asyncio.gather(*(analyzer.polarity("I love it") for _ in range(4)))

        assert len(loads) == 1
        assert all(result.label == "positive" for result in results)
        assert results[0].score == pytest.approx(torch.softmax(torch.tensor([0.0, 2.0]), dim=0)[1].item())


class TestSummaryCache:

    def test_hit_after_set(self):
        cache = SummaryCache()
        cache.set("t", "b", SummaryResult(summary="s", category="ux"))

        assert cache.get("t", "b") == SummaryResult(summary="s", category="ux")
        assert cache.get("t", "other body") is None
        assert cache.get_stats()["hits"] == 1

    def test_fallback_results_not_cached(self):
        cache = SummaryCache()
        cache.set("t", "b", SummaryResult(summary="t", parsed=False))

        assert cache.get("t", "b") is None

    def test_lru_eviction(self):
        cache = SummaryCache(max_size=2)
        for title in ("a", "b", "c"):
            cache.set(title, "", SummaryResult(summary=title))

        assert cache.get("a", "") is None
        assert cache.get("c", "") is not None


# ============================================================================
# UNIT TESTS - CHAT FALLBACK AND EXPORT
# ============================================================================

class RecordingAI:
    """Chat capability that records prompts and replies with a fixed answer."""

    available = True

    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def answer(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.reply


class TestAssistant:
    """Tests for chat answers, AI-backed and rule-based."""

    async def test_no_issues(self):
        assert await answer_question("anything?", []) == NO_DATA_ANSWER

    async def test_priority_question(self):
        issues = [make_issue("1", priority="critical", title="Data leak"), make_issue("2", priority="low")]

        answer = await answer_question("What should I prioritize?", issues)

        assert answer.startswith("You have 1 critical and 0 high priority issues.")
        assert '"Data leak"' in answer

    async def test_algorithm_question(self):
        answer = await answer_question("How does the algorithm work?", [make_issue("1")])

        assert answer == SCORING_EXPLANATION

    async def test_pattern_question(self):
        issues = [make_issue("1", "bug"), make_issue("2", "bug"), make_issue("3", "ux")]

        answer = await answer_question("Any common patterns?", issues)

        assert answer == "Common patterns: bug (2), ux (1)."

    async def test_unavailable_ai_uses_fallback(self):
        answer = await answer_question("Give me a summary", [make_issue("1")], ai=AIAnalyzer())

        assert answer.startswith("1 issues analyzed.")

    async def test_ai_prompt_uses_sample_and_recent_history(self):
        ai = RecordingAI(reply="  Focus on the login issues.  ")
        issues = [make_issue(str(i), title=f"Title-{i:02d}") for i in range(20)]
        history = [
            ChatMessage(role="user" if i % 2 == 0 else "assistant", content=f"msg-{i}") for i in range(6)
        ]

        answer = await answer_question("What next?", issues, history, ai=ai)

        prompt = ai.prompts[0]
        assert answer == "Focus on the login issues."
        assert "Title-14" in prompt
        assert "Title-15" not in prompt
        assert all(f"msg-{i}" in prompt for i in range(2, 6))
        assert "msg-0" not in prompt
        assert "msg-1" not in prompt

    @pytest.mark.parametrize("ai", [RecordingAI(error=AIProviderError("rate limited")), RecordingAI(reply="   ")])
    async def test_ai_failure_or_blank_reply_uses_fallback(self, ai):
        issues = [make_issue(str(i), priority="high", title=f"Title-{i:02d}") for i in range(20)]

        answer = await answer_question("What should I prioritize?", issues, ai=ai)

        assert answer == fallback_answer("What should I prioritize?", issue_stats(issues), issues[:15])


class TestExport:

    def test_csv_header_and_rows(self):
        text = issues_to_csv([make_issue("1", title="Crash, on save")])
        lines = text.splitlines()

        assert lines[0] == ("ID,Title,Summary,Category,Priority,Priority Reason,Status,"
                            "Source,Source URL,Author,Sentiment,Created At")
        assert '"Crash, on save"' in lines[1]

    def test_json_export(self):
        data = json.loads(issues_to_json([make_issue("1")]))

        assert data[0]["id"] == "1"
        assert data[0]["tags"] == []


# ============================================================================
# RUN TESTS
# ============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
