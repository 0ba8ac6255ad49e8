"""Pydantic schemas for request/response validation and analysis results."""
from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Dict, List, Literal, Optional

from config import config

Priority = Literal["critical", "high", "medium", "low"]
SentimentLabel = Literal["negative", "neutral", "positive"]
IssueStatus = Literal["new", "in_review", "in_progress", "done"]
FeedbackSource = Literal["github", "reddit", "csv"]
InsightType = Literal["quick_win", "investigate", "strategic", "monitor"]
ImpactLevel = Literal["high", "medium", "low"]

PRIORITY_LEVELS = ["critical", "high", "medium", "low"]


# ============================================================================
# FEEDBACK
# ============================================================================

class FeedbackRecord(BaseModel):
    """A raw imported feedback item, as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    source: FeedbackSource
    source_id: str
    title: str
    body: str = ""
    url: str = ""
    author: str = "Unknown"
    created_at: str


class ImportedItem(BaseModel):
    """Feedback item produced by a source connector, before it is stored."""

    source: FeedbackSource
    source_id: str
    title: str = Field(..., min_length=1)
    body: str = ""
    url: str = ""
    author: str = "Unknown"
    created_at: str


class ImportResult(BaseModel):
    """Connector outcome: items, or a descriptive error."""

    items: List[ImportedItem] = Field(default_factory=list)
    error: Optional[str] = None


# ============================================================================
# PRIORITY SCORING
# ============================================================================

class PriorityConfig(BaseModel):
    """Keyword tiers used by the priority scorer."""

    critical_keywords: List[str] = Field(default_factory=lambda: list(config.CRITICAL_KEYWORDS))
    high_keywords: List[str] = Field(default_factory=lambda: list(config.HIGH_KEYWORDS))
    medium_keywords: List[str] = Field(default_factory=lambda: list(config.MEDIUM_KEYWORDS))


class PriorityFactors(BaseModel):
    """Point contributions behind a priority decision."""

    model_config = ConfigDict(frozen=True)

    keyword_score: int = 0
    sentiment_score: int = 0
    volume_score: int = 0
    urgency_score: int = 0

    @computed_field
    @property
    def total_score(self) -> int:
        return self.keyword_score + self.sentiment_score + self.volume_score + self.urgency_score


class PriorityResult(BaseModel):
    """Output of the priority scorer."""

    model_config = ConfigDict(frozen=True)

    priority: Priority
    reason: str
    factors: PriorityFactors


# ============================================================================
# CAPABILITY OUTCOMES
# ============================================================================

class SentimentResult(BaseModel):
    """Polarity label with a signed confidence score (-1..1)."""

    label: SentimentLabel = "neutral"
    score: float = 0.0


class SummaryResult(BaseModel):
    """Summary/category outcome; parsed is False when the fallback was used."""

    summary: str
    category: str = "other"
    parsed: bool = True


class ThemeLabel(BaseModel):
    category: str
    label: str
    description: str


class CategorySummary(BaseModel):
    """What the theme labeler sees for one category."""

    category: str
    count: int
    sample_titles: List[str]


# ============================================================================
# ISSUES, THEMES, INSIGHTS
# ============================================================================

class IssueData(BaseModel):
    """An analyzed issue, as produced by analysis and read back from storage."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    feedback_id: str
    title: str
    summary: str
    category: str = "other"
    priority: Priority = "low"
    priority_reason: str = "Standard priority"
    priority_override: bool = False
    original_priority: Optional[Priority] = None
    sentiment_score: float = 0.0
    sentiment_label: SentimentLabel = "neutral"
    status: IssueStatus = "new"
    source: FeedbackSource
    source_url: str = ""
    author: str = "Unknown"
    assigned_to: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: Optional[str] = None


class ThemeGroup(BaseModel):
    id: str
    category: str
    label: str
    description: str
    issue_count: int
    issues: List[IssueData]
    sentiment: SentimentLabel
    priority: Priority


class InsightData(BaseModel):
    """A templated recommendation derived from aggregate issue statistics."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    type: InsightType
    title: str
    description: str
    action: str
    impact: ImpactLevel
    effort: ImpactLevel
    related_issue_ids: List[str] = Field(default_factory=list)
    category: str
    dismissed: bool = False
    created_at: Optional[str] = None


class QuickSummaryMetric(BaseModel):
    label: str
    value: str


class QuickSummary(BaseModel):
    headline: str
    metrics: List[QuickSummaryMetric] = Field(default_factory=list)
    recommendation: str


class DashboardStats(BaseModel):
    total_issues: int
    by_priority: Dict[str, int]
    by_status: Dict[str, int]
    by_source: Dict[str, int]


class SourceData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: FeedbackSource
    config: str
    last_synced: Optional[str] = None
    item_count: int = 0
    created_at: Optional[str] = None


# ============================================================================
# REQUESTS
# ============================================================================

class GitHubSourceRequest(BaseModel):
    """Request schema for connecting a GitHub repository."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"repo": "octocat/hello-world", "limit": 20}}
    )

    repo: str = Field(..., min_length=1, description="owner/repo or a GitHub URL")
    limit: int = Field(config.SOURCE_FETCH_LIMIT, ge=1, le=100)


class RedditSourceRequest(BaseModel):
    """Request schema for connecting a subreddit."""

    subreddit: str = Field(..., min_length=1)
    query: Optional[str] = None
    limit: int = Field(config.SOURCE_FETCH_LIMIT, ge=1, le=100)


class StatusUpdateRequest(BaseModel):
    status: IssueStatus


class IssueUpdateRequest(BaseModel):
    status: Optional[IssueStatus] = None
    assigned_to: Optional[str] = None
    tags: Optional[List[str]] = None


class PriorityOverrideRequest(BaseModel):
    priority: Priority
    reason: Optional[str] = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request schema for a conversational query."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"message": "What should I prioritize?", "history": []}}
    )

    message: str = Field(..., min_length=1, max_length=2000)
    history: List[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str


class AnalyzeResponse(BaseModel):
    analyzed: int
    issues: List[IssueData]
    insights: List[InsightData]
