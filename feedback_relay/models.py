"""Database models for feedback, issues, insights and sources."""
from datetime import datetime, UTC
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow():
    return datetime.now(UTC)


def _iso(value):
    return value.isoformat() if value else None


class Source(Base):
    """A connected feedback source (GitHub repo, subreddit, CSV upload)."""

    __tablename__ = "sources"

    id = Column(String(64), primary_key=True)
    session_id = Column(String(64), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # github, reddit, csv
    config = Column(Text, nullable=False, default="{}")  # JSON
    last_synced = Column(DateTime, nullable=True)
    item_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=_utcnow)

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "config": self.config,
            "last_synced": _iso(self.last_synced),
            "item_count": self.item_count or 0,
            "created_at": _iso(self.created_at)
        }


class Feedback(Base):
    """Raw imported feedback item."""

    __tablename__ = "feedback"
    __table_args__ = (
        UniqueConstraint("session_id", "source", "external_id", name="uq_feedback_source_item"),
    )

    id = Column(String(255), primary_key=True)
    session_id = Column(String(64), nullable=False, index=True)
    source_ref = Column(String(64), ForeignKey("sources.id"), nullable=True, index=True)
    source = Column(String(20), nullable=False)
    external_id = Column(String(255), nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, default="")
    url = Column(Text, default="")
    author = Column(String(255), default="Unknown")
    created_at = Column(String(40), nullable=False)  # as reported by the source
    imported_at = Column(DateTime, default=_utcnow)

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "source": self.source,
            "source_id": self.external_id,
            "title": self.title,
            "body": self.body or "",
            "url": self.url or "",
            "author": self.author or "Unknown",
            "created_at": self.created_at
        }


class Issue(Base):
    """Analyzed, prioritized representation of a feedback item."""

    __tablename__ = "issues"

    id = Column(String(255), primary_key=True)
    session_id = Column(String(64), nullable=False, index=True)
    feedback_id = Column(String(255), ForeignKey("feedback.id"), nullable=False, unique=True)
    title = Column(Text, nullable=False)
    summary = Column(Text, default="")
    category = Column(String(30), nullable=False, default="other")
    priority = Column(String(10), nullable=False)  # critical, high, medium, low
    priority_reason = Column(Text, default="")
    priority_override = Column(Boolean, default=False)
    original_priority = Column(String(10), nullable=True)
    sentiment_score = Column(Float, default=0.0)
    sentiment_label = Column(String(10), default="neutral")
    status = Column(String(20), nullable=False, default="new")
    source = Column(String(20), nullable=False)
    source_url = Column(Text, default="")
    author = Column(String(255), default="Unknown")
    assigned_to = Column(String(255), nullable=True)
    tags = Column(JSON, default=list)
    created_at = Column(String(40), nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "feedback_id": self.feedback_id,
            "title": self.title,
            "summary": self.summary or "",
            "category": self.category or "other",
            "priority": self.priority,
            "priority_reason": self.priority_reason or "",
            "priority_override": bool(self.priority_override),
            "original_priority": self.original_priority,
            "sentiment_score": self.sentiment_score or 0.0,
            "sentiment_label": self.sentiment_label or "neutral",
            "status": self.status,
            "source": self.source,
            "source_url": self.source_url or "",
            "author": self.author or "Unknown",
            "assigned_to": self.assigned_to,
            "tags": list(self.tags or []),
            "created_at": self.created_at,
            "updated_at": _iso(self.updated_at)
        }


class Insight(Base):
    """Derived recommendation; regenerated per session."""

    __tablename__ = "insights"

    session_id = Column(String(64), primary_key=True)
    id = Column(String(64), primary_key=True)
    type = Column(String(20), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, default="")
    action = Column(Text, default="")
    impact = Column(String(10), nullable=False)
    effort = Column(String(10), nullable=False)
    related_issue_ids = Column(JSON, default=list)
    category = Column(String(30), default="")
    dismissed = Column(Boolean, default=False)
    created_at = Column(DateTime, default=_utcnow)

    def to_dict(self):
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "impact": self.impact,
            "effort": self.effort,
            "related_issue_ids": list(self.related_issue_ids or []),
            "category": self.category,
            "dismissed": bool(self.dismissed),
            "created_at": _iso(self.created_at)
        }


class PriorityKeywordConfig(Base):
    """Per-session keyword tiers for priority scoring."""

    __tablename__ = "priority_config"

    session_id = Column(String(64), primary_key=True)
    critical_keywords = Column(JSON, default=list)
    high_keywords = Column(JSON, default=list)
    medium_keywords = Column(JSON, default=list)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
