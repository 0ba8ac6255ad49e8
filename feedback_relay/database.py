"""Database connection and operations.

Every query is scoped by the opaque session id that partitions users.
"""
import json
import logging
import uuid
from datetime import datetime, UTC
from typing import List, Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import config
from models import Base, Feedback, Insight, Issue, PriorityKeywordConfig, Source
from schemas import (
    PRIORITY_LEVELS, DashboardStats, FeedbackRecord, ImportedItem, InsightData, IssueData,
    PriorityConfig, SourceData
)

logger = logging.getLogger(__name__)

# StaticPool for SQLite to avoid threading issues
_engine_kwargs = {"echo": False}
if config.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)

engine = create_async_engine(config.DATABASE_URL, **_engine_kwargs)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

_PRIORITY_RANK = case(
    {level: rank for rank, level in enumerate(PRIORITY_LEVELS, start=1)},
    value=Issue.priority,
    else_=len(PRIORITY_LEVELS) + 1
)
_IMPACT_RANK = case({"high": 1, "medium": 2, "low": 3}, value=Insight.impact, else_=4)


async def init_db():
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        yield session


def get_db_session():
    """Get database session as context manager (for CLI usage).

    Returns:
        Async context manager for database session
    """
    return AsyncSessionLocal()


def feedback_id_for(session_id: str, source: str, source_id: str) -> str:
    return f"fb_{session_id}_{source}_{source_id}"


# ============================================================================
# SOURCES
# ============================================================================

async def save_source(db: AsyncSession, session_id: str, source_type: str, source_config: dict) -> str:
    """Register a connected source and return its id."""
    source = Source(
        id=f"src_{uuid.uuid4().hex[:12]}",
        session_id=session_id,
        type=source_type,
        config=json.dumps(source_config),
        item_count=0
    )
    db.add(source)
    await db.commit()
    return source.id


async def get_all_sources(db: AsyncSession, session_id: str) -> List[SourceData]:
    result = await db.execute(
        select(Source).where(Source.session_id == session_id).order_by(Source.created_at.desc())
    )
    return [SourceData(**source.to_dict()) for source in result.scalars()]


async def get_source(db: AsyncSession, session_id: str, source_id: str) -> Optional[Source]:
    result = await db.execute(
        select(Source).where(Source.id == source_id, Source.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def update_source_sync(db: AsyncSession, source_id: str, item_count: int) -> None:
    await db.execute(
        update(Source)
        .where(Source.id == source_id)
        .values(last_synced=datetime.now(UTC), item_count=item_count)
    )
    await db.commit()


async def delete_source(db: AsyncSession, session_id: str, source_id: str) -> None:
    """Delete a source with its feedback and derived issues, all or nothing."""
    feedback_ids = select(Feedback.id).where(
        Feedback.source_ref == source_id, Feedback.session_id == session_id
    )
    try:
        await db.execute(
            delete(Issue).where(Issue.session_id == session_id, Issue.feedback_id.in_(feedback_ids))
        )
        await db.execute(
            delete(Feedback).where(Feedback.source_ref == source_id, Feedback.session_id == session_id)
        )
        await db.execute(
            delete(Source).where(Source.id == source_id, Source.session_id == session_id)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise


# ============================================================================
# FEEDBACK
# ============================================================================

async def save_feedback_items(
    db: AsyncSession,
    session_id: str,
    source_ref: Optional[str],
    items: Sequence[ImportedItem]
) -> int:
    """Store imported feedback; re-imports of the same item are ignored.

    Args:
        db: Database session
        session_id: Owning session
        source_ref: Id of the connected source
        items: Items from a connector

    Returns:
        Number of newly stored items
    """
    if not items:
        return 0

    ids = {feedback_id_for(session_id, item.source, item.source_id): item for item in items}
    result = await db.execute(select(Feedback.id).where(Feedback.id.in_(list(ids))))
    existing = set(result.scalars())

    saved = 0
    for feedback_id, item in ids.items():
        if feedback_id in existing:
            continue
        db.add(Feedback(
            id=feedback_id,
            session_id=session_id,
            source_ref=source_ref,
            source=item.source,
            external_id=item.source_id,
            title=item.title,
            body=item.body or "",
            url=item.url or "",
            author=item.author or "Unknown",
            created_at=item.created_at
        ))
        try:
            await db.commit()
            saved += 1
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error saving feedback {feedback_id}: {e}")

    return saved


async def get_all_feedback(db: AsyncSession, session_id: str) -> List[FeedbackRecord]:
    result = await db.execute(
        select(Feedback).where(Feedback.session_id == session_id).order_by(Feedback.created_at.desc())
    )
    return [FeedbackRecord(**f.to_dict()) for f in result.scalars()]


async def get_unanalyzed_feedback(db: AsyncSession, session_id: str) -> List[FeedbackRecord]:
    """Feedback of a session that has no issue yet, newest first."""
    result = await db.execute(
        select(Feedback)
        .outerjoin(Issue, Issue.feedback_id == Feedback.id)
        .where(Feedback.session_id == session_id, Issue.id.is_(None))
        .order_by(Feedback.created_at.desc())
    )
    return [FeedbackRecord(**f.to_dict()) for f in result.scalars()]


# ============================================================================
# ISSUES
# ============================================================================

def _issue_row(issue: IssueData) -> Issue:
    return Issue(**issue.model_dump(exclude={"updated_at"}))


async def save_issues_batch(db: AsyncSession, issues: Sequence[IssueData]) -> int:
    """Insert new issues; ids that already exist are skipped.

    Returns:
        Number of issues stored
    """
    if not issues:
        return 0

    result = await db.execute(select(Issue.id).where(Issue.id.in_([i.id for i in issues])))
    existing = set(result.scalars())

    saved = 0
    for issue in issues:
        if issue.id in existing:
            continue
        db.add(_issue_row(issue))
        try:
            await db.commit()
            saved += 1
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error saving issue {issue.id}: {e}")

    return saved


async def save_issue(db: AsyncSession, issue: IssueData) -> None:
    """Insert an issue, or merge the analytical fields into the existing row.

    Title, category and workflow fields of an existing issue are kept.
    Priority and reason are only replaced while the issue is not overridden.
    """
    row = await db.get(Issue, issue.id)
    if row is None:
        db.add(_issue_row(issue))
    else:
        row.summary = issue.summary
        row.sentiment_score = issue.sentiment_score
        row.sentiment_label = issue.sentiment_label
        if not row.priority_override:
            row.priority = issue.priority
            row.priority_reason = issue.priority_reason
    await db.commit()


async def get_all_issues(db: AsyncSession, session_id: str) -> List[IssueData]:
    """Issues of a session, most severe first, then newest."""
    result = await db.execute(
        select(Issue)
        .where(Issue.session_id == session_id)
        .order_by(_PRIORITY_RANK, Issue.created_at.desc())
    )
    return [IssueData(**issue.to_dict()) for issue in result.scalars()]


async def _get_issue_row(db: AsyncSession, session_id: str, issue_id: str) -> Optional[Issue]:
    result = await db.execute(
        select(Issue).where(Issue.id == issue_id, Issue.session_id == session_id)
    )
    return result.scalar_one_or_none()


async def get_issue(db: AsyncSession, session_id: str, issue_id: str) -> Optional[IssueData]:
    row = await _get_issue_row(db, session_id, issue_id)
    return IssueData(**row.to_dict()) if row else None


async def update_issue_status(db: AsyncSession, session_id: str, issue_id: str, status: str) -> bool:
    return await update_issue(db, session_id, issue_id, status=status)


async def update_issue(
    db: AsyncSession,
    session_id: str,
    issue_id: str,
    status: Optional[str] = None,
    assigned_to: Optional[str] = None,
    tags: Optional[List[str]] = None
) -> bool:
    """Update workflow fields; None leaves a field unchanged.

    An empty assigned_to clears the assignment.

    Returns:
        False if the issue does not exist
    """
    row = await _get_issue_row(db, session_id, issue_id)
    if row is None:
        return False

    if status is not None:
        row.status = status
    if assigned_to is not None:
        row.assigned_to = assigned_to or None
    if tags is not None:
        row.tags = list(tags)
    await db.commit()
    return True


async def update_issue_priority(
    db: AsyncSession,
    session_id: str,
    issue_id: str,
    new_priority: str,
    reason: Optional[str] = None
) -> bool:
    """Manually override an issue's priority.

    The first override keeps the system-computed priority as the original;
    later overrides leave that original untouched.

    Returns:
        False if the issue does not exist
    """
    row = await _get_issue_row(db, session_id, issue_id)
    if row is None:
        return False

    if not row.priority_override:
        row.original_priority = row.priority
    row.priority = new_priority
    row.priority_reason = reason or f"Manually set to {new_priority}"
    row.priority_override = True
    await db.commit()
    return True


async def reset_issue_priority(db: AsyncSession, session_id: str, issue_id: str) -> bool:
    """Restore the system-computed priority.

    Resetting an issue that was never overridden is a no-op.

    Returns:
        True if a reset happened
    """
    row = await _get_issue_row(db, session_id, issue_id)
    if row is None or not row.priority_override or not row.original_priority:
        return False

    row.priority = row.original_priority
    row.priority_reason = "Reset to system-computed priority"
    row.priority_override = False
    await db.commit()
    return True


# ============================================================================
# INSIGHTS
# ============================================================================

async def save_insights(db: AsyncSession, session_id: str, insights: Sequence[InsightData]) -> None:
    """Replace the session's insight batch."""
    try:
        await db.execute(delete(Insight).where(Insight.session_id == session_id))
        for insight in insights:
            db.add(Insight(
                session_id=session_id,
                **insight.model_dump(exclude={"dismissed", "created_at"})
            ))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise


async def get_insights(db: AsyncSession, session_id: str) -> List[InsightData]:
    """Active insights, highest impact first."""
    result = await db.execute(
        select(Insight)
        .where(Insight.session_id == session_id, Insight.dismissed.is_(False))
        .order_by(_IMPACT_RANK, Insight.created_at.desc())
    )
    return [InsightData(**insight.to_dict()) for insight in result.scalars()]


async def dismiss_insight(db: AsyncSession, session_id: str, insight_id: str) -> bool:
    result = await db.execute(
        update(Insight)
        .where(Insight.id == insight_id, Insight.session_id == session_id)
        .values(dismissed=True)
    )
    await db.commit()
    return result.rowcount > 0


# ============================================================================
# STATS
# ============================================================================

async def get_dashboard_stats(db: AsyncSession, session_id: str) -> DashboardStats:
    async def counts(column):
        result = await db.execute(
            select(column, func.count()).where(Issue.session_id == session_id).group_by(column)
        )
        return {key: count for key, count in result.all()}

    by_priority = dict.fromkeys(PRIORITY_LEVELS, 0)
    by_status = dict.fromkeys(["new", "in_review", "in_progress", "done"], 0)
    by_source = dict.fromkeys(["github", "reddit", "csv"], 0)

    for target, column in ((by_priority, Issue.priority), (by_status, Issue.status), (by_source, Issue.source)):
        for key, count in (await counts(column)).items():
            if key in target:
                target[key] = count

    return DashboardStats(
        total_issues=sum(by_priority.values()),
        by_priority=by_priority,
        by_status=by_status,
        by_source=by_source
    )


# ============================================================================
# CLEAR DATA
# ============================================================================

async def clear_all_data(db: AsyncSession, session_id: str) -> None:
    try:
        await db.execute(delete(Issue).where(Issue.session_id == session_id))
        await db.execute(delete(Insight).where(Insight.session_id == session_id))
        await db.execute(delete(Feedback).where(Feedback.session_id == session_id))
        await db.execute(delete(Source).where(Source.session_id == session_id))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise


async def clear_issues_only(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(Issue).where(Issue.session_id == session_id))
    await db.commit()


# ============================================================================
# PRIORITY CONFIG
# ============================================================================

async def get_priority_config(db: AsyncSession, session_id: str) -> Optional[PriorityConfig]:
    row = await db.get(PriorityKeywordConfig, session_id)
    if row is None:
        return None
    return PriorityConfig(
        critical_keywords=list(row.critical_keywords or []),
        high_keywords=list(row.high_keywords or []),
        medium_keywords=list(row.medium_keywords or [])
    )


async def save_priority_config(db: AsyncSession, session_id: str, keyword_config: PriorityConfig) -> None:
    row = await db.get(PriorityKeywordConfig, session_id)
    if row is None:
        row = PriorityKeywordConfig(session_id=session_id)
        db.add(row)
    row.critical_keywords = list(keyword_config.critical_keywords)
    row.high_keywords = list(keyword_config.high_keywords)
    row.medium_keywords = list(keyword_config.medium_keywords)
    await db.commit()
