"""Main FastAPI application for feedback relay."""
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import Cookie, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import config
from database import (
    init_db, get_db, save_source, get_all_sources, get_source, update_source_sync, delete_source,
    save_feedback_items, get_all_feedback, get_unanalyzed_feedback, save_issues_batch, save_issue,
    get_all_issues, get_issue, update_issue, update_issue_status, update_issue_priority,
    reset_issue_priority, save_insights, get_insights, dismiss_insight, get_dashboard_stats, clear_all_data,
    clear_issues_only, get_priority_config, save_priority_config
)
from schemas import (
    AnalyzeResponse, ChatRequest, ChatResponse, DashboardStats, GitHubSourceRequest, ImportResult,
    InsightData, IssueData, IssueUpdateRequest, PriorityConfig, PriorityOverrideRequest,
    QuickSummary, RedditSourceRequest, SourceData, StatusUpdateRequest, ThemeGroup
)
from ai_analyzer import AIAnalyzer
from sentiment_analyzer import SentimentAnalyzer
from cache import SummaryCache
from analysis import FeedbackAnalyzer, rescore_issues
from assistant import answer_question
from export import issues_to_csv, issues_to_json
from insights import generate_insights, quick_summary
from sources import fetch_github_issues, fetch_reddit_posts, parse_csv_to_feedback, parse_repo_reference
from themes import analyze_themes

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SESSION_COOKIE = "relay_session"
SESSION_TTL = 60 * 60 * 24 * 30  # 30 days

# Initialize services
ai_analyzer = AIAnalyzer()
sentiment_analyzer = SentimentAnalyzer()
summary_cache = SummaryCache()
feedback_analyzer = FeedbackAnalyzer(ai_analyzer, sentiment_analyzer, summary_cache)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Initializing database...")
    await init_db()
    logger.info("Application started successfully")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Feedback Relay API",
    description="Priority scoring, theme clustering and insights for product feedback",
    version="2.0.0",
    lifespan=lifespan
)


async def get_session_id(
    response: Response,
    relay_session: Optional[str] = Cookie(default=None)
) -> str:
    """Session partition for the caller.

    Issues an opaque session cookie on first contact. This only separates
    data between browsers; it is not authentication.
    """
    if relay_session:
        return relay_session

    session_id = str(uuid.uuid4())
    _set_session_cookie(response, session_id)
    return session_id


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        SESSION_COOKIE, session_id, max_age=SESSION_TTL, httponly=True, samesite="lax"
    )


async def _store_import(
    db: AsyncSession,
    session_id: str,
    source_type: str,
    source_config: dict,
    result: ImportResult
) -> dict:
    if result.error:
        logger.warning(f"{source_type} import failed: {result.error}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    source_id = await save_source(db, session_id, source_type, source_config)
    saved = await save_feedback_items(db, session_id, source_id, result.items)
    await update_source_sync(db, source_id, len(result.items))
    logger.info(f"Imported {len(result.items)} {source_type} items ({saved} new)")

    return {"source_id": source_id, "imported": len(result.items), "new_items": saved}


async def _regenerate_insights(db: AsyncSession, session_id: str) -> List[InsightData]:
    issues = await get_all_issues(db, session_id)
    await save_insights(db, session_id, generate_insights(issues))
    return await get_insights(db, session_id)


def _log_progress(completed: int, total: int) -> None:
    logger.info(f"Analysis progress: {completed}/{total}")


# ============================================================================
# SOURCES
# ============================================================================

@app.get("/api/sources", response_model=List[SourceData])
async def list_sources(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await get_all_sources(db, session_id)


@app.post("/api/sources/github", status_code=status.HTTP_201_CREATED)
async def add_github_source(
    request: GitHubSourceRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Import issues from a public GitHub repository."""
    reference = parse_repo_reference(request.repo)
    if reference is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid repository. Use owner/repo or a GitHub URL."
        )

    owner, repo = reference
    result = await fetch_github_issues(owner, repo, request.limit)
    return await _store_import(
        db, session_id, "github", {"owner": owner, "repo": repo, "fetch_limit": request.limit}, result
    )


@app.post("/api/sources/reddit", status_code=status.HTTP_201_CREATED)
async def add_reddit_source(
    request: RedditSourceRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Import posts from a public subreddit."""
    subreddit = request.subreddit.strip().removeprefix("r/").strip("/")
    if not subreddit:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Subreddit required")

    result = await fetch_reddit_posts(subreddit, request.query or None, request.limit)
    source_config = {"subreddit": subreddit, "search_query": request.query or "", "fetch_limit": request.limit}
    return await _store_import(db, session_id, "reddit", source_config, result)


@app.post("/api/sources/csv", status_code=status.HTTP_201_CREATED)
async def add_csv_source(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Import feedback rows from an uploaded CSV file."""
    raw = await file.read()
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file must be UTF-8 encoded")

    result = parse_csv_to_feedback(content)
    if not result.error and not result.items:
        result = ImportResult(error="CSV file contains no feedback rows")

    source_config = {"filename": file.filename, "row_count": len(result.items)}
    return await _store_import(db, session_id, "csv", source_config, result)


@app.post("/api/sources/{source_id}/sync")
async def sync_source(
    source_id: str,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Re-fetch a GitHub or Reddit source; already imported items are skipped."""
    source = await get_source(db, session_id, source_id)
    if source is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found")

    source_config = json.loads(source.config or "{}")
    limit = source_config.get("fetch_limit", config.SOURCE_FETCH_LIMIT)
    if source.type == "github":
        result = await fetch_github_issues(source_config["owner"], source_config["repo"], limit)
    elif source.type == "reddit":
        result = await fetch_reddit_posts(
            source_config["subreddit"], source_config.get("search_query") or None, limit
        )
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV sources cannot be synced")

    if result.error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    saved = await save_feedback_items(db, session_id, source_id, result.items)
    await update_source_sync(db, source_id, len(result.items))
    return {"source_id": source_id, "imported": len(result.items), "new_items": saved}


@app.delete("/api/sources/{source_id}")
async def remove_source(
    source_id: str,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Delete a source together with its feedback and issues."""
    if await get_source(db, session_id, source_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Source not found")
    await delete_source(db, session_id, source_id)
    return {"success": True}


# ============================================================================
# ANALYSIS
# ============================================================================

@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Analyze all feedback without an issue, then regenerate insights."""
    feedback = await get_unanalyzed_feedback(db, session_id)
    if not feedback:
        return AnalyzeResponse(analyzed=0, issues=[], insights=await get_insights(db, session_id))

    keyword_config = await get_priority_config(db, session_id)
    logger.info(f"Analyzing {len(feedback)} feedback items")
    issues = await feedback_analyzer.analyze_batch(feedback, keyword_config, on_progress=_log_progress)

    await save_issues_batch(db, issues)
    insights = await _regenerate_insights(db, session_id)

    return AnalyzeResponse(analyzed=len(issues), issues=issues, insights=insights)


# ============================================================================
# ISSUES
# ============================================================================

@app.get("/api/issues", response_model=List[IssueData])
async def list_issues(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await get_all_issues(db, session_id)


@app.patch("/api/issues/{issue_id}/status")
async def set_issue_status(
    issue_id: str,
    request: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    if not await update_issue_status(db, session_id, issue_id, request.status):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return {"success": True}


@app.patch("/api/issues/{issue_id}", response_model=IssueData)
async def edit_issue(
    issue_id: str,
    request: IssueUpdateRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Update status, assignment or tags."""
    updated = await update_issue(
        db, session_id, issue_id,
        status=request.status, assigned_to=request.assigned_to, tags=request.tags
    )
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return await get_issue(db, session_id, issue_id)


@app.patch("/api/issues/{issue_id}/priority", response_model=IssueData)
async def override_priority(
    issue_id: str,
    request: PriorityOverrideRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Manually set an issue's priority."""
    if not await update_issue_priority(db, session_id, issue_id, request.priority, request.reason):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    return await get_issue(db, session_id, issue_id)


@app.post("/api/issues/{issue_id}/priority/reset", response_model=IssueData)
async def reset_priority(
    issue_id: str,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Restore the system-computed priority; a no-op if never overridden."""
    if await get_issue(db, session_id, issue_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Issue not found")
    await reset_issue_priority(db, session_id, issue_id)
    return await get_issue(db, session_id, issue_id)


@app.post("/api/issues/rescore")
async def rescore(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Recompute priorities of non-overridden issues with the current keyword tiers.

    Similar-issue counts are taken over all of the session's feedback, so
    the volume term can differ from the one computed at analysis time.
    """
    keyword_config = await get_priority_config(db, session_id)
    feedback = await get_all_feedback(db, session_id)
    issues = await get_all_issues(db, session_id)

    changed = rescore_issues(feedback, issues, keyword_config)
    for issue in changed:
        await save_issue(db, issue)
    await _regenerate_insights(db, session_id)

    return {"rescored": len(changed)}


# ============================================================================
# THEMES, SUMMARY, STATS
# ============================================================================

@app.get("/api/themes", response_model=List[ThemeGroup])
async def list_themes(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    issues = await get_all_issues(db, session_id)
    return await analyze_themes(issues, labeler=ai_analyzer)


@app.get("/api/summary", response_model=QuickSummary)
async def summary(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return quick_summary(await get_all_issues(db, session_id))


@app.get("/api/stats", response_model=DashboardStats)
async def stats(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await get_dashboard_stats(db, session_id)


# ============================================================================
# INSIGHTS
# ============================================================================

@app.get("/api/insights", response_model=List[InsightData])
async def list_insights(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await get_insights(db, session_id)


@app.post("/api/insights/{insight_id}/dismiss")
async def dismiss(
    insight_id: str,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    if not await dismiss_insight(db, session_id, insight_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Insight not found")
    return {"success": True}


@app.post("/api/insights/regenerate", response_model=List[InsightData])
async def regenerate_insights(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await _regenerate_insights(db, session_id)


# ============================================================================
# CHAT
# ============================================================================

@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Answer a question about the session's issues."""
    issues = await get_all_issues(db, session_id)
    answer = await answer_question(request.message, issues, request.history, ai=ai_analyzer)
    return ChatResponse(response=answer)


# ============================================================================
# PRIORITY CONFIG
# ============================================================================

@app.get("/api/priority-config", response_model=PriorityConfig)
async def read_priority_config(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    return await get_priority_config(db, session_id) or PriorityConfig()


@app.put("/api/priority-config", response_model=PriorityConfig)
async def write_priority_config(
    request: PriorityConfig,
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Replace the keyword tiers; run /api/issues/rescore to apply them."""
    await save_priority_config(db, session_id, request)
    return request


# ============================================================================
# EXPORT AND DATA MANAGEMENT
# ============================================================================

@app.get("/api/export")
async def export_issues(
    request: Request,
    format: str = Query("csv", pattern="^(csv|json)$"),
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    issues = await get_all_issues(db, session_id)
    if format == "json":
        response = Response(
            content=issues_to_json(issues),
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="relay-issues.json"'}
        )
    else:
        response = Response(
            content=issues_to_csv(issues),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="relay-issues.csv"'}
        )

    # A returned Response bypasses the dependency's cookie, so issue it here
    if not request.cookies.get(SESSION_COOKIE):
        _set_session_cookie(response, session_id)
    return response


@app.post("/api/clear")
async def clear(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Delete every source, feedback item, issue and insight of the session."""
    await clear_all_data(db, session_id)
    return {"success": True}


@app.post("/api/clear-issues")
async def clear_issues(
    db: AsyncSession = Depends(get_db),
    session_id: str = Depends(get_session_id)
):
    """Delete issues only, so the feedback can be analyzed again."""
    await clear_issues_only(db, session_id)
    return {"success": True}


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns system status including AI availability and cache stats.
    """
    return {
        "status": "healthy",
        "ai_provider": "healthy" if ai_analyzer.available else "degraded",
        "sentiment_model": "enabled" if sentiment_analyzer.available else "disabled",
        "cache_stats": summary_cache.get_stats()
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Feedback Relay API",
        "version": "2.0.0",
        "endpoints": {
            "import": "POST /api/sources/{github|reddit|csv}",
            "analyze": "POST /api/analyze",
            "issues": "GET /api/issues",
            "themes": "GET /api/themes",
            "insights": "GET /api/insights",
            "chat": "POST /api/chat",
            "export": "GET /api/export?format=csv|json",
            "health": "GET /health"
        }
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
