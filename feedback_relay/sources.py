"""Source connectors: GitHub issues, Reddit posts and CSV exports.

Connectors never raise on bad input or remote failures; they return an
ImportResult carrying a descriptive error instead, so nothing is stored.
"""
import logging
from datetime import datetime, UTC
from io import StringIO
from typing import Dict, List, Optional, Tuple

import httpx
import pandas as pd
from pydantic import ValidationError

from config import config
from schemas import ImportedItem, ImportResult

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
REDDIT_URL = "https://www.reddit.com"
USER_AGENT = "Relay-Feedback-Tool/1.0"

# Column name variants recognised in CSV headers, in match order
COLUMN_MAPPINGS: Dict[str, List[str]] = {
    "title": ["title", "subject", "summary", "name", "issue", "heading"],
    "body": ["body", "description", "content", "text", "comment", "feedback", "message", "details"],
    "author": ["author", "user", "username", "email", "customer", "reporter", "name", "from"],
    "url": ["url", "link", "href", "source_url", "reference"],
    "created_at": ["created", "date", "timestamp", "time", "created_at", "submitted", "datetime"],
    "id": ["id", "ticket", "number", "ref", "reference", "issue_id"],
}


def _client(client: Optional[httpx.AsyncClient]) -> httpx.AsyncClient:
    return client or httpx.AsyncClient(timeout=config.SOURCE_TIMEOUT_SECONDS)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def parse_repo_reference(text: str) -> Optional[Tuple[str, str]]:
    """Parse ``owner/repo`` or a GitHub URL.

    Returns:
        (owner, repo), or None if the reference is not recognised
    """
    reference = (text or "").strip()
    for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
        if reference.startswith(prefix):
            reference = reference[len(prefix):]
            break

    parts = [part for part in reference.split("/") if part]
    if len(parts) < 2:
        return None
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[:-4]
    return owner, repo


async def fetch_github_issues(
    owner: str,
    repo: str,
    limit: int = 20,
    client: Optional[httpx.AsyncClient] = None
) -> ImportResult:
    """Fetch recent issues of a public repository; pull requests are skipped."""
    url = f"{GITHUB_API_URL}/repos/{owner}/{repo}/issues"
    params = {
        "state": "all",
        "per_page": min(limit, 100),
        "sort": "created",
        "direction": "desc",
    }
    headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": USER_AGENT}

    http = _client(client)
    try:
        response = await http.get(url, params=params, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"GitHub fetch error: {e}")
        return ImportResult(error="Failed to connect to GitHub. Please check your connection.")
    finally:
        if client is None:
            await http.aclose()

    if response.status_code == 404:
        return ImportResult(error="Repository not found. Make sure it exists and is public.")
    if response.status_code == 403:
        return ImportResult(error="Rate limited. Please try again later.")
    if response.status_code != 200:
        return ImportResult(error=f"GitHub API error: {response.status_code}")

    items = []
    for issue in response.json():
        if "pull_request" in issue:
            continue
        items.append(ImportedItem(
            source="github",
            source_id=f"{owner}/{repo}#{issue['number']}",
            title=issue.get("title") or "Untitled",
            body=issue.get("body") or "",
            url=issue.get("html_url") or "",
            author=(issue.get("user") or {}).get("login") or "unknown",
            created_at=issue.get("created_at") or _now_iso()
        ))

    logger.info(f"Fetched {len(items)} issues from {owner}/{repo}")
    return ImportResult(items=items)


async def fetch_reddit_posts(
    subreddit: str,
    search_query: Optional[str] = None,
    limit: int = 20,
    client: Optional[httpx.AsyncClient] = None
) -> ImportResult:
    """Fetch recent posts of a public subreddit, optionally filtered by a search."""
    subreddit = subreddit.strip().removeprefix("r/").strip("/")
    if search_query:
        url = f"{REDDIT_URL}/r/{subreddit}/search.json"
        params = {"q": search_query, "restrict_sr": 1, "limit": limit, "sort": "new"}
    else:
        url = f"{REDDIT_URL}/r/{subreddit}/new.json"
        params = {"limit": limit}

    http = _client(client)
    try:
        response = await http.get(url, params=params, headers={"User-Agent": USER_AGENT})
    except httpx.HTTPError as e:
        logger.error(f"Reddit fetch error: {e}")
        return ImportResult(error="Failed to connect to Reddit. Please check your connection.")
    finally:
        if client is None:
            await http.aclose()

    if response.status_code == 404:
        return ImportResult(error="Subreddit not found or is private.")
    if response.status_code == 403:
        return ImportResult(error="Access denied. The subreddit may be private or banned.")
    if response.status_code == 429:
        return ImportResult(error="Rate limited by Reddit. Please try again later.")
    if response.status_code != 200:
        return ImportResult(error=f"Reddit API error: {response.status_code}")

    posts = (response.json().get("data") or {}).get("children") or []
    items = []
    for post in posts:
        data = post.get("data") or {}
        created = data.get("created_utc")
        items.append(ImportedItem(
            source="reddit",
            source_id=str(data.get("id")),
            title=data.get("title") or "Untitled",
            body=data.get("selftext") or "",
            url=f"https://reddit.com{data.get('permalink', '')}",
            author=data.get("author") or "unknown",
            created_at=datetime.fromtimestamp(created, UTC).isoformat() if created else _now_iso()
        ))

    logger.info(f"Fetched {len(items)} posts from r/{subreddit}")
    return ImportResult(items=items)


def find_column(headers: List[str], target: str) -> Optional[str]:
    """First header containing one of the target's name variants."""
    lowered = [(header, header.lower().strip()) for header in headers]
    for variant in COLUMN_MAPPINGS.get(target, [target]):
        for header, lower in lowered:
            if variant in lower:
                return header
    return None


def _parse_date(value: str) -> str:
    if not value:
        return _now_iso()
    parsed = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(parsed):
        return _now_iso()
    return parsed.isoformat()


def parse_csv_to_feedback(content: str) -> ImportResult:
    """Parse a CSV export into feedback items.

    A title or a body column is required; other columns are optional and
    detected by name.
    """
    try:
        df = pd.read_csv(StringIO(content), dtype=str, keep_default_na=False, skipinitialspace=True)
    except pd.errors.EmptyDataError:
        return ImportResult(error="Empty CSV file")
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        logger.error(f"CSV parsing error: {e}")
        return ImportResult(error="Failed to parse CSV file. Please check the format.")

    headers = [str(column) for column in df.columns]
    if not headers:
        return ImportResult(error="Empty CSV file")

    columns = {target: find_column(headers, target) for target in COLUMN_MAPPINGS}
    if columns["title"] is None and columns["body"] is None:
        return ImportResult(
            error=f"Could not find title or body column. Found columns: {', '.join(headers)}"
        )

    def cell(row, target: str) -> str:
        column = columns[target]
        return str(row[column]).strip() if column is not None else ""

    items = []
    for index, row in enumerate(df.to_dict(orient="records"), start=1):
        body = cell(row, "body")
        title = cell(row, "title") if columns["title"] else body[:100]
        if not title and not body:
            continue
        try:
            items.append(ImportedItem(
                source="csv",
                source_id=cell(row, "id") or f"row_{index}",
                title=title or "Untitled",
                body=body,
                url=cell(row, "url"),
                author=cell(row, "author") or "Unknown",
                created_at=_parse_date(cell(row, "created_at"))
            ))
        except ValidationError as e:
            logger.warning(f"Skipping CSV row {index}: {e}")

    return ImportResult(items=items)
