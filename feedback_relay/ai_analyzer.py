"""OpenAI-backed summarization, theme labeling and chat."""
import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional
from openai import AsyncOpenAI
from config import config
from schemas import CategorySummary, SummaryResult, ThemeLabel

logger = logging.getLogger(__name__)

_FIRST_OBJECT = re.compile(r"\{[\s\S]*?\}")
_OUTER_OBJECT = re.compile(r"\{[\s\S]*\}")


class AIProviderError(Exception):
    """The AI provider is disabled, unreachable, timed out or errored."""


def extract_json(response_text: str, greedy: bool = False) -> Optional[Dict[str, Any]]:
    """Pull a JSON object out of free text.

    Handles markdown code fences and surrounding prose. ``greedy`` spans from
    the first ``{`` to the last ``}`` (for nested objects); otherwise the first
    brace-delimited substring is used.

    Returns:
        The parsed object, or None if nothing parseable was found
    """
    response_text = (response_text or "").strip()
    if response_text.startswith("```"):
        response_text = re.sub(r"^```(?:json)?|```$", "", response_text).strip()

    match = (_OUTER_OBJECT if greedy else _FIRST_OBJECT).search(response_text)
    if not match:
        return None
    try:
        result = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return result if isinstance(result, dict) else None


class AIAnalyzer:
    """Handles AI-based summaries, categories, theme labels and answers."""

    def __init__(self):
        """Initialize the AI analyzer."""
        self.client = AsyncOpenAI(api_key=config.OPENAI_API_KEY) if config.OPENAI_API_KEY else None
        self.model = config.AI_MODEL
        self.timeout = config.AI_TIMEOUT_SECONDS

    @property
    def available(self) -> bool:
        return bool(config.AI_PROVIDER_ENABLED and self.client)

    async def _complete(self, prompt: str, max_tokens: int, system: Optional[str] = None) -> str:
        """Run one chat completion.

        Raises:
            AIProviderError: If the provider is unavailable, times out or fails
        """
        if not self.available:
            raise AIProviderError("OpenAI client not configured")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            # Use asyncio timeout so a slow provider counts as a failure
            async with asyncio.timeout(self.timeout):
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.3,
                    max_tokens=max_tokens
                )
        except asyncio.TimeoutError:
            raise AIProviderError(f"AI provider timeout after {self.timeout}s")
        except Exception as e:
            raise AIProviderError(f"AI provider error: {str(e)}") from e

        return (response.choices[0].message.content or "").strip()

    # ------------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------------

    def _build_summary_prompt(self, title: str, body: str) -> str:
        categories = ", ".join(config.SUPPORTED_CATEGORIES)
        return f"""Analyze this feedback and provide a brief summary and category.

Title: {title}
Content: {(body or '')[:800]}

Respond in this exact JSON format only, no other text:
{{"summary": "one sentence summary of the core issue", "category": "one of: {categories}"}}"""

    async def summarize(self, title: str, body: str) -> SummaryResult:
        """Summarize and categorize one feedback item.

        Args:
            title: Feedback title
            body: Feedback body; only the first 800 characters are sent

        Returns:
            SummaryResult; parsed=False means the reply was unusable and the
            title / "other" fallback was applied

        Raises:
            AIProviderError: If the provider call itself fails
        """
        prompt = self._build_summary_prompt(title, body)
        response_text = await self._complete(
            prompt,
            max_tokens=200,
            system="You are a product feedback analyst. Always respond with valid JSON only."
        )
        return self._parse_summary_response(response_text, title)

    def _parse_summary_response(self, response_text: str, title: str) -> SummaryResult:
        """Validate a summary reply; never raises."""
        result = extract_json(response_text)
        if result is None:
            logger.warning("Unparseable summary response, using title")
            return SummaryResult(summary=title, category="other", parsed=False)

        summary = result.get("summary")
        category = result.get("category")
        if not isinstance(summary, str) or not summary.strip():
            summary = None
        if not isinstance(category, str) or not category.strip():
            category = None

        if summary is None and category is None:
            return SummaryResult(summary=title, category="other", parsed=False)

        category = (category or "other").strip().lower()
        if category not in config.SUPPORTED_CATEGORIES:
            category = "other"

        return SummaryResult(summary=(summary or title).strip(), category=category)

    # ------------------------------------------------------------------------
    # Theme labels
    # ------------------------------------------------------------------------

    def _build_theme_prompt(self, summaries: List[CategorySummary]) -> str:
        lines = "\n".join(
            f"- {s.category} ({s.count} issues): " + ", ".join(f'"{t}"' for t in s.sample_titles)
            for s in summaries
        )
        return f"""Analyze these feedback categories and provide clear labels.

CATEGORIES:
{lines}

For each category, provide a user-friendly label and brief description.
JSON only:
{{"themes": [{{"category": "original_category", "label": "User-Friendly Label", "description": "Brief description of what users are reporting"}}]}}"""

    async def label_themes(self, summaries: List[CategorySummary]) -> Optional[Dict[str, ThemeLabel]]:
        """Ask for friendly labels for each category.

        Returns:
            Labels keyed by category, or None if unavailable or unparseable
        """
        if not summaries or not self.available:
            return None

        try:
            response_text = await self._complete(self._build_theme_prompt(summaries), max_tokens=400)
        except AIProviderError as e:
            logger.warning(f"Theme labeling failed: {e}")
            return None

        return self._parse_theme_response(response_text)

    def _parse_theme_response(self, response_text: str) -> Optional[Dict[str, ThemeLabel]]:
        result = extract_json(response_text, greedy=True)
        if result is None or not isinstance(result.get("themes"), list):
            logger.warning("Unparseable theme response")
            return None

        labels: Dict[str, ThemeLabel] = {}
        for theme in result["themes"]:
            if not isinstance(theme, dict) or not isinstance(theme.get("category"), str):
                continue
            category = theme["category"]
            label = theme.get("label")
            description = theme.get("description")
            labels[category] = ThemeLabel(
                category=category,
                label=label if isinstance(label, str) and label else category,
                description=description if isinstance(description, str) else ""
            )
        return labels or None

    # ------------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------------

    async def answer(self, prompt: str) -> str:
        """Free-text answer for a conversational query.

        Raises:
            AIProviderError: If the provider call fails
        """
        return await self._complete(prompt, max_tokens=300)
