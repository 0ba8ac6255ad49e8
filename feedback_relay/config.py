"""Configuration management for the feedback relay."""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # OpenAI Configuration (summaries, theme labels, chat)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    AI_MODEL = os.getenv("AI_MODEL", "gpt-3.5-turbo")
    AI_TIMEOUT_SECONDS = int(os.getenv("AI_TIMEOUT_SECONDS", "10"))
    AI_PROVIDER_ENABLED = os.getenv("AI_PROVIDER_ENABLED", "true").lower() == "true"

    # Sentiment model configuration
    SENTIMENT_MODEL = os.getenv(
        "SENTIMENT_MODEL", "distilbert-base-uncased-finetuned-sst-2-english"
    )
    SENTIMENT_ENABLED = os.getenv("SENTIMENT_ENABLED", "true").lower() == "true"
    SENTIMENT_MAX_CHARS = int(os.getenv("SENTIMENT_MAX_CHARS", "512"))

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./relay.db")

    # Cache Configuration
    CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", "1000"))
    CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

    # Batch analysis
    ANALYSIS_DELAY_SECONDS = float(os.getenv("ANALYSIS_DELAY_SECONDS", "0.1"))
    ANALYSIS_CONCURRENCY = int(os.getenv("ANALYSIS_CONCURRENCY", "1"))

    # Source connectors
    SOURCE_FETCH_LIMIT = int(os.getenv("SOURCE_FETCH_LIMIT", "20"))
    SOURCE_TIMEOUT_SECONDS = float(os.getenv("SOURCE_TIMEOUT_SECONDS", "10"))

    # Similarity / volume scoring
    SIMILARITY_MIN_SHARED_TOKENS = int(os.getenv("SIMILARITY_MIN_SHARED_TOKENS", "3"))
    SIMILARITY_MIN_TOKEN_LENGTH = int(os.getenv("SIMILARITY_MIN_TOKEN_LENGTH", "4"))
    VOLUME_POINTS_PER_SIMILAR = int(os.getenv("VOLUME_POINTS_PER_SIMILAR", "5"))
    VOLUME_SCORE_CAP = int(os.getenv("VOLUME_SCORE_CAP", "20"))

    # Issue categories
    SUPPORTED_CATEGORIES = [
        "bug",
        "feature",
        "performance",
        "ux",
        "documentation",
        "security",
        "other"
    ]

    # Default priority keyword tiers
    CRITICAL_KEYWORDS = [
        "security", "vulnerability", "exploit", "breach", "leak", "csrf", "xss",
        "injection", "auth bypass", "data loss", "production down", "outage"
    ]
    HIGH_KEYWORDS = [
        "crash", "broken", "cannot", "blocked", "urgent", "critical", "severe",
        "failing", "error", "bug", "not working", "regression"
    ]
    MEDIUM_KEYWORDS = [
        "slow", "performance", "improve", "enhance", "feature request", "would be nice",
        "suggestion", "consider", "confusing", "unclear"
    ]

    # Urgency triggers, scored independently of the keyword tiers
    URGENCY_WORDS = [
        "urgent", "asap", "immediately", "critical", "emergency", "blocking", "showstopper"
    ]


config = Config()
