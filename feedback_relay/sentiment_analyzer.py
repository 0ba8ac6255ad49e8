"""Sentiment polarity using a pre-trained DistilBERT SST-2 model."""
import asyncio
import logging
import threading
from typing import Optional

import torch
from transformers import AutoTokenizer, AutoModelForSequenceClassification

from config import config
from schemas import SentimentResult

logger = logging.getLogger(__name__)

NEUTRAL = SentimentResult(label="neutral", score=0.0)


class SentimentAnalyzer:
    """Polarity capability backed by a local transformers model.

    The model is loaded on first use, so constructing the analyzer is cheap.
    ``polarity`` never raises: an unavailable model, a load failure or an
    inference error all resolve to neutral with a zero score.
    """

    def __init__(self, model_name: Optional[str] = None, max_chars: Optional[int] = None):
        """Initialize the sentiment analyzer.

        Args:
            model_name: Hugging Face model id (default from config)
            max_chars: Input is truncated to this many characters (default from config)
        """
        self.model_name = model_name or config.SENTIMENT_MODEL
        self.max_chars = max_chars or config.SENTIMENT_MAX_CHARS
        self.enabled = config.SENTIMENT_ENABLED
        self.tokenizer = None
        self.model = None
        self._load_failed = False
        self._load_lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self.enabled and not self._load_failed

    def _ensure_loaded(self) -> bool:
        if self.model is not None:
            return True

        # Inference runs in worker threads; only one of them may load
        with self._load_lock:
            if self.model is not None:
                return True
            if not self.available:
                return False

            try:
                logger.info(f"Loading sentiment model {self.model_name}...")
                tokenizer = AutoTokenizer.from_pretrained(self.model_name)
                model = AutoModelForSequenceClassification.from_pretrained(self.model_name)
                model.eval()  # Set to evaluation mode
            except Exception as e:
                logger.error(f"Failed to load sentiment model: {e}")
                self._load_failed = True
                return False

            self.tokenizer = tokenizer
            self.model = model
            logger.info("Sentiment model loaded successfully")
            return True

    async def polarity(self, text: str) -> SentimentResult:
        """Classify the polarity of text.

        Args:
            text: Title and body of a feedback item

        Returns:
            SentimentResult; neutral/0.0 on any failure
        """
        try:
            return await asyncio.to_thread(self._predict, text[:self.max_chars])
        except Exception as e:
            logger.error(f"Sentiment analysis failed: {e}")
            return NEUTRAL

    def _predict(self, text: str) -> SentimentResult:
        if not text.strip() or not self._ensure_loaded():
            return NEUTRAL

        inputs = self.tokenizer(
            text,
            return_tensors="pt",
            truncation=True,
            max_length=512,
            padding=True
        )

        with torch.no_grad():
            outputs = self.model(**inputs)
            probabilities = torch.nn.functional.softmax(outputs.logits, dim=-1)[0]

        # SST-2 models expose NEGATIVE / POSITIVE in id2label
        scores = {
            self.model.config.id2label[index].upper(): probabilities[index].item()
            for index in range(probabilities.shape[0])
        }
        positive = scores.get("POSITIVE", 0.0)
        negative = scores.get("NEGATIVE", 0.0)

        if positive > negative:
            result = SentimentResult(label="positive", score=positive)
        elif negative > positive:
            result = SentimentResult(label="negative", score=-negative)
        else:
            result = NEUTRAL

        logger.debug(f"Sentiment: {result.label} ({result.score:.2f})")
        return result
