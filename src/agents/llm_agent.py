# src/agents/llm_agent.py
from openai import OpenAI, RateLimitError
from pydantic import BaseModel, ValidationError
from typing import List, Optional, Type, TypeVar
from src.config.settings import Settings
from src.agents.keywords import extract_keywords
from src.models.schemas import FeatureMention, Sentiment, UrgencyAssessment, UrgencyLevel
import json
import math
import re
import time
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```")

MAX_FEATURE_MESSAGES = 20
TOP_FEATURES = 3


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model sometimes wraps JSON in."""
    return CODE_FENCE_PATTERN.sub("", text or "").strip()


def parse_or_default(raw: str, model: Type[T], default: T, defaults: Optional[dict] = None) -> T:
    """
    Decode a model reply as a single JSON object of the given shape.

    Keys that are missing or empty in the reply are taken from ``defaults``.
    Any decoding or validation failure returns ``default`` instead of raising.

    Args:
        raw: Raw text returned by the language model
        model: Pydantic model describing the expected object
        default: Value returned when the reply cannot be decoded
        defaults: Per-field values for keys the reply leaves out

    Returns:
        A validated ``model`` instance, or ``default``
    """
    try:
        data = json.loads(strip_code_fences(raw))
    except (json.JSONDecodeError, TypeError):
        logger.warning("Model reply is not valid JSON, using default")
        return default

    if not isinstance(data, dict):
        logger.warning(f"Expected a JSON object, got {type(data).__name__}, using default")
        return default

    if defaults:
        present = {k: v for k, v in data.items() if v is not None and v != ""}
        data = {**defaults, **present}

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Model reply failed validation, using default: {e.error_count()} error(s)")
        return default


class ChatAgent:
    """OpenAI Chatbot client."""

    def __init__(self, config: Settings):
        self.config = config
        self.client = OpenAI(
            api_key=config.openai_api_key,
            timeout=config.request_timeout_seconds,
        )
        self.model = config.openai_llm_model
        self.max_retries = config.llm_max_retries

    def chat(self, messages: List[dict]) -> str:
        """
        Send a list of messages to the OpenAI chat model and get the response.
        Uses exponential backoff retry logic for rate limit errors.

        Args:
            messages: List of message dicts (e.g., [{"role": "user", "content": "Hello"}])

        Returns:
            The assistant's reply as a string.
        """
        base_delay = 1.0

        for attempt in range(self.max_retries):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages
                )
                return response.choices[0].message.content or ""
            except RateLimitError:
                if attempt == self.max_retries - 1:
                    raise

                delay = base_delay * (2 ** attempt)
                logger.warning(f"Rate limit hit on chat completion. Retrying in {delay}s... (attempt {attempt + 1}/{self.max_retries})")
                time.sleep(delay)
        return ""

    def chat_with_system(self, system_prompt: str, prompt: str) -> str:
        """
        Send a system instruction plus a single user prompt.

        Args:
            system_prompt: Instruction for the assistant role
            prompt: The user's prompt as a string.

        Returns:
            The assistant's reply as a string.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        return self.chat(messages)


class FeedbackClassifier:
    """Sentiment, urgency and feature classification for customer feedback.

    Every public method returns a usable value; model failures and unparseable
    replies resolve to fixed fallbacks instead of raising.
    """

    SENTIMENT_SYSTEM_PROMPT = (
        'You are a sentiment analyzer. Analyze the sentiment of the following text and '
        'respond with ONLY one word: "positive", "negative", or "neutral". No explanation needed.'
    )

    URGENCY_SYSTEM_PROMPT = "You are an urgency classifier. Return only valid JSON with no markdown."

    FEATURE_SYSTEM_PROMPT = (
        "You are a feature extraction expert. Analyze customer feedback and identify specific "
        "features, products, or aspects mentioned. Return ONLY valid JSON array format with no "
        'markdown or explanation. Each object must have "feature" (string) and "mentions" (number) fields.'
    )

    URGENCY_DEFAULTS = {
        "level": UrgencyLevel.NORMAL.value,
        "confidence": 0.5,
        "reason": "No specific reason provided",
        "category": "General",
    }

    def __init__(self, config: Settings, agent: Optional[ChatAgent] = None):
        """
        Initialize the classifier.

        Args:
            config: Settings object with OpenAI configuration
            agent: Optional pre-built ChatAgent (built from config if None)
        """
        self.agent = agent or ChatAgent(config)

    def classify_sentiment(self, text: str) -> str:
        """
        Classify feedback as positive, negative or neutral.

        Args:
            text: Feedback message

        Returns:
            One of the Sentiment values; neutral when the reply is ambiguous
        """
        try:
            reply = self.agent.chat_with_system(self.SENTIMENT_SYSTEM_PROMPT, text)
        except Exception as e:
            logger.error(f"Error analyzing sentiment: {e}")
            return Sentiment.NEUTRAL.value

        normalized = (reply or "").lower().strip()
        if "positive" in normalized:
            return Sentiment.POSITIVE.value
        if "negative" in normalized:
            return Sentiment.NEGATIVE.value
        return Sentiment.NEUTRAL.value

    def classify_urgency(self, text: str, sentiment: str) -> UrgencyAssessment:
        """
        Judge how urgently a piece of feedback needs attention.

        Args:
            text: Feedback message
            sentiment: Sentiment already assigned to the message

        Returns:
            UrgencyAssessment; the sentiment-based fallback if the model fails
        """
        fallback = self.fallback_urgency(sentiment)
        prompt = f"""Analyze this customer feedback for urgency. Classify as CRITICAL, HIGH, or NORMAL.

CRITICAL = Security issues, complete service failures, data loss, payment errors, legal threats
HIGH = Major bugs, broken features, workflow blockers, angry customers
NORMAL = Feature requests, minor bugs, general feedback

Feedback: "{text}"
Sentiment: {sentiment}

Respond ONLY with JSON: {{"level": "CRITICAL|HIGH|NORMAL", "confidence": 0.0-1.0, "reason": "brief explanation", "category": "issue type"}}"""

        try:
            reply = self.agent.chat_with_system(self.URGENCY_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"Error analyzing urgency: {e}")
            return fallback

        return parse_or_default(reply, UrgencyAssessment, fallback, defaults=self.URGENCY_DEFAULTS)

    @staticmethod
    def fallback_urgency(sentiment: str) -> UrgencyAssessment:
        """Urgency used when the model cannot be reached or understood."""
        level = UrgencyLevel.HIGH if sentiment == Sentiment.NEGATIVE.value else UrgencyLevel.NORMAL
        return UrgencyAssessment(
            level=level,
            confidence=0.5,
            reason="Fallback classification based on sentiment",
            category="General",
        )

    def extract_features(self, messages: List[str], polarity: str) -> List[FeatureMention]:
        """
        Extract the top features praised or criticised across feedback messages.

        Args:
            messages: Feedback texts sharing one sentiment
            polarity: "positive" or "negative"

        Returns:
            Up to three FeatureMention objects
        """
        if not messages:
            return []

        combined = "\n- ".join(messages[:MAX_FEATURE_MESSAGES])
        if polarity == Sentiment.POSITIVE.value:
            prompt = (
                "Analyze the following positive customer feedback and extract the TOP 3 most praised "
                "features, products, or aspects. Return ONLY a JSON array of objects with \"feature\" "
                f"and \"mentions\" (count) fields. Feedback:\n- {combined}"
            )
        else:
            prompt = (
                "Analyze the following negative customer feedback and extract the TOP 3 most criticized "
                "features, products, or aspects. Return ONLY a JSON array of objects with \"feature\" "
                f"and \"mentions\" (count) fields. Feedback:\n- {combined}"
            )

        try:
            reply = self.agent.chat_with_system(self.FEATURE_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"Error extracting {polarity} features: {e}")
            return []

        features = self._parse_features(reply)
        if features is None:
            logger.warning(f"Could not parse {polarity} features, falling back to keyword counts")
            return extract_keywords(messages, top_n=TOP_FEATURES)
        return features

    def _parse_features(self, reply: str) -> Optional[List[FeatureMention]]:
        """
        Parse a JSON array of {feature, mentions}.

        An empty reply or a JSON value that is not an array yields no features;
        only text that is not JSON at all returns None.
        """
        cleaned = strip_code_fences(reply) or "[]"
        try:
            items = json.loads(cleaned)
        except json.JSONDecodeError:
            return None

        if not isinstance(items, list):
            logger.warning(f"Expected a JSON array of features, got {type(items).__name__}")
            return []

        features = []
        for item in items:
            if not isinstance(item, dict):
                continue
            feature = item.get("feature")
            if not isinstance(feature, str) or not feature:
                continue
            mentions = item.get("mentions")
            if (
                isinstance(mentions, bool)
                or not isinstance(mentions, (int, float))
                or not math.isfinite(mentions)
            ):
                mentions = 1
            features.append(FeatureMention(feature=feature, mentions=mentions))
        return features[:TOP_FEATURES]
