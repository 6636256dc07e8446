"""
Feature analysis: the aspects customers praise most and criticise most.
"""

from typing import Optional
import logging

from src.agents.llm_agent import FeedbackClassifier
from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.models.schemas import FeatureAnalysisResult, Sentiment

logger = logging.getLogger(__name__)


class FeatureAnalysis:
    """Extracts top features from positive and negative feedback."""

    def __init__(
        self,
        config: Settings,
        feedback_store: Optional[FeedbackStore] = None,
        classifier: Optional[FeedbackClassifier] = None,
    ):
        self.config = config
        self.feedback_store = feedback_store or FeedbackStore(config)
        self.classifier = classifier or FeedbackClassifier(config)

    def analyze(self) -> FeatureAnalysisResult:
        records = self.feedback_store.list_all()
        if not records:
            return FeatureAnalysisResult()

        positive = [r.message for r in records if r.sentiment == Sentiment.POSITIVE.value]
        negative = [r.message for r in records if r.sentiment == Sentiment.NEGATIVE.value]
        logger.info(
            f"Analyzing features across {len(records)} records "
            f"({len(positive)} positive, {len(negative)} negative)"
        )

        return FeatureAnalysisResult(
            best_features=self.classifier.extract_features(positive, Sentiment.POSITIVE.value),
            worst_features=self.classifier.extract_features(negative, Sentiment.NEGATIVE.value),
            analyzed_count=len(records),
            positive_count=len(positive),
            negative_count=len(negative),
        )
