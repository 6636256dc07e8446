"""Unit tests for data schemas."""
import pytest
from datetime import datetime
from pydantic import ValidationError
from src.models.schemas import (
    EmbeddingRecord,
    FeatureAnalysisResult,
    FeedbackCreate,
    FeedbackRecord,
    FeedbackStats,
    SentimentCount,
    SourceCount,
    UrgencyAssessment,
    WorkflowPayload,
)


class TestFeedbackCreate:
    """Test FeedbackCreate validation."""

    def test_valid_submission(self):
        feedback = FeedbackCreate(source="Discord", message="The app keeps crashing", author="Bob")
        assert feedback.source == "Discord"
        assert feedback.author == "Bob"
        assert feedback.category is None

    @pytest.mark.parametrize("field", ["source", "message"])
    def test_blank_required_field_rejected(self, field):
        data = {"source": "Discord", "message": "hello"}
        data[field] = "   "
        with pytest.raises(ValidationError):
            FeedbackCreate(**data)

    def test_missing_message_rejected(self):
        with pytest.raises(ValidationError):
            FeedbackCreate(source="Discord")

    def test_empty_optional_fields_become_none(self):
        feedback = FeedbackCreate(source="X", message="hi", author="", category="")
        assert feedback.author is None
        assert feedback.category is None


class TestFeedbackRecord:
    """Test FeedbackRecord schema."""

    def test_feedback_record_creation(self):
        record = FeedbackRecord(
            id=7,
            source="Support",
            message="Great product!",
            timestamp=datetime.now(),
            sentiment="positive",
        )
        assert record.id == 7
        assert record.sentiment == "positive"
        assert record.category is None
        assert record.author is None

    def test_sentiment_outside_closed_set_rejected(self):
        with pytest.raises(ValidationError):
            FeedbackRecord(
                id=1,
                source="Support",
                message="hmm",
                timestamp=datetime.now(),
                sentiment="mixed",
            )


class TestEmbeddingRecord:
    """Test EmbeddingRecord schema."""

    def test_embedding_record_creation(self):
        record = EmbeddingRecord(
            feedback_id="12",
            vector=[0.1] * 768,
            source="Discord",
            sentiment="negative",
            model="text-embedding-3-small",
            created_at=datetime.now(),
        )
        assert record.feedback_id == "12"
        assert len(record.vector) == 768
        assert record.sentiment == "negative"

    def test_empty_vector_rejected(self):
        with pytest.raises(ValidationError):
            EmbeddingRecord(
                feedback_id="12",
                vector=[],
                source="Discord",
                sentiment="neutral",
                model="m",
                created_at=datetime.now(),
            )


class TestUrgencyAssessment:
    """Test UrgencyAssessment schema."""

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            UrgencyAssessment(level="HIGH", confidence=1.5, reason="r", category="c")

        with pytest.raises(ValidationError):
            UrgencyAssessment(level="HIGH", confidence=-0.1, reason="r", category="c")

    def test_unknown_level_rejected(self):
        with pytest.raises(ValidationError):
            UrgencyAssessment(level="MEDIUM", confidence=0.5, reason="r", category="c")

    def test_level_stored_as_value(self):
        urgency = UrgencyAssessment(level="CRITICAL", confidence=0.9, reason="r", category="c")
        assert urgency.level == "CRITICAL"


class TestSerializedShapes:
    """JSON keys the HTTP API exposes."""

    def test_stats_use_camel_case_keys(self):
        stats = FeedbackStats(
            by_source=[SourceCount(source="Discord", count=2)],
            by_sentiment=[SentimentCount(sentiment="negative", count=2)],
            total=2,
        )
        dumped = stats.model_dump(by_alias=True)
        assert dumped == {
            "bySource": [{"source": "Discord", "count": 2}],
            "bySentiment": [{"sentiment": "negative", "count": 2}],
            "total": 2,
        }

    def test_feature_analysis_keys(self):
        dumped = FeatureAnalysisResult().model_dump(by_alias=True)
        assert set(dumped) == {
            "bestFeatures", "worstFeatures", "analyzedCount", "positiveCount", "negativeCount"
        }

    def test_workflow_payload_round_trips_as_json(self):
        payload = WorkflowPayload(feedback_id=3, message="m", source="s", sentiment="negative")
        restored = WorkflowPayload.model_validate_json(payload.model_dump_json())
        assert restored == payload
        assert restored.author == "Anonymous"
