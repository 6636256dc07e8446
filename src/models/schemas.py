from pydantic import BaseModel, Field, ConfigDict, field_validator
from datetime import datetime
from typing import Optional, List, Union
from enum import Enum


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UrgencyLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"


NOTIFY_LEVELS = (UrgencyLevel.CRITICAL.value, UrgencyLevel.HIGH.value)


class FeedbackCreate(BaseModel):
    """Inbound feedback submission."""
    source: str
    message: str
    author: Optional[str] = None
    category: Optional[str] = None

    @field_validator("source", "message")
    @classmethod
    def _required_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("author", "category")
    @classmethod
    def _empty_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class FeedbackRecord(BaseModel):
    """Persisted customer feedback row."""
    model_config = ConfigDict(use_enum_values=True)

    id: int
    source: str
    message: str
    timestamp: datetime
    sentiment: Sentiment
    category: Optional[str] = None
    author: Optional[str] = None


class EmbeddingRecord(BaseModel):
    """Embedding vector for feedback, keyed by the string form of the feedback id."""
    model_config = ConfigDict(use_enum_values=True)

    feedback_id: str
    vector: List[float] = Field(..., min_length=1)
    source: str
    sentiment: Sentiment
    model: str
    created_at: datetime


class VectorMetadata(BaseModel):
    source: Optional[str] = None
    sentiment: Optional[str] = None
    timestamp: Optional[datetime] = None


class VectorMatch(BaseModel):
    """A ranked hit from the vector index."""
    id: str
    score: float
    metadata: Optional[VectorMetadata] = None


class SimilarityScore(BaseModel):
    id: str
    score: float


class SimilarityResult(BaseModel):
    original: FeedbackRecord
    similar: List[FeedbackRecord] = Field(default_factory=list)
    scores: List[SimilarityScore] = Field(default_factory=list)


class SourceCount(BaseModel):
    source: str
    count: int


class SentimentCount(BaseModel):
    sentiment: Optional[str] = None
    count: int


class FeedbackStats(BaseModel):
    """Aggregate counts over the feedback table."""
    model_config = ConfigDict(populate_by_name=True)

    by_source: List[SourceCount] = Field(default_factory=list, alias="bySource")
    by_sentiment: List[SentimentCount] = Field(default_factory=list, alias="bySentiment")
    total: int = 0


class BackfillResult(BaseModel):
    processed: int = 0
    errors: int = 0
    total: int = 0


class UrgencyAssessment(BaseModel):
    """Urgency judgment for a single feedback message. Never persisted."""
    model_config = ConfigDict(use_enum_values=True)

    level: UrgencyLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    category: str


class FeatureMention(BaseModel):
    feature: str
    mentions: Union[int, float]


class FeatureAnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    best_features: List[FeatureMention] = Field(default_factory=list, alias="bestFeatures")
    worst_features: List[FeatureMention] = Field(default_factory=list, alias="worstFeatures")
    analyzed_count: int = Field(0, alias="analyzedCount")
    positive_count: int = Field(0, alias="positiveCount")
    negative_count: int = Field(0, alias="negativeCount")


class WorkflowState(str, Enum):
    START = "START"
    URGENCY_ANALYZED = "URGENCY_ANALYZED"
    NOTIFY_SENT = "NOTIFY_SENT"
    SKIPPED = "SKIPPED"
    DONE = "DONE"
    FAILED = "FAILED"


class WorkflowPayload(BaseModel):
    """Parameters handed to a notification workflow run."""
    model_config = ConfigDict(use_enum_values=True)

    feedback_id: int
    message: str
    source: str
    author: str = "Anonymous"
    sentiment: Sentiment


class WorkflowRun(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    instance_id: str
    payload: WorkflowPayload
    state: WorkflowState
    updated_at: Optional[datetime] = None


class WorkflowOutcome(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    success: bool = True
    urgency: UrgencyLevel
    notified: bool
