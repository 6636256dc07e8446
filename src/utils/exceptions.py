"""Custom exception classes for the feedback insights service."""


class FeedbackInsightsError(Exception):
    """Base exception for all application errors."""

    pass


class EmbeddingError(FeedbackInsightsError):
    """Raised when the embedding service fails or returns a malformed payload."""

    pass


class VectorIndexError(FeedbackInsightsError):
    """Raised when the vector index cannot be written or queried."""

    pass


class FeedbackNotFoundError(FeedbackInsightsError):
    """Raised when a feedback id does not exist in the store."""

    def __init__(self, feedback_id):
        super().__init__(f"Feedback {feedback_id} not found")
        self.feedback_id = feedback_id


class NotificationError(FeedbackInsightsError):
    """Raised when an outbound alert could not be delivered. Retryable."""

    pass


class WorkflowStepError(FeedbackInsightsError):
    """Raised when a workflow step exhausts its attempts."""

    def __init__(self, step_name: str, attempts: int, cause: Exception):
        super().__init__(f"Step '{step_name}' failed after {attempts} attempts: {cause}")
        self.step_name = step_name
        self.attempts = attempts
        self.cause = cause
