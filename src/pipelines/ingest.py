"""
Ingestion of newly submitted feedback.

Submission is split in two parts. `submit` runs inside the request: it
classifies sentiment and persists the row. `process_submitted` runs later as a
detached background task: it indexes the embedding and runs the notification
workflow. Failures there are logged and never reach the submitter; the vector
index catches up on the next backfill.
"""

from typing import Optional
import logging

from src.agents.llm_agent import FeedbackClassifier
from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.embedding.indexer import FeedbackIndexer
from src.models.schemas import FeedbackCreate, FeedbackRecord, WorkflowPayload
from src.workflows.notification import NotificationWorkflow


logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Pipeline for accepting feedback and scheduling its follow-up work."""

    def __init__(
        self,
        config: Settings,
        feedback_store: Optional[FeedbackStore] = None,
        classifier: Optional[FeedbackClassifier] = None,
        indexer: Optional[FeedbackIndexer] = None,
        workflow: Optional[NotificationWorkflow] = None,
    ):
        self.config = config
        self.feedback_store = feedback_store or FeedbackStore(config)
        self.classifier = classifier or FeedbackClassifier(config)
        self.indexer = indexer or FeedbackIndexer(config)
        self.workflow = workflow or NotificationWorkflow(config, classifier=self.classifier)

    def submit(self, feedback: FeedbackCreate) -> FeedbackRecord:
        """
        Classify and persist a submission.

        Args:
            feedback: Validated submission

        Returns:
            The persisted record, including its server-assigned id

        Raises:
            Any store error; nothing has been persisted in that case
        """
        sentiment = self.classifier.classify_sentiment(feedback.message)
        record = self.feedback_store.insert(feedback, sentiment)
        logger.info(f"Stored feedback {record.id} from {record.source} ({record.sentiment})")
        return record

    def process_submitted(self, record: FeedbackRecord) -> None:
        """
        Best-effort follow-up for a stored record. Never raises.

        Args:
            record: Record returned by `submit`
        """
        try:
            self.indexer.index(record)
        except Exception as e:
            logger.error(f"Error storing embedding for feedback {record.id}: {e}")

        payload = WorkflowPayload(
            feedback_id=record.id,
            message=record.message,
            source=record.source,
            author=record.author or "Anonymous",
            sentiment=record.sentiment,
        )
        try:
            outcome = self.workflow.start(payload)
            logger.info(
                f"Workflow finished for feedback {record.id}: "
                f"urgency={outcome.urgency}, notified={outcome.notified}"
            )
        except Exception as e:
            logger.error(f"Error running notification workflow for feedback {record.id}: {e}")
