"""
Explicit wiring of the service's collaborators.

One ServiceContext is built at startup and handed to request handlers through
FastAPI dependency injection; no component reaches for module-level state.
"""

import logging

from src.agents.llm_agent import FeedbackClassifier
from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.data_access.vector_index import VectorIndex
from src.data_access.workflow_store import WorkflowStateStore
from src.embedding.embedder import Embedder
from src.embedding.indexer import FeedbackIndexer
from src.notifications.slack import SlackNotifier
from src.pipelines.backfill import BackfillPipeline
from src.pipelines.features import FeatureAnalysis
from src.pipelines.ingest import IngestionPipeline
from src.search.similarity import SimilaritySearch
from src.workflows.notification import NotificationWorkflow

logger = logging.getLogger(__name__)


class ServiceContext:
    """Holds the shared clients and the pipelines built on top of them."""

    def __init__(
        self,
        config: Settings,
        feedback_store: FeedbackStore,
        vector_index: VectorIndex,
        embedder: Embedder,
        classifier: FeedbackClassifier,
        notifier: SlackNotifier,
        workflow_store: WorkflowStateStore,
    ):
        self.config = config
        self.feedback_store = feedback_store
        self.vector_index = vector_index
        self.embedder = embedder
        self.classifier = classifier
        self.notifier = notifier
        self.workflow_store = workflow_store

        indexer = FeedbackIndexer(config, embedder=embedder, vector_index=vector_index)
        workflow = NotificationWorkflow(
            config, classifier=classifier, notifier=notifier, state_store=workflow_store
        )
        self.ingestion = IngestionPipeline(
            config,
            feedback_store=feedback_store,
            classifier=classifier,
            indexer=indexer,
            workflow=workflow,
        )
        self.similarity = SimilaritySearch(
            config, feedback_store=feedback_store, vector_index=vector_index, embedder=embedder
        )
        self.backfill = BackfillPipeline(config, feedback_store=feedback_store, indexer=indexer)
        self.features = FeatureAnalysis(config, feedback_store=feedback_store, classifier=classifier)

    @classmethod
    def from_settings(cls, config: Settings) -> "ServiceContext":
        return cls(
            config,
            feedback_store=FeedbackStore(config),
            vector_index=VectorIndex(config),
            embedder=Embedder(config),
            classifier=FeedbackClassifier(config),
            notifier=SlackNotifier(config),
            workflow_store=WorkflowStateStore(config),
        )

    def initialize(self) -> None:
        """Create any missing tables and indexes."""
        self.feedback_store.initialize_schema()
        self.workflow_store.initialize_schema()
        self.vector_index.initialize_schema()

    def close(self) -> None:
        self.feedback_store.close()
        self.workflow_store.close()
        self.vector_index.close()
        self.notifier.close()
