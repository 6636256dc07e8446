# src/workflows/notification.py
"""
Durable notification workflow for newly submitted feedback.

    START -> URGENCY_ANALYZED -> (NOTIFY_SENT | SKIPPED) -> DONE

Each step's result is checkpointed in the workflow store before the run
advances. Re-running an instance skips steps that already have a checkpoint,
so a crashed or failed run resumes at the first incomplete step. Delivery is
at-least-once: a crash between posting to Slack and saving the checkpoint
re-sends the alert.
"""

from typing import Callable, Optional
import argparse
import logging
import time
import uuid

from src.agents.llm_agent import FeedbackClassifier
from src.config.settings import Settings
from src.data_access.workflow_store import WorkflowStateStore
from src.models.schemas import (
    NOTIFY_LEVELS,
    UrgencyAssessment,
    WorkflowOutcome,
    WorkflowPayload,
    WorkflowState,
)
from src.notifications.slack import SlackNotifier
from src.utils.exceptions import WorkflowStepError
from src.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


ANALYZE_URGENCY_STEP = "analyze-urgency"
SEND_NOTIFICATION_STEP = "send-slack-notification"


class NotificationWorkflow:
    """Classify urgency, then alert Slack when the feedback is CRITICAL or HIGH."""

    def __init__(
        self,
        config: Settings,
        classifier: Optional[FeedbackClassifier] = None,
        notifier: Optional[SlackNotifier] = None,
        state_store: Optional[WorkflowStateStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.classifier = classifier or FeedbackClassifier(config)
        self.notifier = notifier or SlackNotifier(config)
        self.state_store = state_store or WorkflowStateStore(config)
        self.max_attempts = max(1, config.workflow_step_max_attempts)
        self.base_delay = config.workflow_retry_base_delay
        self._sleep = sleep

    def start(self, payload: WorkflowPayload) -> WorkflowOutcome:
        """Create a new instance for the payload and run it."""
        instance_id = uuid.uuid4().hex
        logger.info(f"Workflow {instance_id} started for feedback {payload.feedback_id}")
        return self.run(instance_id, payload)

    def run(self, instance_id: str, payload: WorkflowPayload) -> WorkflowOutcome:
        """
        Execute (or resume) a workflow instance.

        Args:
            instance_id: Stable id of the run; reuse it to resume
            payload: Feedback the run is about

        Returns:
            WorkflowOutcome with the urgency level and whether an alert went out

        Raises:
            WorkflowStepError: a step failed on every attempt; the run is left
                in FAILED and can be resumed later
        """
        self.state_store.create_run(instance_id, payload)

        urgency_result = self._step(
            instance_id,
            ANALYZE_URGENCY_STEP,
            lambda: self.classifier.classify_urgency(payload.message, payload.sentiment).model_dump(mode="json"),
        )
        urgency = UrgencyAssessment.model_validate(urgency_result)
        self.state_store.set_state(instance_id, WorkflowState.URGENCY_ANALYZED)

        notified = urgency.level in NOTIFY_LEVELS
        if notified:
            self._step(
                instance_id,
                SEND_NOTIFICATION_STEP,
                lambda: self.notifier.send(payload, urgency),
            )
            self.state_store.set_state(instance_id, WorkflowState.NOTIFY_SENT)
        else:
            logger.info(f"Workflow {instance_id}: urgency {urgency.level}, notification skipped")
            self.state_store.set_state(instance_id, WorkflowState.SKIPPED)

        self.state_store.set_state(instance_id, WorkflowState.DONE)
        return WorkflowOutcome(success=True, urgency=urgency.level, notified=notified)

    def resume_incomplete(self) -> dict:
        """
        Re-run every stored instance that has not reached DONE.

        Returns:
            {"resumed": n, "failed": n}
        """
        resumed = 0
        failed = 0
        for run in self.state_store.list_incomplete():
            try:
                self.run(run.instance_id, run.payload)
                resumed += 1
            except WorkflowStepError as e:
                logger.error(f"Workflow {run.instance_id} still failing: {e}")
                failed += 1
            except Exception as e:
                # A store error on one run must not stop the sweep
                logger.error(f"Workflow {run.instance_id} could not be resumed: {e}")
                failed += 1
        return {"resumed": resumed, "failed": failed}

    def _step(self, instance_id: str, name: str, fn: Callable[[], dict]) -> dict:
        """Run a step once, returning its checkpoint if it already completed."""
        checkpoint = self.state_store.get_step_result(instance_id, name)
        if checkpoint is not None:
            logger.info(f"Workflow {instance_id}: step '{name}' already complete, skipping")
            return checkpoint

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = fn()
                break
            except Exception as e:
                if attempt == self.max_attempts:
                    self.state_store.set_state(instance_id, WorkflowState.FAILED)
                    raise WorkflowStepError(name, attempt, e) from e

                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Workflow {instance_id}: step '{name}' failed ({e}). "
                    f"Retrying in {delay}s... (attempt {attempt}/{self.max_attempts})"
                )
                self._sleep(delay)

        self.state_store.save_step_result(instance_id, name, result)
        return result


def main():
    """Resume notification workflows left incomplete by a crash or failure."""
    parser = argparse.ArgumentParser(description='Manage feedback notification workflows.')
    parser.add_argument(
        '--resume',
        action='store_true',
        help='Re-run every workflow instance that has not reached DONE'
    )
    args = parser.parse_args()

    config = Settings()
    configure_logging(config.log_level)

    if not args.resume:
        parser.print_help()
        return

    workflow = NotificationWorkflow(config)
    try:
        workflow.state_store.initialize_schema()
        stats = workflow.resume_incomplete()
    finally:
        workflow.state_store.close()
        workflow.notifier.close()

    print(f"Resumed: {stats['resumed']}  Still failing: {stats['failed']}")


if __name__ == "__main__":
    main()
