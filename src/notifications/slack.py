# src/notifications/slack.py
"""
Slack incoming-webhook alerts for urgent feedback.
"""

from datetime import datetime, timezone
from typing import Optional
import logging

import httpx

from src.config.settings import Settings
from src.models.schemas import UrgencyAssessment, UrgencyLevel, WorkflowPayload
from src.utils.exceptions import NotificationError

logger = logging.getLogger(__name__)


URGENCY_EMOJI = {
    UrgencyLevel.CRITICAL.value: "\U0001F6A8",
    UrgencyLevel.HIGH.value: "⚠️",
    UrgencyLevel.NORMAL.value: "ℹ️",
}

SENTIMENT_EMOJI = {
    "positive": "\U0001F60A",
    "negative": "\U0001F621",
    "neutral": "\U0001F610",
}

URGENCY_COLOR = {
    UrgencyLevel.CRITICAL.value: "#FF0000",
    UrgencyLevel.HIGH.value: "#FF6633",
    UrgencyLevel.NORMAL.value: "#36A64F",
}


class SlackNotifier:
    """Formats and posts urgency alerts to a Slack webhook."""

    def __init__(self, config: Settings, client: Optional[httpx.Client] = None):
        self.config = config
        self.webhook_url = config.slack_webhook_url
        self.base_url = config.public_base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=config.webhook_timeout_seconds)

    def close(self) -> None:
        self.client.close()

    def send(self, payload: WorkflowPayload, urgency: UrgencyAssessment) -> dict:
        """
        Post an alert for one piece of feedback.

        Args:
            payload: The feedback the workflow is running for
            urgency: The urgency assessment from the previous step

        Returns:
            {"success": True, "timestamp": ...} on delivery, or
            {"success": False, "reason": "No webhook configured"} when unset

        Raises:
            NotificationError: non-2xx response or transport failure
        """
        if not self.webhook_url:
            logger.warning("Slack webhook URL not configured")
            return {"success": False, "reason": "No webhook configured"}

        message = self.format_message(payload, urgency)

        try:
            response = self.client.post(self.webhook_url, json=message)
        except httpx.HTTPError as e:
            logger.error(f"Error sending Slack notification for feedback {payload.feedback_id}: {e}")
            raise NotificationError(f"Slack request failed: {e}") from e

        if not response.is_success:
            logger.error(f"Slack API error {response.status_code} for feedback {payload.feedback_id}")
            raise NotificationError(f"Slack API error: {response.status_code}")

        return {
            "success": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def format_message(
        self,
        payload: WorkflowPayload,
        urgency: UrgencyAssessment,
        now: Optional[datetime] = None
    ) -> dict:
        """Build the Block Kit message for an alert."""
        now = now or datetime.now(timezone.utc)
        epoch = int(now.timestamp())
        level = urgency.level

        if level == UrgencyLevel.CRITICAL.value:
            title = f"{URGENCY_EMOJI[level]} URGENT FEEDBACK - Immediate Attention Required"
        else:
            title = f"{URGENCY_EMOJI[UrgencyLevel.HIGH.value]} High Priority Feedback"

        sentiment = payload.sentiment
        similar_url = f"{self.base_url}/api/similar-feedback?id={payload.feedback_id}"

        return {
            "text": f"{URGENCY_EMOJI[level]} {level} Priority Feedback Received",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": title, "emoji": True},
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*Severity:*\n{level}"},
                        {"type": "mrkdwn", "text": f"*Source:*\n{payload.source}"},
                        {"type": "mrkdwn", "text": f"*Sentiment:*\n{SENTIMENT_EMOJI.get(sentiment, '')} {sentiment}"},
                        {"type": "mrkdwn", "text": f"*Time:*\n<!date^{epoch}^{{date_short_pretty}} at {{time}}|Just now>"},
                    ],
                },
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": f"*Issue Category:* {urgency.category}\n*Author:* {payload.author or 'Anonymous'}",
                    },
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*Message:*\n> {payload.message}"},
                },
                {
                    "type": "section",
                    "text": {
                        "type": "mrkdwn",
                        "text": (
                            f"*AI Analysis:*\n• Urgency: *{level}* "
                            f"({round(urgency.confidence * 100)}% confidence)\n"
                            f"• Reason: {urgency.reason}"
                        ),
                    },
                },
                {"type": "divider"},
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": "\U0001F50D View Similar Feedback", "emoji": True},
                            "url": similar_url,
                            "style": "primary",
                        }
                    ],
                },
            ],
            "attachments": [
                {
                    "color": URGENCY_COLOR[level],
                    "footer": "Feedback Insights",
                    "ts": epoch,
                }
            ],
        }
