"""Unit tests for SlackNotifier."""
import json
import httpx
import pytest
from datetime import datetime, timezone
from src.models.schemas import UrgencyAssessment, WorkflowPayload
from src.notifications.slack import SlackNotifier
from src.utils.exceptions import NotificationError


@pytest.fixture
def payload():
    return WorkflowPayload(
        feedback_id=42,
        message="Payments fail with error 500",
        source="Support",
        author="Alice",
        sentiment="negative",
    )


@pytest.fixture
def critical():
    return UrgencyAssessment(level="CRITICAL", confidence=0.87, reason="Payment errors", category="Billing")


def notifier_with(mock_config, handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SlackNotifier(mock_config, client=client)


class TestSend:
    """Test SlackNotifier.send."""

    def test_posts_to_webhook(self, mock_config, payload, critical):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text="ok")

        result = notifier_with(mock_config, handler).send(payload, critical)

        assert result["success"] is True
        assert "timestamp" in result
        assert len(requests) == 1
        assert str(requests[0].url) == mock_config.slack_webhook_url
        body = json.loads(requests[0].content)
        assert body["text"] == "\U0001F6A8 CRITICAL Priority Feedback Received"

    def test_non_2xx_raises(self, mock_config, payload, critical):
        notifier = notifier_with(mock_config, lambda request: httpx.Response(500))

        with pytest.raises(NotificationError, match="500"):
            notifier.send(payload, critical)

    def test_transport_error_raises(self, mock_config, payload, critical):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NotificationError):
            notifier_with(mock_config, handler).send(payload, critical)

    def test_missing_webhook_is_soft_no_op(self, mock_config, payload, critical):
        mock_config.slack_webhook_url = None
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        result = notifier_with(mock_config, handler).send(payload, critical)

        assert result == {"success": False, "reason": "No webhook configured"}
        assert requests == []


class TestFormatMessage:
    """Test the Block Kit alert layout."""

    def test_critical_alert(self, mock_config, payload, critical):
        notifier = notifier_with(mock_config, lambda request: httpx.Response(200))
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

        message = notifier.format_message(payload, critical, now=now)

        blocks = message["blocks"]
        assert blocks[0]["text"]["text"].endswith("URGENT FEEDBACK - Immediate Attention Required")
        fields = [f["text"] for f in blocks[1]["fields"]]
        assert "*Severity:*\nCRITICAL" in fields
        assert "*Source:*\nSupport" in fields
        assert "*Author:* Alice" in blocks[2]["text"]["text"]
        assert "*Issue Category:* Billing" in blocks[2]["text"]["text"]
        assert blocks[3]["text"]["text"] == "*Message:*\n> Payments fail with error 500"
        assert "(87% confidence)" in blocks[4]["text"]["text"]
        assert blocks[5] == {"type": "divider"}
        button = blocks[6]["elements"][0]
        assert button["url"] == "https://feedback.example.com/api/similar-feedback?id=42"
        assert message["attachments"][0]["color"] == "#FF0000"
        assert message["attachments"][0]["ts"] == int(now.timestamp())

    def test_high_alert(self, mock_config, payload):
        notifier = notifier_with(mock_config, lambda request: httpx.Response(200))
        high = UrgencyAssessment(level="HIGH", confidence=0.6, reason="Broken feature", category="Bug")

        message = notifier.format_message(payload, high)

        assert message["blocks"][0]["text"]["text"].endswith("High Priority Feedback")
        assert message["attachments"][0]["color"] == "#FF6633"
