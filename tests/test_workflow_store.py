"""Unit tests for WorkflowStateStore."""
import json
from unittest.mock import patch
from conftest import create_mock_connection
from src.data_access.workflow_store import WorkflowStateStore
from src.models.schemas import WorkflowPayload, WorkflowState


def payload():
    return WorkflowPayload(feedback_id=3, message="App freezes", source="Support", sentiment="negative")


class TestWorkflowStateStore:
    """Test WorkflowStateStore class."""

    @patch('src.data_access.workflow_store.pymssql.connect')
    def test_create_run_inserts_only_when_missing(self, mock_connect, mock_config):
        conn, cursor = create_mock_connection()
        mock_connect.return_value = conn

        WorkflowStateStore(mock_config).create_run("abc", payload())

        query, params = cursor.execute.call_args[0]
        assert "WHEN NOT MATCHED THEN" in query
        assert "WHEN MATCHED" not in query.replace("WHEN NOT MATCHED", "")
        assert params[0] == "abc"
        assert params[1] == 3
        assert json.loads(params[2])["message"] == "App freezes"
        assert params[3] == "START"
        conn.commit.assert_called_once()

    @patch('src.data_access.workflow_store.pymssql.connect')
    def test_step_result_round_trip(self, mock_connect, mock_config):
        conn, cursor = create_mock_connection()
        mock_connect.return_value = conn
        store = WorkflowStateStore(mock_config)

        store.save_step_result("abc", "analyze-urgency", {"level": "HIGH", "confidence": 0.7})
        saved = cursor.execute.call_args[0][1][2]

        cursor.fetchone.return_value = {"result": saved}
        assert store.get_step_result("abc", "analyze-urgency") == {"level": "HIGH", "confidence": 0.7}

    @patch('src.data_access.workflow_store.pymssql.connect')
    def test_missing_step_result(self, mock_connect, mock_config):
        conn, cursor = create_mock_connection()
        mock_connect.return_value = conn
        cursor.fetchone.return_value = None

        assert WorkflowStateStore(mock_config).get_step_result("abc", "analyze-urgency") is None

    @patch('src.data_access.workflow_store.pymssql.connect')
    def test_list_incomplete(self, mock_connect, mock_config):
        conn, cursor = create_mock_connection()
        mock_connect.return_value = conn
        cursor.fetchall.return_value = [
            {"instance_id": "abc", "payload": payload().model_dump_json(), "state": "FAILED", "updated_at": None},
        ]

        runs = WorkflowStateStore(mock_config).list_incomplete()

        assert cursor.execute.call_args[0][1] == (WorkflowState.DONE.value,)
        assert len(runs) == 1
        assert runs[0].state == "FAILED"
        assert runs[0].payload == payload()
