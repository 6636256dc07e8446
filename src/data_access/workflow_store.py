"""
Durable state for notification workflow runs.

Each run is a row in workflow_runs; each completed step is a row in
workflow_steps holding its JSON result. A step row is written before the run
advances, so a restarted run can skip work that already succeeded.
"""

import json
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

import pymssql

from src.config.settings import Settings
from src.models.schemas import WorkflowPayload, WorkflowRun, WorkflowState


class WorkflowStateStore:
    """SQL Server client for workflow runs and step checkpoints."""

    def __init__(self, config: Settings):
        self.config = config
        self.conn = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Establish database connection."""
        self.conn = pymssql.connect(
            server=self.config.sql_server_host,
            port=self.config.sql_server_port,
            user=self.config.sql_server_username,
            password=self.config.sql_server_password,
            database=self.config.sql_server_database
        )

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    @contextmanager
    def _cursor(self, as_dict: bool = True):
        with self._lock:
            if not self.conn:
                self.connect()
            with self.conn.cursor(as_dict=as_dict) as cursor:
                yield cursor

    def initialize_schema(self) -> None:
        """Create the workflow tables if they don't exist."""
        schema_sql = """
            IF OBJECT_ID('dbo.workflow_runs', 'U') IS NULL
            BEGIN
                CREATE TABLE dbo.workflow_runs (
                    instance_id VARCHAR(64) PRIMARY KEY,
                    feedback_id INT NOT NULL,
                    payload NVARCHAR(MAX) NOT NULL,
                    state VARCHAR(32) NOT NULL,
                    updated_at DATETIME2 NOT NULL
                );
                CREATE INDEX idx_workflow_runs_state ON dbo.workflow_runs(state);
            END

            IF OBJECT_ID('dbo.workflow_steps', 'U') IS NULL
            BEGIN
                CREATE TABLE dbo.workflow_steps (
                    instance_id VARCHAR(64) NOT NULL,
                    step_name VARCHAR(100) NOT NULL,
                    result NVARCHAR(MAX) NOT NULL,
                    completed_at DATETIME2 NOT NULL,
                    PRIMARY KEY (instance_id, step_name)
                );
            END
        """

        with self._cursor(as_dict=False) as cursor:
            cursor.execute(schema_sql)
            self.conn.commit()

    def create_run(self, instance_id: str, payload: WorkflowPayload) -> None:
        """Register a run in the START state. Existing runs are left untouched."""
        query = """
            MERGE INTO dbo.workflow_runs AS target
            USING (VALUES (%s, %s, %s, %s, %s)) AS source
                (instance_id, feedback_id, payload, state, updated_at)
            ON target.instance_id = source.instance_id
            WHEN NOT MATCHED THEN
                INSERT (instance_id, feedback_id, payload, state, updated_at)
                VALUES (source.instance_id, source.feedback_id, source.payload,
                        source.state, source.updated_at);
        """

        with self._cursor(as_dict=False) as cursor:
            cursor.execute(
                query,
                (instance_id, payload.feedback_id, payload.model_dump_json(),
                 WorkflowState.START.value, datetime.now(timezone.utc))
            )
            self.conn.commit()

    def set_state(self, instance_id: str, state: WorkflowState) -> None:
        query = "UPDATE dbo.workflow_runs SET state = %s, updated_at = %s WHERE instance_id = %s"

        with self._cursor(as_dict=False) as cursor:
            cursor.execute(query, (state.value, datetime.now(timezone.utc), instance_id))
            self.conn.commit()

    def get_step_result(self, instance_id: str, step_name: str) -> Optional[dict]:
        """Checkpointed result of a step, or None if the step has not completed."""
        query = """
            SELECT result FROM dbo.workflow_steps
            WHERE instance_id = %s AND step_name = %s
        """

        with self._cursor() as cursor:
            cursor.execute(query, (instance_id, step_name))
            row = cursor.fetchone()

        return json.loads(row["result"]) if row else None

    def save_step_result(self, instance_id: str, step_name: str, result: dict) -> None:
        query = """
            MERGE INTO dbo.workflow_steps AS target
            USING (VALUES (%s, %s, %s, %s)) AS source
                (instance_id, step_name, result, completed_at)
            ON target.instance_id = source.instance_id AND target.step_name = source.step_name
            WHEN MATCHED THEN
                UPDATE SET result = source.result, completed_at = source.completed_at
            WHEN NOT MATCHED THEN
                INSERT (instance_id, step_name, result, completed_at)
                VALUES (source.instance_id, source.step_name, source.result, source.completed_at);
        """

        with self._cursor(as_dict=False) as cursor:
            cursor.execute(
                query,
                (instance_id, step_name, json.dumps(result), datetime.now(timezone.utc))
            )
            self.conn.commit()

    def list_incomplete(self) -> List[WorkflowRun]:
        """Runs that have not reached DONE, oldest first."""
        query = """
            SELECT instance_id, payload, state, updated_at
            FROM dbo.workflow_runs
            WHERE state <> %s
            ORDER BY updated_at
        """

        with self._cursor() as cursor:
            cursor.execute(query, (WorkflowState.DONE.value,))
            rows = cursor.fetchall()

        return [self._to_run(row) for row in rows]

    @staticmethod
    def _to_run(row: dict) -> WorkflowRun:
        return WorkflowRun(
            instance_id=row["instance_id"],
            payload=WorkflowPayload.model_validate_json(row["payload"]),
            state=row["state"],
            updated_at=row.get("updated_at"),
        )
