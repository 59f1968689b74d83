"""SQLite persistence layer."""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from gemcord.models import ActionType, TriggerType, Turn, Workflow

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                workflow_id TEXT PRIMARY KEY,
                guild_id TEXT NOT NULL,
                workflow_name TEXT NOT NULL,
                trigger_type TEXT NOT NULL,
                trigger_config_json TEXT NOT NULL,
                action_type TEXT NOT NULL,
                action_config_json TEXT NOT NULL,
                created_by TEXT NOT NULL,
                is_enabled INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_workflows_trigger
                ON workflows(trigger_type, is_enabled);

            CREATE TABLE IF NOT EXISTS session_turns (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                role TEXT NOT NULL,
                parts_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_session_turns_session
                ON session_turns(session_id, id);

            CREATE TABLE IF NOT EXISTS tool_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT,
                tool_name TEXT NOT NULL,
                input_json TEXT NOT NULL,
                output_json TEXT NOT NULL,
                succeeded INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )

    def create_workflow(
        self,
        guild_id: str,
        workflow_name: str,
        trigger_type: TriggerType,
        trigger_config: dict[str, str],
        action_type: ActionType,
        action_config: dict[str, str],
        created_by: str,
        is_enabled: bool = True,
    ) -> str:
        workflow_id = uuid.uuid4().hex
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO workflows(
                    workflow_id, guild_id, workflow_name, trigger_type, trigger_config_json,
                    action_type, action_config_json, created_by, is_enabled, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workflow_id,
                    guild_id,
                    workflow_name,
                    trigger_type.value,
                    json.dumps(trigger_config),
                    action_type.value,
                    json.dumps(action_config),
                    created_by,
                    int(is_enabled),
                    now,
                    now,
                ),
            )
        return workflow_id

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM workflows WHERE workflow_id = ?", (workflow_id,)).fetchone()
        return _row_to_workflow(row) if row else None

    def list_workflows(self, guild_id: str | None = None) -> list[Workflow]:
        with self._connect() as conn:
            if guild_id is None:
                rows = conn.execute("SELECT * FROM workflows ORDER BY created_at ASC, rowid ASC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM workflows WHERE guild_id = ? ORDER BY created_at ASC, rowid ASC",
                    (guild_id,),
                ).fetchall()
        return [_row_to_workflow(row) for row in rows]

    def set_workflow_enabled(self, workflow_id: str, is_enabled: bool) -> bool:
        """Toggle a workflow; returns False when it does not exist."""

        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE workflows SET is_enabled = ?, updated_at = ? WHERE workflow_id = ?",
                (int(is_enabled), _utc_now_iso(), workflow_id),
            )
            return cur.rowcount > 0

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow; returns False when it does not exist."""

        with self._connect() as conn:
            cur = conn.execute("DELETE FROM workflows WHERE workflow_id = ?", (workflow_id,))
            return cur.rowcount > 0

    def find_matching_workflows(
        self, trigger_type: TriggerType, trigger_attributes: dict[str, str]
    ) -> list[Workflow]:
        """Return enabled workflows whose trigger config equals every given attribute."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM workflows
                WHERE is_enabled = 1 AND trigger_type = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (trigger_type.value,),
            ).fetchall()
        candidates = [_row_to_workflow(row) for row in rows]
        return [
            workflow
            for workflow in candidates
            if all(workflow.trigger_config.get(key) == value for key, value in trigger_attributes.items())
        ]

    def append_session_turns(self, session_id: str, turns: list[Turn]) -> None:
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO session_turns(session_id, role, parts_json, created_at) VALUES (?, ?, ?, ?)",
                [(session_id, turn.role, json.dumps(turn.to_wire()["parts"]), now) for turn in turns],
            )

    def get_session_turns(self, session_id: str, limit: int) -> list[Turn]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT role, parts_json
                FROM session_turns
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (session_id, limit),
            ).fetchall()
        ordered = list(reversed(rows))
        return [Turn.from_wire({"role": row["role"], "parts": json.loads(row["parts_json"])}) for row in ordered]

    def log_tool_execution(
        self,
        session_id: str | None,
        tool_name: str,
        tool_input: dict[str, Any],
        tool_output: Any,
        succeeded: bool,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tool_executions(session_id, tool_name, input_json, output_json, succeeded, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    tool_name,
                    json.dumps(tool_input, default=str),
                    json.dumps(tool_output, default=str),
                    int(succeeded),
                    _utc_now_iso(),
                ),
            )

    def list_tool_executions(self, session_id: str) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT tool_name, input_json, output_json, succeeded
                FROM tool_executions
                WHERE session_id = ?
                ORDER BY id ASC
                """,
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]


def _row_to_workflow(row: sqlite3.Row) -> Workflow:
    return Workflow(
        workflow_id=row["workflow_id"],
        guild_id=row["guild_id"],
        workflow_name=row["workflow_name"],
        trigger_type=TriggerType(row["trigger_type"]),
        trigger_config=json.loads(row["trigger_config_json"]),
        action_type=ActionType(row["action_type"]),
        action_config=json.loads(row["action_config_json"]),
        created_by=row["created_by"],
        is_enabled=bool(row["is_enabled"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
