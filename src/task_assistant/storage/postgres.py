"""PostgreSQL-backed storage with automatic table migration."""

from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime
from typing import Any

from task_assistant.storage.models import (
    NewTask,
    Priority,
    TaskChanges,
    TaskQuery,
    TaskRecord,
    UserRecord,
)

# Column names accepted from TaskChanges; anything else never reaches SQL.
_UPDATABLE_COLUMNS = ("title", "description", "due_date", "done", "priority")

_PRIORITY_ORDER_SQL = """
    CASE priority
        WHEN 'URGENT' THEN 0
        WHEN 'HIGH' THEN 1
        WHEN 'MEDIUM' THEN 2
        WHEN 'LOW' THEN 3
        ELSE 4
    END
"""


class PostgresTaskStorage:
    """Persist users and owner-scoped tasks in PostgreSQL.

    Ownership is part of every WHERE clause, and each mutation is a single
    conditional statement, so concurrent writes to one row are serialized by
    the database row lock while different rows proceed independently.
    """

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("TASK_ASSISTANT_DATABASE_URL is required")
        self.database_url = database_url
        self._migrate_lock = threading.Lock()
        self._psycopg, self._dict_row = self._load_psycopg()

    def migrate(self) -> None:
        with self._migrate_lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id UUID PRIMARY KEY,
                    external_id TEXT NOT NULL UNIQUE,
                    email TEXT,
                    name TEXT,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id UUID PRIMARY KEY,
                    owner_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    title VARCHAR(255) NOT NULL,
                    description TEXT,
                    due_date TIMESTAMPTZ,
                    done BOOLEAN NOT NULL DEFAULT FALSE,
                    priority TEXT NOT NULL DEFAULT 'NONE'
                        CHECK (priority IN ('URGENT', 'HIGH', 'MEDIUM', 'LOW', 'NONE')),
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_owner_priority_created
                ON tasks(owner_id, priority, created_at DESC)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_owner_due_date
                ON tasks(owner_id, due_date)
                """)
            conn.commit()

    def create(self, owner_id: str, fields: NewTask) -> TaskRecord:
        now = datetime.now(tz=UTC)
        with self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO tasks (
                    id,
                    owner_id,
                    title,
                    description,
                    due_date,
                    done,
                    priority,
                    created_at,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    uuid.uuid4(),
                    owner_id,
                    fields.title,
                    fields.description,
                    fields.due_date,
                    fields.done,
                    fields.priority.value,
                    now,
                    now,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to persist task")
        return self._row_to_task(row)

    def get(self, owner_id: str, task_id: str) -> TaskRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id::text = %s AND owner_id::text = %s",
                (task_id, owner_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def update(
        self,
        owner_id: str,
        task_id: str,
        changes: TaskChanges,
    ) -> TaskRecord | None:
        assignments: list[str] = []
        params: list[Any] = []
        for column, value in changes.present().items():
            if column not in _UPDATABLE_COLUMNS:
                continue
            assignments.append(f"{column} = %s")
            params.append(value.value if isinstance(value, Priority) else value)
        assignments.append("updated_at = GREATEST(%s, created_at)")
        params.append(datetime.now(tz=UTC))
        params.extend([task_id, owner_id])

        with self._connect() as conn:
            row = conn.execute(
                f"""
                UPDATE tasks
                SET {", ".join(assignments)}
                WHERE id::text = %s AND owner_id::text = %s
                RETURNING *
                """,
                tuple(params),
            ).fetchone()
            conn.commit()
        if row is None:
            return None
        return self._row_to_task(row)

    def delete(self, owner_id: str, task_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM tasks WHERE id::text = %s AND owner_id::text = %s",
                (task_id, owner_id),
            )
            conn.commit()
        return cursor.rowcount > 0

    def list(self, owner_id: str, query: TaskQuery) -> list[TaskRecord]:
        clauses = ["owner_id::text = %s"]
        params: list[Any] = [owner_id]
        if query.done is not None:
            clauses.append("done = %s")
            params.append(query.done)
        if query.priority is not None:
            clauses.append("priority = %s")
            params.append(query.priority.value)
        term = query.search_term()
        if term is not None:
            pattern = f"%{_escape_like(term)}%"
            clauses.append("(title ILIKE %s OR description ILIKE %s)")
            params.extend([pattern, pattern])
        params.append(query.limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE {" AND ".join(clauses)}
                ORDER BY {_PRIORITY_ORDER_SQL}, created_at DESC, id::text ASC
                LIMIT %s
                """,
                tuple(params),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def resolve_owner(self, external_id: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id FROM users WHERE external_id = %s",
                (external_id,),
            ).fetchone()
        if row is None:
            return None
        return str(row["id"])

    def upsert_user(
        self,
        external_id: str,
        *,
        email: str | None = None,
        name: str | None = None,
    ) -> UserRecord:
        with self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO users (id, external_id, email, name, created_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (external_id) DO UPDATE
                SET email = COALESCE(EXCLUDED.email, users.email),
                    name = COALESCE(EXCLUDED.name, users.name)
                RETURNING *
                """,
                (uuid.uuid4(), external_id, email, name, datetime.now(tz=UTC)),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to persist user")
        return UserRecord(
            id=str(row["id"]),
            external_id=row["external_id"],
            email=row["email"],
            name=row["name"],
            created_at=self._parse_datetime(row["created_at"]),
        )

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_task(cls, row: Any) -> TaskRecord:
        due_date = row.get("due_date")
        return TaskRecord(
            id=str(row["id"]),
            owner_id=str(row["owner_id"]),
            title=row["title"],
            description=row.get("description"),
            due_date=cls._parse_datetime(due_date) if due_date is not None else None,
            done=bool(row["done"]),
            priority=Priority(row["priority"]),
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
