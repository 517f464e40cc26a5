"""Job records cached in memory and persisted to SQLite."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import quote

log = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed", "timeout", "dismissed")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    pylon_name TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    trigger_payload TEXT,
    agent_output TEXT,
    telegram_topic_id TEXT DEFAULT '',
    telegram_message_id TEXT DEFAULT '',
    container_id TEXT DEFAULT '',
    callback_url TEXT DEFAULT '',
    session_id TEXT DEFAULT '',
    error TEXT DEFAULT '',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    started_at TIMESTAMP,
    completed_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_created ON jobs(created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_pylon ON jobs(pylon_name);
"""

_PAYLOAD_TABLE = (
    "CREATE TABLE IF NOT EXISTS payload_sample ("
    "pylon_name TEXT PRIMARY KEY, payload TEXT NOT NULL, "
    "updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
)


@dataclass
class Job:
    """A pipeline job.

    Status is one of: pending, awaiting_approval, approved, running, active,
    completed, failed, timeout, dismissed.
    """

    id: str
    pylon_name: str
    status: str = "pending"
    topic_id: str = ""
    message_id: str = ""
    callback_url: str = ""
    session_id: str = ""
    body: dict[str, Any] | None = None
    container_id: str = ""
    error: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


def _to_db_time(value: datetime) -> str:
    return value.isoformat(sep=" ", timespec="microseconds")


def _from_db_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _output_text(output: Any) -> str:
    if output is None:
        return ""
    if isinstance(output, (bytes, bytearray)):
        return bytes(output).decode("utf-8", errors="replace")
    if isinstance(output, str):
        return output
    return _compact_json(output)


def _migrate(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
    try:
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        version = int(row[0]) if row else 0
    except (sqlite3.Error, TypeError, ValueError):
        version = 0
    if version < 1:
        conn.executescript(_SCHEMA)
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (1)")
        version = 1
    if version < 2:
        with suppress(sqlite3.Error):
            conn.execute(_PAYLOAD_TABLE)
            conn.execute("DELETE FROM schema_version")
            conn.execute("INSERT INTO schema_version (version) VALUES (2)")


class Store:
    """Job persistence with an in-memory cache backed by SQLite.

    The in-memory cache is authoritative; database write failures are ignored.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._lock = threading.RLock()
        self._jobs: dict[str, Job] = {}
        self._conn = sqlite3.connect(
            os.fspath(path), check_same_thread=False, isolation_level=None
        )
        try:
            for pragma in (
                "PRAGMA journal_mode=WAL",
                "PRAGMA synchronous=NORMAL",
                "PRAGMA foreign_keys=ON",
            ):
                with suppress(sqlite3.Error):
                    self._conn.execute(pragma)
            _migrate(self._conn)
        except BaseException:
            self._conn.close()
            raise

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _exec(self, sql: str, params: tuple[Any, ...] = ()) -> None:
        with suppress(sqlite3.Error):
            self._conn.execute(sql, params)

    def put(self, job: Job) -> None:
        """Add or update a job in memory and in the database."""
        with self._lock:
            self._jobs[job.id] = job
            self._persist(job)

    def get(self, job_id: str) -> Job | None:
        """Return the cached job with this ID, or None."""
        with self._lock:
            return self._jobs.get(job_id)

    def get_by_topic(self, topic_id: str) -> Job | None:
        """Return the first cached job bound to this topic, or None."""
        with self._lock:
            return next((j for j in self._jobs.values() if j.topic_id == topic_id), None)

    def delete(self, job_id: str) -> None:
        """Remove a job from memory and from the database."""
        with self._lock:
            self._jobs.pop(job_id, None)
            self._exec("DELETE FROM jobs WHERE id = ?", (job_id,))

    def update_status(self, job_id: str, status: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.status = status
            self._exec("UPDATE jobs SET status = ? WHERE id = ?", (status, job_id))

    def update_session_id(self, job_id: str, session_id: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.session_id = session_id
            self._exec("UPDATE jobs SET session_id = ? WHERE id = ?", (session_id, job_id))

    def set_completed(self, job_id: str, output: Any) -> None:
        """Mark a job completed and store the agent's output."""
        with self._lock:
            now = datetime.now()
            job = self._jobs.get(job_id)
            if job is not None:
                job.status = "completed"
                job.completed_at = now
            self._exec(
                "UPDATE jobs SET status = 'completed', agent_output = ?, completed_at = ? "
                "WHERE id = ?",
                (_output_text(output), _to_db_time(now), job_id),
            )

    def set_failed(self, job_id: str, error: str) -> None:
        """Mark a job failed with an error message."""
        with self._lock:
            now = datetime.now()
            job = self._jobs.get(job_id)
            if job is not None:
                job.status = "failed"
                job.error = error
                job.completed_at = now
            self._exec(
                "UPDATE jobs SET status = 'failed', error = ?, completed_at = ? WHERE id = ?",
                (error, _to_db_time(now), job_id),
            )

    def list(self) -> list[Job]:
        """Return all cached jobs."""
        with self._lock:
            return list(self._jobs.values())

    def list_by_pylon(self, name: str) -> list[Job]:
        """Return cached jobs belonging to one pylon."""
        with self._lock:
            return [j for j in self._jobs.values() if j.pylon_name == name]

    def recent_jobs(self, pylon_name: str, limit: int) -> list[Job]:
        """Query the database for the most recent jobs, newest first.

        An empty pylon name means all pylons. Raises sqlite3.Error if the
        query fails.
        """
        query = (
            "SELECT id, pylon_name, status, error, created_at, started_at, completed_at "
            "FROM jobs"
        )
        args: list[Any] = []
        if pylon_name:
            query += " WHERE pylon_name = ?"
            args.append(pylon_name)
        query += " ORDER BY created_at DESC LIMIT ?"
        args.append(limit)

        with self._lock:
            rows = self._conn.execute(query, args).fetchall()

        jobs = []
        for job_id, name, status, error, created, started, completed in rows:
            try:
                created_at = _from_db_time(created)
                if created_at is None:
                    continue
                jobs.append(
                    Job(
                        id=job_id,
                        pylon_name=name,
                        status=status,
                        error=error or "",
                        created_at=created_at,
                        started_at=_from_db_time(started),
                        completed_at=_from_db_time(completed),
                    )
                )
            except ValueError:
                continue
        return jobs

    def recover_from_db(self) -> int:
        """Load all non-terminal jobs from the database into memory.

        Jobs that were running are reset to active. Returns the number loaded.
        """
        placeholders = ", ".join("?" for _ in TERMINAL_STATUSES)
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT id, pylon_name, status, telegram_topic_id, telegram_message_id, "
                    "callback_url, session_id, trigger_payload, error, created_at "
                    f"FROM jobs WHERE status NOT IN ({placeholders})",
                    TERMINAL_STATUSES,
                ).fetchall()
        except sqlite3.Error as exc:
            log.warning("[store] recovery query failed: %s", exc)
            return 0

        count = 0
        for (job_id, name, status, topic, message, callback, session,
             payload, error, created) in rows:
            try:
                created_at = _from_db_time(created)
                if created_at is None:
                    raise ValueError("missing created_at")
            except ValueError as exc:
                log.warning("[store] failed to scan job: %s", exc)
                continue
            body = None
            if payload is not None:
                with suppress(ValueError):
                    decoded = json.loads(payload)
                    if isinstance(decoded, dict):
                        body = decoded
            job = Job(
                id=job_id,
                pylon_name=name,
                status=status,
                topic_id=topic or "",
                message_id=message or "",
                callback_url=callback or "",
                session_id=session or "",
                body=body,
                error=error or "",
                created_at=created_at,
            )
            with self._lock:
                if job.status == "running":
                    job.status = "active"
                    self._exec("UPDATE jobs SET status = 'active' WHERE id = ?", (job.id,))
                self._jobs[job.id] = job
            count += 1
        return count

    def save_payload_sample(self, pylon_name: str, body: dict[str, Any]) -> None:
        """Upsert the most recent webhook payload for a pylon; empty bodies are ignored."""
        if not body:
            return
        try:
            raw = _compact_json(body)
        except (TypeError, ValueError):
            return
        with self._lock:
            self._exec(
                "INSERT INTO payload_sample (pylon_name, payload, updated_at) "
                "VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(pylon_name) DO UPDATE SET payload=excluded.payload, "
                "updated_at=excluded.updated_at",
                (pylon_name, raw),
            )

    def load_payload_sample(self, pylon_name: str) -> str:
        """Return the stored sample payload for a pylon, or an empty string."""
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT payload FROM payload_sample WHERE pylon_name = ?", (pylon_name,)
                ).fetchone()
            except sqlite3.Error:
                return ""
        return row[0] if row else ""

    def _persist(self, job: Job) -> None:
        try:
            body_json = _compact_json(job.body)
        except (TypeError, ValueError):
            body_json = ""
        self._exec(
            "INSERT INTO jobs (id, pylon_name, status, telegram_topic_id, telegram_message_id, "
            "callback_url, session_id, trigger_payload, error, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET "
            "status=excluded.status, session_id=excluded.session_id, "
            "telegram_topic_id=excluded.telegram_topic_id, "
            "telegram_message_id=excluded.telegram_message_id",
            (
                job.id, job.pylon_name, job.status, job.topic_id, job.message_id,
                job.callback_url, job.session_id, body_json, job.error,
                _to_db_time(job.created_at),
            ),
        )


def job_ids_from_db(path: str | os.PathLike[str]) -> list[str] | None:
    """Read every job ID from a database opened read-only; None on any error."""
    uri = "file:" + quote(os.path.abspath(os.fspath(path))) + "?mode=ro"
    try:
        conn = sqlite3.connect(uri, uri=True)
    except sqlite3.Error:
        return None
    try:
        rows = conn.execute("SELECT id FROM jobs").fetchall()
    except sqlite3.Error:
        return None
    finally:
        conn.close()
    return [row[0] for row in rows if isinstance(row[0], str)]