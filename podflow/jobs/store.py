"""Job storage: Postgres when configured, JSON files otherwise.

The store is the only coordination point between the create request, the
background orchestrator and status polling. Every ``update_job`` call is a
single atomic row write; a terminal status is never overwritten.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Protocol

from podflow.config import get_settings
from podflow.jobs.errors import JobNotFoundError
from podflow.jobs.models import ItemResult, Job, JobParams, JobStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "completed", "failed", "next_index", "results"})


class JobStore(Protocol):
    def create_job(self, params: JobParams, total: int, owner: str) -> Job: ...
    def get_job(self, job_id: str) -> Job: ...
    def update_job(self, job_id: str, **fields: Any) -> Job: ...
    def list_jobs(self, owner: str | None = None, limit: int = 50) -> list[Job]: ...


def _new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update job fields: {sorted(unknown)}")


def _results_json(results: list[ItemResult | dict]) -> list[dict]:
    return [
        r.model_dump(mode="json") if isinstance(r, ItemResult) else ItemResult.model_validate(r).model_dump(mode="json")
        for r in results
    ]


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

class PostgresJobStore:
    """Persist jobs in Postgres. Survives restarts and is shared across workers."""

    _COLUMNS = (
        "id, created_at, updated_at, owner_ref, params, status, "
        "total, completed, failed, next_index, results"
    )

    def __init__(self, database_url: str):
        self._url = database_url
        self._conn = self._connect()

    def _connect(self):
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres job store. pip install 'psycopg[binary]'"
            )
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS quick_jobs (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                owner_ref TEXT NOT NULL DEFAULT '',
                params JSONB NOT NULL,
                status TEXT NOT NULL DEFAULT 'queued',
                total INT NOT NULL DEFAULT 0,
                completed INT NOT NULL DEFAULT 0,
                failed INT NOT NULL DEFAULT 0,
                next_index INT NOT NULL DEFAULT 0,
                results JSONB NOT NULL DEFAULT '[]'::jsonb
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_quick_jobs_owner
            ON quick_jobs (owner_ref, created_at DESC)
        """)
        return conn

    def create_job(self, params: JobParams, total: int, owner: str) -> Job:
        row = self._conn.execute(
            f"""
            INSERT INTO quick_jobs (id, owner_ref, params, status, total)
            VALUES (%s, %s, %s::jsonb, %s, %s)
            RETURNING {self._COLUMNS}
            """,
            (_new_job_id(), owner, json.dumps(params.model_dump(mode="json")), JobStatus.QUEUED.value, total),
        ).fetchone()
        return self._row_to_job(row)

    def get_job(self, job_id: str) -> Job:
        row = self._conn.execute(
            f"SELECT {self._COLUMNS} FROM quick_jobs WHERE id = %s",
            (job_id,),
        ).fetchone()
        if not row:
            raise JobNotFoundError(job_id)
        return self._row_to_job(row)

    def update_job(self, job_id: str, **fields: Any) -> Job:
        _check_fields(fields)
        sets: list[str] = []
        values: list[Any] = []
        for name, value in fields.items():
            if name == "results":
                sets.append("results = %s::jsonb")
                values.append(json.dumps(_results_json(value)))
            elif name == "status":
                # Terminal states are sticky; a late writer cannot move a job backwards.
                sets.append(
                    "status = CASE WHEN status IN ('completed', 'failed', 'cancelled') "
                    "THEN status ELSE %s END"
                )
                values.append(JobStatus(value).value)
            else:
                sets.append(f"{name} = %s")
                values.append(int(value))
        sets.append("updated_at = NOW()")
        row = self._conn.execute(
            f"UPDATE quick_jobs SET {', '.join(sets)} WHERE id = %s RETURNING {self._COLUMNS}",
            (*values, job_id),
        ).fetchone()
        if not row:
            raise JobNotFoundError(job_id)
        return self._row_to_job(row)

    def list_jobs(self, owner: str | None = None, limit: int = 50) -> list[Job]:
        if owner:
            rows = self._conn.execute(
                f"SELECT {self._COLUMNS} FROM quick_jobs WHERE owner_ref = %s "
                "ORDER BY created_at DESC LIMIT %s",
                (owner, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {self._COLUMNS} FROM quick_jobs ORDER BY created_at DESC LIMIT %s",
                (limit,),
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def _row_to_job(self, row) -> Job:
        params = row[4] if isinstance(row[4], dict) else json.loads(row[4] or "{}")
        results = row[10] if isinstance(row[10], list) else json.loads(row[10] or "[]")
        return Job(
            id=row[0],
            created_at=row[1],
            updated_at=row[2],
            owner_ref=row[3] or "",
            params=JobParams.model_validate(params),
            status=JobStatus(row[5]),
            total=row[6],
            completed=row[7],
            failed=row[8],
            next_index=row[9],
            results=[ItemResult.model_validate(r) for r in results],
        )


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as JSON files. Writes replace the file atomically.

    Updates hold an exclusive ``flock`` on ``<job_id>.lock`` from read to replace, so
    a CLI process and the API worker sharing one data dir serialize on the same job.
    """

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _job_path(self, job_id: str) -> Path:
        return self._dir / f"{job_id}.json"

    @contextmanager
    def _locked(self, job_id: str) -> Iterator[None]:
        with self._lock, open(self._dir / f"{job_id}.lock", "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def create_job(self, params: JobParams, total: int, owner: str) -> Job:
        job = Job(id=_new_job_id(), owner_ref=owner, params=params, total=total)
        with self._lock:
            self._write_job(job)
        return job

    def get_job(self, job_id: str) -> Job:
        path = self._job_path(job_id)
        if not path.exists():
            raise JobNotFoundError(job_id)
        return self._read_job(path)

    def update_job(self, job_id: str, **fields: Any) -> Job:
        _check_fields(fields)
        if not self._job_path(job_id).exists():
            raise JobNotFoundError(job_id)
        with self._locked(job_id):
            job = self.get_job(job_id)
            data: dict[str, Any] = {}
            for name, value in fields.items():
                if name == "status":
                    status = JobStatus(value)
                    if job.status is not status and not job.status.can_transition(status):
                        logger.info(
                            "[%s] Ignoring status change %s -> %s", job_id, job.status.value, status.value
                        )
                        continue
                    data["status"] = status
                elif name == "results":
                    data["results"] = [ItemResult.model_validate(r) for r in _results_json(value)]
                else:
                    data[name] = int(value)
            data["updated_at"] = datetime.now(timezone.utc)
            job = job.model_copy(update=data)
            self._write_job(job)
        return job

    def list_jobs(self, owner: str | None = None, limit: int = 50) -> list[Job]:
        jobs = [self._read_job(p) for p in self._dir.glob("job_*.json")]
        if owner:
            jobs = [j for j in jobs if j.owner_ref == owner]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def _write_job(self, job: Job) -> None:
        path = self._job_path(job.id)
        data = job.model_dump(mode="json")
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read_job(self, path: Path) -> Job:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Job.model_validate(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_store: JobStore | None = None


def get_job_store() -> JobStore:
    """Return singleton job store (Postgres if configured, else file-based)."""
    global _store
    if _store is not None:
        return _store
    settings = get_settings()
    if settings.pod_database_url:
        try:
            _store = PostgresJobStore(settings.pod_database_url)
            logger.info("Using Postgres job store")
        except Exception as e:
            logger.warning("Postgres job store failed (%s), falling back to file store", e)
            _store = FileJobStore(settings.data_dir)
    else:
        _store = FileJobStore(settings.data_dir)
        logger.info("Using file-based job store (POD_DATA_DIR/jobs)")
    return _store
