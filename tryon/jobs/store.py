"""Job store and queue — Postgres (preferred) or file-based fallback.

Every store keeps the job record and its queue entry together, so a job is
created and enqueued in one step, and only an ``active`` job may be finalized.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
import uuid
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Protocol

from filelock import FileLock

from tryon.config import Settings
from tryon.jobs.errors import DuplicateJobError, JobTransitionError, NotFoundError
from tryon.jobs.models import GenerationInput, GenerationJob, WorkItem, utcnow
from tryon.jobs.states import BrokerState

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class JobStore(Protocol):
    backend: str

    def create_and_enqueue(self, job: GenerationJob) -> GenerationJob: ...
    def get(self, job_id: str) -> GenerationJob | None: ...
    def dequeue(self) -> WorkItem | None: ...
    def complete(self, job_id: str, artifact_url: str) -> GenerationJob: ...
    def fail(self, job_id: str, reason: str) -> GenerationJob: ...
    def requeue_stalled(self, older_than_s: float) -> list[str]: ...
    def close(self) -> None: ...


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


# ---------------------------------------------------------------------------
# Postgres implementation
# ---------------------------------------------------------------------------

_JOB_COLUMNS = "job_id, input, state, result, failure_reason, attempts, created_at, updated_at"


class PostgresJobStore:
    """Persist jobs in Postgres. The ``state`` column doubles as the queue."""

    backend = "postgres"

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
        self._unique_violation = psycopg.errors.UniqueViolation
        conn = psycopg.connect(self._url, autocommit=True)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tryon_jobs (
                job_id TEXT PRIMARY KEY,
                input JSONB NOT NULL,
                state TEXT NOT NULL,
                result TEXT,
                failure_reason TEXT,
                attempts INT NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tryon_jobs_queue
            ON tryon_jobs (state, created_at)
        """)
        return conn

    def create_and_enqueue(self, job: GenerationJob) -> GenerationJob:
        try:
            self._conn.execute(
                f"""
                INSERT INTO tryon_jobs ({_JOB_COLUMNS})
                VALUES (%s, %s::jsonb, %s, NULL, NULL, 0, %s, %s)
                """,
                (
                    job.job_id,
                    json.dumps(job.input.model_dump(mode="json")),
                    BrokerState.WAITING.value,
                    job.created_at,
                    job.updated_at,
                ),
            )
        except self._unique_violation:
            raise DuplicateJobError(job.job_id)
        return job.model_copy(update={"state": BrokerState.WAITING, "attempts": 0})

    def get(self, job_id: str) -> GenerationJob | None:
        row = self._conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM tryon_jobs WHERE job_id = %s",
            (job_id,),
        ).fetchone()
        if not row:
            return None
        return self._row_to_job(row)

    def dequeue(self) -> WorkItem | None:
        """Claim the oldest waiting job; concurrent workers skip each other's rows."""
        row = self._conn.execute(
            f"""
            UPDATE tryon_jobs SET state = 'active', attempts = attempts + 1, updated_at = NOW()
            WHERE state = 'waiting' AND job_id = (
                SELECT job_id FROM tryon_jobs
                WHERE state = 'waiting'
                ORDER BY created_at, job_id
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
            RETURNING {_JOB_COLUMNS}
            """
        ).fetchone()
        if not row:
            return None
        job = self._row_to_job(row)
        return WorkItem(job_id=job.job_id, input=job.input, attempts=job.attempts)

    def complete(self, job_id: str, artifact_url: str) -> GenerationJob:
        return self._finalize(job_id, BrokerState.COMPLETED, result=artifact_url, failure_reason=None)

    def fail(self, job_id: str, reason: str) -> GenerationJob:
        return self._finalize(job_id, BrokerState.FAILED, result=None, failure_reason=reason)

    def _finalize(
        self,
        job_id: str,
        target: BrokerState,
        *,
        result: str | None,
        failure_reason: str | None,
    ) -> GenerationJob:
        row = self._conn.execute(
            f"""
            UPDATE tryon_jobs SET state = %s, result = %s, failure_reason = %s, updated_at = NOW()
            WHERE job_id = %s AND state = 'active'
            RETURNING {_JOB_COLUMNS}
            """,
            (target.value, result, failure_reason, job_id),
        ).fetchone()
        if row:
            return self._row_to_job(row)
        current = self.get(job_id)
        if current is None:
            raise NotFoundError(job_id)
        raise JobTransitionError(job_id, current.state.value, target.value)

    def requeue_stalled(self, older_than_s: float) -> list[str]:
        rows = self._conn.execute(
            """
            UPDATE tryon_jobs SET state = 'waiting', updated_at = NOW()
            WHERE state = 'active' AND updated_at < NOW() - make_interval(secs => %s)
            RETURNING job_id
            """,
            (older_than_s,),
        ).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        self._conn.close()

    def _row_to_job(self, row) -> GenerationJob:
        raw_input = row[1] if isinstance(row[1], dict) else json.loads(row[1])
        return GenerationJob(
            job_id=row[0],
            input=GenerationInput.model_validate(raw_input),
            state=BrokerState(row[2]),
            result=row[3],
            failure_reason=row[4],
            attempts=row[5],
            created_at=row[6],
            updated_at=row[7],
        )


# ---------------------------------------------------------------------------
# File-based implementation (fallback when no Postgres)
# ---------------------------------------------------------------------------

class FileJobStore:
    """Persist jobs as JSON files plus a ``queue.json`` FIFO of waiting ids.

    Every read-modify-write holds a thread lock and a ``jobs/.lock`` file lock,
    so the API, ``tryon submit`` and ``tryon worker`` can share a data directory.
    """

    backend = "file"

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir) / "jobs"
        self._records = self._dir / "records"
        self._records.mkdir(parents=True, exist_ok=True)
        self._queue_path = self._dir / "queue.json"
        self._lock = threading.RLock()
        self._file_lock = FileLock(str(self._dir / ".lock"))

    @contextmanager
    def _locked(self):
        with self._lock, self._file_lock:
            yield

    def _job_path(self, job_id: str) -> Path:
        return self._records / f"{job_id}.json"

    def create_and_enqueue(self, job: GenerationJob) -> GenerationJob:
        if not _SAFE_ID.match(job.job_id):
            raise ValueError(f"Unsupported job id: {job.job_id!r}")
        job = job.model_copy(update={"state": BrokerState.WAITING, "attempts": 0})
        with self._locked():
            if self._job_path(job.job_id).exists():
                raise DuplicateJobError(job.job_id)
            queue = self._load_queue()
            queue.append(job.job_id)
            self._save_queue(queue)
            try:
                self._write_job(job)
            except OSError:
                queue.remove(job.job_id)
                self._save_queue(queue)
                raise
        return job

    def get(self, job_id: str) -> GenerationJob | None:
        if not _SAFE_ID.match(job_id):
            return None
        path = self._job_path(job_id)
        if not path.exists():
            return None
        return self._read_job(path)

    def dequeue(self) -> WorkItem | None:
        with self._locked():
            original = self._load_queue()
            queue = list(original)
            kept: list[str] = []
            item = None
            while queue and item is None:
                job_id = queue.pop(0)
                job = self.get(job_id)
                if job is None:
                    # record not written yet; keep the entry for a later dequeue
                    logger.warning("Queue entry %s has no record yet, skipping", job_id)
                    kept.append(job_id)
                    continue
                if job.state != BrokerState.WAITING:
                    logger.warning("Dropping stale queue entry %s", job_id)
                    continue
                job = job.model_copy(
                    update={
                        "state": BrokerState.ACTIVE,
                        "attempts": job.attempts + 1,
                        "updated_at": utcnow(),
                    }
                )
                self._write_job(job)
                item = WorkItem(job_id=job.job_id, input=job.input, attempts=job.attempts)
            remaining = kept + queue
            if remaining != original:
                self._save_queue(remaining)
        return item

    def complete(self, job_id: str, artifact_url: str) -> GenerationJob:
        return self._finalize(job_id, BrokerState.COMPLETED, result=artifact_url, failure_reason=None)

    def fail(self, job_id: str, reason: str) -> GenerationJob:
        return self._finalize(job_id, BrokerState.FAILED, result=None, failure_reason=reason)

    def _finalize(
        self,
        job_id: str,
        target: BrokerState,
        *,
        result: str | None,
        failure_reason: str | None,
    ) -> GenerationJob:
        with self._locked():
            job = self.get(job_id)
            if job is None:
                raise NotFoundError(job_id)
            if job.state != BrokerState.ACTIVE:
                raise JobTransitionError(job_id, job.state.value, target.value)
            job = job.model_copy(
                update={
                    "state": target,
                    "result": result,
                    "failure_reason": failure_reason,
                    "updated_at": utcnow(),
                }
            )
            self._write_job(job)
        return job

    def requeue_stalled(self, older_than_s: float) -> list[str]:
        cutoff = utcnow() - timedelta(seconds=older_than_s)
        requeued: list[str] = []
        with self._locked():
            queue = self._load_queue()
            for path in sorted(self._records.glob("*.json")):
                job = self._read_job(path)
                if job.state != BrokerState.ACTIVE or job.updated_at >= cutoff:
                    continue
                job = job.model_copy(update={"state": BrokerState.WAITING, "updated_at": utcnow()})
                self._write_job(job)
                queue.append(job.job_id)
                requeued.append(job.job_id)
            if requeued:
                self._save_queue(queue)
        return requeued

    def close(self) -> None:
        pass

    def _load_queue(self) -> list[str]:
        if not self._queue_path.exists():
            return []
        with open(self._queue_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save_queue(self, queue: list[str]) -> None:
        self._atomic_write(self._queue_path, json.dumps(queue))

    def _write_job(self, job: GenerationJob) -> None:
        data = job.model_dump(mode="json")
        self._atomic_write(self._job_path(job.job_id), json.dumps(data, indent=2))

    def _read_job(self, path: Path) -> GenerationJob:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return GenerationJob.model_validate(data)

    def _atomic_write(self, path: Path, text: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_job_store(settings: Settings) -> JobStore:
    """Construct the configured job store (Postgres if configured, else file-based).

    The caller owns the returned store and must ``close()`` it on shutdown.
    """
    if settings.tryon_store == "postgres":
        if not settings.tryon_database_url:
            logger.warning("TRYON_STORE=postgres but TRYON_DATABASE_URL is not set; using file store")
        else:
            try:
                store = PostgresJobStore(settings.tryon_database_url)
                logger.info("Using Postgres job store")
                return store
            except Exception as e:
                logger.warning("Postgres job store failed (%s), falling back to file store", e)
    logger.info("Using file-based job store (%s/jobs)", settings.data_dir)
    return FileJobStore(settings.data_dir)
