"""Read path: map a stored job onto its public snapshot."""

from __future__ import annotations

from tryon.jobs.errors import NotFoundError
from tryon.jobs.models import GenerationJob, JobSnapshot
from tryon.jobs.states import JobState, to_public_state
from tryon.jobs.store import JobStore

DEFAULT_FAILURE_REASON = "Job failed"


def snapshot_of(job: GenerationJob) -> JobSnapshot:
    """Build the public snapshot. Result and error only appear in their terminal state."""
    state = to_public_state(job.state)
    if state is JobState.COMPLETED:
        return JobSnapshot(job_id=job.job_id, state=state, result=job.result)
    if state is JobState.FAILED:
        return JobSnapshot(
            job_id=job.job_id,
            state=state,
            error=job.failure_reason or DEFAULT_FAILURE_REASON,
        )
    return JobSnapshot(job_id=job.job_id, state=state)


class StatusService:
    """Status lookups by job id. Never mutates the store."""

    def __init__(self, store: JobStore):
        self._store = store

    def get_status(self, job_id: str) -> JobSnapshot:
        job = self._store.get(job_id)
        if job is None:
            raise NotFoundError(job_id)
        return snapshot_of(job)
