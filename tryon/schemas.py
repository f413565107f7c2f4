"""Pydantic models for the submission and status HTTP boundaries."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from tryon.jobs.models import JobSnapshot
from tryon.jobs.states import JobState


class SubmitJobResponse(BaseModel):
    """Response for POST /api/generate."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")


class StatusResponse(BaseModel):
    """Response for GET /api/status/{job_id}. Serialised without null fields."""

    status: JobState
    result: str | None = None
    error: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: JobSnapshot) -> "StatusResponse":
        return cls.model_validate(snapshot.to_response())

    def to_snapshot(self, job_id: str) -> JobSnapshot:
        result = self.result if self.status is JobState.COMPLETED else None
        error = None
        if self.status is JobState.FAILED:
            error = self.error or "Job failed"
        return JobSnapshot(job_id=job_id, state=self.status, result=result, error=error)


class HealthResponse(BaseModel):
    status: str
    store: str
