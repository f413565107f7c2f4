"""Generation job schema and snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from tryon.jobs.states import BrokerState, JobState

PRIMARY_IMAGE_FIELDS = ("primaryImage", "imageUrl", "primary_image")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationInput(BaseModel):
    """Immutable generation request payload.

    Image references are URLs or inline ``data:`` URLs. Wire names from both
    the public API (``primaryImage``/``secondaryImage``) and the legacy form
    (``imageUrl``/``personImage``) are accepted.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    primary_image: str = Field(
        validation_alias=AliasChoices(*PRIMARY_IMAGE_FIELDS),
        serialization_alias="primaryImage",
    )
    secondary_image: str | None = Field(
        default=None,
        validation_alias=AliasChoices("secondaryImage", "personImage", "secondary_image"),
        serialization_alias="secondaryImage",
    )
    prompt: str | None = None
    sizing: str | None = None

    @field_validator("primary_image")
    @classmethod
    def _require_primary(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("primary image reference is empty")
        return value

    @field_validator("secondary_image", "prompt", "sizing", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # forms post "" for untouched fields
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GenerationJob(BaseModel):
    """Durable job record — persisted for async polling."""

    job_id: str
    input: GenerationInput
    state: BrokerState = BrokerState.WAITING
    result: str | None = None
    failure_reason: str | None = None
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkItem(BaseModel):
    """A queued job handed to a worker by ``dequeue``."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    input: GenerationInput
    attempts: int = 1


class JobSnapshot(BaseModel):
    """Immutable public view of a job at one instant."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    state: JobState
    result: str | None = None
    error: str | None = None

    def to_response(self) -> dict[str, str]:
        """Status payload: ``status`` plus ``result`` or ``error`` when terminal."""
        payload = {"status": self.state.value}
        if self.state is JobState.COMPLETED and self.result:
            payload["result"] = self.result
        elif self.state is JobState.FAILED:
            payload["error"] = self.error or "Job failed"
        return payload
