"""Generation job lifecycle: submission, storage, status and workers."""

from tryon.jobs.dispatcher import Dispatcher
from tryon.jobs.errors import (
    DuplicateJobError,
    GenerationError,
    JobError,
    JobTransitionError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from tryon.jobs.models import GenerationInput, GenerationJob, JobSnapshot, WorkItem
from tryon.jobs.states import BrokerState, JobState, to_public_state
from tryon.jobs.status import StatusService
from tryon.jobs.store import FileJobStore, JobStore, PostgresJobStore, build_job_store, new_job_id
from tryon.jobs.worker import Worker, load_generator

__all__ = [
    "BrokerState",
    "Dispatcher",
    "DuplicateJobError",
    "FileJobStore",
    "GenerationError",
    "GenerationInput",
    "GenerationJob",
    "JobError",
    "JobSnapshot",
    "JobState",
    "JobStore",
    "JobTransitionError",
    "NotFoundError",
    "PostgresJobStore",
    "StatusService",
    "TransportError",
    "ValidationError",
    "WorkItem",
    "Worker",
    "build_job_store",
    "load_generator",
    "new_job_id",
    "to_public_state",
]
