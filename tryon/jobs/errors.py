"""Exceptions raised across the job lifecycle."""


class JobError(Exception):
    """Base class for job lifecycle errors."""


class ValidationError(JobError):
    """Submission is missing mandatory input. Nothing was created."""


class NotFoundError(JobError):
    """No record exists for the job id (unknown or expired)."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class DuplicateJobError(JobError):
    """A record with this job id already exists."""

    def __init__(self, job_id: str):
        super().__init__(f"Job already exists: {job_id}")
        self.job_id = job_id


class JobTransitionError(JobError):
    """The requested state change is not allowed from the job's current state."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class GenerationError(JobError):
    """Raised by a generate callable; recorded as the job's failure reason."""


class TransportError(JobError):
    """The status service could not be reached while polling."""
