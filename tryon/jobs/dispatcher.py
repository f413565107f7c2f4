"""Job submission: validate, allocate an id, create and enqueue in one step."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from tryon.jobs.errors import DuplicateJobError, ValidationError
from tryon.jobs.models import PRIMARY_IMAGE_FIELDS, GenerationInput, GenerationJob
from tryon.jobs.store import JobStore, new_job_id

logger = logging.getLogger(__name__)

PRIMARY_IMAGE_REQUIRED = "Image URL is required"
MAX_ID_ATTEMPTS = 3


def _describe(exc: PydanticValidationError) -> str:
    """Turn a pydantic error into one client-facing message."""
    errors = exc.errors()
    for err in errors:
        if err["loc"] and str(err["loc"][0]) in PRIMARY_IMAGE_FIELDS:
            return PRIMARY_IMAGE_REQUIRED
    first = errors[0]
    field = ".".join(str(p) for p in first["loc"]) or "request"
    return f"Invalid {field}: {first['msg']}"


def parse_input(payload: Mapping[str, Any] | GenerationInput) -> GenerationInput:
    """Validate a raw request body into a GenerationInput."""
    if isinstance(payload, GenerationInput):
        return payload
    try:
        return GenerationInput.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(_describe(e)) from e


class Dispatcher:
    """Accepts generation requests and returns a job id without waiting on workers."""

    def __init__(self, store: JobStore, *, id_factory: Callable[[], str] = new_job_id):
        self._store = store
        self._id_factory = id_factory

    def submit(self, payload: Mapping[str, Any] | GenerationInput) -> str:
        generation_input = parse_input(payload)
        for _ in range(MAX_ID_ATTEMPTS):
            job = GenerationJob(job_id=self._id_factory(), input=generation_input)
            try:
                self._store.create_and_enqueue(job)
            except DuplicateJobError:
                logger.warning("Job id collision on %s, allocating a new id", job.job_id)
                continue
            logger.info("job_enqueued job_id=%s", job.job_id)
            return job.job_id
        raise DuplicateJobError(job.job_id)
