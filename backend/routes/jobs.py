"""Generation job API — async submission with status polling.

POST /api/generate
  → Validates the request, creates and enqueues a job, returns { jobId } immediately.

GET /api/status/{job_id}
  → Returns { status } plus result (completed) or error (failed).
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from tryon.jobs import Dispatcher, NotFoundError, StatusService, ValidationError
from tryon.schemas import StatusResponse, SubmitJobResponse

logger = logging.getLogger(__name__)
router = APIRouter()


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_status_service(request: Request) -> StatusService:
    return request.app.state.status_service


@router.post(
    "/generate",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit an image generation job",
    description=(
        "Creates a generation job and returns immediately. "
        "Poll GET /api/status/{job_id} for the outcome."
    ),
    responses={400: {"description": "Primary image missing or request malformed"}},
)
def submit_job(
    payload: Any = Body(...),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Queue a generation request — returns jobId for polling."""
    try:
        job_id = dispatcher.submit(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Failed to create job")
        raise HTTPException(status_code=500, detail="Failed to create job")
    return SubmitJobResponse(job_id=job_id)


@router.get(
    "/status/{job_id}",
    response_model=StatusResponse,
    response_model_exclude_none=True,
    summary="Get generation job status",
    responses={404: {"description": "Unknown or expired job id"}},
)
def get_job_status(
    job_id: str,
    status_service: StatusService = Depends(get_status_service),
):
    """Return the job's public status, with result or error once terminal."""
    try:
        snapshot = status_service.get_status(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception:
        logger.exception("Failed to get job status for %s", job_id)
        raise HTTPException(status_code=500, detail="Failed to get job status")
    return StatusResponse.from_snapshot(snapshot)
