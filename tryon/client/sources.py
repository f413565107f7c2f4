"""Status sources the polling client can query.

``HttpStatusSource`` talks to the status endpoint over HTTP;
``ServiceStatusSource`` calls a StatusService in-process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from tryon.jobs.errors import JobError, NotFoundError, TransportError
from tryon.jobs.models import JobSnapshot
from tryon.jobs.status import StatusService
from tryon.schemas import StatusResponse

logger = logging.getLogger(__name__)


class StatusSource(Protocol):
    async def fetch(self, job_id: str) -> JobSnapshot: ...


class HttpStatusSource:
    """GET {base_url}/api/status/{job_id}.

    404 raises NotFoundError; network failures, other error codes and
    malformed bodies raise TransportError.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def fetch(self, job_id: str) -> JobSnapshot:
        try:
            response = await self._client.get(f"/api/status/{job_id}")
        except httpx.HTTPError as e:
            raise TransportError(f"Status request failed: {e}") from e
        if response.status_code == 404:
            raise NotFoundError(job_id)
        if response.is_error:
            raise TransportError(f"Status service returned HTTP {response.status_code}")
        try:
            body = StatusResponse.model_validate(response.json())
        except ValueError as e:
            raise TransportError(f"Malformed status response: {e}") from e
        return body.to_snapshot(job_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpStatusSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ServiceStatusSource:
    """Query a StatusService directly; store failures surface as TransportError."""

    def __init__(self, service: StatusService):
        self._service = service

    async def fetch(self, job_id: str) -> JobSnapshot:
        try:
            return await asyncio.to_thread(self._service.get_status, job_id)
        except JobError:
            raise
        except Exception as e:
            logger.warning("Status lookup for %s failed: %s", job_id, e)
            raise TransportError(str(e)) from e
