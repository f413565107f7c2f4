"""Client-side status polling with a progress estimate.

A JobObserver runs two asyncio tasks per observation:

* the poll loop queries the status source immediately, then again
  ``poll_interval`` seconds after each non-terminal reply (fixed interval,
  one request in flight at a time);
* the progress ticker advances the estimate every ``tick_interval`` seconds.

Both stop for good when a terminal state is seen, when a query fails, or when
``cancel()`` is called. A failed query is reported to the caller as a
client-side failure; the job itself is left untouched and may still finish.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from tryon.client.progress import ProgressEstimator
from tryon.client.sources import StatusSource
from tryon.jobs.errors import NotFoundError
from tryon.jobs.models import JobSnapshot
from tryon.jobs.states import JobState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 2.0
DEFAULT_TICK_INTERVAL_S = 1.0

STATUS_UNREACHABLE = "Could not reach status service"
JOB_NOT_FOUND = "Job not found"
GAVE_UP_WAITING = "Gave up waiting for job"


@dataclass(frozen=True)
class Observation:
    """What the caller should display for a job right now."""

    job_id: str
    state: JobState
    progress: float = 0.0
    result: str | None = None
    error: str | None = None
    # True when the failure is the client's (unreachable service), not the job's
    client_side: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class _Run:
    """Book-keeping for one observation started by ``JobObserver.start``."""

    def __init__(self, job_id: str, started_at: float):
        self.job_id = job_id
        self.started_at = started_at
        self.observation = Observation(job_id=job_id, state=JobState.QUEUED)
        self.stopped = False
        self.finished = asyncio.Event()
        self.poll_task: asyncio.Task | None = None
        self.tick_task: asyncio.Task | None = None


class JobObserver:
    """Observe one job at a time until it reaches a terminal state.

    ``on_update`` receives every new Observation. It runs on the event loop
    and must not block. Exceptions it raises are logged and do not stop
    the observation.
    """

    def __init__(
        self,
        source: StatusSource,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_S,
        tick_interval: float = DEFAULT_TICK_INTERVAL_S,
        max_duration: float | None = None,
        estimator_factory: Callable[[], ProgressEstimator] = ProgressEstimator,
        on_update: Callable[[Observation], None] | None = None,
    ):
        self._source = source
        self._poll_interval = poll_interval
        self._tick_interval = tick_interval
        self._max_duration = max_duration
        self._estimator_factory = estimator_factory
        self._on_update = on_update
        self._estimator = estimator_factory()
        self._run: _Run | None = None
        self._observation: Observation | None = None

    @property
    def observation(self) -> Observation | None:
        return self._observation

    @property
    def running(self) -> bool:
        return self._run is not None and not self._run.stopped

    def start(self, job_id: str) -> None:
        """Begin observing ``job_id``. Any earlier observation is cancelled first.

        Must be called from a running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        run = _Run(job_id, loop.time())
        self._run = run
        self._estimator = self._estimator_factory()
        self._observation = run.observation
        run.poll_task = loop.create_task(self._poll_loop(run), name=f"poll:{job_id}")
        run.tick_task = loop.create_task(self._tick_loop(run), name=f"progress:{job_id}")
        logger.info("Polling status for job %s", job_id)

    def cancel(self) -> None:
        """Stop polling and progress ticks immediately. Safe to call repeatedly."""
        run = self._run
        if run is None or run.stopped:
            return
        self._stop(run)
        logger.info("Stopped polling for job %s", run.job_id)

    async def wait(self) -> Observation:
        """Wait for the current observation to end and return its last state.

        A later ``start()`` does not change what an earlier ``wait()`` returns.
        """
        run = self._run
        if run is None:
            raise RuntimeError("No observation has been started")
        await run.finished.wait()
        return run.observation

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _poll_loop(self, run: _Run) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                snapshot = await self._source.fetch(run.job_id)
            except NotFoundError:
                logger.warning("Job %s not found, stopping polling", run.job_id)
                self._give_up(run, JOB_NOT_FOUND)
                return
            except Exception as e:
                logger.warning("Polling error for job %s: %s", run.job_id, e)
                self._give_up(run, STATUS_UNREACHABLE)
                return
            if run.stopped:
                return
            self._apply(run, snapshot)
            if run.stopped:
                return
            if self._max_duration is not None and loop.time() - run.started_at >= self._max_duration:
                logger.warning("Job %s still running after %.0fs, stopping polling", run.job_id, self._max_duration)
                self._give_up(run, GAVE_UP_WAITING)
                return
            await asyncio.sleep(self._poll_interval)

    async def _tick_loop(self, run: _Run) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            current = self._observation
            if run.stopped or current is None or current.is_terminal:
                return
            progress = self._estimator.advance(current.state)
            if progress != current.progress:
                self._publish(run, replace(current, progress=progress))

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    def _apply(self, run: _Run, snapshot: JobSnapshot) -> None:
        if snapshot.state is JobState.COMPLETED:
            self._estimator.complete()
        elif snapshot.state is JobState.FAILED:
            self._estimator.freeze()
        self._publish(
            run,
            Observation(
                job_id=run.job_id,
                state=snapshot.state,
                progress=self._estimator.value,
                result=snapshot.result,
                error=snapshot.error,
            ),
        )
        if snapshot.state.is_terminal:
            logger.info("Job %s %s, stopping polling", run.job_id, snapshot.state.value)
            self._stop(run)

    def _give_up(self, run: _Run, reason: str) -> None:
        self._estimator.freeze()
        self._publish(
            run,
            Observation(
                job_id=run.job_id,
                state=JobState.FAILED,
                progress=self._estimator.value,
                error=reason,
                client_side=True,
            ),
        )
        self._stop(run)

    def _publish(self, run: _Run, observation: Observation) -> None:
        if run.stopped or run is not self._run:
            return
        run.observation = observation
        self._observation = observation
        if self._on_update is None:
            return
        try:
            self._on_update(observation)
        except Exception:
            logger.exception("Update callback failed for job %s", run.job_id)

    def _stop(self, run: _Run) -> None:
        run.stopped = True
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in (run.poll_task, run.tick_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        run.finished.set()


async def watch_job(source: StatusSource, job_id: str, **kwargs) -> Observation:
    """Observe ``job_id`` until it ends and return the final observation."""
    observer = JobObserver(source, **kwargs)
    observer.start(job_id)
    try:
        return await observer.wait()
    finally:
        observer.cancel()
