"""Reference worker: pulls queued jobs, runs the generate callable, records the outcome."""

from __future__ import annotations

import importlib
import logging
import threading
from collections.abc import Callable

from tryon.jobs.errors import GenerationError, JobTransitionError, NotFoundError
from tryon.jobs.models import GenerationInput, WorkItem
from tryon.jobs.store import JobStore

logger = logging.getLogger(__name__)

Generator = Callable[[GenerationInput], str]

EMPTY_RESULT_REASON = "Generator returned no image URL"


def echo_generator(generation_input: GenerationInput) -> str:
    """Development stand-in: returns the primary image as the artifact."""
    return generation_input.primary_image


def load_generator(path: str) -> Generator:
    """Resolve ``"package.module:function"`` to a generate callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Generator path must look like 'module:function', got {path!r}")
    module = importlib.import_module(module_name)
    fn = getattr(module, attr, None)
    if not callable(fn):
        raise ValueError(f"{path!r} is not callable")
    return fn


class Worker:
    """Single-threaded worker loop over a JobStore."""

    def __init__(
        self,
        store: JobStore,
        generate: Generator,
        *,
        idle_s: float = 1.0,
        stalled_after_s: float | None = None,
    ):
        self._store = store
        self._generate = generate
        self._idle_s = idle_s
        self._stalled_after_s = stalled_after_s
        self._stop = threading.Event()

    def run_once(self) -> bool:
        """Process at most one queued job. Returns False when the queue was empty."""
        item = self._store.dequeue()
        if item is None:
            return False
        logger.info("job_started job_id=%s attempt=%d", item.job_id, item.attempts)
        self._process(item)
        return True

    def run_forever(self) -> None:
        if self._stalled_after_s is not None:
            requeued = self._store.requeue_stalled(self._stalled_after_s)
            if requeued:
                logger.info("Requeued %d stalled job(s): %s", len(requeued), ", ".join(requeued))
        while not self._stop.is_set():
            try:
                processed = self.run_once()
            except Exception:
                logger.exception("Worker iteration failed")
                processed = False
            if not processed:
                self._stop.wait(self._idle_s)

    def stop(self) -> None:
        self._stop.set()

    def _process(self, item: WorkItem) -> None:
        try:
            artifact_url = self._generate(item.input)
        except GenerationError as e:
            self._finish(item.job_id, reason=str(e) or "Generation failed")
            return
        except Exception as e:
            logger.exception("Generation failed for job %s", item.job_id)
            self._finish(item.job_id, reason=str(e)[:300] or type(e).__name__)
            return

        if not artifact_url:
            self._finish(item.job_id, reason=EMPTY_RESULT_REASON)
            return
        self._finish(item.job_id, artifact_url=artifact_url)

    def _finish(self, job_id: str, *, artifact_url: str | None = None, reason: str | None = None) -> None:
        try:
            if artifact_url is not None:
                self._store.complete(job_id, artifact_url)
                logger.info("job_completed job_id=%s", job_id)
            else:
                self._store.fail(job_id, reason or "Generation failed")
                logger.info("job_failed job_id=%s reason=%s", job_id, reason)
        except (JobTransitionError, NotFoundError) as e:
            # another delivery of the same job finalized it first
            logger.warning("Dropping result for job %s: %s", job_id, e)
