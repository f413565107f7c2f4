"""Tests for the reference worker."""

import threading

import pytest

from tryon.jobs import GenerationError, JobState, Worker, load_generator
from tryon.jobs.worker import EMPTY_RESULT_REASON, echo_generator


def test_run_once_on_empty_queue(store):
    assert Worker(store, echo_generator).run_once() is False


def test_successful_generation_completes_job(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)
    seen = []

    def generate(generation_input):
        seen.append(generation_input)
        assert status_service.get_status(job_id).state is JobState.ACTIVE
        return "https://x/out.jpg"

    assert Worker(store, generate).run_once() is True
    assert seen[0].prompt == "studio photo"
    assert status_service.get_status(job_id).to_response() == {
        "status": "completed",
        "result": "https://x/out.jpg",
    }


def test_generation_error_fails_job(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)

    def generate(generation_input):
        raise GenerationError("model timeout")

    Worker(store, generate).run_once()
    assert status_service.get_status(job_id).to_response() == {"status": "failed", "error": "model timeout"}


def test_unexpected_exception_fails_job(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)

    def generate(generation_input):
        raise RuntimeError("x" * 1000)

    Worker(store, generate).run_once()
    snapshot = status_service.get_status(job_id)
    assert snapshot.state is JobState.FAILED
    assert len(snapshot.error) == 300


def test_empty_result_fails_job(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)
    Worker(store, lambda generation_input: "").run_once()
    assert status_service.get_status(job_id).error == EMPTY_RESULT_REASON


def test_late_finalize_is_dropped(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)

    def generate(generation_input):
        # a redelivered copy of the job finished first
        store.complete(job_id, "https://x/first.jpg")
        return "https://x/second.jpg"

    Worker(store, generate).run_once()
    assert status_service.get_status(job_id).result == "https://x/first.jpg"


def test_run_forever_drains_queue_until_stopped(dispatcher, store, status_service):
    ids = [dispatcher.submit({"primaryImage": f"https://x/{n}.jpg"}) for n in range(3)]
    worker = Worker(store, echo_generator, idle_s=0.01)
    thread = threading.Thread(target=worker.run_forever)
    thread.start()
    try:
        for _ in range(500):
            if all(status_service.get_status(i).state.is_terminal for i in ids):
                break
            threading.Event().wait(0.01)
    finally:
        worker.stop()
        thread.join(timeout=2.0)
    assert not thread.is_alive()
    assert [status_service.get_status(i).result for i in ids] == [f"https://x/{n}.jpg" for n in range(3)]


def test_load_generator():
    assert load_generator("tryon.jobs.worker:echo_generator") is echo_generator


@pytest.mark.parametrize("path", ["tryon.jobs.worker", "tryon.jobs.worker:missing", ":echo_generator"])
def test_load_generator_rejects_bad_paths(path):
    with pytest.raises(ValueError):
        load_generator(path)
