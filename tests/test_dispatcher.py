"""Tests for job submission: validation, id allocation, create+enqueue."""

import pytest

from tryon.jobs import Dispatcher, DuplicateJobError, GenerationInput, JobState, ValidationError
from tryon.jobs.dispatcher import PRIMARY_IMAGE_REQUIRED
from tryon.jobs.states import BrokerState


def test_submit_returns_id_and_queues_job(dispatcher, store, status_service, submission):
    job_id = dispatcher.submit(submission)
    assert job_id.startswith("job_")

    job = store.get(job_id)
    assert job.state == BrokerState.WAITING
    assert job.input.primary_image == "https://x/j.jpg"
    assert job.input.prompt == "studio photo"
    assert job.result is None and job.failure_reason is None

    snapshot = status_service.get_status(job_id)
    assert snapshot.state in (JobState.QUEUED, JobState.ACTIVE)


def test_submit_enqueues_exactly_one_work_item(dispatcher, store, submission):
    job_id = dispatcher.submit(submission)
    item = store.dequeue()
    assert item.job_id == job_id
    assert store.dequeue() is None


def test_missing_primary_image_is_rejected(dispatcher, store):
    with pytest.raises(ValidationError) as exc:
        dispatcher.submit({"prompt": "studio photo"})
    assert str(exc.value) == PRIMARY_IMAGE_REQUIRED
    assert store.dequeue() is None


@pytest.mark.parametrize("value", ["", "   ", None])
def test_blank_primary_image_is_rejected(dispatcher, value):
    with pytest.raises(ValidationError, match="Image URL is required"):
        dispatcher.submit({"primaryImage": value})


def test_legacy_field_names_are_accepted(dispatcher, store):
    job_id = dispatcher.submit(
        {"imageUrl": "https://x/ring.jpg", "personImage": "data:image/png;base64,AAAA", "sizing": "7"}
    )
    job = store.get(job_id)
    assert job.input.primary_image == "https://x/ring.jpg"
    assert job.input.secondary_image == "data:image/png;base64,AAAA"
    assert job.input.sizing == "7"


def test_blank_optional_fields_become_none(dispatcher, store):
    job_id = dispatcher.submit({"primaryImage": "https://x/j.jpg", "secondaryImage": "", "prompt": " "})
    job = store.get(job_id)
    assert job.input.secondary_image is None
    assert job.input.prompt is None


def test_non_string_optional_field_is_rejected(dispatcher):
    with pytest.raises(ValidationError, match="prompt"):
        dispatcher.submit({"primaryImage": "https://x/j.jpg", "prompt": 42})


def test_non_mapping_payload_is_rejected(dispatcher):
    with pytest.raises(ValidationError):
        dispatcher.submit(["https://x/j.jpg"])


def test_accepts_generation_input(dispatcher, store):
    job_id = dispatcher.submit(GenerationInput(primary_image="https://x/j.jpg"))
    assert store.get(job_id).input.primary_image == "https://x/j.jpg"


def test_id_collision_allocates_new_id(store, submission):
    ids = iter(["job_fixed", "job_fixed", "job_other"])
    dispatcher = Dispatcher(store, id_factory=lambda: next(ids))
    assert dispatcher.submit(submission) == "job_fixed"
    assert dispatcher.submit(submission) == "job_other"
    assert store.get("job_fixed").input.prompt == "studio photo"


def test_persistent_collision_fails_creation(store, submission):
    dispatcher = Dispatcher(store, id_factory=lambda: "job_fixed")
    dispatcher.submit(submission)
    with pytest.raises(DuplicateJobError):
        dispatcher.submit({"primaryImage": "https://x/other.jpg"})
    assert store.get("job_fixed").input.primary_image == "https://x/j.jpg"
