"""Pytest configuration and shared fixtures."""

import pytest

from tryon.config import Settings
from tryon.jobs import Dispatcher, FileJobStore, StatusService


@pytest.fixture
def settings(tmp_path):
    """Settings pointing the file store at a per-test directory."""
    return Settings(
        _env_file=None,
        tryon_store="file",
        tryon_data_dir=str(tmp_path / "data"),
        tryon_embedded_worker=False,
    )


@pytest.fixture
def store(tmp_path):
    return FileJobStore(tmp_path / "data")


@pytest.fixture
def dispatcher(store):
    return Dispatcher(store)


@pytest.fixture
def status_service(store):
    return StatusService(store)


@pytest.fixture
def submission():
    return {"primaryImage": "https://x/j.jpg", "prompt": "studio photo"}
