"""Tests for the broker → public state mapping."""

import pytest

from tryon.jobs.states import BrokerState, JobState, to_public_state


@pytest.mark.parametrize(
    "native, expected",
    [
        ("waiting", JobState.QUEUED),
        ("delayed", JobState.QUEUED),
        ("active", JobState.ACTIVE),
        ("completed", JobState.COMPLETED),
        ("failed", JobState.FAILED),
    ],
)
def test_known_states_map(native, expected):
    assert to_public_state(native) is expected
    assert to_public_state(BrokerState(native)) is expected


def test_unknown_native_state_reads_as_queued():
    assert to_public_state("paused") is JobState.QUEUED
    assert to_public_state("prioritized") is JobState.QUEUED


def test_active_is_exposed_as_processing():
    assert JobState.ACTIVE.value == "processing"


def test_terminal_flags():
    assert JobState.COMPLETED.is_terminal
    assert JobState.FAILED.is_terminal
    assert not JobState.QUEUED.is_terminal
    assert not JobState.ACTIVE.is_terminal
    assert BrokerState.FAILED.is_terminal
    assert not BrokerState.DELAYED.is_terminal
