"""Job state taxonomy: broker-native states and the public states clients see."""

from __future__ import annotations

from enum import Enum


class BrokerState(str, Enum):
    """Lifecycle states as the queue backend records them."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BrokerState.COMPLETED, BrokerState.FAILED)


class JobState(str, Enum):
    """Public lifecycle states. Values are the wire representation."""

    QUEUED = "queued"
    ACTIVE = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


_PUBLIC_STATES = {
    BrokerState.WAITING: JobState.QUEUED,
    BrokerState.DELAYED: JobState.QUEUED,
    BrokerState.ACTIVE: JobState.ACTIVE,
    BrokerState.COMPLETED: JobState.COMPLETED,
    BrokerState.FAILED: JobState.FAILED,
}


def to_public_state(state: BrokerState | str) -> JobState:
    """Collapse a broker state onto the public taxonomy.

    Clients only distinguish not started, running and done, so waiting and
    delayed both read as queued. Native states this module does not know
    (paused, prioritized, ...) have not started either and also map to queued.
    """
    try:
        native = BrokerState(state)
    except ValueError:
        return JobState.QUEUED
    return _PUBLIC_STATES[native]
