"""Client-side job observation: status polling and progress estimation."""

from tryon.client.polling import JobObserver, Observation, watch_job
from tryon.client.progress import ProgressEstimator
from tryon.client.sources import HttpStatusSource, ServiceStatusSource, StatusSource

__all__ = [
    "HttpStatusSource",
    "JobObserver",
    "Observation",
    "ProgressEstimator",
    "ServiceStatusSource",
    "StatusSource",
    "watch_job",
]
