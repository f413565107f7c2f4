"""Asynchronous image-generation jobs: submit, work, poll."""

__version__ = "0.1.0"
