"""Exceptions raised by the cron subsystem and the transport gateway."""

from typing import Iterable, Optional


class CronError(Exception):
    """Base class for scheduler errors."""


class JobValidationError(CronError):
    """A job definition was rejected before any state was touched."""

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields or [])


class JobNotFoundError(CronError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class TransportUnavailable(CronError):
    """No transport client is attached to the gateway."""


class TransportFailure(CronError):
    """The attached transport client failed to deliver a message."""
