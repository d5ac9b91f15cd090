"""Error taxonomy for the scheduler.

Validation errors (InvalidScheduleError, NotFoundError) propagate to the
caller of a mutation. DeliveryError and PersistenceError raised while a
job is firing are caught by the executor and turned into execution records.
"""


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class InvalidScheduleError(SchedulerError, ValueError):
    """Malformed cron expression or a one-time timestamp not in the future."""


class NotFoundError(SchedulerError, LookupError):
    """Operation on an unknown job id or delivery target."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class AlreadyArmedError(SchedulerError):
    """A trigger is already armed for this job id."""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} already has a live trigger")
        self.job_id = job_id


class DeliveryError(SchedulerError):
    """The dispatcher failed to deliver a message."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PersistenceError(SchedulerError):
    """The job store or execution history is unavailable."""


class RateLimitedError(DeliveryError):
    """The remote side refused the message because of a rate limit."""

    def __init__(self, reason: str, retry_after: float | None = None):
        super().__init__(reason)
        self.retry_after = retry_after
