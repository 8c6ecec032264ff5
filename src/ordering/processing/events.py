"""Domain events for the ProcessingStatus aggregate."""

from protean.fields import DateTime, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="ProcessingStatus")
class JobStarted:
    __version__ = 1

    job_id = String(required=True)
    total_count = Integer(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="ProcessingStatus")
class JobFinished:
    """A job reached a terminal state: Completed, Cancelled or Aborted."""

    __version__ = 1

    job_id = String(required=True)
    state = String(required=True)
    processed_count = Integer(required=True)
    failed_count = Integer(required=True)
    total_count = Integer(required=True)
    finished_at = DateTime(required=True)
