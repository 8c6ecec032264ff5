"""ProcessingStatus aggregate: live progress of a long-running job.

The record is a projection of progress keyed by job id. It has no relation to
the orders a job touches; it only counts them.

State Machine:
    NOT_STARTED → RUNNING → COMPLETED
    RUNNING → CANCELLED (stop requested)
    RUNNING → ABORTED (failure threshold exceeded)
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Integer, String

from ordering.domain import ordering
from ordering.processing.events import JobFinished, JobStarted


class JobState(Enum):
    NOT_STARTED = "Not_Started"
    RUNNING = "Running"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    ABORTED = "Aborted"


_TERMINAL_STATES = {JobState.COMPLETED, JobState.CANCELLED, JobState.ABORTED}

_VALID_TRANSITIONS = {
    JobState.NOT_STARTED: {JobState.RUNNING},
    JobState.RUNNING: _TERMINAL_STATES,
    JobState.COMPLETED: set(),
    JobState.CANCELLED: set(),
    JobState.ABORTED: set(),
}


def _clamp(value, upper):
    return max(0, min(int(value or 0), upper))


@ordering.aggregate
class ProcessingStatus:
    job_id = String(identifier=True, required=True, max_length=100)
    state = String(choices=JobState, default=JobState.NOT_STARTED.value)
    processed_count = Integer(default=0, min_value=0)
    failed_count = Integer(default=0, min_value=0)
    total_count = Integer(default=0, min_value=0)
    started_at = DateTime()
    finished_at = DateTime()

    @invariant.post
    def counts_must_fit_within_total(self):
        if JobState(self.state) == JobState.NOT_STARTED:
            return
        if (self.processed_count or 0) + (self.failed_count or 0) > (self.total_count or 0):
            raise ValidationError({"processed_count": ["Processed and failed counts cannot exceed the total"]})

    @classmethod
    def create(cls, job_id):
        return cls(job_id=job_id, state=JobState.NOT_STARTED.value)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_state):
        current = JobState(self.state)
        if target_state not in _VALID_TRANSITIONS[current]:
            raise ValidationError(
                {"state": [f"Cannot transition job {self.job_id} from {current.value} to {target_state.value}"]}
            )

    def _assert_running(self):
        if JobState(self.state) != JobState.RUNNING:
            raise ValidationError({"state": [f"Job {self.job_id} is not running"]})

    @property
    def is_running(self):
        return JobState(self.state) == JobState.RUNNING

    @property
    def is_finished(self):
        return JobState(self.state) in _TERMINAL_STATES

    @property
    def remaining_count(self):
        return max(0, (self.total_count or 0) - (self.processed_count or 0) - (self.failed_count or 0))

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def mark_running(self, total):
        """Start the job with ``total`` units of work and zeroed counters."""
        self._assert_can_transition(JobState.RUNNING)
        now = datetime.now(UTC)
        with atomic_change(self):
            self.state = JobState.RUNNING.value
            self.total_count = max(0, int(total or 0))
            self.processed_count = 0
            self.failed_count = 0
            self.started_at = now

        self.raise_(JobStarted(job_id=self.job_id, total_count=self.total_count, started_at=now))

    def update_progress(self, processed, total, failed=None):
        """Report absolute counters.

        Counters never move backwards: a report carrying lower numbers than
        already recorded is a stale report and leaves the counters as they are.
        """
        self._assert_running()
        total = max(int(total or 0), self.total_count or 0)
        failed_now = self.failed_count or 0
        processed_now = max(self.processed_count or 0, _clamp(processed, total - failed_now))
        if failed is not None:
            failed_now = max(failed_now, _clamp(failed, total - processed_now))

        with atomic_change(self):
            self.total_count = total
            self.processed_count = processed_now
            self.failed_count = failed_now

    def advance(self, processed=0, failed=0):
        """Add to the counters, capping them at the job total."""
        self._assert_running()
        if processed < 0 or failed < 0:
            raise ValidationError({"processed_count": ["Progress increments cannot be negative"]})
        total = self.total_count or 0
        processed_now = _clamp((self.processed_count or 0) + processed, total - (self.failed_count or 0))
        failed_now = _clamp((self.failed_count or 0) + failed, total - processed_now)

        with atomic_change(self):
            self.processed_count = processed_now
            self.failed_count = failed_now

    def _finish(self, target_state):
        self._assert_can_transition(target_state)
        now = datetime.now(UTC)
        with atomic_change(self):
            self.state = target_state.value
            self.finished_at = now

        self.raise_(
            JobFinished(
                job_id=self.job_id,
                state=self.state,
                processed_count=self.processed_count,
                failed_count=self.failed_count,
                total_count=self.total_count,
                finished_at=now,
            )
        )

    def mark_completed(self):
        self._finish(JobState.COMPLETED)

    def mark_cancelled(self):
        self._finish(JobState.CANCELLED)

    def mark_aborted(self):
        self._finish(JobState.ABORTED)


@ordering.repository(part_of=ProcessingStatus)
class ProcessingStatusRepository:
    def find_by_job_id(self, job_id):
        """Return the status for ``job_id``, or None when the job is unknown."""
        try:
            return self.get(job_id)
        except ObjectNotFoundError:
            return None

    def get_or_create(self, job_id):
        return self.find_by_job_id(job_id) or ProcessingStatus.create(job_id)
