"""Progress recording: commits job progress in its own unit of work.

A bulk job reports progress while it is still running, and observers must see
those reports even if the job later fails. Every report is therefore sent as
a command to ``ProcessingStatusHandler``: Protean runs each command handler in
a fresh ``UnitOfWork``, so a report is committed on its own and nothing the
caller does afterwards can roll it back.

Callers never touch the ProcessingStatus repository directly. They hold a
``ProgressRecorder`` handle, which is the only way in.
"""

import threading
from collections import defaultdict

import structlog
from protean import handle
from protean.exceptions import ExpectedVersionError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from ordering import config
from ordering.domain import ordering
from ordering.errors import JobNotFound, PersistenceFailure
from ordering.processing.status import ProcessingStatus

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@ordering.command(part_of="ProcessingStatus")
class StartJob:
    job_id = String(required=True, max_length=100)
    total = Integer(required=True, min_value=0)


@ordering.command(part_of="ProcessingStatus")
class AdvanceProgress:
    """Add to a running job's counters."""

    job_id = String(required=True, max_length=100)
    processed = Integer(default=0, min_value=0)
    failed = Integer(default=0, min_value=0)


@ordering.command(part_of="ProcessingStatus")
class UpdateProgress:
    """Report absolute counters for a running job."""

    job_id = String(required=True, max_length=100)
    processed = Integer(required=True, min_value=0)
    total = Integer(required=True, min_value=0)
    failed = Integer(min_value=0)


@ordering.command(part_of="ProcessingStatus")
class CompleteJob:
    job_id = String(required=True, max_length=100)


@ordering.command(part_of="ProcessingStatus")
class CancelJob:
    job_id = String(required=True, max_length=100)


@ordering.command(part_of="ProcessingStatus")
class AbortJob:
    job_id = String(required=True, max_length=100)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
def _load_status(job_id):
    status = current_domain.repository_for(ProcessingStatus).find_by_job_id(job_id)
    if status is None:
        raise JobNotFound({"job_id": [f"Job not found: {job_id}"]})
    return status


@ordering.command_handler(part_of=ProcessingStatus)
class ProcessingStatusHandler:
    """Applies progress changes to the latest stored record.

    Each handler re-reads the record inside its own unit of work, so a change
    is always applied on top of what was last committed, never on top of a
    copy the caller has been holding.
    """

    @handle(StartJob)
    def start_job(self, command):
        repo = current_domain.repository_for(ProcessingStatus)
        status = repo.get_or_create(command.job_id)
        status.mark_running(command.total)
        repo.add(status)

    @handle(AdvanceProgress)
    def advance_progress(self, command):
        status = _load_status(command.job_id)
        status.advance(processed=command.processed or 0, failed=command.failed or 0)
        current_domain.repository_for(ProcessingStatus).add(status)

    @handle(UpdateProgress)
    def update_progress(self, command):
        status = _load_status(command.job_id)
        status.update_progress(command.processed, command.total, failed=command.failed)
        current_domain.repository_for(ProcessingStatus).add(status)

    @handle(CompleteJob)
    def complete_job(self, command):
        status = _load_status(command.job_id)
        status.mark_completed()
        current_domain.repository_for(ProcessingStatus).add(status)

    @handle(CancelJob)
    def cancel_job(self, command):
        status = _load_status(command.job_id)
        status.mark_cancelled()
        current_domain.repository_for(ProcessingStatus).add(status)

    @handle(AbortJob)
    def abort_job(self, command):
        status = _load_status(command.job_id)
        status.mark_aborted()
        current_domain.repository_for(ProcessingStatus).add(status)


# ---------------------------------------------------------------------------
# Recorder handle
# ---------------------------------------------------------------------------
_job_locks = defaultdict(threading.Lock)
_job_locks_guard = threading.Lock()


def _lock_for(job_id):
    with _job_locks_guard:
        return _job_locks[job_id]


def _release_lock(job_id):
    """Forget the lock of a finished job."""
    with _job_locks_guard:
        _job_locks.pop(job_id, None)


class ProgressRecorder:
    """Service handle through which progress for a job is committed.

    Writes to one job id are serialized inside the process by a per-job lock.
    Writers in other processes are caught by the repository's version check;
    a conflicting write is retried against the fresh record.
    """

    def __init__(self, max_retries=None):
        self.max_retries = max_retries or config.progress_max_retries()

    def _commit(self, job_id, command):
        with _lock_for(job_id):
            for attempt in range(1, self.max_retries + 1):
                try:
                    current_domain.process(command, asynchronous=False)
                    return
                except ExpectedVersionError as exc:
                    logger.warning(
                        "Progress write conflicted, retrying",
                        job_id=job_id,
                        command=command.__class__.__name__,
                        attempt=attempt,
                        error=str(exc),
                    )

        name = command.__class__.__name__
        raise PersistenceFailure(
            {"job_id": [f"Could not commit {name} for job {job_id} after {self.max_retries} attempts"]}
        )

    def start(self, job_id, total):
        self._commit(job_id, StartJob(job_id=job_id, total=total))

    def advance(self, job_id, processed=0, failed=0):
        self._commit(job_id, AdvanceProgress(job_id=job_id, processed=processed, failed=failed))

    def update(self, job_id, processed, total, failed=None):
        self._commit(job_id, UpdateProgress(job_id=job_id, processed=processed, total=total, failed=failed))

    def _finish(self, job_id, command):
        self._commit(job_id, command)
        _release_lock(job_id)

    def complete(self, job_id):
        self._finish(job_id, CompleteJob(job_id=job_id))

    def cancel(self, job_id):
        self._finish(job_id, CancelJob(job_id=job_id))

    def abort(self, job_id):
        self._finish(job_id, AbortJob(job_id=job_id))


def get_status(job_id):
    """Read the last committed status of a job."""
    return _load_status(job_id)
