"""Tests for the ProcessingStatus state machine and its counters."""

import pytest
from ordering.processing.events import JobFinished, JobStarted
from ordering.processing.status import JobState, ProcessingStatus
from protean.exceptions import ValidationError


def _running(total=5):
    status = ProcessingStatus.create("job-001")
    status.mark_running(total)
    return status


class TestCreation:
    def test_starts_not_started(self):
        status = ProcessingStatus.create("job-001")
        assert status.state == JobState.NOT_STARTED.value
        assert status.processed_count == 0
        assert status.failed_count == 0
        assert status.total_count == 0

    def test_job_id_is_identifier(self):
        assert ProcessingStatus.create("job-xyz").job_id == "job-xyz"


class TestMarkRunning:
    def test_captures_total(self):
        status = _running(total=7)
        assert status.state == JobState.RUNNING.value
        assert status.total_count == 7
        assert status.started_at is not None

    def test_raises_job_started(self):
        status = _running(total=3)
        event = status._events[-1]
        assert isinstance(event, JobStarted)
        assert event.total_count == 3

    def test_cannot_start_twice(self):
        status = _running()
        with pytest.raises(ValidationError):
            status.mark_running(5)

    def test_cannot_restart_completed_job(self):
        status = _running()
        status.mark_completed()
        with pytest.raises(ValidationError):
            status.mark_running(5)
        assert status.state == JobState.COMPLETED.value


class TestUpdateProgress:
    def test_only_while_running(self):
        status = ProcessingStatus.create("job-001")
        with pytest.raises(ValidationError):
            status.update_progress(1, 5)

    def test_sets_processed(self):
        status = _running(total=5)
        status.update_progress(3, 5)
        assert status.processed_count == 3

    def test_clamps_to_total(self):
        status = _running(total=5)
        status.update_progress(9, 5)
        assert status.processed_count == 5

    def test_clamps_negative_to_zero(self):
        status = _running(total=5)
        status.update_progress(-2, 5)
        assert status.processed_count == 0

    def test_stale_report_does_not_move_backwards(self):
        status = _running(total=5)
        status.update_progress(4, 5)
        status.update_progress(2, 5)
        assert status.processed_count == 4

    def test_accepts_failed_count(self):
        status = _running(total=5)
        status.update_progress(3, 5, failed=2)
        assert status.processed_count == 3
        assert status.failed_count == 2

    def test_processed_and_failed_never_exceed_total(self):
        status = _running(total=5)
        status.update_progress(0, 5, failed=2)
        status.update_progress(5, 5)
        assert status.processed_count == 3
        assert status.failed_count == 2


class TestAdvance:
    def test_increments_counters(self):
        status = _running(total=5)
        status.advance(processed=1)
        status.advance(processed=1)
        status.advance(failed=1)
        assert status.processed_count == 2
        assert status.failed_count == 1
        assert status.remaining_count == 2

    def test_caps_at_total(self):
        status = _running(total=3)
        status.advance(processed=2)
        status.advance(failed=5)
        assert status.processed_count == 2
        assert status.failed_count == 1

    def test_negative_increment_rejected(self):
        status = _running()
        with pytest.raises(ValidationError):
            status.advance(processed=-1)

    def test_only_while_running(self):
        status = _running()
        status.mark_completed()
        with pytest.raises(ValidationError):
            status.advance(processed=1)


class TestFinishing:
    @pytest.mark.parametrize(
        "method, state",
        [
            ("mark_completed", JobState.COMPLETED),
            ("mark_cancelled", JobState.CANCELLED),
            ("mark_aborted", JobState.ABORTED),
        ],
    )
    def test_terminal_states(self, method, state):
        status = _running()
        getattr(status, method)()
        assert status.state == state.value
        assert status.finished_at is not None
        assert status.is_finished

    def test_completes_exactly_once(self):
        status = _running()
        status.mark_completed()
        with pytest.raises(ValidationError):
            status.mark_completed()

    def test_cannot_complete_before_running(self):
        status = ProcessingStatus.create("job-001")
        with pytest.raises(ValidationError):
            status.mark_completed()

    def test_raises_job_finished_with_counts(self):
        status = _running(total=4)
        status.advance(processed=3)
        status.advance(failed=1)
        status.mark_completed()

        event = status._events[-1]
        assert isinstance(event, JobFinished)
        assert event.state == JobState.COMPLETED.value
        assert event.processed_count == 3
        assert event.failed_count == 1
