"""Bulk shipment: ships a batch of orders while publishing live progress.

A job is not one unit of work. Each order is shipped in its own
``UnitOfWork`` and each progress report is committed through the
``ProgressRecorder``, so a failure late in the batch neither undoes earlier
shipments nor erases the progress observers have already seen.

Per-order failures are classified, counted and logged with the order id, and
the batch moves on. The job always ends in a terminal state: Completed, or
Cancelled / Aborted when a stop signal or the failure threshold cuts it short.
"""

import time
from dataclasses import dataclass, field
from enum import Enum

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import ExpectedVersionError, IncorrectUsageError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain, current_uow

from ordering import config
from ordering.errors import OrderNotFound
from ordering.order.order import Order
from ordering.processing.recorder import ProgressRecorder
from ordering.processing.status import JobState

logger = structlog.get_logger(__name__)


class FailureKind(Enum):
    NOT_FOUND = "not_found"
    RULE_VIOLATION = "rule_violation"
    CONFLICT = "conflict"
    UNEXPECTED = "unexpected"


def classify_failure(exc):
    if isinstance(exc, ObjectNotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(exc, ExpectedVersionError):
        return FailureKind.CONFLICT
    if isinstance(exc, ValidationError):
        return FailureKind.RULE_VIOLATION
    return FailureKind.UNEXPECTED


@dataclass(frozen=True)
class ShipmentFailure:
    """One order the job could not ship."""

    order_id: str
    kind: FailureKind
    reason: str


@dataclass
class BulkShipmentReport:
    """Outcome of a bulk shipment run, mirroring the final ProcessingStatus."""

    job_id: str
    total: int
    state: JobState = JobState.RUNNING
    processed: int = 0
    failures: list[ShipmentFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def attempted(self) -> int:
        return self.processed + self.failed


def _chunks(items, size):
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BulkShipmentCoordinator:
    """Ships orders one by one and reports progress after each of them.

    Args:
        recorder: Progress handle. A fresh ``ProgressRecorder`` by default.
        batch_size: Orders fetched per repository query.
        max_failure_ratio: Abort once failed / attempted exceeds this ratio.
            ``1.0`` never aborts.
        min_failure_sample: Orders attempted before the ratio is enforced.
    """

    def __init__(
        self,
        recorder: ProgressRecorder | None = None,
        batch_size: int | None = None,
        max_failure_ratio: float | None = None,
        min_failure_sample: int | None = None,
        clock=time.monotonic,
    ):
        self.recorder = recorder or ProgressRecorder()
        self.batch_size = batch_size or config.bulk_batch_size()
        self.max_failure_ratio = config.max_failure_ratio() if max_failure_ratio is None else max_failure_ratio
        self.min_failure_sample = config.min_failure_sample() if min_failure_sample is None else min_failure_sample
        self.clock = clock

    # -------------------------------------------------------------------
    # Per-order work
    # -------------------------------------------------------------------
    def ship(self, order: Order) -> None:
        """Ship one order in its own unit of work."""
        with UnitOfWork():
            order.ship()
            current_domain.repository_for(Order).add(order)

    # -------------------------------------------------------------------
    # Job
    # -------------------------------------------------------------------
    def _threshold_exceeded(self, report: BulkShipmentReport) -> bool:
        if report.attempted < self.min_failure_sample or report.attempted == 0:
            return False
        return report.failed / report.attempted > self.max_failure_ratio

    def _record_failure(self, report, order_id, exc):
        kind = classify_failure(exc)
        report.failures.append(ShipmentFailure(order_id=order_id, kind=kind, reason=str(exc)))

        if kind == FailureKind.UNEXPECTED:
            logger.exception("Order shipment failed unexpectedly", order_id=order_id, kind=kind.value)
        else:
            logger.warning("Order shipment failed", order_id=order_id, kind=kind.value, reason=str(exc))

    def run(self, job_id, order_ids, should_cancel=None, time_budget=None) -> BulkShipmentReport:
        """Ship every order in ``order_ids`` under the progress record ``job_id``.

        Args:
            job_id: Key of the ProcessingStatus observers poll.
            order_ids: Orders to ship. ``None`` is treated as empty.
            should_cancel: Optional callable checked before each order; when it
                returns True the job stops and is marked Cancelled.
            time_budget: Optional seconds after which the job stops and is
                marked Cancelled.
        """
        if current_uow and current_uow.in_progress:
            raise IncorrectUsageError(
                {"_job": ["Bulk shipment must not run inside a unit of work; progress would share its fate"]}
            )

        ids = [str(order_id) for order_id in (order_ids or [])]
        report = BulkShipmentReport(job_id=job_id, total=len(ids))
        deadline = self.clock() + time_budget if time_budget is not None else None
        repo = current_domain.repository_for(Order)

        with structlog.contextvars.bound_contextvars(job_id=job_id):
            self.recorder.start(job_id, len(ids))
            logger.info("Bulk shipment started", total=len(ids))

            report.state = self._ship_all(job_id, ids, repo, report, should_cancel, deadline)

            if report.state == JobState.CANCELLED:
                self.recorder.cancel(job_id)
            elif report.state == JobState.ABORTED:
                self.recorder.abort(job_id)
            else:
                self.recorder.complete(job_id)

            logger.info(
                "Bulk shipment finished",
                state=report.state.value,
                processed=report.processed,
                failed=report.failed,
                total=report.total,
            )

        return report

    def _ship_all(self, job_id, ids, repo, report, should_cancel, deadline):
        for chunk in _chunks(ids, self.batch_size):
            orders = repo.find_all_by_ids(chunk)

            for order_id in chunk:
                if (should_cancel and should_cancel()) or (deadline is not None and self.clock() >= deadline):
                    logger.warning("Bulk shipment cancelled", remaining=report.total - report.attempted)
                    return JobState.CANCELLED

                try:
                    order = orders.get(order_id)
                    if order is None:
                        raise OrderNotFound({"order_id": [f"Order not found: {order_id}"]})
                    self.ship(order)
                except Exception as exc:
                    self._record_failure(report, order_id, exc)
                    self.recorder.advance(job_id, failed=1)
                else:
                    report.processed += 1
                    self.recorder.advance(job_id, processed=1)

                if self._threshold_exceeded(report):
                    logger.error(
                        "Bulk shipment aborted: failure threshold exceeded",
                        failed=report.failed,
                        attempted=report.attempted,
                        max_failure_ratio=self.max_failure_ratio,
                    )
                    return JobState.ABORTED

        return JobState.COMPLETED
