"""Job status workflow: validates a requested status change against the
transition table, persists it and appends the audit trail.

Domain rejections come back as ``TransitionResult`` values so callers can
render them without exception handling. Storage errors propagate.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from sqlalchemy.orm import Session

from recruitment.config import settings
from recruitment.repositories import job_repository
from recruitment.services import audit_service
from recruitment.services.transition_table import (
    TRANSITION_TABLE,
    JobStatus,
    TransitionErrorCode,
    TransitionTable,
)
from recruitment.utils.timestamps import format_timestamp, utc_now

logger = logging.getLogger("recruitment.workflow")

PendingApplicationsCounter = Callable[[Session, int], int]


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    error: str | None = None
    code: TransitionErrorCode | None = None


@dataclass(frozen=True)
class BulkTransitionResult:
    job_id: int
    success: bool
    error: str | None = None
    code: TransitionErrorCode | None = None


class JobStatusWorkflowService:
    def __init__(
        self,
        table: TransitionTable = TRANSITION_TABLE,
        clock: Callable[[], datetime] = utc_now,
        pending_applications_counter: PendingApplicationsCounter = job_repository.count_pending_applications,
        audit_write_attempts: int | None = None,
    ):
        self.table = table
        self.clock = clock
        self.pending_applications_counter = pending_applications_counter
        self._audit_write_attempts = audit_write_attempts

    @property
    def audit_write_attempts(self) -> int:
        if self._audit_write_attempts is not None:
            return self._audit_write_attempts
        return settings.audit_write_attempts

    def transition_status(
        self,
        db: Session,
        job_id: int,
        from_status: JobStatus | str,
        to_status: JobStatus | str,
        transition_data: dict[str, Any] | None,
        actor_id: int,
    ) -> TransitionResult:
        frm, to = JobStatus(from_status), JobStatus(to_status)
        data = dict(transition_data or {})

        context = data
        rule = self.table.lookup(frm, to)
        if rule is not None and rule.allowed and rule.business_rule is not None:
            context = {**data, "has_pending_applications": self.pending_applications_counter(db, job_id) > 0}

        check = self.table.check(frm, to, context)
        if not check.ok:
            logger.warning(
                "Rejected transition for job %s: %s -> %s (%s: %s)",
                job_id, frm.value, to.value, check.code.value, check.error,
            )
            return TransitionResult(success=False, error=check.error, code=check.code)

        now = self.clock()
        job = job_repository.update_status_by_id(
            db,
            job_id,
            to.value,
            previous_status=frm.value,
            status_changed_by=actor_id,
            status_changed_at=now,
            close_reason=_text_or_none(data.get("close_reason")),
            close_notes=_text_or_none(data.get("close_notes")),
            archive_reason=_text_or_none(data.get("archive_reason")),
            scheduled_publish_at=_timestamp_or_none(data.get("scheduled_publish_at")),
            application_deadline=_text_or_none(data.get("new_deadline")),
        )
        if job is None:
            error = f"Job {job_id} is not in status {frm.value}; it was not changed."
            logger.warning("Status conflict for job %s: expected %s", job_id, frm.value)
            return TransitionResult(success=False, error=error, code=TransitionErrorCode.STATUS_CONFLICT)

        audit_service.record_transition(
            db,
            job_id=job_id,
            from_status=frm.value,
            to_status=to.value,
            actor_id=actor_id,
            occurred_at=now,
            transition_data=data,
            attempts=self.audit_write_attempts,
        )
        logger.info("Job %s transitioned %s -> %s by user %s", job_id, frm.value, to.value, actor_id)
        return TransitionResult(success=True)

    def bulk_transition_status(
        self,
        db: Session,
        job_ids: list[int],
        from_status: JobStatus | str,
        to_status: JobStatus | str,
        transition_data: dict[str, Any] | None,
        actor_id: int,
    ) -> list[BulkTransitionResult]:
        """Apply one transition to each job independently.

        Callers must have grouped ``job_ids`` by their current status. There
        is no cross-job rollback: a rejection for one job leaves the others'
        committed transitions in place. A storage error for one job is
        reported as PERSISTENCE_FAILURE and the remaining jobs are still tried.
        """
        results = []
        for job_id in job_ids:
            try:
                result = self.transition_status(db, job_id, from_status, to_status, transition_data, actor_id)
            except Exception as exc:
                db.rollback()
                logger.exception("Bulk transition failed for job %s", job_id)
                result = TransitionResult(
                    success=False, error=str(exc), code=TransitionErrorCode.PERSISTENCE_FAILURE
                )
            results.append(
                BulkTransitionResult(job_id=job_id, success=result.success, error=result.error, code=result.code)
            )
        succeeded = sum(1 for r in results if r.success)
        logger.info(
            "Bulk transition %s -> %s: %d/%d succeeded",
            JobStatus(from_status).value, JobStatus(to_status).value, succeeded, len(results),
        )
        return results

    def available_transitions(self, from_status: JobStatus | str) -> list[dict[str, Any]]:
        return [
            {"to_status": to, "required_fields": list(self.table.required_fields(from_status, to))}
            for to in self.table.next_statuses(from_status)
        ]


def _text_or_none(value: Any) -> str | None:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str) and value.strip():
        return value
    return None


def _timestamp_or_none(value: Any) -> str | None:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, str) and value:
        try:
            return format_timestamp(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


workflow_service = JobStatusWorkflowService()
