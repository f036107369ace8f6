import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session
from tenacity import RetryCallState, Retrying, stop_after_attempt

from recruitment.models.job_status_transition import JobStatusTransition
from recruitment.repositories import job_repository
from recruitment.utils.timestamps import format_timestamp

logger = logging.getLogger("recruitment.audit")


class AuditTrailError(RuntimeError):
    """A status change committed but its transition record could not be written."""

    def __init__(self, job_id: int, from_status: str, to_status: str, cause: Exception):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        self.cause = cause
        super().__init__(
            f"Job {job_id} moved {from_status} -> {to_status} but the transition record "
            f"was not written: {cause}"
        )


def record_transition(
    db: Session,
    *,
    job_id: int,
    from_status: str,
    to_status: str,
    actor_id: int,
    occurred_at: datetime,
    transition_data: dict[str, Any],
    attempts: int = 1,
) -> JobStatusTransition:
    """Append the transition record for a status change that already committed.

    Retries up to ``attempts`` times. The final failure is logged and raised as
    AuditTrailError; the status change itself is not rolled back.
    """
    attempts = max(attempts, 1)

    def _rollback_failed_attempt(retry_state: RetryCallState) -> None:
        db.rollback()
        logger.warning(
            "Transition record write failed for job %s (attempt %d/%d): %s",
            job_id, retry_state.attempt_number, attempts, retry_state.outcome.exception(),
        )

    try:
        for attempt in Retrying(stop=stop_after_attempt(attempts), after=_rollback_failed_attempt, reraise=True):
            with attempt:
                record = job_repository.log_status_transition(
                    db,
                    job_posting_id=job_id,
                    from_status=from_status,
                    to_status=to_status,
                    transition_reason=_transition_reason(transition_data),
                    transition_data=transition_data,
                    created_by=actor_id,
                    created_at=occurred_at,
                )
    except Exception as exc:
        logger.error(
            "AUDIT TRAIL INCONSISTENCY: job %s is now %s (was %s) without a transition record",
            job_id, to_status, from_status,
        )
        raise AuditTrailError(job_id, from_status, to_status, exc) from exc

    log_activity(
        "job_status_transition",
        actor_id=actor_id,
        job_id=job_id,
        from_status=from_status,
        to_status=to_status,
        occurred_at=format_timestamp(occurred_at),
        payload_keys=sorted(transition_data),
    )
    return record


def log_activity(action: str, **fields: Any) -> None:
    """One JSON line per activity so log shippers can index it."""
    logger.info(json.dumps({"action": action, **fields}, default=str, sort_keys=True))


def _transition_reason(data: dict[str, Any]) -> str | None:
    for key in ("transition_reason", "close_reason", "archive_reason"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value[:500]
    return None
