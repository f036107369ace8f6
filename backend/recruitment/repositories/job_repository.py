"""Data access for job postings, their status workflow and the transition log."""
import json
from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from recruitment.models.application import Application
from recruitment.models.job import JobPosting
from recruitment.models.job_status_transition import JobStatusTransition
from recruitment.utils.timestamps import format_timestamp


def find_by_id(db: Session, job_id: int) -> JobPosting | None:
    return db.query(JobPosting).filter(JobPosting.id == job_id).first()


def find_by_uuid(db: Session, uuid: str) -> JobPosting | None:
    return db.query(JobPosting).filter(JobPosting.uuid == uuid).first()


def find_by_uuids(db: Session, uuids: list[str]) -> list[JobPosting]:
    return db.query(JobPosting).filter(JobPosting.uuid.in_(uuids)).all()


def update_status_by_id(
    db: Session,
    job_id: int,
    new_status: str,
    *,
    previous_status: str,
    status_changed_by: int,
    status_changed_at: datetime,
    close_reason: str | None = None,
    close_notes: str | None = None,
    archive_reason: str | None = None,
    scheduled_publish_at: str | None = None,
    application_deadline: str | None = None,
) -> JobPosting | None:
    """Patch the status fields, guarded on the job still holding ``previous_status``.

    Commits on success. Returns the refreshed job, or None when no row
    matched (unknown id, or the status changed underneath the caller).
    """
    changed_at = format_timestamp(status_changed_at)
    patch: dict[str, Any] = {
        JobPosting.status: new_status,
        JobPosting.previous_status: previous_status,
        JobPosting.status_changed_by: status_changed_by,
        JobPosting.status_changed_at: changed_at,
        JobPosting.updated_at: changed_at,
    }
    if close_reason:
        patch[JobPosting.close_reason] = close_reason
    if close_notes:
        patch[JobPosting.close_notes] = close_notes
    if archive_reason:
        patch[JobPosting.archive_reason] = archive_reason
    if scheduled_publish_at:
        patch[JobPosting.scheduled_publish_at] = scheduled_publish_at
    if application_deadline:
        patch[JobPosting.application_deadline] = application_deadline
    if new_status == "published":
        patch[JobPosting.published_at] = changed_at
        if previous_status == "draft":
            patch[JobPosting.scheduled_publish_at] = None
    if new_status == "closed":
        patch[JobPosting.closed_at] = changed_at

    matched = (
        db.query(JobPosting)
        .filter(JobPosting.id == job_id, JobPosting.status == previous_status)
        .update(patch, synchronize_session=False)
    )
    if matched == 0:
        db.rollback()
        return None
    db.commit()
    job = find_by_id(db, job_id)
    if job is not None:
        db.refresh(job)
    return job


def log_status_transition(
    db: Session,
    *,
    job_posting_id: int,
    from_status: str,
    to_status: str,
    created_by: int,
    created_at: datetime,
    transition_reason: str | None = None,
    transition_data: dict[str, Any] | None = None,
) -> JobStatusTransition:
    record = JobStatusTransition(
        job_posting_id=job_posting_id,
        from_status=from_status,
        to_status=to_status,
        transition_reason=transition_reason,
        transition_data=json.dumps(transition_data, default=str) if transition_data is not None else None,
        created_by=created_by,
        created_at=format_timestamp(created_at),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def find_transitions_by_job_id(db: Session, job_id: int) -> list[JobStatusTransition]:
    return (
        db.query(JobStatusTransition)
        .filter(JobStatusTransition.job_posting_id == job_id)
        .order_by(JobStatusTransition.created_at.asc(), JobStatusTransition.id.asc())
        .all()
    )


def count_pending_applications(db: Session, job_id: int) -> int:
    return (
        db.query(func.count(Application.id))
        .filter(Application.job_posting_id == job_id, Application.status == "pending")
        .scalar()
    )


def schedule_publish(db: Session, job_id: int, scheduled_publish_at: datetime, updated_at: datetime) -> JobPosting | None:
    """Record a future publish time on a draft. Returns None if the job is not a draft."""
    matched = (
        db.query(JobPosting)
        .filter(JobPosting.id == job_id, JobPosting.status == "draft")
        .update(
            {
                JobPosting.scheduled_publish_at: format_timestamp(scheduled_publish_at),
                JobPosting.updated_at: format_timestamp(updated_at),
            },
            synchronize_session=False,
        )
    )
    if matched == 0:
        db.rollback()
        return None
    db.commit()
    job = find_by_id(db, job_id)
    if job is not None:
        db.refresh(job)
    return job


def find_due_scheduled_jobs(db: Session, now: datetime) -> list[JobPosting]:
    return (
        db.query(JobPosting)
        .filter(JobPosting.status == "draft")
        .filter(JobPosting.scheduled_publish_at.isnot(None))
        .filter(JobPosting.scheduled_publish_at <= format_timestamp(now))
        .order_by(JobPosting.scheduled_publish_at.asc())
        .all()
    )
