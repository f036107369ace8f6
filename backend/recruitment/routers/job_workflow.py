import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from recruitment.database import get_db
from recruitment.dependencies import get_current_user_id, require_permission
from recruitment.models.job import JobPosting
from recruitment.repositories import job_repository
from recruitment.schemas.workflow import (
    ArchiveRequest,
    AvailableTransition,
    BulkStatusRequest,
    BulkStatusResponse,
    BulkTransitionItem,
    CloseRequest,
    PublishRequest,
    ReopenRequest,
    ScheduleResponse,
    TransitionRecordResponse,
    TransitionResponse,
    WorkflowStateResponse,
)
from recruitment.services.rbac_service import JOBS_PUBLISH
from recruitment.services.transition_table import JobStatus
from recruitment.services.workflow_service import workflow_service

logger = logging.getLogger("recruitment.workflow")

router = APIRouter(prefix="/jobs", tags=["job-workflow"])


def _get_job_or_404(db: Session, job_uuid: str) -> JobPosting:
    job = job_repository.find_by_uuid(db, job_uuid)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _transition(db: Session, job: JobPosting, to: JobStatus, data: dict[str, Any], user_id: int) -> TransitionResponse:
    job_id = job.id
    frm = JobStatus(job.status)
    result = workflow_service.transition_status(db, job_id, frm, to, data, user_id)
    if not result.success:
        raise HTTPException(status_code=409, detail=result.error)
    return TransitionResponse(
        message=f"Job status changed from {frm.value} to {to.value} successfully",
        from_status=frm,
        to_status=to,
    )


@router.post("/bulk-status", response_model=BulkStatusResponse)
async def bulk_status(
    req: BulkStatusRequest,
    user_id: int = Depends(require_permission(JOBS_PUBLISH)),
    db: Session = Depends(get_db),
):
    jobs = job_repository.find_by_uuids(db, req.job_uuids)
    if len(jobs) != len(req.job_uuids):
        raise HTTPException(status_code=404, detail="One or more jobs not found")

    from_statuses = {job.status for job in jobs}
    if len(from_statuses) != 1:
        raise HTTPException(
            status_code=400,
            detail="All jobs must have the same current status for bulk operation",
        )
    frm = JobStatus(from_statuses.pop())
    by_uuid = {job.uuid: job.id for job in jobs}
    job_ids = [by_uuid[u] for u in req.job_uuids]

    results = workflow_service.bulk_transition_status(
        db, job_ids, frm, req.target_status, req.transition_data, user_id
    )
    uuid_by_id = {job_id: job_uuid for job_uuid, job_id in by_uuid.items()}
    items = [
        BulkTransitionItem(
            job_id=r.job_id,
            job_uuid=uuid_by_id[r.job_id],
            success=r.success,
            error=r.error,
            code=r.code,
        )
        for r in results
    ]
    succeeded = sum(1 for item in items if item.success)
    return BulkStatusResponse(
        message="Bulk job status update completed",
        from_status=frm,
        to_status=req.target_status,
        succeeded=succeeded,
        failed=len(items) - succeeded,
        results=items,
    )


@router.post(
    "/{job_uuid}/publish",
    response_model=TransitionResponse,
    responses={202: {"model": ScheduleResponse}},
)
async def publish_job(
    job_uuid: str,
    req: PublishRequest,
    user_id: int = Depends(require_permission(JOBS_PUBLISH)),
    db: Session = Depends(get_db),
):
    job = _get_job_or_404(db, job_uuid)
    if req.scheduled_publish_at is not None:
        # A future publish time on a draft is stored; the scheduler publishes it.
        if job.status != JobStatus.DRAFT.value:
            raise HTTPException(status_code=409, detail="Only draft jobs can be scheduled for publishing")
        now = workflow_service.clock()
        scheduled = job_repository.schedule_publish(db, job.id, req.scheduled_publish_at, now)
        if scheduled is None:
            raise HTTPException(status_code=409, detail="Only draft jobs can be scheduled for publishing")
        logger.info("Job %s scheduled for publishing at %s by user %s", job_uuid, scheduled.scheduled_publish_at, user_id)
        body = ScheduleResponse(
            message="Job scheduled for publishing",
            scheduled_publish_at=scheduled.scheduled_publish_at,
        )
        return JSONResponse(status_code=202, content=body.model_dump())
    return _transition(db, job, JobStatus.PUBLISHED, req.model_dump(mode="json", exclude_none=True), user_id)


@router.post("/{job_uuid}/close", response_model=TransitionResponse)
async def close_job(
    job_uuid: str,
    req: CloseRequest,
    user_id: int = Depends(require_permission(JOBS_PUBLISH)),
    db: Session = Depends(get_db),
):
    job = _get_job_or_404(db, job_uuid)
    return _transition(db, job, JobStatus.CLOSED, req.model_dump(mode="json", exclude_none=True), user_id)


@router.post("/{job_uuid}/archive", response_model=TransitionResponse)
async def archive_job(
    job_uuid: str,
    req: ArchiveRequest,
    user_id: int = Depends(require_permission(JOBS_PUBLISH)),
    db: Session = Depends(get_db),
):
    job = _get_job_or_404(db, job_uuid)
    return _transition(db, job, JobStatus.ARCHIVED, req.model_dump(mode="json", exclude_none=True), user_id)


@router.post("/{job_uuid}/reopen", response_model=TransitionResponse)
async def reopen_job(
    job_uuid: str,
    req: ReopenRequest,
    user_id: int = Depends(require_permission(JOBS_PUBLISH)),
    db: Session = Depends(get_db),
):
    job = _get_job_or_404(db, job_uuid)
    if job.status != JobStatus.CLOSED.value:
        raise HTTPException(status_code=409, detail=f"Only closed jobs can be reopened; job is {job.status}")
    return _transition(db, job, JobStatus.PUBLISHED, req.model_dump(mode="json", exclude_none=True), user_id)


@router.get(
    "/{job_uuid}/transitions",
    response_model=list[TransitionRecordResponse],
    dependencies=[Depends(get_current_user_id)],
)
async def list_transitions(job_uuid: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_uuid)
    return [
        TransitionRecordResponse(
            id=t.id,
            from_status=t.from_status,
            to_status=t.to_status,
            transition_reason=t.transition_reason,
            transition_data=json.loads(t.transition_data) if t.transition_data else None,
            created_by=t.created_by,
            created_at=t.created_at,
        )
        for t in job_repository.find_transitions_by_job_id(db, job.id)
    ]


@router.get(
    "/{job_uuid}/workflow",
    response_model=WorkflowStateResponse,
    dependencies=[Depends(get_current_user_id)],
)
async def workflow_state(job_uuid: str, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_uuid)
    return WorkflowStateResponse(
        job_uuid=job.uuid,
        status=JobStatus(job.status),
        previous_status=JobStatus(job.previous_status) if job.previous_status else None,
        scheduled_publish_at=job.scheduled_publish_at,
        available_transitions=[
            AvailableTransition(**t) for t in workflow_service.available_transitions(job.status)
        ],
    )
