import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from recruitment.database import get_db
from recruitment.dependencies import get_current_user_id, require_permission
from recruitment.models.job import JobPosting
from recruitment.repositories import job_repository
from recruitment.schemas.job import JobCreate, JobListResponse, JobResponse
from recruitment.services.rbac_service import JOBS_CREATE
from recruitment.services.transition_table import JobStatus
from recruitment.utils.timestamps import format_timestamp, utc_now

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    req: JobCreate,
    user_id: int = Depends(require_permission(JOBS_CREATE)),
    db: Session = Depends(get_db),
):
    now = format_timestamp(utc_now())
    job = JobPosting(
        uuid=str(uuid.uuid4()),
        title=req.title,
        description=req.description,
        location=req.location,
        application_deadline=req.application_deadline,
        status=JobStatus.DRAFT.value,
        created_by=user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return JobResponse.model_validate(job)


@router.get("", response_model=JobListResponse, dependencies=[Depends(get_current_user_id)])
async def list_jobs(
    status: JobStatus | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(JobPosting)
    if status:
        query = query.filter(JobPosting.status == status.value)

    total = query.count()
    jobs = query.order_by(JobPosting.updated_at.desc(), JobPosting.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(j) for j in jobs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{job_uuid}", response_model=JobResponse, dependencies=[Depends(get_current_user_id)])
async def get_job(job_uuid: str, db: Session = Depends(get_db)):
    job = job_repository.find_by_uuid(db, job_uuid)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)
