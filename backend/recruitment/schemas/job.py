from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    location: str | None = None
    application_deadline: str | None = None


class JobResponse(BaseModel):
    id: int
    uuid: str
    title: str
    description: str | None
    location: str | None
    application_deadline: str | None
    status: str
    previous_status: str | None
    status_changed_at: str | None
    status_changed_by: int | None
    close_reason: str | None
    close_notes: str | None
    archive_reason: str | None
    scheduled_publish_at: str | None
    published_at: str | None
    closed_at: str | None
    created_by: int
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int
    page: int
    per_page: int
