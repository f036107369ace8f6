from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from recruitment.config import settings
from recruitment.services.transition_table import JobStatus, TransitionErrorCode
from recruitment.utils.timestamps import format_timestamp


class CloseReason(str, Enum):
    POSITION_FILLED = "position_filled"
    BUDGET_CONSTRAINTS = "budget_constraints"
    REQUIREMENTS_CHANGED = "requirements_changed"
    CANCELLED = "cancelled"


class PendingApplicationsHandling(str, Enum):
    REJECT_ALL = "reject_all"
    KEEP_PENDING = "keep_pending"
    MANUAL_REVIEW = "manual_review"


def _future_date(value: date) -> date:
    if value <= datetime.now(timezone.utc).date():
        raise ValueError("new_deadline must be a future date")
    return value


class PublishRequest(BaseModel):
    scheduled_publish_at: datetime | None = None
    transition_reason: str | None = Field(None, max_length=500)

    @field_validator("scheduled_publish_at")
    @classmethod
    def _must_be_future(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if value <= datetime.now(timezone.utc):
            raise ValueError("scheduled_publish_at must be a future date")
        return value


class CloseRequest(BaseModel):
    close_reason: CloseReason
    handle_pending_applications: PendingApplicationsHandling
    close_notes: str | None = Field(None, max_length=1000)
    transition_reason: str | None = Field(None, max_length=500)


class ArchiveRequest(BaseModel):
    archive_reason: str = Field(min_length=1, max_length=500)
    retention_period_days: int | None = Field(None, ge=1, le=3650)

    @field_validator("archive_reason")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("archive_reason is required")
        return value


class ReopenRequest(BaseModel):
    new_deadline: date | None = None
    transition_reason: str | None = Field(None, max_length=500)

    @field_validator("new_deadline")
    @classmethod
    def _must_be_future(cls, value: date | None) -> date | None:
        return _future_date(value) if value is not None else None


class BulkStatusRequest(BaseModel):
    job_uuids: list[str] = Field(min_length=1)
    target_status: JobStatus
    transition_data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("job_uuids")
    @classmethod
    def _bounded_and_unique(cls, value: list[str]) -> list[str]:
        if len(value) > settings.bulk_max_jobs:
            raise ValueError(f"job_uuids max {settings.bulk_max_jobs} jobs per bulk operation")
        if len(set(value)) != len(value):
            raise ValueError("job_uuids must not contain duplicates")
        return value

    @field_validator("transition_data")
    @classmethod
    def _checked_payload_fields(cls, value: dict[str, Any]) -> dict[str, Any]:
        if value.get("close_reason") is not None:
            value["close_reason"] = CloseReason(value["close_reason"]).value
        if value.get("handle_pending_applications") is not None:
            value["handle_pending_applications"] = PendingApplicationsHandling(
                value["handle_pending_applications"]
            ).value
        if value.get("new_deadline") is not None:
            deadline = date.fromisoformat(str(value["new_deadline"]))
            value["new_deadline"] = _future_date(deadline).isoformat()
        if value.get("scheduled_publish_at") is not None:
            when = datetime.fromisoformat(str(value["scheduled_publish_at"]).replace("Z", "+00:00"))
            if when.tzinfo is None:
                when = when.replace(tzinfo=timezone.utc)
            if when > datetime.now(timezone.utc):
                raise ValueError("scheduled_publish_at in the future must be set per job via /publish")
            value["scheduled_publish_at"] = format_timestamp(when)
        return value


class TransitionResponse(BaseModel):
    message: str
    from_status: JobStatus
    to_status: JobStatus


class ScheduleResponse(BaseModel):
    message: str
    scheduled_publish_at: str


class BulkTransitionItem(BaseModel):
    job_id: int
    job_uuid: str
    success: bool
    error: str | None = None
    code: TransitionErrorCode | None = None


class BulkStatusResponse(BaseModel):
    message: str
    from_status: JobStatus
    to_status: JobStatus
    succeeded: int
    failed: int
    results: list[BulkTransitionItem]


class TransitionRecordResponse(BaseModel):
    id: int
    from_status: str
    to_status: str
    transition_reason: str | None
    transition_data: dict[str, Any] | None
    created_by: int
    created_at: str


class AvailableTransition(BaseModel):
    to_status: JobStatus
    required_fields: list[str]


class WorkflowStateResponse(BaseModel):
    job_uuid: str
    status: JobStatus
    previous_status: JobStatus | None
    scheduled_publish_at: str | None
    available_transitions: list[AvailableTransition]
